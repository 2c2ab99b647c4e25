"""
create v_bios_asset_element_super_parent and v_bios_asset_ext_attributes views

Revision ID: 008_create_asset_views
Revises: 007_create_t_bios_asset_group_relation
Create Date: 2026-09-01 00:00:08.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from migration_helpers import view_exists, drop_view_if_exists

revision = "008_create_asset_views"
down_revision = "007_create_t_bios_asset_group_relation"
branch_labels = None
depends_on = None

SUPER_PARENT_VIEW = "v_bios_asset_element_super_parent"
EXT_ATTRIBUTES_VIEW = "v_bios_asset_ext_attributes"
DEPTH = 10


def _super_parent_sql() -> str:
    """
    One row per element with its first DEPTH ancestors, each joined on the
    previous level's id_parent.
    """
    columns = ["v1.id_asset_element AS id_asset_element", "v1.name AS name", "v1.id_type AS id_type"]
    joins = []
    previous = "v1"
    for level in range(1, DEPTH + 1):
        alias = f"p{level}"
        columns.append(f"{alias}.id_asset_element AS id_parent{level}")
        columns.append(f"{alias}.name AS name_parent{level}")
        columns.append(f"{alias}.id_type AS id_type_parent{level}")
        joins.append(
            f"LEFT JOIN t_bios_asset_element {alias} ON {alias}.id_asset_element = {previous}.id_parent"
        )
        previous = alias
    return (
        f"CREATE VIEW {SUPER_PARENT_VIEW} AS SELECT "
        + ", ".join(columns)
        + " FROM t_bios_asset_element v1 "
        + " ".join(joins)
    )


EXT_ATTRIBUTES_SQL = f"""
    CREATE VIEW {EXT_ATTRIBUTES_VIEW} AS
    SELECT
        e.id_asset_ext_attribute,
        e.keytag,
        e.value,
        e.id_asset_element,
        e.read_only,
        a.name AS asset_name
    FROM t_bios_asset_ext_attributes e
    JOIN t_bios_asset_element a ON a.id_asset_element = e.id_asset_element
"""


def upgrade() -> None:
    if not view_exists(SUPER_PARENT_VIEW):
        op.execute(sa.text(_super_parent_sql()))
    if not view_exists(EXT_ATTRIBUTES_VIEW):
        op.execute(sa.text(EXT_ATTRIBUTES_SQL))


def downgrade() -> None:
    drop_view_if_exists(EXT_ATTRIBUTES_VIEW)
    drop_view_if_exists(SUPER_PARENT_VIEW)
