"""
create t_bios_asset_group_relation table

Revision ID: 007_create_t_bios_asset_group_relation
Revises: 006_create_t_bios_asset_link
Create Date: 2026-09-01 00:00:07.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from migration_helpers import table_exists, create_index_if_not_exists

revision = "007_create_t_bios_asset_group_relation"
down_revision = "006_create_t_bios_asset_link"
branch_labels = None
depends_on = None

TABLE_NAME = "t_bios_asset_group_relation"


def _create_table() -> None:
    if not table_exists(TABLE_NAME):
        op.create_table(
            TABLE_NAME,
            sa.Column("id_asset_group_relation", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column(
                "id_asset_group",
                sa.Integer(),
                sa.ForeignKey("t_bios_asset_element.id_asset_element"),
                nullable=False,
            ),
            sa.Column(
                "id_asset_element",
                sa.Integer(),
                sa.ForeignKey("t_bios_asset_element.id_asset_element"),
                nullable=False,
            ),
            sa.UniqueConstraint("id_asset_group", "id_asset_element", name="uq_asset_group_relation"),
        )


def _create_indexes() -> None:
    create_index_if_not_exists("ix_t_bios_asset_group_relation_group", TABLE_NAME, ["id_asset_group"])
    create_index_if_not_exists("ix_t_bios_asset_group_relation_element", TABLE_NAME, ["id_asset_element"])


def upgrade() -> None:
    _create_table()
    _create_indexes()


def downgrade() -> None:
    op.drop_table(TABLE_NAME)
