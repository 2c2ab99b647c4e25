"""
create t_bios_asset_ext_attributes table

Revision ID: 004_create_t_bios_asset_ext_attributes
Revises: 003_create_t_bios_asset_element
Create Date: 2026-09-01 00:00:04.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from migration_helpers import table_exists, create_index_if_not_exists

revision = "004_create_t_bios_asset_ext_attributes"
down_revision = "003_create_t_bios_asset_element"
branch_labels = None
depends_on = None

TABLE_NAME = "t_bios_asset_ext_attributes"


def _create_table() -> None:
    if not table_exists(TABLE_NAME):
        op.create_table(
            TABLE_NAME,
            sa.Column("id_asset_ext_attribute", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("keytag", sa.String(40), nullable=False),
            sa.Column("value", sa.String(255), nullable=False),
            sa.Column(
                "id_asset_element",
                sa.Integer(),
                sa.ForeignKey("t_bios_asset_element.id_asset_element", ondelete="CASCADE"),
                nullable=False,
            ),
            sa.Column("read_only", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.UniqueConstraint("keytag", "id_asset_element", name="uq_asset_ext_attributes_keytag"),
        )


def _create_indexes() -> None:
    create_index_if_not_exists(
        "ix_t_bios_asset_ext_attributes_id_asset_element", TABLE_NAME, ["id_asset_element"]
    )


def upgrade() -> None:
    _create_table()
    _create_indexes()


def downgrade() -> None:
    op.drop_table(TABLE_NAME)
