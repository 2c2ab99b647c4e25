"""
create t_bios_asset_link_type table

Revision ID: 005_create_t_bios_asset_link_type
Revises: 004_create_t_bios_asset_ext_attributes
Create Date: 2026-09-01 00:00:05.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from migration_helpers import table_exists, seed_lookup

revision = "005_create_t_bios_asset_link_type"
down_revision = "004_create_t_bios_asset_ext_attributes"
branch_labels = None
depends_on = None

TABLE_NAME = "t_bios_asset_link_type"

LINK_TYPES = [
    (1, "power chain"),
]


def _create_table() -> None:
    if not table_exists(TABLE_NAME):
        op.create_table(
            TABLE_NAME,
            sa.Column("id_asset_link_type", sa.SmallInteger(), primary_key=True, autoincrement=False),
            sa.Column("name", sa.String(50), nullable=False, unique=True),
        )


def _seed_table() -> None:
    table = sa.table(
        TABLE_NAME,
        sa.column("id_asset_link_type", sa.SmallInteger()),
        sa.column("name", sa.String()),
    )
    seed_lookup(table, "id_asset_link_type", LINK_TYPES)


def upgrade() -> None:
    _create_table()
    _seed_table()


def downgrade() -> None:
    op.drop_table(TABLE_NAME)
