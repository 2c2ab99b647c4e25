"""
create t_bios_asset_element_type table

Revision ID: 001_create_t_bios_asset_element_type
Revises:
Create Date: 2026-09-01 00:00:01.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from migration_helpers import table_exists, seed_lookup

revision = "001_create_t_bios_asset_element_type"
down_revision = None
branch_labels = None
depends_on = None

TABLE_NAME = "t_bios_asset_element_type"

ELEMENT_TYPES = [
    (0, "unknown"),
    (1, "group"),
    (2, "datacenter"),
    (3, "room"),
    (4, "row"),
    (5, "rack"),
    (6, "device"),
    (7, "infra-service"),
    (8, "cluster"),
    (9, "hypervisor"),
    (10, "virtual-machine"),
    (11, "storage-service"),
    (12, "vapp"),
    (13, "connector"),
    (15, "server"),
    (16, "planner"),
    (17, "plan"),
    (18, "cops"),
    (19, "operating-system"),
    (20, "host-group"),
]


def _create_table() -> None:
    if not table_exists(TABLE_NAME):
        op.create_table(
            TABLE_NAME,
            sa.Column("id_asset_element_type", sa.SmallInteger(), primary_key=True, autoincrement=False),
            sa.Column("name", sa.String(50), nullable=False, unique=True),
        )


def _seed_table() -> None:
    table = sa.table(
        TABLE_NAME,
        sa.column("id_asset_element_type", sa.SmallInteger()),
        sa.column("name", sa.String()),
    )
    seed_lookup(table, "id_asset_element_type", ELEMENT_TYPES)


def upgrade() -> None:
    _create_table()
    _seed_table()


def downgrade() -> None:
    op.drop_table(TABLE_NAME)
