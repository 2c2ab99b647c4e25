"""
create t_bios_asset_device_type table (asset subtypes)

Revision ID: 002_create_t_bios_asset_device_type
Revises: 001_create_t_bios_asset_element_type
Create Date: 2026-09-01 00:00:02.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from migration_helpers import table_exists, seed_lookup

revision = "002_create_t_bios_asset_device_type"
down_revision = "001_create_t_bios_asset_element_type"
branch_labels = None
depends_on = None

TABLE_NAME = "t_bios_asset_device_type"

DEVICE_TYPES = [
    (0, "unknown"),
    (1, "ups"),
    (2, "genset"),
    (3, "epdu"),
    (4, "pdu"),
    (5, "server"),
    (6, "feed"),
    (7, "sts"),
    (8, "switch"),
    (9, "storage"),
    (10, "virtual"),
    (11, "N_A"),
    (12, "router"),
    (13, "rackcontroller"),
    (14, "sensor"),
    (15, "appliance"),
    (16, "chassis"),
    (17, "patchpanel"),
    (18, "other"),
    (19, "sensorgpio"),
    (20, "gpo"),
]


def _create_table() -> None:
    if not table_exists(TABLE_NAME):
        op.create_table(
            TABLE_NAME,
            sa.Column("id_asset_device_type", sa.SmallInteger(), primary_key=True, autoincrement=False),
            sa.Column("name", sa.String(50), nullable=False, unique=True),
        )


def _seed_table() -> None:
    table = sa.table(
        TABLE_NAME,
        sa.column("id_asset_device_type", sa.SmallInteger()),
        sa.column("name", sa.String()),
    )
    seed_lookup(table, "id_asset_device_type", DEVICE_TYPES)


def upgrade() -> None:
    _create_table()
    _seed_table()


def downgrade() -> None:
    op.drop_table(TABLE_NAME)
