"""
create t_bios_asset_element table

Revision ID: 003_create_t_bios_asset_element
Revises: 002_create_t_bios_asset_device_type
Create Date: 2026-09-01 00:00:03.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from migration_helpers import table_exists, create_index_if_not_exists

revision = "003_create_t_bios_asset_element"
down_revision = "002_create_t_bios_asset_device_type"
branch_labels = None
depends_on = None

TABLE_NAME = "t_bios_asset_element"


def _create_table() -> None:
    if not table_exists(TABLE_NAME):
        op.create_table(
            TABLE_NAME,
            sa.Column("id_asset_element", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("name", sa.String(50), nullable=False, unique=True),
            sa.Column(
                "id_type",
                sa.SmallInteger(),
                sa.ForeignKey("t_bios_asset_element_type.id_asset_element_type"),
                nullable=False,
            ),
            sa.Column(
                "id_subtype",
                sa.SmallInteger(),
                sa.ForeignKey("t_bios_asset_device_type.id_asset_device_type"),
                nullable=False,
                server_default="11",
            ),
            sa.Column(
                "id_parent",
                sa.Integer(),
                sa.ForeignKey("t_bios_asset_element.id_asset_element"),
                nullable=True,
            ),
            sa.Column("status", sa.String(9), nullable=False, server_default="nonactive"),
            sa.Column("priority", sa.SmallInteger(), nullable=False, server_default="5"),
            sa.Column("asset_tag", sa.String(50), nullable=True),
        )


def _create_indexes() -> None:
    create_index_if_not_exists("ix_t_bios_asset_element_name", TABLE_NAME, ["name"], unique=True)
    create_index_if_not_exists("ix_t_bios_asset_element_id_parent", TABLE_NAME, ["id_parent"])


def upgrade() -> None:
    _create_table()
    _create_indexes()


def downgrade() -> None:
    op.drop_table(TABLE_NAME)
