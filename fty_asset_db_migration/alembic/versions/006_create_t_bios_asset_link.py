"""
create t_bios_asset_link table (power links between devices)

Revision ID: 006_create_t_bios_asset_link
Revises: 005_create_t_bios_asset_link_type
Create Date: 2026-09-01 00:00:06.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from migration_helpers import table_exists, create_index_if_not_exists

revision = "006_create_t_bios_asset_link"
down_revision = "005_create_t_bios_asset_link_type"
branch_labels = None
depends_on = None

TABLE_NAME = "t_bios_asset_link"


def _create_table() -> None:
    if not table_exists(TABLE_NAME):
        op.create_table(
            TABLE_NAME,
            sa.Column("id_link", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column(
                "id_asset_device_src",
                sa.Integer(),
                sa.ForeignKey("t_bios_asset_element.id_asset_element"),
                nullable=False,
            ),
            sa.Column("src_out", sa.String(16), nullable=True),
            sa.Column(
                "id_asset_device_dest",
                sa.Integer(),
                sa.ForeignKey("t_bios_asset_element.id_asset_element"),
                nullable=False,
            ),
            sa.Column("dest_in", sa.String(16), nullable=True),
            sa.Column(
                "id_asset_link_type",
                sa.SmallInteger(),
                sa.ForeignKey("t_bios_asset_link_type.id_asset_link_type"),
                nullable=False,
                server_default="1",
            ),
            sa.UniqueConstraint(
                "id_asset_device_src",
                "src_out",
                "id_asset_device_dest",
                "dest_in",
                name="uq_asset_link",
            ),
        )


def _create_indexes() -> None:
    create_index_if_not_exists("ix_t_bios_asset_link_src", TABLE_NAME, ["id_asset_device_src"])
    create_index_if_not_exists("ix_t_bios_asset_link_dest", TABLE_NAME, ["id_asset_device_dest"])


def upgrade() -> None:
    _create_table()
    _create_indexes()


def downgrade() -> None:
    op.drop_table(TABLE_NAME)
