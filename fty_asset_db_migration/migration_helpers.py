"""
Helper functions for the asset registry Alembic migrations.
These functions make migrations idempotent by checking if objects exist before creating them.
"""

from alembic import op
import sqlalchemy as sa


def _inspector():
    return sa.inspect(op.get_bind())


def table_exists(table_name: str) -> bool:
    """Check if a table exists in the current database."""
    return _inspector().has_table(table_name)


def view_exists(view_name: str) -> bool:
    """Check if a view exists in the current database."""
    return view_name in _inspector().get_view_names()


def index_exists(table_name: str, index_name: str) -> bool:
    """Check if an index exists on the given table."""
    if not table_exists(table_name):
        return False
    return any(index["name"] == index_name for index in _inspector().get_indexes(table_name))


def column_exists(table_name: str, column_name: str) -> bool:
    """Check if a column exists in the given table."""
    if not table_exists(table_name):
        return False
    return any(column["name"] == column_name for column in _inspector().get_columns(table_name))


def create_index_if_not_exists(index_name: str, table_name: str, columns, unique: bool = False) -> None:
    if not index_exists(table_name, index_name):
        op.create_index(index_name, table_name, columns, unique=unique)


def drop_table_if_exists(table_name: str) -> None:
    """Drop a table if it exists."""
    if table_exists(table_name):
        op.drop_table(table_name)


def drop_view_if_exists(view_name: str) -> None:
    if view_exists(view_name):
        op.execute(sa.text(f"DROP VIEW {view_name}"))


def seed_lookup(table: sa.Table, id_column: str, rows) -> None:
    """
    Insert (id, name) rows into a lookup table, skipping ids already present.
    """
    conn = op.get_bind()
    present = {row[0] for row in conn.execute(sa.select(table.c[id_column]))}
    missing = [{id_column: row_id, "name": name} for row_id, name in rows if row_id not in present]
    if missing:
        op.bulk_insert(table, missing)
