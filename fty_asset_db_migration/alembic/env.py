from __future__ import annotations

import os
import sys
from logging.config import fileConfig
from pathlib import Path

from sqlalchemy import engine_from_config, pool
from alembic import context

MIGRATION_DIR = Path(__file__).resolve().parent.parent
AGENT_DIR = MIGRATION_DIR.parent / "fty_asset_agent"

# migration_helpers lives next to alembic.ini; asset_agent provides the .env loading
sys.path.insert(0, str(MIGRATION_DIR))
sys.path.insert(0, str(AGENT_DIR))

from asset_agent.core.config import load_environment  # noqa: E402

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# Same .env.<APP_ENV> as the agent, so both run against one database
load_environment()
db_url = os.getenv("DB_URL")
if not db_url:
    raise RuntimeError("DB_URL environment variable is not set")

config.set_main_option("sqlalchemy.url", db_url)

# pure-op migrations, no autogenerate
target_metadata = None


def run_migrations_offline() -> None:
    """Emit the SQL of every pending revision without a connection."""
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = engine_from_config(
        config.get_section(config.config_ini_section),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        # SQLite cannot ALTER in place; batch mode recreates tables instead
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            render_as_batch=connection.dialect.name == "sqlite",
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
