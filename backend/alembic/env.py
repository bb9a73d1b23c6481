"""Alembic environment for the escrow settlement schema.

The database URL always comes from ``SETTLEMENT_DATABASE_URL`` (via
Settings), never from alembic.ini, so migrations hit the same database the
engine and the Celery sweeper use.
"""

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.ext.asyncio import async_engine_from_config

from settlement.core.config import settings
from settlement.db.base import Base
import settlement.models  # noqa: F401 (escrow_payments and audit_logs)

config = context.config
config.set_main_option("sqlalchemy.url", settings.database_url)

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata

# Amounts are BIGINT; autogenerate must notice a column narrowing to INTEGER.
COMPARE_OPTIONS = {"target_metadata": target_metadata, "compare_type": True}


def run_migrations_offline() -> None:
    """Emit the escrow schema as SQL for a DBA to apply by hand."""
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **COMPARE_OPTIONS,
    )
    with context.begin_transaction():
        context.run_migrations()


def _migrate(connection) -> None:
    context.configure(connection=connection, **COMPARE_OPTIONS)
    with context.begin_transaction():
        context.run_migrations()


async def _migrate_async() -> None:
    # asyncpg in production; NullPool so the migration leaves no idle connections
    migration_engine = async_engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    async with migration_engine.connect() as connection:
        await connection.run_sync(_migrate)
    await migration_engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(_migrate_async())
