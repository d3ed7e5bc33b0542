"""Alembic environment for the media catalogue schema.

A live connection passed through ``config.attributes["connection"]`` wins.
Otherwise the URL is taken from ``alembic.ini`` and, when that is blank, from
:class:`mediacat.config.CatalogueSettings` (``MEDIACAT_DATABASE_URL``).
"""

from __future__ import annotations

import asyncio
import typing as typ
from logging.config import fileConfig

from sqlalchemy import pool
from sqlalchemy.ext.asyncio import AsyncConnection, async_engine_from_config

from alembic import context
from mediacat.catalogue.storage.models import Base
from mediacat.config import CatalogueSettings

if typ.TYPE_CHECKING:
    from sqlalchemy.engine import Connection

config = context.config

if config.config_file_name:
    fileConfig(config.config_file_name, disable_existing_loggers=False)

target_metadata = Base.metadata


def _database_url() -> str:
    configured = config.get_main_option("sqlalchemy.url")
    if configured:
        return configured
    url = CatalogueSettings.from_environment().database_url
    config.set_main_option("sqlalchemy.url", url.replace("%", "%%"))
    return url


def _configure(connection: Connection) -> None:
    # SQLite cannot ALTER most constraints in place.
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        compare_type=True,
        render_as_batch=connection.dialect.name == "sqlite",
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_offline() -> None:
    """Emit migration SQL without a database connection."""
    context.configure(
        url=_database_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        compare_type=True,
    )
    with context.begin_transaction():
        context.run_migrations()


async def _run_with_own_engine() -> None:
    _database_url()
    engine = async_engine_from_config(
        config.get_section(config.config_ini_section) or {},
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    try:
        async with engine.connect() as connection:
            await connection.run_sync(_configure)
    finally:
        await engine.dispose()


def run_migrations_online() -> None:
    """Run migrations on the handed-over connection or a fresh engine."""
    connection = config.attributes.get("connection")
    if connection is None:
        asyncio.run(_run_with_own_engine())
    elif isinstance(connection, AsyncConnection):
        asyncio.run(connection.run_sync(_configure))
    else:
        _configure(connection)


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
