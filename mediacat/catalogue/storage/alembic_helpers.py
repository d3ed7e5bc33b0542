"""Alembic wiring for the catalogue schema.

Migrations always run on a connection handed over by the caller, so the
schema drift check, the test fixtures and application start-up share one
engine per database.

Examples
--------
Bring a database to the latest revision and report it:

>>> await apply_migrations(engine)
>>> await current_revision(engine)
'20261019_000001'
"""

from __future__ import annotations

import pathlib
import typing as typ

from alembic.config import Config
from alembic.migration import MigrationContext

from alembic import command

if typ.TYPE_CHECKING:
    from sqlalchemy.engine import Connection
    from sqlalchemy.ext.asyncio import AsyncEngine

_PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[3]


def alembic_config(database_url: str) -> Config:
    """Return an Alembic ``Config`` for ``alembic/`` at the project root.

    ``%`` in ``database_url`` is doubled because Alembic stores options in a
    ConfigParser.
    """
    cfg = Config(str(_PROJECT_ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(_PROJECT_ROOT / "alembic"))
    cfg.set_main_option("sqlalchemy.url", database_url.replace("%", "%%"))
    return cfg


def _upgrade(connection: Connection, cfg: Config, revision: str) -> None:
    cfg.attributes["connection"] = connection
    command.upgrade(cfg, revision)


def _revision(connection: Connection) -> str | None:
    return MigrationContext.configure(connection).get_current_revision()


async def apply_migrations(engine: AsyncEngine, revision: str = "head") -> None:
    """Upgrade the database behind ``engine`` to ``revision``.

    Parameters
    ----------
    engine : AsyncEngine
        Engine whose database is migrated inside one transaction.
    revision : str, optional
        Target revision; the latest one by default.
    """
    cfg = alembic_config(engine.url.render_as_string(hide_password=False))
    async with engine.begin() as connection:
        await connection.run_sync(_upgrade, cfg, revision)


async def current_revision(engine: AsyncEngine) -> str | None:
    """Return the revision stamped on the database, or None when unmigrated."""
    async with engine.connect() as connection:
        return await connection.run_sync(_revision)


__all__ = ("alembic_config", "apply_migrations", "current_revision")
