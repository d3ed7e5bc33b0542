"""Pytest fixtures for database-backed catalogue tests.

SQLite (aiosqlite, file database under ``tmp_path``) is the default backend.
Set ``MEDIACAT_TEST_DB=pglite`` to run the same tests against py-pglite
PostgreSQL.

Examples
--------
Run database-backed tests with py-pglite:

>>> MEDIACAT_TEST_DB=pglite pytest -k ingestion
"""

from __future__ import annotations

import asyncio
import contextlib
import os
import typing as typ

import pytest
import pytest_asyncio
import sqlalchemy as sa
import sqlalchemy.exc as sa_exc
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from mediacat.catalogue.storage.alembic_helpers import apply_migrations
from mediacat.catalogue.storage.uow import SqlAlchemyUnitOfWork

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    from pathlib import Path

    from sqlalchemy.ext.asyncio import AsyncEngine

    from mediacat.catalogue.ports import UnitOfWorkFactory
    from mediacat.catalogue.services import CatalogueService

try:
    from py_pglite import PGliteConfig, PGliteManager

    _PGLITE_AVAILABLE = True
except ModuleNotFoundError:  # pragma: no cover - optional dependency
    _PGLITE_AVAILABLE = False


def _should_use_pglite() -> bool:
    """Return True when tests should run against py-pglite.

    If py-pglite is requested but unavailable, fail fast with a clear error
    instead of silently falling back to SQLite.
    """
    target = os.getenv("MEDIACAT_TEST_DB", "sqlite").lower()
    if target == "sqlite":
        return False
    if not _PGLITE_AVAILABLE:
        msg = (
            f"Database-backed tests requested via MEDIACAT_TEST_DB={target!r}, "
            "but py-pglite is not installed. Install the test extra or set "
            "MEDIACAT_TEST_DB=sqlite."
        )
        raise RuntimeError(msg)
    return True


async def _wait_for_engine_ready(engine: AsyncEngine) -> None:
    """Wait for the database to accept SQLAlchemy connections."""
    max_attempts = 30
    delay_seconds = 0.1
    for attempt in range(1, max_attempts + 1):
        try:
            async with engine.connect() as connection:
                await connection.execute(sa.text("SELECT 1"))
        except sa_exc.OperationalError:
            if attempt == max_attempts:
                raise
            await asyncio.sleep(delay_seconds)
        else:
            return


@contextlib.asynccontextmanager
async def _pglite_engine(tmp_path: Path) -> typ.AsyncIterator[AsyncEngine]:
    """Start a py-pglite Postgres and yield an async engine bound to it."""
    config = PGliteConfig(work_dir=tmp_path / "pglite")
    with PGliteManager(config):
        engine = create_async_engine(
            config.get_connection_string(), pool_pre_ping=True
        )
        try:
            await _wait_for_engine_ready(engine)
            yield engine
        finally:
            await engine.dispose()


@contextlib.asynccontextmanager
async def _sqlite_engine(tmp_path: Path) -> typ.AsyncIterator[AsyncEngine]:
    """Yield an aiosqlite engine over a file database."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'catalogue.sqlite3'}",
        connect_args={"timeout": 30},
    )
    try:
        yield engine
    finally:
        await engine.dispose()


def open_engine(tmp_path: Path) -> contextlib.AbstractAsyncContextManager[AsyncEngine]:
    """Return the engine context manager for the selected backend."""
    if _should_use_pglite():
        return _pglite_engine(tmp_path)
    return _sqlite_engine(tmp_path)


@pytest.fixture
def engine_opener(
    tmp_path: Path,
) -> cabc.Callable[[], contextlib.AbstractAsyncContextManager[AsyncEngine]]:
    """Return a callable opening a fresh engine on the running loop.

    Synchronous BDD steps use it to keep the engine on their own runner.
    """
    return lambda: open_engine(tmp_path)


@pytest_asyncio.fixture
async def engine(tmp_path: Path) -> typ.AsyncIterator[AsyncEngine]:
    """Yield an async engine for the selected test backend."""
    async with open_engine(tmp_path) as created:
        yield created


@pytest_asyncio.fixture
async def migrated_engine(engine: AsyncEngine) -> typ.AsyncIterator[AsyncEngine]:
    """Yield an engine with every Alembic migration applied."""
    await apply_migrations(engine)
    yield engine


@pytest.fixture
def session_factory(
    migrated_engine: AsyncEngine,
) -> async_sessionmaker[AsyncSession]:
    """Return an async session factory bound to the migrated engine."""
    return async_sessionmaker(
        migrated_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest.fixture
def uow_factory(
    session_factory: async_sessionmaker[AsyncSession],
) -> UnitOfWorkFactory:
    """Return a factory opening SQLAlchemy units of work."""
    return lambda: SqlAlchemyUnitOfWork(session_factory)


@pytest_asyncio.fixture
async def service(
    uow_factory: UnitOfWorkFactory,
) -> typ.AsyncIterator[CatalogueService]:
    """Yield a catalogue service over the migrated test database."""
    from mediacat.catalogue.services import CatalogueService

    catalogue = CatalogueService(uow_factory)
    yield catalogue
    await catalogue.aclose()


@pytest.fixture
def _function_scoped_runner() -> typ.Iterator[asyncio.Runner]:
    """Provide a function-scoped asyncio.Runner for sync BDD steps."""
    with asyncio.Runner() as runner:
        yield runner
