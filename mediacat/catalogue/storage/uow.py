"""Unit-of-work implementation for catalogue persistence.

Examples
--------
Commit work in a single unit-of-work:

>>> async with SqlAlchemyUnitOfWork(session_factory) as uow:
...     await uow.records.insert_many(records)
...     await uow.commit()
"""

from __future__ import annotations

import typing as typ

from sqlalchemy import exc as sa_exc

from mediacat.catalogue.errors import WriteError
from mediacat.catalogue.ports import CatalogueUnitOfWork
from mediacat.logging import get_logger, log_debug

from .repositories import (
    SqlAlchemyCatalogueRecordRepository,
    SqlAlchemyIndexEntryRepository,
    SqlAlchemyProjectionRepository,
    SqlAlchemySourceStatusRepository,
)

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    from types import TracebackType

    from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


class SqlAlchemyUnitOfWork(CatalogueUnitOfWork):
    """Async unit-of-work backed by SQLAlchemy sessions.

    Parameters
    ----------
    session_factory : collections.abc.Callable[[], AsyncSession]
        Factory that produces new async sessions for the unit-of-work scope.

    Attributes
    ----------
    records : SqlAlchemyCatalogueRecordRepository
        Repository for canonical records.
    sources : SqlAlchemySourceStatusRepository
        Repository for per-source ingestion status.
    index_entries : SqlAlchemyIndexEntryRepository
        Repository for persisted search index entries.
    projections : SqlAlchemyProjectionRepository
        Repository for projected read-model fields.
    """

    def __init__(self, session_factory: cabc.Callable[[], AsyncSession]) -> None:
        self._session_factory = session_factory
        self._session: AsyncSession | None = None

    async def __aenter__(self) -> SqlAlchemyUnitOfWork:
        """Open a unit-of-work session."""
        self._session = self._session_factory()
        self.records = SqlAlchemyCatalogueRecordRepository(self._session)
        self.sources = SqlAlchemySourceStatusRepository(self._session)
        self.index_entries = SqlAlchemyIndexEntryRepository(self._session)
        self.projections = SqlAlchemyProjectionRepository(self._session)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        """Close the session, rolling back when the block raised."""
        if self._session is None:
            return
        try:
            if exc is not None:
                await self._session.rollback()
        finally:
            await self._session.close()
            self._session = None

    def _require_session(self) -> AsyncSession:
        """Return the active session or raise when missing."""
        if self._session is None:
            msg = "Session not initialized for unit of work."
            raise RuntimeError(msg)
        return self._session

    async def commit(self) -> None:
        """Commit the current unit-of-work transaction.

        Raises
        ------
        RuntimeError
            If no session has been initialized for the unit of work.
        WriteError
            If the database rejects the commit.
        """
        session = self._require_session()
        try:
            await session.commit()
        except sa_exc.SQLAlchemyError as exc:
            msg = f"Catalogue commit failed: {exc}"
            raise WriteError(msg) from exc
        log_debug(logger, "Committed catalogue unit of work.")

    async def flush(self) -> None:
        """Flush pending unit-of-work changes."""
        session = self._require_session()
        try:
            await session.flush()
        except sa_exc.SQLAlchemyError as exc:
            msg = f"Catalogue flush failed: {exc}"
            raise WriteError(msg) from exc

    async def rollback(self) -> None:
        """Roll back the current unit-of-work session."""
        await self._require_session().rollback()


__all__ = ("SqlAlchemyUnitOfWork",)
