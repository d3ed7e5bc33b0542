"""Ports for catalogue persistence and external collaborators.

This module defines protocol interfaces for the catalogue store so the
ingestion coordinator, search synchroniser and projector depend on behaviour
rather than on SQLAlchemy.

Examples
--------
Implement a viewer-state provider backed by a favourites set:

>>> class Favourites(ViewerStateProvider):
...     def is_favourite(self, record_id: uuid.UUID) -> bool:
...         return record_id in self._ids
"""

from __future__ import annotations

import typing as typ

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    import uuid
    from types import TracebackType

    from .domain import (
        CanonicalRecord,
        ContentKind,
        IndexEntry,
        ProjectedFields,
        SourceStatus,
    )
    from .identity import StoredIdentity


class CatalogueRecordRepository(typ.Protocol):
    """Persistence interface for canonical records.

    Methods
    -------
    existing_identities(source_id)
        Fetch identity keys, ids and fingerprints stored for a source.
    insert_many(records)
        Bulk-insert new records.
    update_many(records)
        Bulk-update existing records by id.
    delete_many(record_ids)
        Bulk-delete records by id.
    """

    async def existing_identities(self, source_id: str) -> dict[str, StoredIdentity]:
        """Return ``identity_key -> StoredIdentity`` for one source.

        Only identity columns are read, so the cost is bounded by the
        source's record count rather than the catalogue size.
        """
        ...

    async def insert_many(self, records: cabc.Sequence[CanonicalRecord]) -> None:
        """Insert records in one bulk statement."""
        ...

    async def update_many(self, records: cabc.Sequence[CanonicalRecord]) -> None:
        """Update records in one bulk statement."""
        ...

    async def delete_many(self, record_ids: cabc.Sequence[uuid.UUID]) -> None:
        """Delete records by id."""
        ...

    async def get(self, record_id: uuid.UUID) -> CanonicalRecord | None:
        """Fetch one record by id."""
        ...

    async def get_many(
        self, record_ids: cabc.Collection[uuid.UUID]
    ) -> list[CanonicalRecord]:
        """Fetch the records that exist among ``record_ids``."""
        ...

    async def get_by_key(
        self, source_id: str, identity_key: str
    ) -> CanonicalRecord | None:
        """Fetch one record by source and identity key."""
        ...

    async def list_by_kind(
        self,
        kind: ContentKind,
        source_ids: cabc.Collection[str] | None = None,
    ) -> list[CanonicalRecord]:
        """List records of one kind, optionally restricted to sources."""
        ...

    async def list_children(
        self, source_id: str, parent_key: str
    ) -> list[CanonicalRecord]:
        """List episodes whose parent key is ``parent_key``."""
        ...

    async def ids_for_source(self, source_id: str) -> list[uuid.UUID]:
        """List every record id stored for a source."""
        ...

    async def count_by_source(self, source_id: str) -> int:
        """Count records stored for a source."""
        ...

    def iter_pages(
        self, page_size: int
    ) -> cabc.AsyncIterator[list[CanonicalRecord]]:
        """Yield every record in pages ordered by id."""
        ...


class SourceStatusRepository(typ.Protocol):
    """Persistence interface for per-source ingestion status."""

    async def get(self, source_id: str) -> SourceStatus | None:
        """Fetch the status for a source."""
        ...

    async def upsert(self, status: SourceStatus) -> None:
        """Create or replace the status for a source."""
        ...

    async def delete(self, source_id: str) -> None:
        """Remove the status for a source."""
        ...

    async def list(self) -> list[SourceStatus]:
        """List every known source status."""
        ...


class IndexEntryRepository(typ.Protocol):
    """Persistence interface for search index entries."""

    async def upsert_many(self, entries: cabc.Sequence[IndexEntry]) -> None:
        """Create or replace entries keyed by record id."""
        ...

    async def delete_many(self, record_ids: cabc.Collection[uuid.UUID]) -> None:
        """Delete entries for the given record ids."""
        ...

    async def list_all(self) -> list[IndexEntry]:
        """List every stored entry."""
        ...

    async def replace_all(self, entries: cabc.Sequence[IndexEntry]) -> None:
        """Replace the whole entry set."""
        ...

    async def count(self) -> int:
        """Count stored entries."""
        ...


class ProjectionRepository(typ.Protocol):
    """Persistence interface for projected read-model fields."""

    async def get(self, source_id: str, owner_key: str) -> ProjectedFields | None:
        """Fetch the projected fields for one owner."""
        ...

    async def upsert_many(self, projections: cabc.Sequence[ProjectedFields]) -> None:
        """Create or replace projections keyed by source and owner key."""
        ...

    async def delete_many(
        self, source_id: str, owner_keys: cabc.Collection[str]
    ) -> None:
        """Delete projections for owner keys within one source."""
        ...

    async def delete_for_source(self, source_id: str) -> None:
        """Delete every projection belonging to a source."""
        ...

    async def list_all(self) -> list[ProjectedFields]:
        """List every stored projection."""
        ...

    async def replace_all(self, projections: cabc.Sequence[ProjectedFields]) -> None:
        """Replace the whole projection set."""
        ...


class CatalogueUnitOfWork(typ.Protocol):
    """Transactional boundary for catalogue persistence."""

    records: CatalogueRecordRepository
    sources: SourceStatusRepository
    index_entries: IndexEntryRepository
    projections: ProjectionRepository

    async def __aenter__(self) -> CatalogueUnitOfWork:
        """Enter the unit-of-work context."""
        ...

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        """Exit the unit-of-work context, rolling back on error."""
        ...

    async def commit(self) -> None:
        """Commit the transaction.

        Raises
        ------
        WriteError
            If the underlying store rejects the commit.
        """
        ...

    async def flush(self) -> None:
        """Flush pending changes without committing."""
        ...

    async def rollback(self) -> None:
        """Roll back the transaction."""
        ...


type UnitOfWorkFactory = cabc.Callable[[], CatalogueUnitOfWork]


class ViewerStateProvider(typ.Protocol):
    """External favourites and watch-history collaborator."""

    def is_favourite(self, record_id: uuid.UUID) -> bool:
        """Return True when the viewer marked the record as a favourite."""
        ...

    def is_watched(self, record_id: uuid.UUID) -> bool:
        """Return True when the viewer finished watching the record."""
        ...


class NoViewerState:
    """Viewer state for a catalogue with no viewer activity."""

    def is_favourite(self, record_id: uuid.UUID) -> bool:  # noqa: ARG002
        """Return False; nothing is a favourite."""
        return False

    def is_watched(self, record_id: uuid.UUID) -> bool:  # noqa: ARG002
        """Return False; nothing has been watched."""
        return False


__all__ = (
    "CatalogueRecordRepository",
    "CatalogueUnitOfWork",
    "IndexEntryRepository",
    "NoViewerState",
    "ProjectionRepository",
    "SourceStatusRepository",
    "UnitOfWorkFactory",
    "ViewerStateProvider",
)
