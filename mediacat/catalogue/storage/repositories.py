"""SQLAlchemy repositories for the media catalogue.

Repositories operate within a supplied async session and are composed through
the catalogue unit-of-work. Writes use bulk statements (one ``INSERT`` or
``UPDATE`` per batch with many parameter sets) rather than per-object
``session.add`` calls.

Examples
--------
>>> async with SqlAlchemyUnitOfWork(session_factory) as uow:
...     await uow.records.insert_many(records)
...     await uow.commit()
"""

from __future__ import annotations

import dataclasses as dc
import itertools
import typing as typ

import sqlalchemy as sa
from sqlalchemy import exc as sa_exc

from mediacat.catalogue.domain import ContentKind
from mediacat.catalogue.errors import WriteError
from mediacat.catalogue.identity import StoredIdentity

from .mappers import (
    _index_entry_from_row,
    _index_entry_to_values,
    _projection_from_row,
    _projection_to_values,
    _record_from_row,
    _record_to_values,
    _status_from_row,
    _status_to_values,
)
from .models import CatalogueRecordRow, IndexEntryRow, ProjectionRow, SourceStatusRow

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

    from mediacat.catalogue.domain import (
        CanonicalRecord,
        IndexEntry,
        ProjectedFields,
        SourceStatus,
    )

_IN_CLAUSE_CHUNK = 500


def _chunks[T](
    items: cabc.Iterable[T], size: int = _IN_CLAUSE_CHUNK
) -> cabc.Iterator[list[T]]:
    iterator = iter(items)
    while chunk := list(itertools.islice(iterator, size)):
        yield chunk


@dc.dataclass(slots=True)
class _RepositoryBase:
    """Shared helpers for SQLAlchemy repositories."""

    _session: AsyncSession

    async def _execute(
        self,
        statement: sa.Executable,
        parameters: cabc.Sequence[cabc.Mapping[str, object]] | None = None,
    ) -> sa.Result[typ.Any]:
        """Execute a statement, wrapping driver failures in ``WriteError``."""
        try:
            if parameters is None:
                return await self._session.execute(statement)
            return await self._session.execute(statement, parameters)
        except sa_exc.SQLAlchemyError as exc:
            statement_name = type(statement).__name__.lower()
            msg = f"Catalogue store rejected {statement_name}: {exc}"
            raise WriteError(msg) from exc


class SqlAlchemyCatalogueRecordRepository(_RepositoryBase):
    """Persist canonical records using SQLAlchemy."""

    async def existing_identities(self, source_id: str) -> dict[str, StoredIdentity]:
        """Return identity keys, ids and fingerprints stored for a source."""
        result = await self._execute(
            sa.select(
                CatalogueRecordRow.identity_key,
                CatalogueRecordRow.id,
                CatalogueRecordRow.fingerprint,
                CatalogueRecordRow.kind,
            ).where(CatalogueRecordRow.source_id == source_id)
        )
        return {
            key: StoredIdentity(
                record_id=record_id, fingerprint=digest, kind=ContentKind(kind)
            )
            for key, record_id, digest, kind in result.all()
        }

    async def insert_many(self, records: cabc.Sequence[CanonicalRecord]) -> None:
        """Insert records with one bulk ``INSERT``."""
        if records:
            await self._execute(
                sa.insert(CatalogueRecordRow),
                [_record_to_values(record) for record in records],
            )

    async def update_many(self, records: cabc.Sequence[CanonicalRecord]) -> None:
        """Update records by primary key with one bulk ``UPDATE``."""
        if not records:
            return
        values = []
        for record in records:
            row = _record_to_values(record)
            del row["created_at"]
            values.append(row)
        await self._execute(sa.update(CatalogueRecordRow), values)

    async def delete_many(self, record_ids: cabc.Sequence[uuid.UUID]) -> None:
        """Delete records by id."""
        for chunk in _chunks(record_ids):
            await self._execute(
                sa.delete(CatalogueRecordRow).where(CatalogueRecordRow.id.in_(chunk))
            )

    async def get(self, record_id: uuid.UUID) -> CanonicalRecord | None:
        """Fetch a record by id."""
        result = await self._execute(
            sa.select(CatalogueRecordRow).where(CatalogueRecordRow.id == record_id)
        )
        row = result.scalar_one_or_none()
        return None if row is None else _record_from_row(row)

    async def get_many(
        self, record_ids: cabc.Collection[uuid.UUID]
    ) -> list[CanonicalRecord]:
        """Fetch the records that exist among ``record_ids``."""
        records: list[CanonicalRecord] = []
        for chunk in _chunks(record_ids):
            result = await self._execute(
                sa.select(CatalogueRecordRow).where(CatalogueRecordRow.id.in_(chunk))
            )
            records.extend(_record_from_row(row) for row in result.scalars())
        return records

    async def get_by_key(
        self, source_id: str, identity_key: str
    ) -> CanonicalRecord | None:
        """Fetch a record by source and identity key."""
        result = await self._execute(
            sa.select(CatalogueRecordRow).where(
                CatalogueRecordRow.source_id == source_id,
                CatalogueRecordRow.identity_key == identity_key,
            )
        )
        row = result.scalar_one_or_none()
        return None if row is None else _record_from_row(row)

    async def list_by_kind(
        self,
        kind: ContentKind,
        source_ids: cabc.Collection[str] | None = None,
    ) -> list[CanonicalRecord]:
        """List records of one kind in insertion order."""
        statement = sa.select(CatalogueRecordRow).where(CatalogueRecordRow.kind == kind)
        if source_ids is not None:
            statement = statement.where(CatalogueRecordRow.source_id.in_(source_ids))
        result = await self._execute(
            statement.order_by(
                CatalogueRecordRow.created_at,
                CatalogueRecordRow.position,
                CatalogueRecordRow.id,
            )
        )
        return [_record_from_row(row) for row in result.scalars()]

    async def list_children(
        self, source_id: str, parent_key: str
    ) -> list[CanonicalRecord]:
        """List episodes attached to a series key within one source."""
        result = await self._execute(
            sa.select(CatalogueRecordRow)
            .where(
                CatalogueRecordRow.source_id == source_id,
                CatalogueRecordRow.parent_key == parent_key,
            )
            .order_by(
                CatalogueRecordRow.season_number,
                CatalogueRecordRow.episode_number,
            )
        )
        return [_record_from_row(row) for row in result.scalars()]

    async def ids_for_source(self, source_id: str) -> list[uuid.UUID]:
        """List every record id stored for a source."""
        result = await self._execute(
            sa.select(CatalogueRecordRow.id).where(
                CatalogueRecordRow.source_id == source_id
            )
        )
        return list(result.scalars())

    async def count_by_source(self, source_id: str) -> int:
        """Count records stored for a source."""
        result = await self._execute(
            sa.select(sa.func.count())
            .select_from(CatalogueRecordRow)
            .where(CatalogueRecordRow.source_id == source_id)
        )
        return int(result.scalar_one())

    async def iter_pages(
        self, page_size: int
    ) -> cabc.AsyncIterator[list[CanonicalRecord]]:
        """Yield every record in id order, ``page_size`` rows at a time."""
        last_id: uuid.UUID | None = None
        while True:
            statement = sa.select(CatalogueRecordRow).order_by(CatalogueRecordRow.id)
            if last_id is not None:
                statement = statement.where(CatalogueRecordRow.id > last_id)
            result = await self._execute(statement.limit(page_size))
            page = [_record_from_row(row) for row in result.scalars()]
            if not page:
                return
            yield page
            last_id = page[-1].id


class SqlAlchemySourceStatusRepository(_RepositoryBase):
    """Persist per-source ingestion status using SQLAlchemy."""

    async def get(self, source_id: str) -> SourceStatus | None:
        """Fetch the status for a source."""
        result = await self._execute(
            sa.select(SourceStatusRow).where(SourceStatusRow.source_id == source_id)
        )
        row = result.scalar_one_or_none()
        return None if row is None else _status_from_row(row)

    async def upsert(self, status: SourceStatus) -> None:
        """Create or replace the status for a source."""
        await self.delete(status.source_id)
        await self._execute(sa.insert(SourceStatusRow), [_status_to_values(status)])

    async def delete(self, source_id: str) -> None:
        """Remove the status for a source."""
        await self._execute(
            sa.delete(SourceStatusRow).where(SourceStatusRow.source_id == source_id)
        )

    async def list(self) -> list[SourceStatus]:
        """List every known source status ordered by priority."""
        result = await self._execute(
            sa.select(SourceStatusRow).order_by(
                SourceStatusRow.priority, SourceStatusRow.source_id
            )
        )
        return [_status_from_row(row) for row in result.scalars()]


class SqlAlchemyIndexEntryRepository(_RepositoryBase):
    """Persist search index entries using SQLAlchemy."""

    async def upsert_many(self, entries: cabc.Sequence[IndexEntry]) -> None:
        """Replace the entries for the given records."""
        if not entries:
            return
        await self.delete_many([entry.record_id for entry in entries])
        await self._execute(
            sa.insert(IndexEntryRow),
            [_index_entry_to_values(entry) for entry in entries],
        )

    async def delete_many(self, record_ids: cabc.Collection[uuid.UUID]) -> None:
        """Delete entries by record id."""
        for chunk in _chunks(record_ids):
            await self._execute(
                sa.delete(IndexEntryRow).where(IndexEntryRow.record_id.in_(chunk))
            )

    async def list_all(self) -> list[IndexEntry]:
        """List every stored entry."""
        result = await self._execute(sa.select(IndexEntryRow))
        return [_index_entry_from_row(row) for row in result.scalars()]

    async def replace_all(self, entries: cabc.Sequence[IndexEntry]) -> None:
        """Replace the whole entry set within the current transaction."""
        await self._execute(sa.delete(IndexEntryRow))
        for chunk in _chunks(entries):
            await self._execute(
                sa.insert(IndexEntryRow),
                [_index_entry_to_values(entry) for entry in chunk],
            )

    async def count(self) -> int:
        """Count stored entries."""
        result = await self._execute(
            sa.select(sa.func.count()).select_from(IndexEntryRow)
        )
        return int(result.scalar_one())


class SqlAlchemyProjectionRepository(_RepositoryBase):
    """Persist projected read-model fields using SQLAlchemy."""

    async def get(self, source_id: str, owner_key: str) -> ProjectedFields | None:
        """Fetch the projection for one owner."""
        result = await self._execute(
            sa.select(ProjectionRow).where(
                ProjectionRow.source_id == source_id,
                ProjectionRow.owner_key == owner_key,
            )
        )
        row = result.scalar_one_or_none()
        return None if row is None else _projection_from_row(row)

    async def upsert_many(self, projections: cabc.Sequence[ProjectedFields]) -> None:
        """Replace projections keyed by source and owner key."""
        if not projections:
            return
        keys_by_source: dict[str, list[str]] = {}
        for projection in projections:
            keys_by_source.setdefault(projection.source_id, []).append(
                projection.owner_key
            )
        for source_id, owner_keys in keys_by_source.items():
            await self.delete_many(source_id, owner_keys)
        await self._execute(
            sa.insert(ProjectionRow),
            [_projection_to_values(projection) for projection in projections],
        )

    async def delete_many(
        self, source_id: str, owner_keys: cabc.Collection[str]
    ) -> None:
        """Delete projections for owner keys within one source."""
        for chunk in _chunks(owner_keys):
            await self._execute(
                sa.delete(ProjectionRow).where(
                    ProjectionRow.source_id == source_id,
                    ProjectionRow.owner_key.in_(chunk),
                )
            )

    async def delete_for_source(self, source_id: str) -> None:
        """Delete every projection belonging to a source."""
        await self._execute(
            sa.delete(ProjectionRow).where(ProjectionRow.source_id == source_id)
        )

    async def list_all(self) -> list[ProjectedFields]:
        """List every stored projection."""
        result = await self._execute(sa.select(ProjectionRow))
        return [_projection_from_row(row) for row in result.scalars()]

    async def replace_all(self, projections: cabc.Sequence[ProjectedFields]) -> None:
        """Replace the whole projection set within the current transaction."""
        await self._execute(sa.delete(ProjectionRow))
        for chunk in _chunks(projections):
            await self._execute(
                sa.insert(ProjectionRow),
                [_projection_to_values(projection) for projection in chunk],
            )


__all__ = (
    "SqlAlchemyCatalogueRecordRepository",
    "SqlAlchemyIndexEntryRepository",
    "SqlAlchemyProjectionRepository",
    "SqlAlchemySourceStatusRepository",
)
