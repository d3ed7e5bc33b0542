"""Keep the search index in step with catalogue commits.

:class:`SearchSynchronizer` is a mutation listener. Inside the committing
transaction it writes the persisted :class:`IndexEntry` rows; after the commit
it applies the same change to the in-process :class:`SearchIndex`. A full
rebuild reads every record into a shadow index and swaps the reference in one
step, so readers see either the old index or the new one.

Examples
--------
>>> synchronizer = SearchSynchronizer(uow_factory, hub)
>>> hub.register(synchronizer)
>>> await synchronizer.rebuild()
>>> synchronizer.search("incep")
"""

from __future__ import annotations

import asyncio
import typing as typ

from mediacat.catalogue.domain import IndexEntry, MutationKind, RecordMutation
from mediacat.catalogue.errors import SearchIndexError, WriteError
from mediacat.logging import get_logger, log_error, log_info, log_warning

from .index import SearchIndex
from .tokeniser import index_tokens

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    import uuid

    from mediacat.catalogue.domain import (
        CanonicalRecord,
        ContentKind,
        SearchHit,
    )
    from mediacat.catalogue.mutations import MutationHub
    from mediacat.catalogue.ports import CatalogueUnitOfWork, UnitOfWorkFactory

logger = get_logger(__name__)

DEFAULT_PAGE_SIZE = 1000
MAX_RATING = 10.0


def entry_weight(record: CanonicalRecord) -> float:
    """Return the popularity weight for a record, between 1.0 and 2.0.

    The provider's ``rating`` attribute (0 to 10) lifts a record above
    unrated ones with an otherwise equal relevance score.
    """
    raw = record.attributes.get("rating")
    try:
        rating = float(str(raw)) if raw not in (None, "") else 0.0
    except ValueError:
        return 1.0
    if rating != rating or rating <= 0:  # NaN or unrated
        return 1.0
    return 1.0 + min(rating, MAX_RATING) / MAX_RATING


def build_entry(record: CanonicalRecord) -> IndexEntry:
    """Tokenise a record into its index entry.

    Raises
    ------
    SearchIndexError
        If the title yields no searchable token.
    """
    tokens = index_tokens(record.title)
    if not tokens:
        msg = f"Record {record.id} title {record.title!r} has no searchable text."
        raise SearchIndexError(msg, source_id=record.source_id)
    return IndexEntry(
        record_id=record.id,
        source_id=record.source_id,
        kind=record.kind,
        title=record.title,
        summary=record.summary,
        tokens=tokens,
        summary_tokens=index_tokens(record.summary),
        weight=entry_weight(record),
        updated_at=record.updated_at,
    )


class _EntryChanges(typ.NamedTuple):
    upserts: list[IndexEntry]
    deletions: list[uuid.UUID]
    failed: list[uuid.UUID]


def _entry_changes(mutations: cabc.Iterable[RecordMutation]) -> _EntryChanges:
    changes = _EntryChanges([], [], [])
    for mutation in mutations:
        record = mutation.record
        if mutation.kind is MutationKind.DELETE:
            changes.deletions.append(record.id)
            continue
        try:
            changes.upserts.append(build_entry(record))
        except SearchIndexError as exc:
            log_warning(logger, "Index update skipped: %s", exc)
            changes.deletions.append(record.id)
            changes.failed.append(record.id)
    return changes


class SearchSynchronizer:
    """Mutation listener owning the in-process search index.

    Parameters
    ----------
    uow_factory : UnitOfWorkFactory
        Opens units of work for rebuilds and start-up loading.
    hub : MutationHub
        Hub whose commit gate and recorder serialise rebuild swaps.
    page_size : int, optional
        Records read per page during a full rebuild.
    """

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        hub: MutationHub,
        *,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        self._uow_factory = uow_factory
        self._hub = hub
        self._page_size = page_size
        self._index = SearchIndex()
        self._pending: set[uuid.UUID] = set()
        self._rebuild_lock = asyncio.Lock()

    @property
    def index(self) -> SearchIndex:
        """Return the index currently serving queries."""
        return self._index

    @property
    def pending(self) -> frozenset[uuid.UUID]:
        """Return record ids whose incremental update failed."""
        return frozenset(self._pending)

    async def before_commit(
        self,
        uow: CatalogueUnitOfWork,
        mutations: cabc.Sequence[RecordMutation],
    ) -> None:
        """Write index entries for ``mutations`` in the open transaction."""
        changes = _entry_changes(mutations)
        await uow.index_entries.delete_many(changes.deletions)
        await uow.index_entries.upsert_many(changes.upserts)

    def after_commit(self, mutations: cabc.Sequence[RecordMutation]) -> None:
        """Apply committed mutations to the in-process index."""
        changes = _entry_changes(mutations)
        self._index.apply(changes.upserts, changes.deletions)
        self._pending.difference_update(entry.record_id for entry in changes.upserts)
        self._pending.difference_update(
            mutation.record.id
            for mutation in mutations
            if mutation.kind is MutationKind.DELETE
        )
        self._pending.update(changes.failed)

    def search(
        self,
        query: str,
        *,
        kind: ContentKind | None = None,
        limit: int = 20,
        source_ids: cabc.Collection[str] | None = None,
    ) -> list[SearchHit]:
        """Query the current index."""
        return self._index.search(
            query, kind=kind, limit=limit, source_ids=source_ids
        )

    async def load(self) -> int:
        """Replace the in-process index with the persisted entries.

        Returns
        -------
        int
            Number of entries loaded.
        """
        async with self._uow_factory() as uow:
            entries = await uow.index_entries.list_all()
        self._index = SearchIndex(entries)
        log_info(logger, "Loaded %s search index entries.", len(entries))
        return len(entries)

    async def _build_shadow(
        self,
    ) -> tuple[SearchIndex, dict[uuid.UUID, IndexEntry], set[uuid.UUID]]:
        shadow = SearchIndex()
        entries: dict[uuid.UUID, IndexEntry] = {}
        failed: set[uuid.UUID] = set()
        async with self._uow_factory() as uow:
            async for page in uow.records.iter_pages(self._page_size):
                changes = _entry_changes(
                    RecordMutation(MutationKind.INSERT, record) for record in page
                )
                shadow.apply(changes.upserts)
                entries.update((entry.record_id, entry) for entry in changes.upserts)
                failed.update(changes.failed)
        return shadow, entries, failed

    async def rebuild(self) -> int:
        """Rebuild the index from the catalogue and swap it in.

        Mutations committed while the shadow index is being built are
        recorded and replayed onto it before the swap.

        Returns
        -------
        int
            Number of entries in the new index.

        Raises
        ------
        SearchIndexError
            If the rebuild fails; the previous index stays in service.
        """
        async with self._rebuild_lock:
            return await self._rebuild()

    async def _rebuild(self) -> int:
        log_info(logger, "Rebuilding search index.")
        with self._hub.recording() as recorder:
            try:
                shadow, entries, failed = await self._build_shadow()
            except WriteError as exc:
                log_error(logger, "Search index rebuild failed: %s", exc)
                msg = f"Search index rebuild failed while reading records: {exc}"
                raise SearchIndexError(msg) from exc
            async with self._hub.exclusive():
                changes = _entry_changes(recorder.drain())
                shadow.apply(changes.upserts, changes.deletions)
                for record_id in changes.deletions:
                    entries.pop(record_id, None)
                    failed.discard(record_id)
                entries.update((entry.record_id, entry) for entry in changes.upserts)
                failed.update(changes.failed)
                try:
                    async with self._uow_factory() as uow:
                        await uow.index_entries.replace_all(list(entries.values()))
                        await uow.commit()
                except WriteError as exc:
                    log_error(logger, "Search index rebuild failed: %s", exc)
                    msg = f"Search index rebuild failed while persisting: {exc}"
                    raise SearchIndexError(msg) from exc
                self._index = shadow
                self._pending = failed
        log_info(
            logger,
            "Search index rebuilt with %s entries (%s unindexable).",
            len(entries),
            len(failed),
        )
        return len(entries)


__all__ = ("SearchSynchronizer", "build_entry", "entry_weight")
