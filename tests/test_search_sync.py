"""Database-backed tests keeping the search index in step with commits."""

from __future__ import annotations

import asyncio
import typing as typ

import pytest
from _catalogue_helpers import channel, chunked, make_source, manifest, movie

from mediacat.catalogue.domain import ContentKind
from mediacat.catalogue.errors import SearchIndexError
from mediacat.catalogue.search import synchronizer
from mediacat.catalogue.services import CatalogueService

if typ.TYPE_CHECKING:
    import uuid

    from mediacat.catalogue.domain import CanonicalRecord, IndexEntry
    from mediacat.catalogue.ports import UnitOfWorkFactory

pytestmark = pytest.mark.database

_FEED = manifest(
    channel("BBC One", "http://s/bbc1"),
    channel("CNN International", "http://s/cnn"),
    movie("Inception (2010)", "http://s/inception.mp4"),
)


async def _persisted_ids(uow_factory: UnitOfWorkFactory) -> set[uuid.UUID]:
    async with uow_factory() as uow:
        return {entry.record_id for entry in await uow.index_entries.list_all()}


async def _record_ids(uow_factory: UnitOfWorkFactory) -> set[uuid.UUID]:
    ids: set[uuid.UUID] = set()
    async with uow_factory() as uow:
        async for page in uow.records.iter_pages(100):
            ids.update(record.id for record in page)
    return ids


def _titles(service: CatalogueService, query: str, **kwargs: typ.Any) -> list[str]:
    return [hit.title for hit in service.search(query, **kwargs)]


@pytest.mark.asyncio
async def test_ingest_indexes_every_committed_record(
    service: CatalogueService,
    uow_factory: UnitOfWorkFactory,
) -> None:
    """Committed records are searchable and their entries persisted."""
    await service.ingest(make_source(), _FEED)

    assert _titles(service, "incep") == ["Inception (2010)"]
    assert _titles(service, "cnn internatonal") == ["CNN International"], (
        "a misspelt term should still match by edit distance"
    )
    persisted = await _persisted_ids(uow_factory)
    assert persisted == await _record_ids(uow_factory), (
        "every record should have exactly one persisted entry"
    )


@pytest.mark.asyncio
async def test_fresh_service_loads_persisted_entries(
    service: CatalogueService,
    uow_factory: UnitOfWorkFactory,
) -> None:
    """A restarted service serves the stored index after loading it."""
    await service.ingest(make_source(), _FEED)
    restarted = CatalogueService(uow_factory)

    assert restarted.search("bbc") == [], "index is empty before loading"
    loaded = await restarted.load_index()

    assert loaded == 3
    assert _titles(restarted, "bbc") == ["BBC One"]
    await restarted.aclose()


@pytest.mark.asyncio
async def test_kind_filter_restricts_hits(service: CatalogueService) -> None:
    """Kind filters drop hits of other kinds."""
    await service.ingest(make_source(), _FEED)

    assert _titles(service, "bbc", kind=ContentKind.CHANNEL) == ["BBC One"]
    assert _titles(service, "bbc", kind=ContentKind.MOVIE) == []


@pytest.mark.asyncio
async def test_unindexable_record_stays_pending_until_rebuild(
    service: CatalogueService,
    uow_factory: UnitOfWorkFactory,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """A failed entry build is tracked and picked up by the next rebuild."""
    real_build_entry = synchronizer.build_entry

    def _flaky_build_entry(record: CanonicalRecord) -> IndexEntry:
        if record.title == "CNN International":
            msg = "tokeniser unavailable"
            raise SearchIndexError(msg, source_id=record.source_id)
        return real_build_entry(record)

    monkeypatch.setattr(synchronizer, "build_entry", _flaky_build_entry)
    report = await service.ingest(make_source(), _FEED)

    assert report.inserted == 3, "index failures must not fail ingestion"
    assert len(service.synchronizer.pending) == 1
    assert _titles(service, "cnn") == []
    assert len(await _persisted_ids(uow_factory)) == 2

    monkeypatch.undo()
    rebuilt = await service.rebuild_index()

    assert rebuilt == 3
    assert service.synchronizer.pending == frozenset()
    assert _titles(service, "cnn") == ["CNN International"]
    assert await _persisted_ids(uow_factory) == await _record_ids(uow_factory)


@pytest.mark.asyncio
async def test_scheduled_maintenance_reindexes_pending_records(
    service: CatalogueService,
    uow_factory: UnitOfWorkFactory,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """The periodic loop retries records whose entry build failed."""
    real_build_entry = synchronizer.build_entry

    def _flaky_build_entry(record: CanonicalRecord) -> IndexEntry:
        if record.title == "CNN International":
            msg = "tokeniser unavailable"
            raise SearchIndexError(msg, source_id=record.source_id)
        return real_build_entry(record)

    monkeypatch.setattr(synchronizer, "build_entry", _flaky_build_entry)
    await service.ingest(make_source(), _FEED)
    assert len(service.synchronizer.pending) == 1, "expected one pending record"
    monkeypatch.undo()

    loop_task = service.start_maintenance(0.01)
    assert service.start_maintenance(0.01) is loop_task, "loop must be single"
    try:
        async with asyncio.timeout(5):
            while service.synchronizer.pending:
                await asyncio.sleep(0.01)
    finally:
        await service.aclose()

    assert loop_task.cancelled(), "closing the service stops the loop"
    assert _titles(service, "cnn") == ["CNN International"]
    assert await _persisted_ids(uow_factory) == await _record_ids(uow_factory)


@pytest.mark.asyncio
async def test_rebuild_concurrent_with_ingest_keeps_both_sides(
    service: CatalogueService,
    uow_factory: UnitOfWorkFactory,
) -> None:
    """Commits landing during a rebuild are present after the swap."""
    await service.ingest(make_source("provider-a"), _FEED)
    late_feed = manifest(
        movie("Interstellar", "http://s/interstellar.mp4"),
        movie("Memento", "http://s/memento.mp4"),
    )

    await asyncio.gather(
        service.rebuild_index(),
        service.ingest(
            make_source("provider-b"), chunked(late_feed, size=5, delay=0.001)
        ),
    )

    assert _titles(service, "interstellar") == ["Interstellar"]
    assert _titles(service, "inception") == ["Inception (2010)"]
    assert await _persisted_ids(uow_factory) == await _record_ids(uow_factory), (
        "persisted entries should match records after the swap"
    )
    assert len(service.synchronizer.index) == 5


@pytest.mark.asyncio
async def test_removed_source_leaves_the_index(
    service: CatalogueService,
    uow_factory: UnitOfWorkFactory,
) -> None:
    """Removing a source drops its entries from memory and the store."""
    await service.ingest(make_source(), _FEED)

    removed = await service.remove_source("provider-a")

    assert removed == 3
    assert service.search("bbc") == []
    assert await _persisted_ids(uow_factory) == set()
