"""Database-backed tests for projected series, season and item fields."""

from __future__ import annotations

import typing as typ

import pytest
import pytest_asyncio
from _catalogue_helpers import (
    FakeViewer,
    channel,
    make_record,
    make_source,
    manifest,
)

from mediacat.catalogue.domain import ContentKind
from mediacat.catalogue.projections import compute_live, owners_of
from mediacat.catalogue.services import CatalogueService

if typ.TYPE_CHECKING:
    from mediacat.catalogue.domain import CanonicalRecord
    from mediacat.catalogue.ports import UnitOfWorkFactory

pytestmark = pytest.mark.database

_SERIES = "series:the wire"


def _episode(title: str, number: int) -> tuple[str, str]:
    return (f'group-title="Series",{title}', f"http://s/wire/{number}.mp4")


_FEED = manifest(
    _episode("The Wire S01E01", 1),
    _episode("The Wire S01E02", 2),
    _episode("The Wire S02E01", 3),
    channel("BBC One", "http://s/bbc1"),
)


async def _records(uow_factory: UnitOfWorkFactory) -> list[CanonicalRecord]:
    records: list[CanonicalRecord] = []
    async with uow_factory() as uow:
        async for page in uow.records.iter_pages(100):
            records.extend(page)
    return records


async def _stored(
    uow_factory: UnitOfWorkFactory,
) -> dict[tuple[str, str], dict[str, object]]:
    async with uow_factory() as uow:
        projections = await uow.projections.list_all()
    return {(p.source_id, p.owner_key): dict(p.fields) for p in projections}


async def _assert_matches_live(
    uow_factory: UnitOfWorkFactory, viewer: FakeViewer | None = None
) -> None:
    live = compute_live(await _records(uow_factory), viewer)
    stored = await _stored(uow_factory)
    assert stored == live, (
        f"incremental projections diverged from a live traversal: {stored!r}"
    )


@pytest.fixture
def viewer() -> FakeViewer:
    """Return an empty viewer-state double."""
    return FakeViewer()


@pytest_asyncio.fixture
async def viewing_service(
    uow_factory: UnitOfWorkFactory, viewer: FakeViewer
) -> typ.AsyncIterator[CatalogueService]:
    """Yield a service whose projector reads ``viewer``."""
    catalogue = CatalogueService(uow_factory, viewer=viewer)
    yield catalogue
    await catalogue.aclose()


def test_episode_owners_are_series_then_season() -> None:
    """An episode invalidates its series and its season."""
    episode = make_record(
        "Pilot",
        kind=ContentKind.EPISODE,
        series_title="The Wire",
        season_number=2,
        episode_number=1,
    )

    assert [owner.key for owner in owners_of(episode)] == [
        _SERIES,
        f"{_SERIES}#s2",
    ]


@pytest.mark.asyncio
async def test_ingest_projects_series_and_season_counts(
    viewing_service: CatalogueService,
    uow_factory: UnitOfWorkFactory,
) -> None:
    """Series and season fields are stored with the records."""
    await viewing_service.ingest(make_source(), _FEED)

    series = await viewing_service.projected_fields("provider-a", _SERIES)
    season = await viewing_service.projected_fields("provider-a", f"{_SERIES}#s1")

    assert series == {
        "season_count": 2,
        "episode_count": 3,
        "unwatched_episode_count": 3,
        "has_unwatched_episode": True,
        "is_favourite": False,
    }, f"unexpected series fields: {series!r}"
    assert season == {"episode_count": 2, "unwatched_episode_count": 2}
    assert await viewing_service.projected_fields("provider-a", "nope") is None
    await _assert_matches_live(uow_factory)


@pytest.mark.asyncio
async def test_viewer_change_refreshes_parent_chain(
    viewing_service: CatalogueService,
    uow_factory: UnitOfWorkFactory,
    viewer: FakeViewer,
) -> None:
    """Watching episodes updates only the affected counts."""
    await viewing_service.ingest(make_source(), _FEED)
    season_one = [
        record
        for record in await _records(uow_factory)
        if record.kind is ContentKind.EPISODE and record.season_number == 1
    ]
    viewer.watched.update(record.id for record in season_one)

    refreshed = await viewing_service.viewer_state_changed(
        [record.id for record in season_one]
    )

    assert refreshed == 2, "series and season one should be recomputed"
    series = await viewing_service.projected_fields("provider-a", _SERIES)
    assert series is not None
    assert series["unwatched_episode_count"] == 1
    assert series["has_unwatched_episode"] is True
    season = await viewing_service.projected_fields("provider-a", f"{_SERIES}#s1")
    assert season == {"episode_count": 2, "unwatched_episode_count": 0}
    await _assert_matches_live(uow_factory, viewer)


@pytest.mark.asyncio
async def test_favourite_item_is_projected(
    viewing_service: CatalogueService,
    uow_factory: UnitOfWorkFactory,
    viewer: FakeViewer,
) -> None:
    """Item owners carry the favourite flag."""
    await viewing_service.ingest(make_source(), _FEED)
    bbc = next(
        record
        for record in await _records(uow_factory)
        if record.kind is ContentKind.CHANNEL
    )
    viewer.favourites.add(bbc.id)

    await viewing_service.viewer_state_changed([bbc.id])

    fields = await viewing_service.projected_fields("provider-a", bbc.identity_key)
    assert fields == {"is_favourite": True}


@pytest.mark.asyncio
async def test_swept_episodes_update_counts(
    viewing_service: CatalogueService,
    uow_factory: UnitOfWorkFactory,
) -> None:
    """Removing a season deletes its owner and shrinks the series."""
    source = make_source()
    await viewing_service.ingest(source, _FEED)
    shorter = manifest(
        _episode("The Wire S01E01", 1),
        _episode("The Wire S01E02", 2),
        channel("BBC One", "http://s/bbc1"),
    )

    report = await viewing_service.ingest(source, shorter)

    assert report.removed == 1, report.summary()
    series = await viewing_service.projected_fields("provider-a", _SERIES)
    assert series is not None
    assert (series["season_count"], series["episode_count"]) == (1, 2)
    assert (
        await viewing_service.projected_fields("provider-a", f"{_SERIES}#s2")
    ) is None, "an empty season should lose its projection"
    await _assert_matches_live(uow_factory)


@pytest.mark.asyncio
async def test_rebuild_matches_live_traversal(
    viewing_service: CatalogueService,
    uow_factory: UnitOfWorkFactory,
    viewer: FakeViewer,
) -> None:
    """A full rebuild stores exactly what a live traversal computes."""
    await viewing_service.ingest(make_source(), _FEED)
    viewer.watched.update(
        record.id
        for record in await _records(uow_factory)
        if record.kind is ContentKind.EPISODE
    )

    stored = await viewing_service.rebuild_projections()

    assert stored == 4, "series, two seasons and one channel"
    series = await viewing_service.projected_fields("provider-a", _SERIES)
    assert series is not None
    assert series["has_unwatched_episode"] is False
    await _assert_matches_live(uow_factory, viewer)


@pytest.mark.asyncio
async def test_removed_source_drops_projections(
    viewing_service: CatalogueService,
    uow_factory: UnitOfWorkFactory,
) -> None:
    """Removing a source deletes every projection it owned."""
    await viewing_service.ingest(make_source(), _FEED)

    await viewing_service.remove_source("provider-a")

    assert await _stored(uow_factory) == {}
