"""End-to-end tests for the Falcon catalogue API.

Requests go through :class:`falcon.testing.ASGIConductor` so the app and the
database engine share the test's event loop.
"""

from __future__ import annotations

import typing as typ

import pytest
from _catalogue_helpers import channel, make_source, manifest, movie
from falcon import testing

from mediacat.api import create_app

if typ.TYPE_CHECKING:
    from mediacat.catalogue.services import CatalogueService

pytestmark = pytest.mark.database

_PRIMARY = manifest(
    channel("BBC One", "http://a/bbc1"),
    movie("Inception (2010)", "http://a/inception.mp4"),
    movie("Alien", "http://a/alien.mp4"),
)
_BACKUP = manifest(
    movie("Inception 4K", "http://b/inception.mkv"),
    movie("Alien 3", "http://b/alien3.mp4"),
)


async def _seed(service: CatalogueService) -> None:
    await service.ingest(make_source("primary", priority=0), _PRIMARY)
    await service.ingest(make_source("backup", priority=1), _BACKUP)


@pytest.mark.asyncio
async def test_search_returns_ranked_hits(service: CatalogueService) -> None:
    """GET /search returns hits for a prefix query."""
    await _seed(service)

    async with testing.ASGIConductor(create_app(service)) as conductor:
        result = await conductor.simulate_get(
            "/search", params={"q": "incep", "kind": "movie"}
        )

    assert result.status_code == 200, (
        f"Expected 200 from search, got {result.status_code}."
    )
    titles = {item["title"] for item in result.json["items"]}
    assert titles == {"Inception (2010)", "Inception 4K"}, titles


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "params",
    [
        {},
        {"q": "  "},
        {"q": "alien", "kind": "podcast"},
        {"q": "alien", "limit": "0"},
        {"q": "alien", "limit": "many"},
    ],
)
async def test_search_rejects_invalid_parameters(
    service: CatalogueService,
    params: dict[str, str],
) -> None:
    """Invalid search parameters return 400."""
    async with testing.ASGIConductor(create_app(service)) as conductor:
        result = await conductor.simulate_get("/search", params=params)

    assert result.status_code == 400, (
        f"Expected 400 for {params!r}, got {result.status_code}."
    )


@pytest.mark.asyncio
async def test_catalogue_groups_variants_across_sources(
    service: CatalogueService,
) -> None:
    """GET /catalogue/{kind} unifies variants, primary first."""
    await _seed(service)

    async with testing.ASGIConductor(create_app(service)) as conductor:
        result = await conductor.simulate_get("/catalogue/movie")

    assert result.status_code == 200
    by_key = {item["key"]: item for item in result.json["items"]}
    inception = by_key["movie:inception"]
    assert inception["primary"]["record"]["source_id"] == "backup", (
        "the 4K variant should outrank the untagged one"
    )
    assert [v["record"]["source_id"] for v in inception["alternatives"]] == [
        "primary"
    ]
    assert {"movie:alien", "movie:alien 3"} <= set(by_key), (
        "sequels stay distinct items"
    )


@pytest.mark.asyncio
async def test_catalogue_can_be_restricted_to_sources(
    service: CatalogueService,
) -> None:
    """Repeated ``source`` parameters restrict grouping."""
    await _seed(service)

    async with testing.ASGIConductor(create_app(service)) as conductor:
        result = await conductor.simulate_get(
            "/catalogue/movie", params={"source": "primary"}
        )

    sources = {
        item["primary"]["record"]["source_id"] for item in result.json["items"]
    }
    assert sources == {"primary"}


@pytest.mark.asyncio
async def test_unknown_kind_in_path_is_rejected(service: CatalogueService) -> None:
    """An unknown kind in the catalogue path returns 400."""
    async with testing.ASGIConductor(create_app(service)) as conductor:
        result = await conductor.simulate_get("/catalogue/podcast")

    assert result.status_code == 400


@pytest.mark.asyncio
async def test_franchises_cluster_sequels(service: CatalogueService) -> None:
    """GET /catalogue/movie/franchises clusters Alien and Alien 3."""
    await _seed(service)

    async with testing.ASGIConductor(create_app(service)) as conductor:
        result = await conductor.simulate_get("/catalogue/movie/franchises")

    assert result.status_code == 200
    clusters = {
        cluster["franchise"]: {item["key"] for item in cluster["items"]}
        for cluster in result.json["items"]
    }
    assert clusters.get("alien") == {"movie:alien", "movie:alien 3"}, clusters


@pytest.mark.asyncio
async def test_sources_list_and_delete(service: CatalogueService) -> None:
    """Sources are listed by priority and can be removed."""
    await _seed(service)

    async with testing.ASGIConductor(create_app(service)) as conductor:
        listed = await conductor.simulate_get("/sources")
        deleted = await conductor.simulate_delete("/sources/backup")
        after = await conductor.simulate_get("/sources")

    assert [item["source_id"] for item in listed.json["items"]] == [
        "primary",
        "backup",
    ]
    assert listed.json["items"][0]["record_count"] == 3
    assert deleted.status_code == 200
    assert deleted.json == {"source_id": "backup", "removed": 2}
    assert [item["source_id"] for item in after.json["items"]] == ["primary"]


@pytest.mark.asyncio
async def test_projection_endpoint(service: CatalogueService) -> None:
    """Stored projections are returned; unknown owners are 404."""
    await _seed(service)

    async with testing.ASGIConductor(create_app(service)) as conductor:
        found = await conductor.simulate_get("/projections/primary/movie:alien")
        missing = await conductor.simulate_get("/projections/primary/nothing")

    assert found.status_code == 200, found.text
    assert found.json == {
        "source_id": "primary",
        "owner_key": "movie:alien",
        "is_favourite": False,
    }
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_maintenance_schedules_known_jobs(service: CatalogueService) -> None:
    """POST /maintenance/{job} schedules a rebuild and reports its task."""
    async with testing.ASGIConductor(create_app(service)) as conductor:
        accepted = await conductor.simulate_post("/maintenance/search-index")
        unknown = await conductor.simulate_post("/maintenance/defragment")

    assert accepted.status_code == 202, accepted.text
    assert accepted.json == {
        "job": "search-index",
        "task": "catalogue.maintenance:search-index",
    }
    assert unknown.status_code == 404
