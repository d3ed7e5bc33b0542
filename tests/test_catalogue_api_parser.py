"""Unit tests for the JSON catalogue API parser."""

from __future__ import annotations

import json

import pytest
from _catalogue_helpers import make_source

from mediacat.catalogue.domain import ContentKind, RecordDraft, SourceKind
from mediacat.catalogue.errors import FormatError
from mediacat.catalogue.parsers.catalogue_api import (
    CatalogueCategory,
    StaticCategoryFetcher,
    decode_page,
    parse_item,
    stream_url,
)
from mediacat.catalogue.parsers.manifest import Skipped

_SOURCE = make_source("api-a", SourceKind.API, endpoint="http://api.example/")


def _drafts(item: object, category: CatalogueCategory) -> list[RecordDraft]:
    outcome = parse_item(item, category=category, source=_SOURCE)
    assert isinstance(outcome, list), f"expected drafts, got {outcome!r}"
    return outcome


def test_decode_page_accepts_lists_and_id_keyed_dicts() -> None:
    """Both list and dict-of-items payloads decode to a list."""
    as_list = decode_page(b'[{"name": "Up"}]', category="vod")
    as_dict = decode_page('{"7": {"name": "Up"}}', category="vod")

    assert as_list == as_dict == [{"name": "Up"}]


@pytest.mark.parametrize("payload", [b"{not json", b'"just a string"', b"42"])
def test_decode_page_rejects_malformed_payloads(payload: bytes) -> None:
    """Malformed JSON or a non-list body fails the category."""
    with pytest.raises(FormatError) as excinfo:
        decode_page(payload, category="live", source_id="api-a")

    assert excinfo.value.source_id == "api-a"
    assert "live" in str(excinfo.value), "error should name the category"


def test_live_item_composes_stream_url_with_ts_default() -> None:
    """Live streams default to the ``ts`` container."""
    (draft,) = _drafts(
        {"name": "BBC One", "stream_id": 11, "category_name": "UK"},
        CatalogueCategory.LIVE,
    )

    assert draft.kind is ContentKind.CHANNEL
    assert draft.stream_url == "http://api.example/live/11.ts"
    assert draft.category == "UK"


def test_vod_item_prefers_direct_source_and_keeps_metadata() -> None:
    """A direct source wins over a composed URL; extra fields are kept."""
    (draft,) = _drafts(
        {
            "name": "Heat",
            "stream_id": "5",
            "direct_source": "http://cdn/heat.mkv",
            "rating": "8.3",
            "plot": "A heist.",
            "releaseDate": "1995-12-15",
        },
        CatalogueCategory.VOD,
    )

    assert draft.kind is ContentKind.MOVIE
    assert draft.stream_url == "http://cdn/heat.mkv"
    assert draft.summary == "A heist."
    assert draft.attributes["rating"] == "8.3"
    assert draft.attributes["release_date"] == "1995-12-15"


def test_vod_container_extension_overrides_default() -> None:
    """A declared container extension is used in the composed URL."""
    url = stream_url(
        {"stream_id": 9, "container_extension": "mkv"},
        kind=ContentKind.MOVIE,
        endpoint="http://api.example",
    )

    assert url == "http://api.example/movie/9.mkv"


def test_series_item_expands_embedded_episodes() -> None:
    """Series items yield the series draft followed by its episodes."""
    item = {
        "name": "The Wire",
        "series_id": 3,
        "episodes": {
            "1": [
                {"id": 101, "episode_num": 1, "info": {"plot": "Pilot plot"}},
                {"id": 102, "episode_num": 2, "title": "The Detail"},
            ],
            "2": [{"id": 201, "episode_num": "1", "container_extension": "mkv"}],
        },
    }

    series, *episodes = _drafts(item, CatalogueCategory.SERIES)

    assert series.kind is ContentKind.SERIES
    assert series.stream_url is None, "series records carry no stream"
    assert [(e.season_number, e.episode_number) for e in episodes] == [
        (1, 1),
        (1, 2),
        (2, 1),
    ]
    assert episodes[0].title == "The Wire S01E01", "untitled episodes get a title"
    assert episodes[0].summary == "Pilot plot"
    assert episodes[1].title == "The Detail"
    assert episodes[2].stream_url == "http://api.example/series/201.mkv"
    assert all(e.series_title == "The Wire" for e in episodes)


@pytest.mark.parametrize(
    "item",
    [["not", "a", "dict"], {"stream_id": 4}, {"name": "   "}],
)
def test_items_without_a_name_are_skipped(item: object) -> None:
    """Only a missing name skips an item."""
    outcome = parse_item(
        item, category=CatalogueCategory.VOD, source=_SOURCE, position=4
    )

    assert isinstance(outcome, Skipped), f"expected a skip, got {outcome!r}"
    assert outcome.line_number == 4


def test_adult_flag_from_provider_field() -> None:
    """The provider's ``is_adult`` flag marks the draft."""
    (flagged,) = _drafts({"name": "Late", "is_adult": "1"}, CatalogueCategory.LIVE)
    (clean,) = _drafts({"name": "Early", "is_adult": 0}, CatalogueCategory.LIVE)

    assert flagged.attributes["adult"] is True
    assert clean.attributes["adult"] is False


@pytest.mark.asyncio
async def test_static_fetcher_serves_pages_per_category() -> None:
    """Pages are served in order; missing categories yield nothing."""
    first = json.dumps([{"name": "A"}]).encode()
    fetcher = StaticCategoryFetcher({"vod": (first, b"[]")})

    pages = [page async for page in fetcher.fetch(CatalogueCategory.VOD)]
    missing = [page async for page in fetcher.fetch(CatalogueCategory.LIVE)]

    assert pages == [first, b"[]"]
    assert missing == []
