"""JSON catalogue API parser.

API sources publish three categories (live channels, video on demand and
series). The transport collaborator fetches already-authenticated responses;
this module decodes each page and turns its items into record drafts. A
malformed page fails only its own category.

Examples
--------
>>> items = decode_page(b'[{"name": "Up", "stream_id": 7}]', category="vod")
>>> parse_item(items[0], category=CatalogueCategory.VOD, source=source)
"""

from __future__ import annotations

import enum
import json
import typing as typ

from mediacat.catalogue.domain import ContentKind, RecordDraft
from mediacat.catalogue.errors import FormatError
from mediacat.config import HeuristicTables

from .classification import is_adult_content
from .manifest import Skipped

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from mediacat.catalogue.domain import SourceDescriptor

type ApiPayload = bytes | str | list[object]


class CatalogueCategory(enum.StrEnum):
    """Catalogue API categories, fetched one request each."""

    LIVE = "live"
    VOD = "vod"
    SERIES = "series"


CATEGORY_KINDS: dict[CatalogueCategory, frozenset[ContentKind]] = {
    CatalogueCategory.LIVE: frozenset({ContentKind.CHANNEL}),
    CatalogueCategory.VOD: frozenset({ContentKind.MOVIE}),
    CatalogueCategory.SERIES: frozenset({ContentKind.SERIES, ContentKind.EPISODE}),
}
_URL_SEGMENTS = {
    ContentKind.CHANNEL: "live",
    ContentKind.MOVIE: "movie",
    ContentKind.EPISODE: "series",
}
_DEFAULT_EXTENSIONS = {
    ContentKind.CHANNEL: "ts",
    ContentKind.MOVIE: "mp4",
    ContentKind.EPISODE: "mp4",
}


class CategoryFetcher(typ.Protocol):
    """Port yielding already-authenticated response pages per category."""

    def fetch(self, category: CatalogueCategory) -> cabc.AsyncIterator[ApiPayload]:
        """Yield each response page for ``category``."""
        ...


class StaticCategoryFetcher:
    """Serve pre-fetched responses, one page or a list of pages per category."""

    def __init__(
        self,
        responses: cabc.Mapping[
            CatalogueCategory | str, ApiPayload | tuple[ApiPayload, ...]
        ],
    ) -> None:
        self._responses = {
            CatalogueCategory(category): payload
            for category, payload in responses.items()
        }

    async def fetch(
        self, category: CatalogueCategory
    ) -> cabc.AsyncIterator[ApiPayload]:
        """Yield the stored pages for ``category``; none when absent."""
        payload = self._responses.get(category)
        if payload is None:
            return
        pages = payload if isinstance(payload, tuple) else (payload,)
        for page in pages:
            yield page


def decode_page(
    payload: ApiPayload,
    *,
    category: str,
    source_id: str | None = None,
) -> list[object]:
    """Decode one response page into a list of items.

    Raises
    ------
    FormatError
        If the payload is not JSON or does not hold a list of items. Dict
        payloads keyed by id are accepted and flattened to their values.
    """
    data: object = payload
    if isinstance(payload, bytes | str):
        try:
            data = json.loads(payload)
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            msg = f"Category {category!r} returned malformed JSON: {exc}"
            raise FormatError(msg, source_id=source_id) from exc
    if isinstance(data, dict):
        data = list(data.values())
    if not isinstance(data, list):
        msg = (
            f"Category {category!r} returned {type(data).__name__}, "
            "expected a list of items."
        )
        raise FormatError(msg, source_id=source_id)
    return data


def _text(item: cabc.Mapping[str, object], *keys: str) -> str:
    for key in keys:
        value = item.get(key)
        if value is None:
            continue
        text = str(value).strip()
        if text:
            return text
    return ""


def _number(item: cabc.Mapping[str, object], *keys: str) -> int | None:
    return _as_int(_text(item, *keys))


def _as_int(text: str) -> int | None:
    try:
        return int(float(text)) if text else None
    except (OverflowError, ValueError):
        return None


def stream_url(
    item: cabc.Mapping[str, object],
    *,
    kind: ContentKind,
    endpoint: str | None,
) -> str | None:
    """Return the item's direct source, or compose one from the endpoint.

    Composed URLs take the form ``{endpoint}/{live|movie|series}/{id}.{ext}``;
    the transport collaborator injects credentials at playback time.
    """
    direct = _text(item, "direct_source")
    if direct:
        return direct
    stream_id = _text(item, "stream_id", "id")
    segment = _URL_SEGMENTS.get(kind)
    if not stream_id or segment is None or not endpoint:
        return None
    extension = _text(item, "container_extension") or _DEFAULT_EXTENSIONS[kind]
    return f"{endpoint.rstrip('/')}/{segment}/{stream_id}.{extension}"


def _attributes(
    item: cabc.Mapping[str, object],
    *,
    title: str,
    tables: HeuristicTables,
) -> dict[str, object]:
    attributes: dict[str, object] = {
        key: _text(item, key)
        for key in ("stream_id", "series_id", "category_id", "rating", "added")
        if _text(item, key)
    }
    release = _text(item, "releaseDate", "release_date")
    if release:
        attributes["release_date"] = release
    attributes["adult"] = bool(_number(item, "is_adult")) or is_adult_content(
        title,
        _text(item, "category_name"),
        title_keywords=tables.adult_title_keywords,
        category_keywords=tables.adult_category_keywords,
    )
    return attributes


def _episode_drafts(
    item: cabc.Mapping[str, object],
    *,
    series_title: str,
    source: SourceDescriptor,
    tables: HeuristicTables,
) -> list[RecordDraft]:
    episodes = item.get("episodes")
    if not isinstance(episodes, dict):
        return []
    drafts: list[RecordDraft] = []
    for season_key, season_items in episodes.items():
        if not isinstance(season_items, list):
            continue
        for episode in season_items:
            if not isinstance(episode, dict):
                continue
            season = _number(episode, "season") or _as_int(str(season_key).strip())
            number = _number(episode, "episode_num", "episode")
            if season is None or number is None:
                continue
            title = _text(episode, "title") or (
                f"{series_title} S{season:02d}E{number:02d}"
            )
            info = episode.get("info")
            info = info if isinstance(info, dict) else {}
            drafts.append(
                RecordDraft(
                    title=title,
                    kind=ContentKind.EPISODE,
                    source_id=source.id,
                    stream_url=stream_url(
                        episode, kind=ContentKind.EPISODE, endpoint=source.endpoint
                    ),
                    logo_url=_text(info, "movie_image") or None,
                    summary=_text(info, "plot") or None,
                    series_title=series_title,
                    season_number=season,
                    episode_number=number,
                    attributes=_attributes(episode, title=title, tables=tables),
                )
            )
    return drafts


def parse_item(
    item: object,
    *,
    category: CatalogueCategory,
    source: SourceDescriptor,
    tables: HeuristicTables | None = None,
    position: int = 0,
) -> list[RecordDraft] | Skipped:
    """Turn one API item into drafts.

    Live and VOD items produce one draft. Series items produce the series
    draft followed by one draft per embedded episode. Only a missing name
    skips the item; every other field is optional.
    """
    tables = tables or HeuristicTables()
    if not isinstance(item, dict):
        return Skipped(position, f"{category} item is {type(item).__name__}")
    title = _text(item, "name", "title")
    if not title:
        return Skipped(position, f"{category} item has no name")

    kind = {
        CatalogueCategory.LIVE: ContentKind.CHANNEL,
        CatalogueCategory.VOD: ContentKind.MOVIE,
        CatalogueCategory.SERIES: ContentKind.SERIES,
    }[category]
    draft = RecordDraft(
        title=title,
        kind=kind,
        source_id=source.id,
        stream_url=(
            None
            if kind is ContentKind.SERIES
            else stream_url(item, kind=kind, endpoint=source.endpoint)
        ),
        logo_url=_text(item, "stream_icon", "cover") or None,
        category=_text(item, "category_name", "category_id") or None,
        summary=_text(item, "plot", "description") or None,
        attributes=_attributes(item, title=title, tables=tables),
    )
    if kind is not ContentKind.SERIES:
        return [draft]
    return [
        draft,
        *_episode_drafts(item, series_title=title, source=source, tables=tables),
    ]


__all__ = (
    "CATEGORY_KINDS",
    "ApiPayload",
    "CatalogueCategory",
    "CategoryFetcher",
    "StaticCategoryFetcher",
    "decode_page",
    "parse_item",
    "stream_url",
)
