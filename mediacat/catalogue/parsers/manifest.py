"""Line-oriented manifest (extended M3U) parser.

Lines from the feed reader are paired into entries (an ``#EXTINF`` directive
and the stream URL that follows it) and each entry is turned into a
:class:`RecordDraft` or a :class:`Skipped` marker. Parsing never touches the
store, so batching and deduplication downstream work the same for every
format.

Examples
--------
>>> lines = FeedReader().lines(b'#EXTINF:-1 group-title="News",BBC\\nhttp://s/1')
>>> [draft.title for draft in parse_manifest(lines, source_id="a")]
['BBC']
"""

from __future__ import annotations

import dataclasses as dc
import re
import typing as typ

from mediacat.catalogue.domain import ContentKind, RecordDraft
from mediacat.catalogue.errors import EmptyFeedError
from mediacat.catalogue.feed_reader import RawLine
from mediacat.config import HeuristicTables
from mediacat.logging import get_logger, log_debug

from .classification import classify_category, episode_hint, is_adult_content

if typ.TYPE_CHECKING:
    import collections.abc as cabc

logger = get_logger(__name__)

_HEADER = "#EXTM3U"
_DIRECTIVE = "#EXTINF:"
_GROUP_DIRECTIVE = "#EXTGRP:"
_ATTRIBUTE_PATTERN = re.compile(r"""([\w-]+)=("[^"]*"|'[^']*'|[^,\s]+)""")
_EPG_ATTRIBUTES = ("url-tvg", "x-tvg-url")
_MAPPED_ATTRIBUTES = frozenset({"tvg-logo", "group-title"})


@dc.dataclass(frozen=True, slots=True)
class ManifestEntry:
    """A directive paired with the URL line that followed it, if any."""

    line_number: int
    directive: str
    url: str | None = None
    group: str | None = None


@dc.dataclass(frozen=True, slots=True)
class Skipped:
    """Marker for an entry that was dropped instead of parsed."""

    line_number: int
    reason: str


type ParseOutcome = RecordDraft | Skipped


@dc.dataclass(slots=True)
class ManifestParseResult:
    """Running totals for one manifest parse.

    Attributes
    ----------
    epg_url : str | None
        Programme-guide URL advertised by the ``#EXTM3U`` header.
    entries : int
        Directive entries seen.
    drafts : int
        Entries that produced a record draft.
    skipped : int
        Entries dropped for missing fields.
    """

    epg_url: str | None = None
    entries: int = 0
    drafts: int = 0
    skipped: int = 0


def parse_attributes(text: str) -> dict[str, str]:
    """Parse ``key="value"``, ``key='value'`` and ``key=value`` pairs."""
    attributes: dict[str, str] = {}
    for match in _ATTRIBUTE_PATTERN.finditer(text):
        value = match.group(2)
        if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
            value = value[1:-1]
        attributes[match.group(1).lower()] = value.strip()
    return attributes


def _split_directive(body: str) -> tuple[str, str]:
    """Split a directive body at the first comma outside quoted values.

    A quote only opens a value directly after ``=``; an apostrophe inside a
    bare value such as ``tvg-name=Bob's`` is literal.
    """
    quote: str | None = None
    for index, char in enumerate(body):
        if quote is not None:
            if char == quote:
                quote = None
        elif char in "\"'" and index > 0 and body[index - 1] == "=":
            quote = char
        elif char == ",":
            return body[:index], body[index + 1 :]
    return body, ""


class _EntryPairer:
    """Pair directive lines with the URL line that follows them."""

    __slots__ = ("_group", "_pending", "result")

    def __init__(self, result: ManifestParseResult) -> None:
        self.result = result
        self._pending: RawLine | None = None
        self._group: str | None = None

    def push(self, line: RawLine) -> ManifestEntry | None:
        text = line.text.strip()
        if not text:
            return None
        if text.startswith(_HEADER):
            self._read_header(text)
            return None
        if text.startswith(_DIRECTIVE):
            previous = self._release(None)
            self._pending = RawLine(line.number, text)
            return previous
        if text.startswith(_GROUP_DIRECTIVE):
            self._group = text.removeprefix(_GROUP_DIRECTIVE).strip() or None
            return None
        if text.startswith("#"):
            return None
        if self._pending is None:
            log_debug(logger, "Ignoring URL without directive on line %s.", line.number)
            return None
        return self._release(text)

    def finish(self) -> ManifestEntry | None:
        return self._release(None)

    def _release(self, url: str | None) -> ManifestEntry | None:
        pending, self._pending = self._pending, None
        group, self._group = self._group, None
        if pending is None:
            return None
        self.result.entries += 1
        return ManifestEntry(
            line_number=pending.number,
            directive=pending.text,
            url=url,
            group=group,
        )

    def _read_header(self, text: str) -> None:
        attributes = parse_attributes(text.removeprefix(_HEADER))
        for name in _EPG_ATTRIBUTES:
            if attributes.get(name):
                self.result.epg_url = attributes[name].split(",")[0].strip()
                return


def parse_entry(
    entry: ManifestEntry,
    *,
    source_id: str,
    tables: HeuristicTables,
) -> ParseOutcome:
    """Turn one paired entry into a draft, or a skip when fields are missing.

    Parameters
    ----------
    entry : ManifestEntry
        Directive and URL pair.
    source_id : str
        Source the entry belongs to.
    tables : HeuristicTables
        Keyword tables used for classification.

    Returns
    -------
    RecordDraft | Skipped
        The parsed draft, or a skip marker naming the missing field.
    """
    head, title = _split_directive(entry.directive.removeprefix(_DIRECTIVE))
    duration, _, attribute_text = head.strip().partition(" ")
    attributes = parse_attributes(attribute_text)
    title = title.strip() or attributes.get("tvg-name", "")
    if not title:
        return Skipped(entry.line_number, "directive has no title or tvg-name")
    if not entry.url:
        return Skipped(entry.line_number, f"entry {title!r} has no stream URL")

    group = attributes.get("group-title") or entry.group
    extra: dict[str, object] = {
        key: value
        for key, value in attributes.items()
        if key not in _MAPPED_ATTRIBUTES and value
    }
    if duration.strip():
        extra["duration"] = duration.strip()
    extra["adult"] = is_adult_content(
        title,
        group,
        title_keywords=tables.adult_title_keywords,
        category_keywords=tables.adult_category_keywords,
    )

    hint = episode_hint(title)
    if hint is not None:
        return RecordDraft(
            title=title,
            kind=ContentKind.EPISODE,
            source_id=source_id,
            stream_url=entry.url,
            logo_url=attributes.get("tvg-logo") or None,
            category=group,
            series_title=hint.series_title,
            season_number=hint.season_number,
            episode_number=hint.episode_number,
            attributes=extra,
        )
    return RecordDraft(
        title=title,
        kind=classify_category(group, tables.movie_category_keywords),
        source_id=source_id,
        stream_url=entry.url,
        logo_url=attributes.get("tvg-logo") or None,
        category=group,
        attributes=extra,
    )


def _outcome(
    entry: ManifestEntry,
    *,
    source_id: str,
    tables: HeuristicTables,
    result: ManifestParseResult,
) -> ParseOutcome:
    outcome = parse_entry(entry, source_id=source_id, tables=tables)
    if isinstance(outcome, Skipped):
        result.skipped += 1
    else:
        result.drafts += 1
    return outcome


def _require_entries(result: ManifestParseResult, source_id: str) -> None:
    if result.drafts == 0:
        msg = (
            f"Manifest for {source_id!r} has no parseable entries "
            f"({result.entries} directives, {result.skipped} skipped)."
        )
        raise EmptyFeedError(msg, source_id=source_id)


def parse_manifest(
    lines: cabc.Iterable[RawLine],
    *,
    source_id: str,
    tables: HeuristicTables | None = None,
    result: ManifestParseResult | None = None,
) -> cabc.Iterator[ParseOutcome]:
    """Lazily parse manifest lines into drafts and skip markers.

    Raises
    ------
    EmptyFeedError
        Once the lines are exhausted, if no entry produced a draft.
    """
    tables = tables or HeuristicTables()
    result = result if result is not None else ManifestParseResult()
    pairer = _EntryPairer(result)
    for line in lines:
        entry = pairer.push(line)
        if entry is not None:
            yield _outcome(entry, source_id=source_id, tables=tables, result=result)
    entry = pairer.finish()
    if entry is not None:
        yield _outcome(entry, source_id=source_id, tables=tables, result=result)
    _require_entries(result, source_id)


async def aparse_manifest(
    lines: cabc.AsyncIterable[RawLine],
    *,
    source_id: str,
    tables: HeuristicTables | None = None,
    result: ManifestParseResult | None = None,
) -> cabc.AsyncIterator[ParseOutcome]:
    """Async counterpart of :func:`parse_manifest` for streamed feeds."""
    tables = tables or HeuristicTables()
    result = result if result is not None else ManifestParseResult()
    pairer = _EntryPairer(result)
    async for line in lines:
        entry = pairer.push(line)
        if entry is not None:
            yield _outcome(entry, source_id=source_id, tables=tables, result=result)
    entry = pairer.finish()
    if entry is not None:
        yield _outcome(entry, source_id=source_id, tables=tables, result=result)
    _require_entries(result, source_id)


__all__ = (
    "ManifestEntry",
    "ManifestParseResult",
    "ParseOutcome",
    "Skipped",
    "aparse_manifest",
    "parse_attributes",
    "parse_entry",
    "parse_manifest",
)
