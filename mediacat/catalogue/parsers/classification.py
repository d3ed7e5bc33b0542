"""Pure classification heuristics over explicit keyword tables.

Channel-versus-movie classification, adult-content flagging, episode
numbering hints and source-kind detection are all fuzzy, hand-tuned rules.
They live here as small functions taking their tables as arguments so each
rule can be tested, and reconfigured, on its own.
"""

from __future__ import annotations

import dataclasses as dc
import functools
import re
import typing as typ
from urllib.parse import parse_qs, urlsplit

from mediacat.catalogue.domain import ContentKind, SourceKind
from mediacat.catalogue.errors import ConfigurationError

if typ.TYPE_CHECKING:
    import collections.abc as cabc

_EPISODE_PATTERNS = (
    re.compile(r"\bS(?P<season>\d{1,3})\s*[.\-_ ]?\s*E(?P<episode>\d{1,4})\b", re.I),
    # NxMM only: channel names such as "NDTV 24x7" must not read as episodes.
    re.compile(r"\b(?P<season>\d{1,2})x(?P<episode>\d{2,3})\b", re.I),
)
_SERIES_TITLE_TRIM = " \t-_:|.([{"
_MANIFEST_SUFFIXES = (".m3u", ".m3u8")


@dc.dataclass(frozen=True, slots=True)
class EpisodeHint:
    """Episode numbering found in a title."""

    series_title: str
    season_number: int
    episode_number: int


def classify_category(
    category: str | None,
    movie_keywords: cabc.Iterable[str],
) -> ContentKind:
    """Classify a manifest group as movie or channel.

    Parameters
    ----------
    category : str | None
        Group or category text from the feed entry.
    movie_keywords : collections.abc.Iterable[str]
        Case-insensitive substrings that mark movie groups.

    Returns
    -------
    ContentKind
        ``MOVIE`` when any keyword occurs in the category, else ``CHANNEL``.
    """
    if not category:
        return ContentKind.CHANNEL
    folded = category.casefold()
    if any(keyword.casefold() in folded for keyword in movie_keywords):
        return ContentKind.MOVIE
    return ContentKind.CHANNEL


@functools.lru_cache(maxsize=64)
def _keyword_pattern(keywords: tuple[str, ...]) -> re.Pattern[str] | None:
    """Compile keywords into one alternation.

    Alphanumeric keywords must match whole words; keywords containing symbols
    (for example ``18+``) match as plain substrings.
    """
    parts = [
        rf"\b{re.escape(keyword)}\b" if keyword.isalnum() else re.escape(keyword)
        for keyword in (item.casefold() for item in keywords)
        if keyword
    ]
    if not parts:
        return None
    return re.compile("|".join(parts))


def contains_keyword(text: str | None, keywords: tuple[str, ...]) -> bool:
    """Return True when ``text`` contains any keyword from the table."""
    if not text:
        return False
    pattern = _keyword_pattern(keywords)
    return pattern is not None and pattern.search(text.casefold()) is not None


def is_adult_content(
    title: str | None,
    category: str | None,
    *,
    title_keywords: tuple[str, ...],
    category_keywords: tuple[str, ...],
) -> bool:
    """Return True when the title or category matches an adult keyword."""
    return contains_keyword(title, title_keywords) or contains_keyword(
        category, category_keywords
    )


def episode_hint(title: str) -> EpisodeHint | None:
    """Extract season and episode numbers from a title such as ``Show S01E02``.

    The series title is the text before the numbering marker. A marker at the
    very start of the title yields no hint, since there is no series to
    attach the episode to.
    """
    for pattern in _EPISODE_PATTERNS:
        match = pattern.search(title)
        if match is None:
            continue
        series_title = title[: match.start()].strip(_SERIES_TITLE_TRIM)
        if not series_title:
            return None
        return EpisodeHint(
            series_title=series_title,
            season_number=int(match.group("season")),
            episode_number=int(match.group("episode")),
        )
    return None


def detect_source_kind(url: str) -> SourceKind:
    """Infer the feed format from a source URL.

    Raises
    ------
    ConfigurationError
        If the URL is neither a manifest file nor a credentialed API URL.
    """
    parts = urlsplit(url.strip())
    if not parts.scheme or not parts.netloc:
        msg = f"Invalid source URL {url!r}."
        raise ConfigurationError(msg)
    if parts.path.casefold().endswith(_MANIFEST_SUFFIXES):
        return SourceKind.MANIFEST
    query = parse_qs(parts.query)
    if "username" in query and "password" in query:
        return SourceKind.API
    msg = f"Unsupported playlist type for {parts.netloc}{parts.path}."
    raise ConfigurationError(msg)


__all__ = (
    "EpisodeHint",
    "classify_category",
    "contains_keyword",
    "detect_source_kind",
    "episode_hint",
    "is_adult_content",
)
