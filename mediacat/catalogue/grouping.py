"""Read-time grouping of catalogue records into unified items.

Records of one kind from every active source are bucketed by a normalised
title. Each bucket becomes a :class:`UnifiedItem` whose variants are ordered by
a resolution-based quality score, then by source priority, then by insertion
order. Grouping is a similarity heuristic: identical titles of different works
merge, and divergent titles of one work stay apart.

Examples
--------
>>> items = group_records(records, priorities={"a": 0, "b": 1})
>>> items[0].primary.score
5
"""

from __future__ import annotations

import functools
import re
import typing as typ
import unicodedata

from mediacat.config import HeuristicTables

from .domain import UnifiedItem, Variant
from .identity import collapse

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from .domain import CanonicalRecord

_BRACKETED = re.compile(r"[\(\[\{][^\)\]\}]*[\)\]\}]")
_NON_ALNUM = re.compile(r"[^0-9a-z]+")
_FRANCHISE_SUFFIXES = (
    re.compile(r":\s.*$"),
    re.compile(r"\s+part\s+\w+$", re.I),
    re.compile(r"\s+\d+$"),
    re.compile(r"\s+[ivx]+$", re.I),
)


def fold_accents(text: str) -> str:
    """Strip combining marks after NFD decomposition."""
    return "".join(
        char
        for char in unicodedata.normalize("NFD", text)
        if unicodedata.category(char) != "Mn"
    )


@functools.lru_cache(maxsize=16)
def _phrase_pattern(phrases: tuple[str, ...]) -> re.Pattern[str] | None:
    words = sorted(
        (
            " ".join(_NON_ALNUM.sub(" ", fold_accents(phrase).casefold()).split())
            for phrase in phrases
        ),
        key=len,
        reverse=True,
    )
    alternatives = [re.escape(word) for word in words if word]
    if not alternatives:
        return None
    return re.compile(rf"(?<![0-9a-z])(?:{'|'.join(alternatives)})(?![0-9a-z])")


def normalize_title(title: str, tables: HeuristicTables | None = None) -> str:
    """Return the grouping key text for a title.

    Case-folds, folds accents, drops bracketed tags, quality hints, edition
    markers and a leading article, replaces punctuation with spaces and
    collapses whitespace. Falls back to the collapsed title when nothing
    survives.
    """
    tables = tables or HeuristicTables()
    text = _BRACKETED.sub(" ", fold_accents(title).casefold())
    text = " ".join(_NON_ALNUM.sub(" ", text).split())
    for phrases in (
        tables.edition_markers,
        tuple(token for token, _ in tables.quality_hints),
    ):
        pattern = _phrase_pattern(phrases)
        if pattern is not None:
            text = pattern.sub(" ", text)
    words = text.split()
    if len(words) > 1 and words[0] in tables.leading_articles:
        words = words[1:]
    return " ".join(words) or collapse(title)


@functools.lru_cache(maxsize=16)
def _quality_pattern(
    hints: tuple[tuple[str, int], ...],
) -> tuple[re.Pattern[str], dict[str, int]] | None:
    scores = {token.casefold(): score for token, score in hints}
    if not scores:
        return None
    alternatives = "|".join(
        re.escape(token) for token in sorted(scores, key=len, reverse=True)
    )
    return re.compile(rf"(?<![0-9a-z])(?:{alternatives})(?![0-9a-z])"), scores


def quality_score(*texts: str | None, tables: HeuristicTables | None = None) -> int:
    """Return the highest quality score hinted by any of ``texts``.

    Hint tokens only match on alphanumeric boundaries, so ``hd`` inside
    ``fhd`` is not counted separately. Text without any hint scores 1.
    """
    tables = tables or HeuristicTables()
    compiled = _quality_pattern(tables.quality_hints)
    if compiled is None:
        return 1
    pattern, scores = compiled
    best = 1
    for text in texts:
        if not text:
            continue
        for match in pattern.finditer(text.casefold()):
            best = max(best, scores[match.group(0)])
    return best


def _variant_order(variant: Variant) -> tuple[object, ...]:
    record = variant.record
    return (
        -variant.score,
        variant.source_priority,
        record.created_at,
        record.position,
        str(record.id),
    )


def group_records(
    records: cabc.Iterable[CanonicalRecord],
    *,
    priorities: cabc.Mapping[str, int] | None = None,
    tables: HeuristicTables | None = None,
) -> list[UnifiedItem]:
    """Bucket records by normalised title into unified items.

    Parameters
    ----------
    records : collections.abc.Iterable[CanonicalRecord]
        Records to group; callers pass one kind at a time.
    priorities : collections.abc.Mapping[str, int] | None, optional
        Source priority ranks; lower ranks win quality ties. Unknown sources
        rank after every known one.
    tables : HeuristicTables | None, optional
        Edition markers, articles and quality hints.

    Returns
    -------
    list[UnifiedItem]
        Items sorted by grouping key. A single-record bucket is an item with
        no alternatives.
    """
    tables = tables or HeuristicTables()
    priorities = priorities or {}
    fallback_priority = max(priorities.values(), default=0) + 1
    buckets: dict[str, list[Variant]] = {}
    for record in records:
        key = f"{record.kind}:{normalize_title(record.title, tables)}"
        buckets.setdefault(key, []).append(
            Variant(
                record=record,
                score=quality_score(record.title, record.stream_url, tables=tables),
                source_priority=priorities.get(record.source_id, fallback_priority),
            )
        )

    items: list[UnifiedItem] = []
    for key in sorted(buckets):
        variants = sorted(buckets[key], key=_variant_order)
        primary = variants[0]
        items.append(
            UnifiedItem(
                key=key,
                kind=primary.record.kind,
                title=primary.record.title,
                primary=primary,
                alternatives=tuple(variants[1:]),
            )
        )
    return items


def franchise_key(title: str, tables: HeuristicTables | None = None) -> str:
    """Return a key shared by sequels, e.g. ``Alien 3`` and ``Alien: Covenant``."""
    text = fold_accents(title).strip()
    for pattern in _FRANCHISE_SUFFIXES:
        stripped = pattern.sub("", text).strip()
        if stripped:
            text = stripped
    return normalize_title(text, tables)


def group_franchises(
    items: cabc.Iterable[UnifiedItem],
    tables: HeuristicTables | None = None,
) -> dict[str, list[UnifiedItem]]:
    """Cluster unified items by franchise, keeping clusters of two or more."""
    clusters: dict[str, list[UnifiedItem]] = {}
    for item in items:
        clusters.setdefault(franchise_key(item.title, tables), []).append(item)
    return {key: members for key, members in clusters.items() if len(members) > 1}


__all__ = (
    "fold_accents",
    "franchise_key",
    "group_franchises",
    "group_records",
    "normalize_title",
    "quality_score",
)
