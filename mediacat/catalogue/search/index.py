"""In-process inverted index with prefix and fuzzy matching.

The index holds one document per canonical record. Queries treat every term
as a prefix, fall back to edit-distance matches for longer terms, and rank
documents with a saturated TF/IDF score scaled by the entry's rank weight.
Ties break on recency.
"""

from __future__ import annotations

import bisect
import dataclasses as dc
import math
import typing as typ

from rapidfuzz import process
from rapidfuzz.distance import Levenshtein

from mediacat.catalogue.domain import SearchHit

from .tokeniser import query_terms, term_forms

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    import uuid

    from mediacat.catalogue.domain import ContentKind, IndexEntry

TITLE_TOKEN_WEIGHT = 2.0
SUMMARY_TOKEN_WEIGHT = 1.0
EXACT_MATCH_WEIGHT = 1.0
PREFIX_MATCH_WEIGHT = 0.8
FUZZY_MATCH_WEIGHT = 0.5
FUZZY_MIN_LENGTH = 4
FUZZY_WIDE_LENGTH = 8
_SATURATION = 1.2


def fuzzy_distance(term: str) -> int:
    """Return the edit distance tolerated for a query term."""
    if len(term) >= FUZZY_WIDE_LENGTH:
        return 2
    if len(term) >= FUZZY_MIN_LENGTH:
        return 1
    return 0


@dc.dataclass(frozen=True, slots=True)
class _Document:
    entry: IndexEntry
    frequencies: dict[str, float]


class SearchIndex:
    """Mutable inverted index over :class:`IndexEntry` documents."""

    def __init__(self, entries: cabc.Iterable[IndexEntry] = ()) -> None:
        self._documents: dict[uuid.UUID, _Document] = {}
        self._postings: dict[str, dict[uuid.UUID, float]] = {}
        self._vocabulary: list[str] = []
        for entry in entries:
            self.add(entry)

    def __len__(self) -> int:
        return len(self._documents)

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._documents

    def entry(self, record_id: uuid.UUID) -> IndexEntry | None:
        """Return the indexed entry for a record, if present."""
        document = self._documents.get(record_id)
        return None if document is None else document.entry

    def add(self, entry: IndexEntry) -> None:
        """Insert or replace the document for ``entry.record_id``."""
        self.remove(entry.record_id)
        frequencies: dict[str, float] = {}
        for token in entry.tokens:
            frequencies[token] = frequencies.get(token, 0.0) + TITLE_TOKEN_WEIGHT
        for token in entry.summary_tokens:
            frequencies[token] = frequencies.get(token, 0.0) + SUMMARY_TOKEN_WEIGHT
        self._documents[entry.record_id] = _Document(entry, frequencies)
        for token, frequency in frequencies.items():
            posting = self._postings.get(token)
            if posting is None:
                posting = self._postings[token] = {}
                bisect.insort(self._vocabulary, token)
            posting[entry.record_id] = frequency

    def remove(self, record_id: uuid.UUID) -> bool:
        """Remove a record's document; return False when it was absent."""
        document = self._documents.pop(record_id, None)
        if document is None:
            return False
        for token in document.frequencies:
            posting = self._postings.get(token)
            if posting is None:
                continue
            posting.pop(record_id, None)
            if not posting:
                del self._postings[token]
                position = bisect.bisect_left(self._vocabulary, token)
                if (
                    position < len(self._vocabulary)
                    and self._vocabulary[position] == token
                ):
                    del self._vocabulary[position]
        return True

    def apply(
        self,
        upserts: cabc.Iterable[IndexEntry] = (),
        deletions: cabc.Iterable[uuid.UUID] = (),
    ) -> None:
        """Apply a committed batch of index mutations."""
        for record_id in deletions:
            self.remove(record_id)
        for entry in upserts:
            self.add(entry)

    def _prefix_matches(self, prefix: str) -> cabc.Iterator[str]:
        position = bisect.bisect_left(self._vocabulary, prefix)
        while position < len(self._vocabulary):
            token = self._vocabulary[position]
            if not token.startswith(prefix):
                return
            yield token
            position += 1

    def _fuzzy_matches(self, term: str) -> set[str]:
        distance = fuzzy_distance(term)
        if distance == 0 or not self._vocabulary:
            return set()
        whole = process.extract(
            term,
            self._vocabulary,
            scorer=Levenshtein.distance,
            score_cutoff=distance,
            limit=None,
        )
        prefixes = process.extract(
            term,
            self._vocabulary,
            scorer=Levenshtein.distance,
            processor=lambda token: token[: len(term)],
            score_cutoff=distance,
            limit=None,
        )
        return {match[0] for match in (*whole, *prefixes)}

    def _term_candidates(self, term: str) -> dict[str, float]:
        candidates: dict[str, float] = {}
        for form in term_forms(term):
            for token in self._prefix_matches(form):
                weight = EXACT_MATCH_WEIGHT if token == form else PREFIX_MATCH_WEIGHT
                candidates[token] = max(candidates.get(token, 0.0), weight)
        for token in self._fuzzy_matches(term):
            candidates.setdefault(token, FUZZY_MATCH_WEIGHT)
        return candidates

    def _idf(self, token: str) -> float:
        total = len(self._documents)
        frequency = len(self._postings.get(token, ()))
        return math.log(1.0 + (total - frequency + 0.5) / (frequency + 0.5))

    def _accepts(
        self,
        entry: IndexEntry,
        kind: ContentKind | None,
        source_ids: cabc.Collection[str] | None,
    ) -> bool:
        if kind is not None and entry.kind != kind:
            return False
        return source_ids is None or entry.source_id in source_ids

    def search(
        self,
        query: str,
        *,
        kind: ContentKind | None = None,
        limit: int = 20,
        source_ids: cabc.Collection[str] | None = None,
    ) -> list[SearchHit]:
        """Return the top ``limit`` documents matching every query term.

        Parameters
        ----------
        query : str
            Free text; each term matches tokens it prefixes, and terms of four
            or more characters also match tokens within a small edit distance.
        kind : ContentKind | None, optional
            Restrict results to one kind.
        limit : int, optional
            Maximum number of hits.
        source_ids : collections.abc.Collection[str] | None, optional
            Restrict results to these sources.

        Returns
        -------
        list[SearchHit]
            Hits ordered by descending rank, then most recently updated.
        """
        terms = query_terms(query)
        if not terms or limit <= 0:
            return []
        scores: dict[uuid.UUID, float] | None = None
        for term in terms:
            term_scores: dict[uuid.UUID, float] = {}
            for token, match_weight in self._term_candidates(term).items():
                idf = self._idf(token)
                for record_id, frequency in self._postings[token].items():
                    if scores is not None and record_id not in scores:
                        continue
                    contribution = (
                        match_weight * idf * frequency / (frequency + _SATURATION)
                    )
                    if contribution > term_scores.get(record_id, 0.0):
                        term_scores[record_id] = contribution
            if scores is None:
                scores = term_scores
            else:
                scores = {
                    record_id: scores[record_id] + value
                    for record_id, value in term_scores.items()
                }
            if not scores:
                return []

        hits: list[tuple[float, IndexEntry]] = []
        for record_id, score in (scores or {}).items():
            entry = self._documents[record_id].entry
            if self._accepts(entry, kind, source_ids):
                hits.append((score * entry.weight, entry))
        hits.sort(
            key=lambda hit: (
                -hit[0],
                -hit[1].updated_at.timestamp(),
                hit[1].title.casefold(),
                str(hit[1].record_id),
            )
        )
        return [
            SearchHit(
                record_id=entry.record_id,
                title=entry.title,
                summary=entry.summary,
                rank=round(score, 6),
            )
            for score, entry in hits[:limit]
        ]


__all__ = ("SearchIndex", "fuzzy_distance")
