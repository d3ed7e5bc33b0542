"""Identity keys, content fingerprints and per-run dedup bookkeeping.

Identity keys are scoped to one source: the same key in two sources names two
distinct records, so cross-source merging never happens at write time.
"""

from __future__ import annotations

import dataclasses as dc
import enum
import hashlib
import json
import typing as typ

from .domain import ContentKind

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    import uuid

    from .domain import RecordDraft


def collapse(text: str) -> str:
    """Case-fold and collapse runs of whitespace."""
    return " ".join(text.casefold().split())


def series_key(series_title: str) -> str:
    """Return the identity key shared by a series record and its episodes."""
    return f"{ContentKind.SERIES}:{collapse(series_title)}"


def season_key(parent_key: str, season_number: int) -> str:
    """Return the projection owner key for one season of a series."""
    return f"{parent_key}#s{season_number}"


def identity_key(draft: RecordDraft) -> str:
    """Return the per-source identity key for a draft.

    Numbered episodes are keyed by series title and numbering so renamed
    episode titles still resolve to the same record; everything else is
    keyed by kind and collapsed title.

    Examples
    --------
    >>> identity_key(RecordDraft("BBC  One", ContentKind.CHANNEL, "a"))
    'channel:bbc one'
    """
    if (
        draft.kind is ContentKind.EPISODE
        and draft.series_title
        and draft.season_number is not None
        and draft.episode_number is not None
    ):
        return (
            f"{ContentKind.EPISODE}:{collapse(draft.series_title)}"
            f"#s{draft.season_number}e{draft.episode_number}"
        )
    return f"{draft.kind}:{collapse(draft.title)}"


def parent_key(draft: RecordDraft) -> str | None:
    """Return the series key an episode draft belongs to, if any."""
    if draft.kind is ContentKind.EPISODE and draft.series_title:
        return series_key(draft.series_title)
    return None


def fingerprint(draft: RecordDraft) -> str:
    """Return a sha256 digest of the draft's stored content."""
    payload = json.dumps(
        [
            draft.title,
            draft.kind,
            draft.stream_url,
            draft.logo_url,
            draft.category,
            draft.summary,
            draft.series_title,
            draft.season_number,
            draft.episode_number,
            draft.attributes,
        ],
        sort_keys=True,
        default=str,
        ensure_ascii=False,
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


@dc.dataclass(frozen=True, slots=True)
class StoredIdentity:
    """Identity data already persisted for a source."""

    record_id: uuid.UUID
    fingerprint: str
    kind: ContentKind


class Disposition(enum.StrEnum):
    """What the coordinator should do with a staged draft."""

    INSERT = "insert"
    UPDATE = "update"
    UNCHANGED = "unchanged"
    DUPLICATE = "duplicate"


@dc.dataclass(slots=True)
class RunLedger:
    """Dedup bookkeeping for a single ingestion run.

    A ledger is created per run and passed through the pipeline explicitly;
    it is never shared between concurrent imports.

    Attributes
    ----------
    source_id : str
        Source being ingested.
    existing : dict[str, StoredIdentity]
        Identity keys stored for the source before the run began.
    seen : set[str]
        Identity keys admitted during this run.
    """

    source_id: str
    existing: dict[str, StoredIdentity]
    seen: set[str] = dc.field(default_factory=set)

    def admit(self, key: str, digest: str) -> Disposition:
        """Classify a key, marking it seen unless it is a duplicate."""
        if key in self.seen:
            return Disposition.DUPLICATE
        self.seen.add(key)
        stored = self.existing.get(key)
        if stored is None:
            return Disposition.INSERT
        if stored.fingerprint == digest:
            return Disposition.UNCHANGED
        return Disposition.UPDATE

    def record_id(self, key: str) -> uuid.UUID | None:
        """Return the stored record id for ``key``, if any."""
        stored = self.existing.get(key)
        return None if stored is None else stored.record_id

    def stale_ids(self, kinds: cabc.Collection[ContentKind]) -> list[uuid.UUID]:
        """Return stored records of ``kinds`` that the run did not see."""
        return [
            stored.record_id
            for key, stored in self.existing.items()
            if key not in self.seen and stored.kind in kinds
        ]


__all__ = (
    "Disposition",
    "RunLedger",
    "StoredIdentity",
    "collapse",
    "fingerprint",
    "identity_key",
    "parent_key",
    "season_key",
    "series_key",
)
