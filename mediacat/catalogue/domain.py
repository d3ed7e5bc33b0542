"""Domain models for the media catalogue."""

from __future__ import annotations

import dataclasses as dc
import enum
import typing as typ

from .errors import ConfigurationError

if typ.TYPE_CHECKING:
    import datetime as dt
    import uuid

type JsonMapping = dict[str, object]


class SourceKind(enum.StrEnum):
    """Feed formats a source can deliver."""

    MANIFEST = "manifest"
    API = "api"


class ContentKind(enum.StrEnum):
    """Kinds of catalogue content."""

    CHANNEL = "channel"
    MOVIE = "movie"
    SERIES = "series"
    EPISODE = "episode"


class MutationKind(enum.StrEnum):
    """Catalogue write operations observed by mutation listeners."""

    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


@dc.dataclass(frozen=True, slots=True)
class SourceDescriptor:
    """Configured provider of playlist or catalogue data.

    Attributes
    ----------
    id : str
        Stable source identifier; scopes every identity key.
    kind : SourceKind
        Feed format delivered by the source.
    priority : int
        Rank used to break quality ties when grouping; lower ranks first.
    endpoint : str | None
        Base URL used to compose stream URLs for API sources.
    credential_ref : str | None
        Opaque reference resolved by the transport collaborator.
    """

    id: str
    kind: SourceKind
    priority: int = 0
    endpoint: str | None = None
    credential_ref: str | None = None

    def validate(self) -> None:
        """Raise ``ConfigurationError`` when required fields are missing."""
        if not self.id or not self.id.strip():
            msg = "Source descriptor requires a non-empty id."
            raise ConfigurationError(msg)
        if not isinstance(self.kind, SourceKind):
            msg = f"Unsupported source kind {self.kind!r}."
            raise ConfigurationError(msg, source_id=self.id)
        if self.kind is SourceKind.API and not self.endpoint:
            msg = f"API source {self.id!r} requires an endpoint."
            raise ConfigurationError(msg, source_id=self.id)


@dc.dataclass(frozen=True, slots=True)
class RecordDraft:
    """Transient parser output describing one catalogue entry."""

    title: str
    kind: ContentKind
    source_id: str
    stream_url: str | None = None
    logo_url: str | None = None
    category: str | None = None
    summary: str | None = None
    series_title: str | None = None
    season_number: int | None = None
    episode_number: int | None = None
    attributes: JsonMapping = dc.field(default_factory=dict)


@dc.dataclass(frozen=True, slots=True)
class CanonicalRecord:
    """Persisted, source-attributed catalogue record.

    ``parent_key`` links an episode to the identity key of its series so the
    projector can walk the episode, season and series chain.
    """

    id: uuid.UUID
    source_id: str
    identity_key: str
    title: str
    normalized_title: str
    kind: ContentKind
    stream_url: str | None
    logo_url: str | None
    category: str | None
    summary: str | None
    parent_key: str | None
    season_number: int | None
    episode_number: int | None
    attributes: JsonMapping
    fingerprint: str
    position: int
    created_at: dt.datetime
    updated_at: dt.datetime


@dc.dataclass(frozen=True, slots=True)
class IndexEntry:
    """Search document stored 1:1 with a canonical record."""

    record_id: uuid.UUID
    source_id: str
    kind: ContentKind
    title: str
    summary: str | None
    tokens: tuple[str, ...]
    summary_tokens: tuple[str, ...]
    weight: float
    updated_at: dt.datetime


@dc.dataclass(frozen=True, slots=True)
class ProjectedFields:
    """Precomputed aggregate fields for one owner key within a source."""

    source_id: str
    owner_key: str
    fields: JsonMapping
    updated_at: dt.datetime


@dc.dataclass(frozen=True, slots=True)
class SourceStatus:
    """Per-source ingestion metadata."""

    source_id: str
    kind: SourceKind
    priority: int
    last_ingested_at: dt.datetime | None
    last_error: str | None
    record_count: int
    epg_url: str | None = None


@dc.dataclass(frozen=True, slots=True)
class RecordMutation:
    """Catalogue write handed to mutation listeners."""

    kind: MutationKind
    record: CanonicalRecord


@dc.dataclass(frozen=True, slots=True)
class Variant:
    """One record inside a unified item, with its quality score."""

    record: CanonicalRecord
    score: int
    source_priority: int

    @property
    def source_id(self) -> str:
        """Return the source the variant was ingested from."""
        return self.record.source_id


@dc.dataclass(frozen=True, slots=True)
class UnifiedItem:
    """Read-time grouping of equivalent records across sources."""

    key: str
    kind: ContentKind
    title: str
    primary: Variant
    alternatives: tuple[Variant, ...]

    @property
    def variants(self) -> tuple[Variant, ...]:
        """Return every variant, primary first."""
        return (self.primary, *self.alternatives)


@dc.dataclass(frozen=True, slots=True)
class SearchHit:
    """Ranked search result."""

    record_id: uuid.UUID
    title: str
    summary: str | None
    rank: float


@dc.dataclass(frozen=True, slots=True)
class ReportError:
    """Source-level failure attached to an ingestion report."""

    code: str
    message: str
    retryable: bool = False


@dc.dataclass(slots=True)
class IngestionReport:
    """Structured outcome of one ingestion attempt.

    Attributes
    ----------
    source_id : str
        Source the attempt ingested.
    inserted : int
        Records created by the run.
    updated : int
        Existing records whose content changed.
    unchanged : int
        Existing records seen again with identical content.
    skipped_duplicates : int
        Entries whose identity key repeated an earlier entry in the run.
    skipped_invalid : int
        Entries dropped because required fields were missing.
    failed_records : int
        Records isolated after repeated batch write failures.
    removed : int
        Stale records swept after the run.
    error : ReportError | None
        Source-level failure, when the run aborted.
    messages : list[str]
        First messages describing skips and failures.
    """

    source_id: str
    inserted: int = 0
    updated: int = 0
    unchanged: int = 0
    skipped_duplicates: int = 0
    skipped_invalid: int = 0
    failed_records: int = 0
    removed: int = 0
    error: ReportError | None = None
    messages: list[str] = dc.field(default_factory=list)
    message_limit: int = dc.field(default=20, repr=False)

    @property
    def imported(self) -> int:
        """Return the number of entries now present in the catalogue."""
        return self.inserted + self.updated + self.unchanged

    @property
    def total(self) -> int:
        """Return the number of entries the run considered."""
        return (
            self.imported
            + self.skipped_duplicates
            + self.skipped_invalid
            + self.failed_records
        )

    @property
    def succeeded(self) -> bool:
        """Return True when the run finished without a source-level error."""
        return self.error is None

    def add_message(self, message: str) -> None:
        """Record a message unless the report already holds the limit."""
        if len(self.messages) < self.message_limit:
            self.messages.append(message)

    def summary(self) -> str:
        """Return a one-line human-readable summary."""
        if self.error is not None:
            return f"Import of {self.source_id} failed: {self.error.message}"
        text = (
            f"Imported {self.imported} of {self.total}, "
            f"{self.skipped_duplicates} skipped (duplicates), "
        )
        if self.skipped_invalid:
            text += f"{self.skipped_invalid} skipped (invalid), "
        return f"{text}{self.failed_records} failed."


__all__ = (
    "CanonicalRecord",
    "ContentKind",
    "IndexEntry",
    "IngestionReport",
    "JsonMapping",
    "MutationKind",
    "ProjectedFields",
    "RecordDraft",
    "RecordMutation",
    "ReportError",
    "SearchHit",
    "SourceDescriptor",
    "SourceKind",
    "SourceStatus",
    "UnifiedItem",
    "Variant",
)
