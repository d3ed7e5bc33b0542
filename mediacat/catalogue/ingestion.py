"""Value objects passed through the ingestion pipeline.

Examples
--------
Queue two sources for a bounded-parallel import:

>>> jobs = [
...     IngestionJob(SourceDescriptor("a", SourceKind.MANIFEST), manifest_bytes),
...     IngestionJob(SourceDescriptor("b", SourceKind.API, endpoint=url), fetcher),
... ]
>>> reports = await service.ingest_many(jobs)
"""

from __future__ import annotations

import dataclasses as dc
import typing as typ

from .domain import ContentKind, MutationKind, RecordMutation
from .identity import Disposition

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    import os

    from mediacat.asyncio_tasks import TaskMetadata

    from .domain import CanonicalRecord, IngestionReport, SourceDescriptor
    from .identity import RunLedger
    from .parsers.catalogue_api import CategoryFetcher

type ManifestPayload = (
    bytes
    | bytearray
    | memoryview
    | str
    | os.PathLike[str]
    | typ.BinaryIO
    | cabc.AsyncIterable[bytes]
)
type IngestionPayload = ManifestPayload | CategoryFetcher

ALL_KINDS = frozenset(ContentKind)


@dc.dataclass(frozen=True, slots=True)
class IngestionJob:
    """A source paired with the payload to ingest for it.

    Attributes
    ----------
    source : SourceDescriptor
        Source being ingested.
    payload : IngestionPayload
        Manifest bytes, a binary file, a path, an async chunk stream, or a
        category fetcher for API sources.
    """

    source: SourceDescriptor
    payload: IngestionPayload


@dc.dataclass(frozen=True, slots=True)
class StagedRecord:
    """A record waiting for the next bulk write."""

    record: CanonicalRecord
    disposition: Disposition

    def mutation(self) -> RecordMutation:
        """Return the catalogue mutation this write commits."""
        kind = (
            MutationKind.INSERT
            if self.disposition is Disposition.INSERT
            else MutationKind.UPDATE
        )
        return RecordMutation(kind, self.record)


@dc.dataclass(slots=True)
class IngestionRun:
    """Mutable state of one source's ingestion pass.

    The run, and the ledger it carries, belong to a single call; concurrent
    imports of other sources each build their own.
    """

    source: SourceDescriptor
    ledger: RunLedger
    report: IngestionReport
    staged: list[StagedRecord] = dc.field(default_factory=list)
    drafts: int = 0
    epg_url: str | None = None

    def stage(self, record: CanonicalRecord, disposition: Disposition) -> None:
        """Queue a record for the next flush."""
        self.staged.append(StagedRecord(record, disposition))

    def drain(self) -> list[StagedRecord]:
        """Return and clear the staged records."""
        staged, self.staged = self.staged, []
        return staged

    def count_written(self, staged: cabc.Iterable[StagedRecord]) -> None:
        """Credit committed records to the report."""
        for item in staged:
            if item.disposition is Disposition.INSERT:
                self.report.inserted += 1
            else:
                self.report.updated += 1


def ingestion_task_metadata(source: SourceDescriptor, position: int) -> TaskMetadata:
    """Build task metadata for one source's ingestion task."""
    return {
        "operation_name": "catalogue.ingest",
        "correlation_id": source.id,
        "priority_hint": position,
    }


__all__ = (
    "ALL_KINDS",
    "IngestionJob",
    "IngestionPayload",
    "IngestionRun",
    "ManifestPayload",
    "StagedRecord",
    "ingestion_task_metadata",
)
