"""Catalogue domain models and error taxonomy.

The service facade lives in :mod:`mediacat.catalogue.services`; import it from
there so adapters can depend on the domain without pulling in storage.

Examples
--------
>>> from mediacat.catalogue import ContentKind, SourceDescriptor, SourceKind
>>> from mediacat.catalogue.services import CatalogueService
>>> source = SourceDescriptor("living-room", SourceKind.MANIFEST, priority=1)
>>> report = await service.ingest(source, manifest_bytes)
>>> report.summary()
'Imported 42 of 44, 2 skipped (duplicates), 0 failed.'
"""

from .domain import (
    CanonicalRecord,
    ContentKind,
    IndexEntry,
    IngestionReport,
    MutationKind,
    ProjectedFields,
    RecordDraft,
    RecordMutation,
    ReportError,
    SearchHit,
    SourceDescriptor,
    SourceKind,
    SourceStatus,
    UnifiedItem,
    Variant,
)
from .errors import (
    CatalogueError,
    ConfigurationError,
    EmptyFeedError,
    FeedIOError,
    FormatError,
    SearchIndexError,
    WriteError,
)

__all__ = [
    "CanonicalRecord",
    "CatalogueError",
    "ConfigurationError",
    "ContentKind",
    "EmptyFeedError",
    "FeedIOError",
    "FormatError",
    "IndexEntry",
    "IngestionReport",
    "MutationKind",
    "ProjectedFields",
    "RecordDraft",
    "RecordMutation",
    "ReportError",
    "SearchHit",
    "SearchIndexError",
    "SourceDescriptor",
    "SourceKind",
    "SourceStatus",
    "UnifiedItem",
    "Variant",
    "WriteError",
]
