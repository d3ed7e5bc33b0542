"""Row-to-domain mapping helpers for catalogue persistence.

Examples
--------
>>> record = _record_from_row(row)
"""

from __future__ import annotations

import datetime as dt
import typing as typ

from mediacat.catalogue.domain import (
    CanonicalRecord,
    ContentKind,
    IndexEntry,
    ProjectedFields,
    SourceKind,
    SourceStatus,
)

if typ.TYPE_CHECKING:
    from .models import (
        CatalogueRecordRow,
        IndexEntryRow,
        ProjectionRow,
        SourceStatusRow,
    )


def _aware(value: dt.datetime) -> dt.datetime:
    """Attach UTC to naive timestamps read back from SQLite."""
    return value if value.tzinfo is not None else value.replace(tzinfo=dt.UTC)


def _optional_aware(value: dt.datetime | None) -> dt.datetime | None:
    return None if value is None else _aware(value)


def _record_from_row(row: CatalogueRecordRow) -> CanonicalRecord:
    """Map a catalogue record row to a domain entity."""
    return CanonicalRecord(
        id=row.id,
        source_id=row.source_id,
        identity_key=row.identity_key,
        title=row.title,
        normalized_title=row.normalized_title,
        kind=ContentKind(row.kind),
        stream_url=row.stream_url,
        logo_url=row.logo_url,
        category=row.category,
        summary=row.summary,
        parent_key=row.parent_key,
        season_number=row.season_number,
        episode_number=row.episode_number,
        attributes=dict(row.attributes or {}),
        fingerprint=row.fingerprint,
        position=row.position,
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
    )


def _record_to_values(record: CanonicalRecord) -> dict[str, object]:
    """Map a domain record to a column mapping for bulk statements."""
    return {
        "id": record.id,
        "source_id": record.source_id,
        "identity_key": record.identity_key,
        "title": record.title,
        "normalized_title": record.normalized_title,
        "kind": record.kind,
        "stream_url": record.stream_url,
        "logo_url": record.logo_url,
        "category": record.category,
        "summary": record.summary,
        "parent_key": record.parent_key,
        "season_number": record.season_number,
        "episode_number": record.episode_number,
        "attributes": record.attributes,
        "fingerprint": record.fingerprint,
        "position": record.position,
        "created_at": record.created_at,
        "updated_at": record.updated_at,
    }


def _status_from_row(row: SourceStatusRow) -> SourceStatus:
    """Map a source status row to a domain entity."""
    return SourceStatus(
        source_id=row.source_id,
        kind=SourceKind(row.kind),
        priority=row.priority,
        last_ingested_at=_optional_aware(row.last_ingested_at),
        last_error=row.last_error,
        record_count=row.record_count,
        epg_url=row.epg_url,
    )


def _status_to_values(status: SourceStatus) -> dict[str, object]:
    return {
        "source_id": status.source_id,
        "kind": status.kind,
        "priority": status.priority,
        "last_ingested_at": status.last_ingested_at,
        "last_error": status.last_error,
        "record_count": status.record_count,
        "epg_url": status.epg_url,
    }


def _index_entry_from_row(row: IndexEntryRow) -> IndexEntry:
    """Map an index entry row to a domain entity."""
    return IndexEntry(
        record_id=row.record_id,
        source_id=row.source_id,
        kind=ContentKind(row.kind),
        title=row.title,
        summary=row.summary,
        tokens=tuple(row.tokens or ()),
        summary_tokens=tuple(row.summary_tokens or ()),
        weight=row.weight,
        updated_at=_aware(row.updated_at),
    )


def _index_entry_to_values(entry: IndexEntry) -> dict[str, object]:
    return {
        "record_id": entry.record_id,
        "source_id": entry.source_id,
        "kind": entry.kind,
        "title": entry.title,
        "summary": entry.summary,
        "tokens": list(entry.tokens),
        "summary_tokens": list(entry.summary_tokens),
        "weight": entry.weight,
        "updated_at": entry.updated_at,
    }


def _projection_from_row(row: ProjectionRow) -> ProjectedFields:
    """Map a projection row to a domain entity."""
    return ProjectedFields(
        source_id=row.source_id,
        owner_key=row.owner_key,
        fields=dict(row.fields or {}),
        updated_at=_aware(row.updated_at),
    )


def _projection_to_values(projection: ProjectedFields) -> dict[str, object]:
    return {
        "source_id": projection.source_id,
        "owner_key": projection.owner_key,
        "fields": projection.fields,
        "updated_at": projection.updated_at,
    }
