"""Response serializers for Falcon catalogue endpoints."""

from __future__ import annotations

import typing as typ

if typ.TYPE_CHECKING:
    from mediacat.catalogue.domain import (
        CanonicalRecord,
        SearchHit,
        SourceStatus,
        UnifiedItem,
        Variant,
    )


def serialize_search_hit(hit: SearchHit) -> dict[str, typ.Any]:
    """Serialize a ranked search hit."""
    return {
        "record_id": str(hit.record_id),
        "title": hit.title,
        "summary": hit.summary,
        "rank": round(hit.rank, 6),
    }


def serialize_record(record: CanonicalRecord) -> dict[str, typ.Any]:
    """Serialize the public fields of a canonical record."""
    return {
        "id": str(record.id),
        "source_id": record.source_id,
        "kind": record.kind.value,
        "title": record.title,
        "stream_url": record.stream_url,
        "logo_url": record.logo_url,
        "category": record.category,
        "summary": record.summary,
        "season_number": record.season_number,
        "episode_number": record.episode_number,
        "attributes": record.attributes,
        "updated_at": record.updated_at.isoformat(),
    }


def serialize_variant(variant: Variant) -> dict[str, typ.Any]:
    """Serialize one grouped variant with its ranking inputs."""
    return {
        "record": serialize_record(variant.record),
        "score": variant.score,
        "source_priority": variant.source_priority,
    }


def serialize_unified_item(item: UnifiedItem) -> dict[str, typ.Any]:
    """Serialize a unified item, primary variant first."""
    return {
        "key": item.key,
        "kind": item.kind.value,
        "title": item.title,
        "primary": serialize_variant(item.primary),
        "alternatives": [serialize_variant(variant) for variant in item.alternatives],
    }


def serialize_source_status(status: SourceStatus) -> dict[str, typ.Any]:
    """Serialize persisted per-source ingestion metadata."""
    last_ingested_at = status.last_ingested_at
    return {
        "source_id": status.source_id,
        "kind": status.kind.value,
        "priority": status.priority,
        "last_ingested_at": (
            None if last_ingested_at is None else last_ingested_at.isoformat()
        ),
        "last_error": status.last_error,
        "record_count": status.record_count,
        "epg_url": status.epg_url,
    }
