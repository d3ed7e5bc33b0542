"""SQLAlchemy ORM models for the media catalogue.

The models use portable column types so the same schema runs on PostgreSQL
(psycopg) and SQLite (aiosqlite). Alembic migrations and repositories share
``Base.metadata``.

Examples
--------
>>> from sqlalchemy import create_engine
>>> engine = create_engine("sqlite://")
>>> Base.metadata.create_all(engine)
"""

from __future__ import annotations

# SQLAlchemy evaluates annotations at runtime; keep stdlib types imported.
import datetime as dt  # noqa: TC003
import typing as typ
import uuid  # noqa: TC003

import sqlalchemy as sa
from sqlalchemy import orm

from mediacat.catalogue.domain import ContentKind, SourceKind


class Base(orm.DeclarativeBase):
    """Base class for catalogue SQLAlchemy models."""


CONTENT_KIND = sa.Enum(
    ContentKind,
    name="content_kind",
    values_callable=lambda enum_cls: [item.value for item in enum_cls],
)
SOURCE_KIND = sa.Enum(
    SourceKind,
    name="source_kind",
    values_callable=lambda enum_cls: [item.value for item in enum_cls],
)


class CatalogueRecordRow(Base):
    """SQLAlchemy model for canonical catalogue records.

    Attributes
    ----------
    id : uuid.UUID
        Primary key for the record.
    source_id : str
        Source the record was ingested from.
    identity_key : str
        Per-source identity key; unique together with ``source_id``.
    parent_key : str | None
        Series identity key for episodes.
    attributes : dict[str, typing.Any]
        Free-form attributes preserved from the feed.
    fingerprint : str
        Content digest used to detect changes on re-ingestion.
    position : int
        Order of the entry within the pass that created it.
    """

    __tablename__ = "catalogue_records"
    __table_args__ = (
        sa.UniqueConstraint(
            "source_id", "identity_key", name="uq_catalogue_records_source_key"
        ),
        sa.Index("ix_catalogue_records_source_parent", "source_id", "parent_key"),
        sa.Index("ix_catalogue_records_kind", "kind"),
    )

    id: orm.Mapped[uuid.UUID] = orm.mapped_column(sa.Uuid, primary_key=True)
    source_id: orm.Mapped[str] = orm.mapped_column(sa.String(120))
    identity_key: orm.Mapped[str] = orm.mapped_column(sa.String(512))
    title: orm.Mapped[str] = orm.mapped_column(sa.String(512))
    normalized_title: orm.Mapped[str] = orm.mapped_column(sa.String(512))
    kind: orm.Mapped[ContentKind] = orm.mapped_column(CONTENT_KIND)
    stream_url: orm.Mapped[str | None] = orm.mapped_column(sa.Text, nullable=True)
    logo_url: orm.Mapped[str | None] = orm.mapped_column(sa.Text, nullable=True)
    category: orm.Mapped[str | None] = orm.mapped_column(
        sa.String(255), nullable=True
    )
    summary: orm.Mapped[str | None] = orm.mapped_column(sa.Text, nullable=True)
    parent_key: orm.Mapped[str | None] = orm.mapped_column(
        sa.String(512), nullable=True
    )
    season_number: orm.Mapped[int | None] = orm.mapped_column(
        sa.Integer, nullable=True
    )
    episode_number: orm.Mapped[int | None] = orm.mapped_column(
        sa.Integer, nullable=True
    )
    attributes: orm.Mapped[dict[str, typ.Any]] = orm.mapped_column(
        sa.JSON, default=dict
    )
    fingerprint: orm.Mapped[str] = orm.mapped_column(sa.String(64))
    position: orm.Mapped[int] = orm.mapped_column(sa.Integer, default=0)
    created_at: orm.Mapped[dt.datetime] = orm.mapped_column(
        sa.DateTime(timezone=True),
        server_default=sa.func.now(),
    )
    updated_at: orm.Mapped[dt.datetime] = orm.mapped_column(
        sa.DateTime(timezone=True),
        server_default=sa.func.now(),
    )


class SourceStatusRow(Base):
    """SQLAlchemy model for per-source ingestion status."""

    __tablename__ = "source_statuses"

    source_id: orm.Mapped[str] = orm.mapped_column(sa.String(120), primary_key=True)
    kind: orm.Mapped[SourceKind] = orm.mapped_column(SOURCE_KIND)
    priority: orm.Mapped[int] = orm.mapped_column(sa.Integer, default=0)
    last_ingested_at: orm.Mapped[dt.datetime | None] = orm.mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )
    last_error: orm.Mapped[str | None] = orm.mapped_column(sa.Text, nullable=True)
    record_count: orm.Mapped[int] = orm.mapped_column(sa.Integer, default=0)
    epg_url: orm.Mapped[str | None] = orm.mapped_column(sa.Text, nullable=True)


class IndexEntryRow(Base):
    """SQLAlchemy model for search index entries, 1:1 with records.

    No foreign key ties entries to records: mutation listeners keep the two
    in step, and a full rebuild clears any orphans.
    """

    __tablename__ = "index_entries"
    __table_args__ = (sa.Index("ix_index_entries_source", "source_id"),)

    record_id: orm.Mapped[uuid.UUID] = orm.mapped_column(sa.Uuid, primary_key=True)
    source_id: orm.Mapped[str] = orm.mapped_column(sa.String(120))
    kind: orm.Mapped[ContentKind] = orm.mapped_column(CONTENT_KIND)
    title: orm.Mapped[str] = orm.mapped_column(sa.String(512))
    summary: orm.Mapped[str | None] = orm.mapped_column(sa.Text, nullable=True)
    tokens: orm.Mapped[list[str]] = orm.mapped_column(sa.JSON, default=list)
    summary_tokens: orm.Mapped[list[str]] = orm.mapped_column(sa.JSON, default=list)
    weight: orm.Mapped[float] = orm.mapped_column(sa.Float, default=1.0)
    updated_at: orm.Mapped[dt.datetime] = orm.mapped_column(
        sa.DateTime(timezone=True)
    )


class ProjectionRow(Base):
    """SQLAlchemy model for projected read-model fields."""

    __tablename__ = "projections"

    source_id: orm.Mapped[str] = orm.mapped_column(sa.String(120), primary_key=True)
    owner_key: orm.Mapped[str] = orm.mapped_column(sa.String(512), primary_key=True)
    fields: orm.Mapped[dict[str, typ.Any]] = orm.mapped_column(sa.JSON, default=dict)
    updated_at: orm.Mapped[dt.datetime] = orm.mapped_column(
        sa.DateTime(timezone=True)
    )


__all__ = (
    "CONTENT_KIND",
    "SOURCE_KIND",
    "Base",
    "CatalogueRecordRow",
    "IndexEntryRow",
    "ProjectionRow",
    "SourceStatusRow",
)
