"""Create the media catalogue schema.

This migration defines the canonical record table together with the derived
tables kept in step with it: per-source status, search index entries and
projected read-model fields. Column types are portable so the schema applies
to PostgreSQL and SQLite alike.

Examples
--------
Apply the migration with Alembic:

>>> alembic upgrade head
"""

from __future__ import annotations

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

revision = "20261019_000001"
down_revision = None
branch_labels = None
depends_on = None


_CONTENT_KINDS = ("channel", "movie", "series", "episode")
_SOURCE_KINDS = ("manifest", "api")


def _native_enum(name: str, values: tuple[str, ...]) -> postgresql.ENUM:
    return postgresql.ENUM(*values, name=name, create_type=False)


def _column_enum(name: str, values: tuple[str, ...]) -> sa.types.TypeEngine:
    """Return a VARCHAR enum that maps to the native type on PostgreSQL."""
    return sa.Enum(*values, name=name).with_variant(
        _native_enum(name, values), "postgresql"
    )


def _create_catalogue_records_table(content_kind: sa.types.TypeEngine) -> None:
    op.create_table(
        "catalogue_records",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("source_id", sa.String(length=120), nullable=False),
        sa.Column("identity_key", sa.String(length=512), nullable=False),
        sa.Column("title", sa.String(length=512), nullable=False),
        sa.Column("normalized_title", sa.String(length=512), nullable=False),
        sa.Column("kind", content_kind, nullable=False),
        sa.Column("stream_url", sa.Text(), nullable=True),
        sa.Column("logo_url", sa.Text(), nullable=True),
        sa.Column("category", sa.String(length=255), nullable=True),
        sa.Column("summary", sa.Text(), nullable=True),
        sa.Column("parent_key", sa.String(length=512), nullable=True),
        sa.Column("season_number", sa.Integer(), nullable=True),
        sa.Column("episode_number", sa.Integer(), nullable=True),
        sa.Column("attributes", sa.JSON(), nullable=False),
        sa.Column("fingerprint", sa.String(length=64), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "source_id", "identity_key", name="uq_catalogue_records_source_key"
        ),
    )
    op.create_index(
        "ix_catalogue_records_source_parent",
        "catalogue_records",
        ["source_id", "parent_key"],
    )
    op.create_index("ix_catalogue_records_kind", "catalogue_records", ["kind"])


def _create_source_statuses_table(source_kind: sa.types.TypeEngine) -> None:
    op.create_table(
        "source_statuses",
        sa.Column("source_id", sa.String(length=120), nullable=False),
        sa.Column("kind", source_kind, nullable=False),
        sa.Column("priority", sa.Integer(), nullable=False),
        sa.Column("last_ingested_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("record_count", sa.Integer(), nullable=False),
        sa.Column("epg_url", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("source_id"),
    )


def _create_index_entries_table(content_kind: sa.types.TypeEngine) -> None:
    op.create_table(
        "index_entries",
        sa.Column("record_id", sa.Uuid(), nullable=False),
        sa.Column("source_id", sa.String(length=120), nullable=False),
        sa.Column("kind", content_kind, nullable=False),
        sa.Column("title", sa.String(length=512), nullable=False),
        sa.Column("summary", sa.Text(), nullable=True),
        sa.Column("tokens", sa.JSON(), nullable=False),
        sa.Column("summary_tokens", sa.JSON(), nullable=False),
        sa.Column("weight", sa.Float(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("record_id"),
    )
    op.create_index("ix_index_entries_source", "index_entries", ["source_id"])


def _create_projections_table() -> None:
    op.create_table(
        "projections",
        sa.Column("source_id", sa.String(length=120), nullable=False),
        sa.Column("owner_key", sa.String(length=512), nullable=False),
        sa.Column("fields", sa.JSON(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("source_id", "owner_key"),
    )


def upgrade() -> None:
    """Create catalogue tables, enums, and indexes."""
    bind = op.get_bind()
    _native_enum("content_kind", _CONTENT_KINDS).create(bind, checkfirst=True)
    _native_enum("source_kind", _SOURCE_KINDS).create(bind, checkfirst=True)
    content_kind = _column_enum("content_kind", _CONTENT_KINDS)
    source_kind = _column_enum("source_kind", _SOURCE_KINDS)

    _create_catalogue_records_table(content_kind)
    _create_source_statuses_table(source_kind)
    _create_index_entries_table(content_kind)
    _create_projections_table()


def downgrade() -> None:
    """Drop catalogue tables, enums, and indexes."""
    op.drop_table("projections")
    op.drop_index("ix_index_entries_source", table_name="index_entries")
    op.drop_table("index_entries")
    op.drop_table("source_statuses")
    op.drop_index("ix_catalogue_records_kind", table_name="catalogue_records")
    op.drop_index(
        "ix_catalogue_records_source_parent", table_name="catalogue_records"
    )
    op.drop_table("catalogue_records")

    bind = op.get_bind()
    _native_enum("source_kind", _SOURCE_KINDS).drop(bind, checkfirst=True)
    _native_enum("content_kind", _CONTENT_KINDS).drop(bind, checkfirst=True)
