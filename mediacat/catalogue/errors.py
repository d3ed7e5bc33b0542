"""Error taxonomy for catalogue ingestion, storage and search.

Each exception carries structured metadata so the ingestion coordinator can
turn it into a report entry without inspecting message text.
"""

from __future__ import annotations

import typing as typ


class CatalogueError(Exception):
    """Base exception with structured metadata for catalogue operations."""

    error_code: typ.ClassVar[str] = "catalogue_error"
    default_retryable: typ.ClassVar[bool] = False

    code: str
    source_id: str | None
    retryable: bool

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        source_id: str | None = None,
        retryable: bool | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code if code is not None else type(self).error_code
        self.source_id = source_id
        self.retryable = (
            type(self).default_retryable if retryable is None else retryable
        )


class FeedIOError(CatalogueError):
    """Raised when a feed cannot be opened, read or fetched in time."""

    error_code: typ.ClassVar[str] = "feed_io_error"
    default_retryable: typ.ClassVar[bool] = True


class FormatError(CatalogueError):
    """Raised when a single entry cannot be turned into a record draft."""

    error_code: typ.ClassVar[str] = "format_error"


class EmptyFeedError(CatalogueError):
    """Raised when a feed yields no parseable entries at all."""

    error_code: typ.ClassVar[str] = "empty_feed"


class WriteError(CatalogueError):
    """Raised when a batch of catalogue writes cannot be committed."""

    error_code: typ.ClassVar[str] = "write_error"


class SearchIndexError(CatalogueError):
    """Raised when the search index cannot apply a mutation or rebuild."""

    error_code: typ.ClassVar[str] = "search_index_error"
    default_retryable: typ.ClassVar[bool] = True


class ConfigurationError(CatalogueError):
    """Raised when a source or heuristics file is missing required fields."""

    error_code: typ.ClassVar[str] = "configuration_error"


__all__ = (
    "CatalogueError",
    "ConfigurationError",
    "EmptyFeedError",
    "FeedIOError",
    "FormatError",
    "SearchIndexError",
    "WriteError",
)
