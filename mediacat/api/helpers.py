"""Request parsing for Falcon resource adapters.

Examples
--------
Validate query parameters before dispatching to the catalogue service:

>>> kind = parse_kind(req.get_param("kind"), "kind")
>>> limit = parse_limit(req.get_param("limit"))
"""

from __future__ import annotations

import re

import falcon

from mediacat.catalogue.domain import ContentKind

_INT_RE = re.compile(r"[+-]?\d+")

DEFAULT_LIMIT = 20
MAX_LIMIT = 200


def parse_kind(raw_value: str, field_name: str) -> ContentKind:
    """Parse a content kind for a named request field.

    Raises
    ------
    falcon.HTTPBadRequest
        Raised when ``raw_value`` is not a known content kind.
    """
    try:
        return ContentKind(raw_value.strip().lower())
    except ValueError as exc:
        allowed = ", ".join(kind.value for kind in ContentKind)
        msg = f"Invalid {field_name}: {raw_value!r}. Expected one of: {allowed}."
        raise falcon.HTTPBadRequest(description=msg) from exc


def parse_optional_kind(raw_value: str | None, field_name: str) -> ContentKind | None:
    """Parse an optional content kind; blank values mean no filter."""
    if raw_value is None or not raw_value.strip():
        return None
    return parse_kind(raw_value, field_name)


def parse_limit(raw_value: str | None) -> int:
    """Parse a result limit within ``1..MAX_LIMIT``.

    Parameters
    ----------
    raw_value : str | None
        Raw ``limit`` query parameter.

    Returns
    -------
    int
        Parsed limit, or ``DEFAULT_LIMIT`` when the parameter is absent.

    Raises
    ------
    falcon.HTTPBadRequest
        Raised when the value is not an integer or falls outside the range.
    """
    if raw_value is None:
        return DEFAULT_LIMIT
    text = raw_value.strip()
    if _INT_RE.fullmatch(text) is None:
        msg = f"Invalid integer for limit: {raw_value!r}."
        raise falcon.HTTPBadRequest(description=msg)
    limit = int(text)
    if not 1 <= limit <= MAX_LIMIT:
        msg = f"limit must be between 1 and {MAX_LIMIT}."
        raise falcon.HTTPBadRequest(description=msg)
    return limit


def require_query(raw_value: str | None) -> str:
    """Return a non-blank search query or raise HTTP 400."""
    if raw_value is None or not raw_value.strip():
        msg = "Missing required query parameter: q"
        raise falcon.HTTPBadRequest(description=msg)
    return raw_value.strip()


def parse_source_ids(raw_values: list[str] | None) -> list[str] | None:
    """Return requested source identifiers, or None when unrestricted."""
    if not raw_values:
        return None
    return [value.strip() for value in raw_values if value.strip()] or None


__all__ = (
    "DEFAULT_LIMIT",
    "MAX_LIMIT",
    "parse_kind",
    "parse_limit",
    "parse_optional_kind",
    "parse_source_ids",
    "require_query",
)
