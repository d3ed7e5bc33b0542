"""Unit tests for request parsing in ``mediacat.api.helpers``.

These tests cover query-parameter validation used by the Falcon resource
adapters: content kinds, result limits, search queries and source filters.

Run these tests directly with:

```bash
python -m pytest -v tests/test_api_helpers.py
```

Expected behavior:
- Valid parameters are normalised to domain values.
- Invalid parameters raise ``falcon.HTTPBadRequest`` with a description that
  names the offending field.
"""

from __future__ import annotations

import falcon
import pytest

from mediacat.api import helpers
from mediacat.catalogue.domain import ContentKind


class TestKindParsing:
    """Tests for content-kind parameters."""

    @staticmethod
    def test_parse_kind_accepts_any_case() -> None:
        """Kinds are matched case-insensitively after trimming."""
        assert helpers.parse_kind(" Movie ", "kind") is ContentKind.MOVIE, (
            "Expected 'Movie' to parse as ContentKind.MOVIE."
        )

    @staticmethod
    def test_parse_kind_lists_allowed_values() -> None:
        """Unknown kinds raise 400 naming the accepted values."""
        with pytest.raises(falcon.HTTPBadRequest) as excinfo:
            helpers.parse_kind("podcast", "kind")

        description = excinfo.value.description or ""
        assert "channel, movie, series, episode" in description, (
            f"Expected allowed kinds in description, got {description!r}."
        )

    @staticmethod
    @pytest.mark.parametrize("raw", [None, "", "   "])
    def test_blank_optional_kind_means_no_filter(raw: str | None) -> None:
        """Missing or blank kinds disable the filter."""
        assert helpers.parse_optional_kind(raw, "kind") is None


class TestLimitParsing:
    """Tests for the ``limit`` parameter."""

    @staticmethod
    def test_missing_limit_uses_default() -> None:
        """An absent limit falls back to the default."""
        assert helpers.parse_limit(None) == helpers.DEFAULT_LIMIT

    @staticmethod
    @pytest.mark.parametrize("raw", ["1", " 50 ", "200"])
    def test_valid_limits(raw: str) -> None:
        """Integers inside the range are accepted."""
        assert helpers.parse_limit(raw) == int(raw)

    @staticmethod
    @pytest.mark.parametrize(
        ("raw", "expected_text"),
        [
            ("ten", "Invalid integer"),
            ("2.5", "Invalid integer"),
            ("0", "between 1 and 200"),
            ("-3", "between 1 and 200"),
            ("201", "between 1 and 200"),
        ],
    )
    def test_invalid_limits(raw: str, expected_text: str) -> None:
        """Non-integers and out-of-range values raise 400."""
        with pytest.raises(falcon.HTTPBadRequest) as excinfo:
            helpers.parse_limit(raw)

        assert expected_text in (excinfo.value.description or ""), (
            f"Expected {expected_text!r} in the error description."
        )


class TestQueryAndSources:
    """Tests for the search query and source filters."""

    @staticmethod
    def test_query_is_trimmed() -> None:
        """Surrounding whitespace is removed from queries."""
        assert helpers.require_query("  incep ") == "incep"

    @staticmethod
    @pytest.mark.parametrize("raw", [None, "", "  "])
    def test_blank_query_is_rejected(raw: str | None) -> None:
        """Missing queries raise 400."""
        with pytest.raises(falcon.HTTPBadRequest) as excinfo:
            helpers.require_query(raw)

        assert "q" in (excinfo.value.description or "")

    @staticmethod
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            (None, None),
            ([], None),
            (["  "], None),
            ([" a ", "b", ""], ["a", "b"]),
        ],
    )
    def test_parse_source_ids(
        raw: list[str] | None, expected: list[str] | None
    ) -> None:
        """Blank entries are dropped; nothing left means unrestricted."""
        assert helpers.parse_source_ids(raw) == expected
