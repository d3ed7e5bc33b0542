"""Tests for environment settings and heuristic table loading."""

from __future__ import annotations

import typing as typ

import pytest

from mediacat.catalogue.errors import ConfigurationError
from mediacat.config import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_CHUNK_SIZE,
    MAX_BATCH_SIZE,
    CatalogueSettings,
    HeuristicTables,
)

if typ.TYPE_CHECKING:
    from pathlib import Path


def test_defaults_without_environment() -> None:
    """An empty environment yields default settings."""
    settings = CatalogueSettings.from_environment({})

    assert settings == CatalogueSettings(), f"unexpected settings: {settings!r}"
    assert settings.prune_stale is True, "stale pruning is on by default"


def test_environment_values_are_parsed() -> None:
    """Valid values override the defaults."""
    settings = CatalogueSettings.from_environment(
        {
            "MEDIACAT_DATABASE_URL": "postgresql+psycopg://db/catalogue",
            "MEDIACAT_BATCH_SIZE": " 250 ",
            "MEDIACAT_MAX_CONCURRENT_SOURCES": "8",
            "MEDIACAT_FETCH_TIMEOUT_SECONDS": "2.5",
            "MEDIACAT_PRUNE_STALE": "off",
        }
    )

    assert settings.database_url == "postgresql+psycopg://db/catalogue"
    assert settings.batch_size == 250
    assert settings.max_concurrent_sources == 8
    assert settings.fetch_timeout_seconds == pytest.approx(2.5)
    assert settings.prune_stale is False


@pytest.mark.parametrize("raw", ["zero", "0", "-4", "", "nan"])
def test_invalid_numbers_fall_back_to_defaults(raw: str) -> None:
    """Unparseable or non-positive numbers keep the defaults."""
    settings = CatalogueSettings.from_environment(
        {
            "MEDIACAT_BATCH_SIZE": raw,
            "MEDIACAT_CHUNK_SIZE": raw,
            "MEDIACAT_FETCH_TIMEOUT_SECONDS": raw,
        }
    )

    assert settings.batch_size == DEFAULT_BATCH_SIZE
    assert settings.chunk_size == DEFAULT_CHUNK_SIZE
    assert settings.fetch_timeout_seconds == CatalogueSettings().fetch_timeout_seconds


def test_batch_size_is_capped() -> None:
    """Oversized batches are clamped to the maximum."""
    settings = CatalogueSettings.from_environment({"MEDIACAT_BATCH_SIZE": "999999"})

    assert settings.batch_size == MAX_BATCH_SIZE


def test_unknown_flag_value_keeps_default() -> None:
    """Unrecognised toggle text leaves pruning enabled."""
    settings = CatalogueSettings.from_environment({"MEDIACAT_PRUNE_STALE": "maybe"})

    assert settings.prune_stale is True


def test_heuristics_file_overrides_tables(tmp_path: Path) -> None:
    """A TOML file replaces the listed tables and keeps the rest."""
    path = tmp_path / "heuristics.toml"
    path.write_text(
        "[classification]\n"
        'movie_keywords = ["Kino", "Filme"]\n'
        "[grouping]\n"
        'edition_markers = ["Redux"]\n'
        "[quality]\n"
        "hd = 3\n"
        "8k = 9\n",
        encoding="utf-8",
    )

    settings = CatalogueSettings.from_environment(
        {"MEDIACAT_HEURISTICS_FILE": str(path)}
    )
    tables = settings.heuristics

    assert tables.movie_category_keywords == ("kino", "filme")
    assert tables.edition_markers == ("redux",)
    assert tables.quality_hints == (("8k", 9), ("hd", 3)), "hints sort by score"
    assert tables.leading_articles == HeuristicTables().leading_articles


@pytest.mark.parametrize(
    "document",
    [
        "not = [valid",
        "classification = 3\n",
        "[classification]\nmovie_keywords = [1, 2]\n",
        "[grouping]\nleading_articles = ['']\n",
        "[quality]\nhd = 'high'\n",
        "[quality]\nhd = true\n",
    ],
)
def test_malformed_heuristics_file_raises(tmp_path: Path, document: str) -> None:
    """Bad TOML or badly shaped values raise ConfigurationError."""
    path = tmp_path / "heuristics.toml"
    path.write_text(document, encoding="utf-8")

    with pytest.raises(ConfigurationError):
        HeuristicTables.from_toml(path)


def test_missing_heuristics_file_raises(tmp_path: Path) -> None:
    """A missing file is a configuration error, not a silent default."""
    with pytest.raises(ConfigurationError, match="Cannot load heuristics file"):
        CatalogueSettings.from_environment(
            {"MEDIACAT_HEURISTICS_FILE": str(tmp_path / "absent.toml")}
        )
