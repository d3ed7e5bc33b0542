"""Runtime settings and heuristic tables for the catalogue engine.

Settings are read once from environment variables. Heuristic tables (category
keywords, edition markers, quality hints) are data rather than logic: the
defaults below can be replaced wholesale from a TOML file named by
``MEDIACAT_HEURISTICS_FILE``.

Examples
--------
>>> settings = CatalogueSettings.from_environment({"MEDIACAT_BATCH_SIZE": "250"})
>>> settings.batch_size
250
"""

from __future__ import annotations

import dataclasses as dc
import os
import tomllib
import typing as typ
from pathlib import Path

from mediacat.catalogue.errors import ConfigurationError

if typ.TYPE_CHECKING:
    import collections.abc as cabc

_TRUTHY_VALUES = frozenset({"1", "on", "true", "yes"})
_FALSY_VALUES = frozenset({"0", "off", "false", "no"})

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///mediacat.db"
DEFAULT_CHUNK_SIZE = 64 * 1024
DEFAULT_CHUNKED_THRESHOLD = 10 * 1024 * 1024
DEFAULT_BATCH_SIZE = 500
MAX_BATCH_SIZE = 5000
DEFAULT_MAX_CONCURRENT_SOURCES = 3
DEFAULT_FETCH_TIMEOUT_SECONDS = 30.0
DEFAULT_REPORT_MESSAGE_LIMIT = 20


@dc.dataclass(frozen=True, slots=True)
class HeuristicTables:
    """Hand-tuned keyword tables used by classification and grouping.

    Attributes
    ----------
    movie_category_keywords : tuple[str, ...]
        Case-insensitive substrings that mark a manifest group as movies.
    adult_title_keywords : tuple[str, ...]
        Keywords that flag a title as adult content.
    adult_category_keywords : tuple[str, ...]
        Keywords that flag a category as adult content.
    edition_markers : tuple[str, ...]
        Words and phrases removed from titles before grouping.
    leading_articles : tuple[str, ...]
        Articles dropped from the start of titles before grouping.
    quality_hints : tuple[tuple[str, int], ...]
        Resolution hint tokens and the quality score each implies.
    """

    movie_category_keywords: tuple[str, ...] = (
        "movie",
        "film",
        "vod",
        "cinema",
        "pelicula",
    )
    adult_title_keywords: tuple[str, ...] = (
        "adult",
        "18+",
        "xxx",
        "porn",
        "erotic",
        "explicit",
    )
    adult_category_keywords: tuple[str, ...] = (
        "adult",
        "xxx",
        "18+",
        "mature",
        "nsfw",
    )
    edition_markers: tuple[str, ...] = (
        "director's cut",
        "directors cut",
        "extended edition",
        "special edition",
        "collector's edition",
        "anniversary edition",
        "theatrical cut",
        "extended",
        "remastered",
        "unrated",
        "uncut",
        "imax",
        "hdr",
        "multi",
        "dubbed",
        "subbed",
    )
    leading_articles: tuple[str, ...] = ("the", "a", "an")
    quality_hints: tuple[tuple[str, int], ...] = (
        ("4k", 5),
        ("2160p", 5),
        ("uhd", 5),
        ("1080p", 4),
        ("fhd", 4),
        ("720p", 3),
        ("hd", 3),
        ("480p", 2),
        ("sd", 2),
    )

    @classmethod
    def from_toml(cls, path: Path) -> HeuristicTables:
        """Load tables from a TOML file, keeping defaults for omitted keys.

        Parameters
        ----------
        path : Path
            TOML file with optional ``[classification]``, ``[grouping]`` and
            ``[quality]`` tables.

        Returns
        -------
        HeuristicTables
            Tables with the file's values layered over the defaults.

        Raises
        ------
        ConfigurationError
            If the file cannot be read, is not valid TOML, or holds values of
            the wrong shape.
        """
        try:
            with path.open("rb") as handle:
                document = tomllib.load(handle)
        except (OSError, tomllib.TOMLDecodeError) as exc:
            msg = f"Cannot load heuristics file {str(path)!r}: {exc}"
            raise ConfigurationError(msg) from exc

        defaults = cls()
        classification = _table(document, "classification")
        grouping = _table(document, "grouping")
        quality = _table(document, "quality")
        return cls(
            movie_category_keywords=_keyword_list(
                classification, "movie_keywords", defaults.movie_category_keywords
            ),
            adult_title_keywords=_keyword_list(
                classification, "adult_title_keywords", defaults.adult_title_keywords
            ),
            adult_category_keywords=_keyword_list(
                classification,
                "adult_category_keywords",
                defaults.adult_category_keywords,
            ),
            edition_markers=_keyword_list(
                grouping, "edition_markers", defaults.edition_markers
            ),
            leading_articles=_keyword_list(
                grouping, "leading_articles", defaults.leading_articles
            ),
            quality_hints=_quality_table(quality) or defaults.quality_hints,
        )


def _table(document: dict[str, typ.Any], name: str) -> dict[str, typ.Any]:
    value = document.get(name, {})
    if not isinstance(value, dict):
        msg = f"Heuristics section [{name}] must be a table."
        raise ConfigurationError(msg)
    return value


def _keyword_list(
    table: dict[str, typ.Any],
    key: str,
    default: tuple[str, ...],
) -> tuple[str, ...]:
    if key not in table:
        return default
    value = table[key]
    if not isinstance(value, list) or not all(
        isinstance(item, str) and item.strip() for item in value
    ):
        msg = f"Heuristics key {key!r} must be a list of non-empty strings."
        raise ConfigurationError(msg)
    return tuple(item.strip().casefold() for item in value)


def _quality_table(table: dict[str, typ.Any]) -> tuple[tuple[str, int], ...]:
    """Return quality hints ordered from the highest score down."""
    hints: list[tuple[str, int]] = []
    for token, score in table.items():
        if isinstance(score, bool) or not isinstance(score, int) or score < 1:
            msg = f"Quality score for {token!r} must be a positive integer."
            raise ConfigurationError(msg)
        hints.append((token.casefold(), score))
    hints.sort(key=lambda hint: -hint[1])
    return tuple(hints)


def _parse_optional_positive_int(value: str | None) -> int | None:
    """Parse a positive integer environment value.

    Invalid values return ``None`` so callers can fall back to defaults.
    """
    if value is None:
        return None
    text = value.strip()
    if not text:
        return None
    try:
        parsed = int(text)
    except ValueError:
        return None
    if parsed <= 0:
        return None
    return parsed


def _parse_optional_positive_float(value: str | None) -> float | None:
    if value is None or not value.strip():
        return None
    try:
        parsed = float(value.strip())
    except ValueError:
        return None
    if parsed <= 0 or parsed != parsed:  # NaN
        return None
    return parsed


def _flag_enabled(raw_value: str | None, *, default: bool = False) -> bool:
    """Return True when an environment toggle is truthy."""
    if raw_value is None:
        return default
    text = raw_value.strip().lower()
    if text in _TRUTHY_VALUES:
        return True
    if text in _FALSY_VALUES:
        return False
    return default


@dc.dataclass(frozen=True, slots=True)
class CatalogueSettings:
    """Runtime settings for ingestion, storage and search.

    Attributes
    ----------
    database_url : str
        SQLAlchemy async database URL.
    chunk_size : int
        Bytes read per chunk by the feed reader.
    chunked_threshold : int
        In-memory payloads larger than this are read in chunks.
    batch_size : int
        Records staged per bulk write.
    max_concurrent_sources : int
        Upper bound on sources ingested at the same time.
    fetch_timeout_seconds : float
        Per-fetch timeout applied to streamed and API payloads.
    report_message_limit : int
        Maximum number of messages kept on an ingestion report.
    prune_stale : bool
        Whether records missing from the latest pass are removed.
    heuristics : HeuristicTables
        Classification, grouping and quality tables.
    """

    database_url: str = DEFAULT_DATABASE_URL
    chunk_size: int = DEFAULT_CHUNK_SIZE
    chunked_threshold: int = DEFAULT_CHUNKED_THRESHOLD
    batch_size: int = DEFAULT_BATCH_SIZE
    max_concurrent_sources: int = DEFAULT_MAX_CONCURRENT_SOURCES
    fetch_timeout_seconds: float = DEFAULT_FETCH_TIMEOUT_SECONDS
    report_message_limit: int = DEFAULT_REPORT_MESSAGE_LIMIT
    prune_stale: bool = True
    heuristics: HeuristicTables = dc.field(default_factory=HeuristicTables)

    @classmethod
    def from_environment(
        cls,
        env: cabc.Mapping[str, str] | None = None,
    ) -> CatalogueSettings:
        """Build settings from ``MEDIACAT_*`` environment variables.

        Parameters
        ----------
        env : collections.abc.Mapping[str, str] | None, optional
            Mapping to read instead of ``os.environ``.

        Returns
        -------
        CatalogueSettings
            Settings with invalid or missing values replaced by defaults.

        Raises
        ------
        ConfigurationError
            If ``MEDIACAT_HEURISTICS_FILE`` names an unreadable or malformed
            file.
        """
        source = os.environ if env is None else env
        batch_size = _parse_optional_positive_int(source.get("MEDIACAT_BATCH_SIZE"))
        heuristics_path = source.get("MEDIACAT_HEURISTICS_FILE", "").strip()
        return cls(
            database_url=source.get("MEDIACAT_DATABASE_URL", "").strip()
            or DEFAULT_DATABASE_URL,
            chunk_size=_parse_optional_positive_int(source.get("MEDIACAT_CHUNK_SIZE"))
            or DEFAULT_CHUNK_SIZE,
            chunked_threshold=_parse_optional_positive_int(
                source.get("MEDIACAT_CHUNKED_THRESHOLD")
            )
            or DEFAULT_CHUNKED_THRESHOLD,
            batch_size=min(batch_size or DEFAULT_BATCH_SIZE, MAX_BATCH_SIZE),
            max_concurrent_sources=_parse_optional_positive_int(
                source.get("MEDIACAT_MAX_CONCURRENT_SOURCES")
            )
            or DEFAULT_MAX_CONCURRENT_SOURCES,
            fetch_timeout_seconds=_parse_optional_positive_float(
                source.get("MEDIACAT_FETCH_TIMEOUT_SECONDS")
            )
            or DEFAULT_FETCH_TIMEOUT_SECONDS,
            report_message_limit=_parse_optional_positive_int(
                source.get("MEDIACAT_REPORT_MESSAGE_LIMIT")
            )
            or DEFAULT_REPORT_MESSAGE_LIMIT,
            prune_stale=_flag_enabled(
                source.get("MEDIACAT_PRUNE_STALE"), default=True
            ),
            heuristics=(
                HeuristicTables.from_toml(Path(heuristics_path))
                if heuristics_path
                else HeuristicTables()
            ),
        )


__all__ = ("CatalogueSettings", "HeuristicTables")
