"""Format parsers that turn raw feed entries into record drafts."""

from .catalogue_api import (
    CATEGORY_KINDS,
    ApiPayload,
    CatalogueCategory,
    CategoryFetcher,
    StaticCategoryFetcher,
    decode_page,
    parse_item,
)
from .classification import (
    EpisodeHint,
    classify_category,
    detect_source_kind,
    episode_hint,
    is_adult_content,
)
from .manifest import (
    ManifestParseResult,
    Skipped,
    aparse_manifest,
    parse_entry,
    parse_manifest,
)

__all__ = (
    "CATEGORY_KINDS",
    "ApiPayload",
    "CatalogueCategory",
    "CategoryFetcher",
    "EpisodeHint",
    "ManifestParseResult",
    "Skipped",
    "StaticCategoryFetcher",
    "aparse_manifest",
    "classify_category",
    "decode_page",
    "detect_source_kind",
    "episode_hint",
    "is_adult_content",
    "parse_entry",
    "parse_item",
    "parse_manifest",
)
