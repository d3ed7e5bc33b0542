"""Full-text search over the canonical catalogue.

The package provides the tokeniser shared by indexing and querying, the
in-process :class:`SearchIndex`, and the :class:`SearchSynchronizer` that keeps
both the persisted entries and the in-process index in step with commits.
"""

from .index import SearchIndex, fuzzy_distance
from .synchronizer import SearchSynchronizer, build_entry, entry_weight
from .tokeniser import index_tokens, query_terms, split_words, stem

__all__ = (
    "SearchIndex",
    "SearchSynchronizer",
    "build_entry",
    "entry_weight",
    "fuzzy_distance",
    "index_tokens",
    "query_terms",
    "split_words",
    "stem",
)
