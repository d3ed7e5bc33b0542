"""Tokenisation shared by indexing and querying.

Text is case-folded, accent-folded and split on non-alphanumeric boundaries.
Every token is indexed both as written and in a lightly stemmed form so that
``running`` and ``run`` meet.
"""

from __future__ import annotations

import re

from mediacat.catalogue.grouping import fold_accents

_TOKEN_PATTERN = re.compile(r"[^\W_]+")
_VOWELS = frozenset("aeiouy")
_UNDOUBLED = frozenset("lsz")


def split_words(text: str | None) -> list[str]:
    """Return folded word tokens in order of appearance."""
    if not text:
        return []
    return _TOKEN_PATTERN.findall(fold_accents(text).casefold())


def stem(token: str) -> str:
    """Strip a trailing ``ing``, ``ed`` or ``s`` from longer tokens.

    A doubled final consonant left behind (``runn``) is reduced to one so the
    stem equals the base word. Short and numeric tokens are returned as is.
    """
    if token.isdigit() or len(token) <= 3:
        return token
    if token.endswith("ing") and len(token) >= 6:
        base = token[:-3]
    elif token.endswith("ed") and len(token) >= 5:
        base = token[:-2]
    elif token.endswith("s") and not token.endswith(("ss", "us", "is")):
        base = token[:-1]
    else:
        return token
    if (
        len(base) >= 3
        and base[-1] == base[-2]
        and base[-1] not in _VOWELS
        and base[-1] not in _UNDOUBLED
    ):
        base = base[:-1]
    return base


def index_tokens(text: str | None) -> tuple[str, ...]:
    """Return the raw tokens of ``text`` followed by any distinct stems."""
    words = split_words(text)
    stems = [stem(word) for word in words]
    return (*words, *(s for s, word in zip(stems, words, strict=True) if s != word))


def query_terms(text: str) -> list[str]:
    """Return distinct query terms in order of appearance."""
    return list(dict.fromkeys(split_words(text)))


def term_forms(term: str) -> tuple[str, ...]:
    """Return the prefixes a query term matches: itself and its stem."""
    stemmed = stem(term)
    return (term,) if stemmed == term else (term, stemmed)


__all__ = (
    "index_tokens",
    "query_terms",
    "split_words",
    "stem",
    "term_forms",
)
