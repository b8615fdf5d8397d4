"""Lyric search: query parsing, exact and fuzzy matching, and result filtering."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterable, Optional

from rapidfuzz.distance import Levenshtein

from config.settings import (
    FUZZY_ERROR_RATE,
    FUZZY_MAX_LENGTH_DELTA,
    SHORT_QUERY_LENGTH,
    WORD_CONTAINMENT_BIDIRECTIONAL,
)
from engine.search_normalization import normalize_whitespace, record_field, sort_songs

logger = logging.getLogger(__name__)


class SearchKind(Enum):
    EXACT = "exact"
    FUZZY = "fuzzy"


@dataclass(frozen=True)
class ParsedQuery:
    kind: SearchKind
    term: str


def parse_search_query(raw: str | None) -> ParsedQuery:
    """Parse raw search input into an exact or fuzzy query.

    Rules:
    - A string wrapped in one pair of double quotes with non-blank content is ``EXACT``.
    - Anything else, including ``""`` and unbalanced quotes, is ``FUZZY`` on the raw string.
    - Embedded quotes are not escaped or interpreted.
    """
    text = str(raw or "")
    if len(text) >= 2 and text.startswith('"') and text.endswith('"'):
        inner = text[1:-1]
        if inner.strip():
            return ParsedQuery(kind=SearchKind.EXACT, term=inner)
    return ParsedQuery(kind=SearchKind.FUZZY, term=text)


def levenshtein_distance(a: str, b: str) -> int:
    """Unit-cost insert/delete/substitute distance; a transposition counts as two edits."""
    return Levenshtein.distance(a or "", b or "")


def exact_match(text: str | None, term: str | None) -> bool:
    return normalize_whitespace(term) in normalize_whitespace(text)


def _word_matches(
    query_word: str,
    text_word: str,
    *,
    error_rate: float,
    max_length_delta: int | None,
    bidirectional: bool,
) -> bool:
    if query_word in text_word:
        return True
    if bidirectional and text_word in query_word:
        return True
    if max_length_delta is not None and abs(len(text_word) - len(query_word)) > max_length_delta:
        return False
    allowed = max(1, int(len(query_word) * error_rate))
    return levenshtein_distance(query_word, text_word) <= allowed


def fuzzy_match(
    text: str | None,
    term: str | None,
    *,
    error_rate: float = FUZZY_ERROR_RATE,
    max_length_delta: int | None = FUZZY_MAX_LENGTH_DELTA,
    bidirectional: bool = WORD_CONTAINMENT_BIDIRECTIONAL,
) -> bool:
    """Typo-tolerant multi-word match.

    Every query word must match some word of ``text`` either by containment or within
    ``max(1, floor(len(word) * error_rate))`` edits. Normalized queries of
    ``SHORT_QUERY_LENGTH`` characters or fewer only match as plain substrings.
    """
    normalized_text = normalize_whitespace(text)
    normalized_term = normalize_whitespace(term)
    if normalized_term in normalized_text:
        return True
    if len(normalized_term) <= SHORT_QUERY_LENGTH:
        return False

    query_words = [word for word in normalized_term.split(" ") if word]
    text_words = [word for word in normalized_text.split(" ") if word]
    return all(
        any(
            _word_matches(
                query_word,
                text_word,
                error_rate=error_rate,
                max_length_delta=max_length_delta,
                bidirectional=bidirectional,
            )
            for text_word in text_words
        )
        for query_word in query_words
    )


def matches_query(record: Any, query: ParsedQuery) -> bool:
    matcher = exact_match if query.kind is SearchKind.EXACT else fuzzy_match
    return matcher(record_field(record, "title"), query.term) or matcher(
        record_field(record, "lyrics"), query.term
    )


def filter_and_sort(
    records: Iterable[Any],
    raw_query: Optional[str] = None,
    contains: Optional[Callable[[Any], bool]] = None,
) -> list[Any]:
    """Filter records by membership and query, then order them by library sort key.

    ``contains`` runs first since it is cheaper than text matching. An absent or empty
    query keeps every record.
    """
    candidates = list(records or [])
    if contains is not None:
        candidates = [record for record in candidates if contains(record)]
    if raw_query:
        query = parse_search_query(raw_query)
        total = len(candidates)
        candidates = [record for record in candidates if matches_query(record, query)]
        logger.debug(
            "Search kind=%s matched %d of %d records", query.kind.value, len(candidates), total
        )
    return sort_songs(candidates)
