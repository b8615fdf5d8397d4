from __future__ import annotations

import locale
import re
import unicodedata
from typing import Any, Iterable

_WS_RE = re.compile(r"\s+")
_LEADING_ARTICLE_RE = re.compile(r"^(the|a|an)\s+", re.IGNORECASE)


def normalize_whitespace(value: str | None) -> str:
    """Collapse whitespace runs to single spaces, trim, and lowercase."""
    return _WS_RE.sub(" ", str(value or "")).strip().lower()


def library_sort_key(title: str | None) -> str:
    """Return the title as filed in a library: lowercase, leading article dropped."""
    return _LEADING_ARTICLE_RE.sub("", str(title or ""), count=1).lower()


def record_field(record: Any, field: str) -> str:
    if isinstance(record, dict):
        value = record.get(field)
    else:
        value = getattr(record, field, None)
    return value if isinstance(value, str) else ""


def fold_accents(value: str | None) -> str:
    """Strip combining marks so accented letters file beside their base letter."""
    decomposed = unicodedata.normalize("NFKD", str(value or ""))
    return "".join(char for char in decomposed if not unicodedata.combining(char))


def _title_collation_key(title: str | None) -> tuple[str, str]:
    # Accent-folded key first; the accented form only breaks ties between otherwise equal titles.
    key = library_sort_key(title)
    return (locale.strxfrm(fold_accents(key)), locale.strxfrm(key))


def compare_titles(a: str | None, b: str | None) -> int:
    left = _title_collation_key(a)
    right = _title_collation_key(b)
    return (left > right) - (left < right)


def sort_songs(records: Iterable[Any]) -> list[Any]:
    """Return a new list ordered by library sort key; ties keep input order."""
    return sorted(records, key=lambda record: _title_collation_key(record_field(record, "title")))
