from .auth_guard import (
    Credential,
    LoginRateLimiter,
    RateLimitResult,
    VerifyResult,
    generate_salt,
    hash_password,
    verify_password,
)
from .paths import AppPaths, build_app_paths
from .search_engine import (
    ParsedQuery,
    SearchKind,
    exact_match,
    filter_and_sort,
    fuzzy_match,
    levenshtein_distance,
    parse_search_query,
)
from .search_normalization import compare_titles, fold_accents, library_sort_key, normalize_whitespace, sort_songs

__all__ = [
    "AppPaths",
    "Credential",
    "LoginRateLimiter",
    "ParsedQuery",
    "RateLimitResult",
    "SearchKind",
    "VerifyResult",
    "build_app_paths",
    "compare_titles",
    "exact_match",
    "filter_and_sort",
    "fold_accents",
    "fuzzy_match",
    "generate_salt",
    "hash_password",
    "levenshtein_distance",
    "library_sort_key",
    "normalize_whitespace",
    "parse_search_query",
    "sort_songs",
    "verify_password",
]
