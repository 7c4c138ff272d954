"""
Domain package for the ads.txt / sellers.json cache core.

Exports the cache and lookup models shared by the caches, the seller lookup
index and the CLI. Keep this package focused on data definitions and
validation concerns.
"""

from adstxt_cache.domain.models import (
    CacheEntry,
    CacheStatus,
    CacheWrite,
    FetchResult,
    SellerRecord,
    normalize_domain,
    parse_timestamp,
    to_iso,
    utc_now_iso,
)

__all__ = [
    "CacheEntry",
    "CacheStatus",
    "CacheWrite",
    "FetchResult",
    "SellerRecord",
    "normalize_domain",
    "parse_timestamp",
    "to_iso",
    "utc_now_iso",
]
