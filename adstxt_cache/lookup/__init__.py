"""
Normalized seller lookup: incremental index maintenance and batch backfill.
"""

from adstxt_cache.lookup.backfill import BackfillProgress, SellerLookupBackfill
from adstxt_cache.lookup.seller_index import (
    SellerLookupIndex,
    SnapshotResult,
    extract_sellers,
    normalize_seller_id,
)

__all__ = [
    "BackfillProgress",
    "SellerLookupBackfill",
    "SellerLookupIndex",
    "SnapshotResult",
    "extract_sellers",
    "normalize_seller_id",
]
