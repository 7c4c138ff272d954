"""
ads.txt / sellers.json domain-data cache and seller lookup engine.

This package provides the storage core behind ads.txt validation:

- Interchangeable storage providers (in-memory, SQLite, PostgreSQL) behind one
  contract, selected once through the storage adapter
- Per-domain caches of fetched ads.txt and sellers.json documents with
  freshness checks
- A normalized seller lookup index built from cached sellers.json snapshots,
  maintained on every save and rebuildable through a batched backfill
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from adstxt_cache.cache.domain_cache import AdsTxtCache, SellersJsonCache, is_expired
from adstxt_cache.config import Settings, get_settings
from adstxt_cache.domain.models import CacheEntry, CacheStatus, CacheWrite, FetchResult, SellerRecord
from adstxt_cache.lookup.backfill import BackfillProgress, SellerLookupBackfill
from adstxt_cache.lookup.seller_index import SellerLookupIndex
from adstxt_cache.migration import MigrationReport, MigrationRunner, run_migration
from adstxt_cache.storage.abstract import Order, Query, StorageProvider
from adstxt_cache.storage.adapter import StorageAdapter, available_providers
from adstxt_cache.utils.logging import configure_logging, get_logger

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "Settings",
    "get_settings",
    # Storage
    "Order",
    "Query",
    "StorageProvider",
    "StorageAdapter",
    "available_providers",
    # Caches
    "AdsTxtCache",
    "SellersJsonCache",
    "is_expired",
    "CacheEntry",
    "CacheStatus",
    "CacheWrite",
    "FetchResult",
    # Seller lookup
    "SellerLookupIndex",
    "SellerRecord",
    "SellerLookupBackfill",
    "BackfillProgress",
    # Migration
    "MigrationReport",
    "MigrationRunner",
    "run_migration",
    # Logging
    "configure_logging",
    "get_logger",
]
