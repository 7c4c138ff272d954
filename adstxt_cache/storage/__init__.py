"""
Storage package: provider contract, the three backends and the adapter.

Driver-backed providers (SQLite, PostgreSQL) are imported from their own
modules so importing this package does not require a database driver.
"""

from adstxt_cache.storage.abstract import (
    AbstractStorageProvider,
    Operator,
    Order,
    Query,
    StorageProvider,
)
from adstxt_cache.storage.adapter import StorageAdapter, available_providers, build_provider
from adstxt_cache.storage.memory import MemoryProvider
from adstxt_cache.storage.schema import (
    ADS_TXT_CACHE_TABLE,
    SELLER_LOOKUP_TABLE,
    SELLERS_JSON_CACHE_TABLE,
)

__all__ = [
    # Contract
    "AbstractStorageProvider",
    "Operator",
    "Order",
    "Query",
    "StorageProvider",
    # Composition
    "StorageAdapter",
    "available_providers",
    "build_provider",
    "MemoryProvider",
    # Tables
    "ADS_TXT_CACHE_TABLE",
    "SELLERS_JSON_CACHE_TABLE",
    "SELLER_LOOKUP_TABLE",
]
