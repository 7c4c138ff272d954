"""
Domain caches for fetched ads.txt and sellers.json documents.
"""

from adstxt_cache.cache.domain_cache import (
    AdsTxtCache,
    DomainCache,
    PurgeResult,
    SellersJsonCache,
    is_expired,
)
from adstxt_cache.cache.parsers import AdsTxtContent, ContentShape, SellersJsonContent

__all__ = [
    "AdsTxtCache",
    "DomainCache",
    "PurgeResult",
    "SellersJsonCache",
    "is_expired",
    "AdsTxtContent",
    "ContentShape",
    "SellersJsonContent",
]
