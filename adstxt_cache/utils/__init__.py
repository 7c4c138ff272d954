"""
Utilities package for the ads.txt / sellers.json cache core.

Exports shared helpers for logging and profiling. Keep this package
lightweight and free of cache or lookup logic.
"""

from adstxt_cache.utils.logging import configure_logging, get_logger
from adstxt_cache.utils.profiler import ProfileStats, profile_block

__all__ = [
    "configure_logging",
    "get_logger",
    "ProfileStats",
    "profile_block",
]
