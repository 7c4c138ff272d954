"""
Infrastructure package for the ads.txt / sellers.json cache core.

Centralizes database connectivity concerns (DSN building, pooling, the
embedded SQLite connection). Keep this layer focused on I/O and resource
management, decoupled from cache and lookup logic.
"""

from adstxt_cache.infrastructure.db_factory import (
    apply_statement_timeout,
    build_dsn,
    connect_sqlite,
    open_pool,
)

__all__ = [
    "apply_statement_timeout",
    "build_dsn",
    "connect_sqlite",
    "open_pool",
]
