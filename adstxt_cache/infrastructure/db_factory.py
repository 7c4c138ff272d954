"""
Database connection factory utilities for the storage providers.

Builds PostgreSQL DSNs and bounded psycopg pools, and opens the embedded
SQLite connection. Pools are owned by the provider that opened them; there is
no process-wide pool registry, so each provider closes what it created.

Includes retry logic for transient connection failures using tenacity.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Optional

import psycopg
from psycopg import Connection
from psycopg_pool import ConnectionPool, PoolTimeout
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from adstxt_cache.config import Settings, get_settings
from adstxt_cache.utils.logging import get_logger

log = get_logger(__name__)


def build_dsn(settings: Optional[Settings] = None) -> str:
    """Compose a DSN string from settings; DATABASE_URL wins when set."""
    settings = settings or get_settings()
    if settings.database_url:
        url = settings.database_url
        # libpq accepts both schemes, but some platforms hand out the legacy one.
        if url.startswith("postgres://"):
            url = "postgresql://" + url[len("postgres://"):]
        return url
    return (
        f"postgresql://{settings.db_user}:{settings.db_password}"
        f"@{settings.db_host}:{settings.db_port}/{settings.db_name}"
    )


def apply_statement_timeout(conn: Connection, timeout_ms: int) -> None:
    """
    Set a per-session statement timeout. Zero leaves the server default.

    Used as the pool's `configure` callback, so it must leave the connection idle.
    """
    if timeout_ms > 0:
        conn.execute(f"SET statement_timeout = {int(timeout_ms)}")
        conn.commit()


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((PoolTimeout, psycopg.OperationalError)),
    reraise=True,
)
def _open_pool(pool: ConnectionPool, timeout: float) -> None:
    pool.open(wait=True, timeout=timeout)


def open_pool(
    settings: Optional[Settings] = None,
    conninfo: Optional[str] = None,
) -> ConnectionPool:
    """
    Create and open a bounded synchronous connection pool.

    Retries up to 3 times with exponential backoff while the server is not
    reachable yet.

    Parameters
    ----------
    settings : Settings | None
        Pool sizing, timeouts and connection parameters.
    conninfo : str | None
        Optional DSN override (tests, one-off tooling).

    Returns
    -------
    ConnectionPool
        An open pool holding at least `pg_min_pool_size` connections.

    Raises
    ------
    psycopg_pool.PoolTimeout
        If the pool cannot fill its minimum size after all retry attempts.
    """
    settings = settings or get_settings()
    timeout_ms = settings.db_statement_timeout_ms
    pool = ConnectionPool(
        conninfo=conninfo or build_dsn(settings),
        min_size=settings.pg_min_pool_size,
        max_size=settings.pg_max_pool_size,
        kwargs={"connect_timeout": settings.pg_connect_timeout},
        configure=lambda conn: apply_statement_timeout(conn, timeout_ms),
        open=False,
    )
    try:
        _open_pool(pool, float(settings.pg_connect_timeout))
    except Exception:
        pool.close()
        raise
    log.info(
        "PostgreSQL pool opened",
        extra={"min_size": settings.pg_min_pool_size, "max_size": settings.pg_max_pool_size},
    )
    return pool


def connect_sqlite(path: str) -> sqlite3.Connection:
    """
    Open the embedded database file in autocommit mode.

    Transactions are opened explicitly by the provider; the connection is shared
    across threads behind the provider's lock.
    """
    if path != ":memory:":
        Path(path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(path, check_same_thread=False, isolation_level=None, timeout=30.0)
    conn.row_factory = sqlite3.Row
    if path != ":memory:":
        conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA busy_timeout = 30000")
    return conn


__all__ = [
    "build_dsn",
    "apply_statement_timeout",
    "open_pool",
    "connect_sqlite",
]
