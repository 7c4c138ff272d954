"""
PostgreSQL storage provider on a bounded psycopg connection pool.

Each operation borrows one connection for one transaction and hands it back.
`seller_data` is stored as JSONB and comes back as a dict without extra
decoding; text ordering and comparisons use the "C" collation so results match
the other providers byte for byte.
"""

from __future__ import annotations

from typing import Any, List, Optional, Sequence

import psycopg
from psycopg import errors as pg_errors
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb
from psycopg_pool import ConnectionPool

from adstxt_cache.config import Settings, get_settings
from adstxt_cache.errors import DuplicateKeyError, SchemaInitializationError, StorageError
from adstxt_cache.infrastructure.db_factory import open_pool
from adstxt_cache.storage import sql
from adstxt_cache.storage.abstract import Record
from adstxt_cache.storage.relational import RelationalProvider
from adstxt_cache.utils.logging import get_logger

log = get_logger(__name__)


def _translate(exc: psycopg.Error, table: str) -> StorageError:
    if isinstance(exc, pg_errors.UniqueViolation):
        return DuplicateKeyError(table or "?", None, str(exc).strip())
    return StorageError(str(exc).strip() or exc.__class__.__name__)


def _encoding_error(exc: UnicodeError) -> StorageError:
    return StorageError(f"Value cannot be stored as UTF-8 text: {exc}")


class PostgresProvider(RelationalProvider):
    """
    Provider backed by PostgreSQL.

    Parameters
    ----------
    settings : Settings | None
        Connection and pool configuration (PG_MAX_POOL_SIZE bounds the pool).
    conninfo : str | None
        DSN override; otherwise built from settings.
    pool : ConnectionPool | None
        An already-open pool. The provider closes it on `close()`.
    """

    name: str = "postgres"
    dialect = sql.POSTGRES

    def __init__(
        self,
        settings: Optional[Settings] = None,
        conninfo: Optional[str] = None,
        pool: Optional[ConnectionPool] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._pool: Optional[ConnectionPool] = pool or open_pool(self.settings, conninfo=conninfo)

    @property
    def pool(self) -> ConnectionPool:
        if self._pool is None:
            raise StorageError("PostgresProvider is closed")
        return self._pool

    def _encode_json(self, value: Any) -> Any:
        return Jsonb(value)

    def _fetch(self, statement: str, params: Sequence[Any], table: str = "") -> List[Record]:
        try:
            with self.pool.connection() as conn:
                with conn.cursor(row_factory=dict_row) as cur:
                    cur.execute(statement, list(params))
                    return list(cur.fetchall())
        except psycopg.Error as exc:
            raise _translate(exc, table) from exc
        except UnicodeError as exc:
            raise _encoding_error(exc) from exc

    def _run(self, statement: str, params: Sequence[Any], table: str = "") -> int:
        try:
            with self.pool.connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(statement, list(params))
                    return cur.rowcount
        except psycopg.Error as exc:
            raise _translate(exc, table) from exc
        except UnicodeError as exc:
            raise _encoding_error(exc) from exc

    def _run_many(self, statement: str, rows: Sequence[Sequence[Any]], table: str = "") -> None:
        # pool.connection() commits on success and rolls back on error.
        try:
            with self.pool.connection() as conn:
                with conn.cursor() as cur:
                    cur.executemany(statement, [list(row) for row in rows])
        except psycopg.Error as exc:
            raise _translate(exc, table) from exc
        except UnicodeError as exc:
            raise _encoding_error(exc) from exc

    def _run_script(self, statements: Sequence[str]) -> None:
        try:
            with self.pool.connection() as conn:
                with conn.cursor() as cur:
                    for statement in statements:
                        cur.execute(statement)
        except psycopg.Error as exc:
            raise SchemaInitializationError(f"PostgreSQL schema setup failed: {exc}") from exc

    def close(self) -> None:
        if self._pool is not None:
            self._pool.close()
            self._pool = None
            log.info("PostgreSQL pool closed")


__all__ = ["PostgresProvider"]
