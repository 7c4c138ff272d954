"""
Embedded SQLite storage provider.

One connection per provider, opened in autocommit mode. A lock serializes all
statements, which doubles as SQLite's single-writer queue; multi-statement
work runs inside an explicit BEGIN/COMMIT.
"""

from __future__ import annotations

import sqlite3
import threading
from typing import Any, List, Optional, Sequence

from adstxt_cache.config import Settings, get_settings
from adstxt_cache.errors import DuplicateKeyError, SchemaInitializationError, StorageError
from adstxt_cache.infrastructure.db_factory import connect_sqlite
from adstxt_cache.storage import sql
from adstxt_cache.storage.abstract import Record
from adstxt_cache.storage.relational import RelationalProvider
from adstxt_cache.utils.logging import get_logger

log = get_logger(__name__)


def _translate(exc: sqlite3.Error, table: str) -> StorageError:
    message = str(exc)
    if isinstance(exc, sqlite3.IntegrityError) and (
        "UNIQUE" in message or "PRIMARY KEY" in message
    ):
        return DuplicateKeyError(table or "?", None, message)
    return StorageError(message)


def _encoding_error(exc: UnicodeError) -> StorageError:
    return StorageError(f"Value cannot be stored as UTF-8 text: {exc}")


class SqliteProvider(RelationalProvider):
    """
    Provider backed by a single SQLite database file.

    Parameters
    ----------
    path : str | None
        Database file, or ":memory:". Defaults to `settings.sqlite_path`.
    settings : Settings | None
        Used only to resolve the default path.
    """

    name: str = "sqlite"
    dialect = sql.SQLITE

    def __init__(self, path: Optional[str] = None, settings: Optional[Settings] = None) -> None:
        self.path = path or (settings or get_settings()).sqlite_path
        self._lock = threading.Lock()
        try:
            self._conn: Optional[sqlite3.Connection] = connect_sqlite(self.path)
        except sqlite3.Error as exc:
            raise StorageError(f"Cannot open SQLite database '{self.path}': {exc}") from exc
        log.info("SqliteProvider connected", extra={"path": self.path})

    @property
    def connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StorageError("SqliteProvider is closed")
        return self._conn

    def _fetch(self, statement: str, params: Sequence[Any], table: str = "") -> List[Record]:
        with self._lock:
            try:
                cursor = self.connection.execute(statement, list(params))
                return [dict(row) for row in cursor.fetchall()]
            except sqlite3.Error as exc:
                raise _translate(exc, table) from exc
            except UnicodeError as exc:
                raise _encoding_error(exc) from exc

    def _run(self, statement: str, params: Sequence[Any], table: str = "") -> int:
        with self._lock:
            try:
                cursor = self.connection.execute(statement, list(params))
                return cursor.rowcount
            except sqlite3.Error as exc:
                raise _translate(exc, table) from exc
            except UnicodeError as exc:
                raise _encoding_error(exc) from exc

    def _run_many(self, statement: str, rows: Sequence[Sequence[Any]], table: str = "") -> None:
        with self._lock:
            conn = self.connection
            try:
                conn.execute("BEGIN IMMEDIATE")
                try:
                    conn.executemany(statement, [list(row) for row in rows])
                except BaseException:
                    conn.execute("ROLLBACK")
                    raise
                conn.execute("COMMIT")
            except sqlite3.Error as exc:
                raise _translate(exc, table) from exc
            except UnicodeError as exc:
                raise _encoding_error(exc) from exc

    def _run_script(self, statements: Sequence[str]) -> None:
        with self._lock:
            conn = self.connection
            try:
                conn.execute("BEGIN IMMEDIATE")
                try:
                    for statement in statements:
                        conn.execute(statement)
                except BaseException:
                    conn.execute("ROLLBACK")
                    raise
                conn.execute("COMMIT")
            except sqlite3.Error as exc:
                raise SchemaInitializationError(f"SQLite schema setup failed: {exc}") from exc

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
                log.info("SqliteProvider closed", extra={"path": self.path})


__all__ = ["SqliteProvider"]
