"""
Shared implementation of the provider contract for SQL backends.

Subclasses supply a dialect, connection handling and driver error
translation through four hooks (`_fetch`, `_run`, `_run_many`, `_run_script`);
everything else (statement building, column checks, JSON encoding, the
re-read after writes) lives here once.
"""

from __future__ import annotations

import abc
import json
from typing import Any, Dict, List, Mapping, Optional, Sequence

from adstxt_cache.errors import StorageError
from adstxt_cache.storage import sql
from adstxt_cache.storage.abstract import (
    AbstractStorageProvider,
    ExecuteResult,
    Query,
    Record,
    Where,
)
from adstxt_cache.storage.conditions import normalize_where, validate_identifier
from adstxt_cache.storage.schema import TABLES, TableSchema, get_table, primary_key_of
from adstxt_cache.utils.logging import get_logger

log = get_logger(__name__)

_READ_PREFIXES = ("SELECT", "WITH", "PRAGMA", "EXPLAIN", "SHOW", "VALUES")


class RelationalProvider(AbstractStorageProvider):
    dialect: sql.Dialect

    # -- driver hooks -------------------------------------------------------

    @abc.abstractmethod
    def _fetch(self, statement: str, params: Sequence[Any], table: str = "") -> List[Record]:
        """Run a read statement and return rows as dicts."""

    @abc.abstractmethod
    def _run(self, statement: str, params: Sequence[Any], table: str = "") -> int:
        """Run a write statement in its own transaction; return the affected-row count."""

    @abc.abstractmethod
    def _run_many(self, statement: str, rows: Sequence[Sequence[Any]], table: str = "") -> None:
        """Run one statement for many parameter rows in a single transaction."""

    @abc.abstractmethod
    def _run_script(self, statements: Sequence[str]) -> None:
        """Run DDL statements in a single transaction."""

    # -- value conversion ---------------------------------------------------

    def _encode_json(self, value: Any) -> Any:
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False)

    def _decode_json(self, value: Any) -> Any:
        if isinstance(value, (str, bytes)):
            return json.loads(value)
        return value

    def _encode(self, schema: Optional[TableSchema], column: str, value: Any) -> Any:
        if schema is not None and value is not None and column in schema.json_columns:
            return self._encode_json(value)
        return value

    def _decode(self, schema: Optional[TableSchema], row: Mapping[str, Any]) -> Record:
        record = dict(row)
        if schema is not None:
            for column in schema.json_columns:
                if record.get(column) is not None:
                    record[column] = self._decode_json(record[column])
        return record

    # -- contract -----------------------------------------------------------

    def initialize(self) -> None:
        statements: List[str] = []
        for schema in TABLES.values():
            statements.append(sql.render_create_table(schema, self.dialect))
            statements.extend(sql.render_indexes(schema, self.dialect))
        log.info(
            "Ensuring schema",
            extra={"provider": self.name, "tables": list(TABLES), "statements": len(statements)},
        )
        self._run_script(statements)

    def _reload(self, table: str, schema: Optional[TableSchema], key: Dict[str, Any]) -> Optional[Record]:
        statement = sql.compile_select_by_key(table, list(key), self.dialect)
        rows = self._fetch(statement, list(key.values()), table)
        return self._decode(schema, rows[0]) if rows else None

    def insert(self, table: str, record: Record) -> Record:
        schema = get_table(table)
        if schema is not None:
            schema.check_columns(record.keys())
        columns = list(record)
        statement = sql.compile_insert(table, columns, self.dialect)
        self._run(statement, [self._encode(schema, c, record[c]) for c in columns], table)
        key = {k: record.get(k) for k in primary_key_of(table)}
        stored = self._reload(table, schema, key)
        if stored is None:
            raise StorageError(f"Inserted row vanished from '{table}': {key}")
        return stored

    def update(self, table: str, id: str, data: Mapping[str, Any]) -> Optional[Record]:
        schema = get_table(table)
        if primary_key_of(table) != ("id",):
            raise StorageError(f"Table '{table}' is not keyed by id")
        if "id" in data and data["id"] != id:
            raise StorageError("Primary key columns cannot be updated")
        if schema is not None:
            schema.check_columns(data.keys())
        columns = [c for c in data if c != "id"]
        if columns:
            statement = sql.compile_update(table, columns, "id", self.dialect)
            params = [self._encode(schema, c, data[c]) for c in columns] + [id]
            if self._run(statement, params, table) == 0:
                log.debug("Record not found for update", extra={"table": table, "id": id})
                return None
        return self._reload(table, schema, {"id": id})

    def get_by_id(self, table: str, id: str) -> Optional[Record]:
        if primary_key_of(table) != ("id",):
            raise StorageError(f"Table '{table}' is not keyed by id")
        return self._reload(table, get_table(table), {"id": id})

    def query(self, table: str, query: Optional[Query] = None) -> List[Record]:
        schema = get_table(table)
        statement, params = sql.compile_select(
            table, query, primary_key_of(table), self.dialect, schema
        )
        return [self._decode(schema, row) for row in self._fetch(statement, params, table)]

    def count(self, table: str, where: Optional[Where] = None) -> int:
        schema = get_table(table)
        statement, params = sql.compile_count(
            table, normalize_where(where, schema), self.dialect, schema
        )
        rows = self._fetch(statement, params, table)
        return int(rows[0]["count"]) if rows else 0

    def delete(self, table: str, where: Where) -> int:
        schema = get_table(table)
        statement, params = sql.compile_delete(
            table, normalize_where(where, schema), self.dialect, schema
        )
        return self._run(statement, params, table)

    def upsert_many(
        self,
        table: str,
        records: Sequence[Record],
        conflict_fields: Sequence[str],
        update_fields: Sequence[str],
    ) -> int:
        if not records:
            return 0
        schema = get_table(table)
        columns = list(records[0])
        if schema is not None:
            schema.check_conflict_target(conflict_fields)
            schema.check_columns(columns)
            schema.check_columns(update_fields)
        for record in records:
            if set(record) != set(columns):
                raise ValueError("upsert_many needs records with identical column sets")
        statement = sql.compile_upsert(table, columns, conflict_fields, update_fields, self.dialect)
        rows = [[self._encode(schema, c, record[c]) for c in columns] for record in records]
        self._run_many(statement, rows, table)
        return len(records)

    def execute(self, statement: str, params: Optional[Sequence[Any]] = None) -> ExecuteResult:
        """
        Run a raw, backend-specific statement.

        Read statements return rows (undecoded), anything else the affected-row
        count. Not portable across providers.
        """
        if statement.lstrip().upper().startswith(_READ_PREFIXES):
            return self._fetch(statement, list(params or []))
        return self._run(statement, list(params or []))

    def clear(self) -> None:
        log.warning("Clearing all tables", extra={"provider": self.name})
        # Derived rows first.
        for name in reversed(list(TABLES)):
            self._run(f"DELETE FROM {sql.quote(validate_identifier(name))}", [], name)


__all__ = ["RelationalProvider"]
