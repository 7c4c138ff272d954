"""
In-memory storage provider.

Volatile store used by the automated tests and as the reference for filter
semantics: the relational providers must return what this provider returns.
Registered tables get the same primary keys, unique columns, CHECK lists and
NOT NULL columns as the SQL schema, plus hash indexes for the declared
indexes so `(domain, seller_id)` lookups do not scan.
"""

from __future__ import annotations

import copy
import re
import threading
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from adstxt_cache.errors import DuplicateKeyError, StorageError, UnsupportedStatementError
from adstxt_cache.storage.abstract import (
    AbstractStorageProvider,
    ExecuteResult,
    Operator,
    Query,
    Record,
    Where,
)
from adstxt_cache.storage.conditions import (
    Predicate,
    matches,
    normalize_where,
    paginate,
    sort_records,
    validate_identifier,
)
from adstxt_cache.storage.schema import TABLES, TableSchema, get_table, primary_key_of
from adstxt_cache.utils.logging import get_logger

log = get_logger(__name__)

Key = Tuple[Any, ...]

_COUNT_STATEMENT = re.compile(
    r"^\s*select\s+count\(\s*\*\s*\)(?:\s+as\s+\w+)?\s+from\s+\"?([A-Za-z_][A-Za-z0-9_]*)\"?\s*;?\s*$",
    re.IGNORECASE,
)


def _has_surrogates(value: Any) -> bool:
    if isinstance(value, str):
        try:
            value.encode("utf-8")
        except UnicodeEncodeError:
            return True
        return False
    if isinstance(value, Mapping):
        return any(_has_surrogates(k) or _has_surrogates(v) for k, v in value.items())
    if isinstance(value, (list, tuple)):
        return any(_has_surrogates(v) for v in value)
    return False


class _Table:
    """Rows of one table plus its unique maps and hash indexes."""

    def __init__(self, name: str, schema: Optional[TableSchema]) -> None:
        self.name = name
        self.schema = schema
        self.primary_key = schema.primary_key if schema else ("id",)
        self.rows: Dict[Key, Record] = {}
        self.unique: Dict[str, Dict[Any, Key]] = {
            col: {} for col in (schema.unique if schema else ())
        }
        self.indexes: Dict[Tuple[str, ...], Dict[Key, Dict[Key, None]]] = {
            index.columns: {} for index in (schema.indexes if schema else ())
        }

    def key_of(self, record: Mapping[str, Any]) -> Key:
        missing = [k for k in self.primary_key if record.get(k) is None]
        if missing:
            raise StorageError(
                f"Missing primary key column(s) for table '{self.name}': {', '.join(missing)}"
            )
        return tuple(record[k] for k in self.primary_key)

    def check_constraints(self, record: Mapping[str, Any]) -> None:
        # The SQL backends can only store UTF-8 text.
        for column, value in record.items():
            if _has_surrogates(value):
                raise StorageError(f"Value cannot be stored as UTF-8 text: {self.name}.{column}")
        if self.schema is None:
            return
        for column in self.schema.columns:
            if not column.nullable and record.get(column.name) is None:
                raise StorageError(
                    f"NOT NULL constraint failed: {self.name}.{column.name}"
                )
        for column, allowed in self.schema.checks.items():
            if record.get(column) not in allowed:
                raise StorageError(f"CHECK constraint failed: {self.name}.{column}")

    def check_unique(self, record: Mapping[str, Any], key: Key) -> None:
        for col, values in self.unique.items():
            value = record.get(col)
            if value is None:
                continue
            owner = values.get(value)
            if owner is not None and owner != key:
                raise DuplicateKeyError(self.name, {col: value})

    def add(self, key: Key, record: Record) -> None:
        self.rows[key] = record
        for col, values in self.unique.items():
            if record.get(col) is not None:
                values[record[col]] = key
        for columns, index in self.indexes.items():
            index.setdefault(tuple(record.get(c) for c in columns), {})[key] = None

    def discard(self, key: Key) -> Record:
        record = self.rows.pop(key)
        for col, values in self.unique.items():
            if values.get(record.get(col)) == key:
                del values[record[col]]
        for columns, index in self.indexes.items():
            bucket_key = tuple(record.get(c) for c in columns)
            bucket = index.get(bucket_key)
            if bucket is not None:
                bucket.pop(key, None)
                if not bucket:
                    del index[bucket_key]
        return record

    def candidates(self, predicates: Sequence[Predicate]) -> List[Record]:
        """Narrow the scan with the primary key or a hash index when equality allows."""
        equals = {
            p.field: p.value
            for p in predicates
            if p.op is Operator.EQ and p.value is not None
        }
        if all(k in equals for k in self.primary_key):
            row = self.rows.get(tuple(equals[k] for k in self.primary_key))
            return [row] if row is not None else []
        usable = [cols for cols in self.indexes if all(c in equals for c in cols)]
        if usable:
            columns = max(usable, key=len)
            keys = self.indexes[columns].get(tuple(equals[c] for c in columns), {})
            return [self.rows[k] for k in keys]
        return list(self.rows.values())


class MemoryProvider(AbstractStorageProvider):
    """
    Dict-backed provider; every call returns deep copies of stored rows.
    """

    name: str = "memory"

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._tables: Dict[str, _Table] = {}
        log.info("MemoryProvider instance created")

    def _table(self, name: str, create: bool = False) -> _Table:
        """
        Registered tables always exist; ad-hoc tables come into being on their
        first write and are unknown to reads before that.
        """
        validate_identifier(name)
        table = self._tables.get(name)
        if table is None:
            schema = get_table(name)
            if schema is None and not create:
                raise StorageError(f"no such table: {name}")
            table = _Table(name, schema)
            self._tables[name] = table
        return table

    def _complete(self, table: _Table, record: Mapping[str, Any]) -> Record:
        if table.schema is None:
            return copy.deepcopy(dict(record))
        table.schema.check_columns(record.keys())
        return {col: copy.deepcopy(record.get(col)) for col in table.schema.column_names}

    def initialize(self) -> None:
        log.info("Initializing MemoryProvider")
        with self._lock:
            for name in TABLES:
                self._table(name)

    def insert(self, table: str, record: Record) -> Record:
        with self._lock:
            tbl = self._table(table, create=True)
            stored = self._complete(tbl, record)
            key = tbl.key_of(stored)
            if key in tbl.rows:
                raise DuplicateKeyError(table, key)
            tbl.check_constraints(stored)
            tbl.check_unique(stored, key)
            tbl.add(key, stored)
            log.debug("Inserted row", extra={"table": table, "key": key})
            return copy.deepcopy(stored)

    def update(self, table: str, id: str, data: Mapping[str, Any]) -> Optional[Record]:
        with self._lock:
            tbl = self._table(table)
            if tbl.primary_key != ("id",):
                raise StorageError(f"Table '{table}' is not keyed by id")
            if "id" in data and data["id"] != id:
                raise StorageError("Primary key columns cannot be updated")
            if tbl.schema is not None:
                tbl.schema.check_columns(data.keys())
            key = (id,)
            current = tbl.rows.get(key)
            if current is None:
                log.debug("Record not found for update", extra={"table": table, "id": id})
                return None
            updated = {**current, **copy.deepcopy(dict(data))}
            tbl.check_constraints(updated)
            tbl.check_unique(updated, key)
            tbl.discard(key)
            tbl.add(key, updated)
            return copy.deepcopy(updated)

    def get_by_id(self, table: str, id: str) -> Optional[Record]:
        with self._lock:
            tbl = self._table(table)
            if tbl.primary_key != ("id",):
                raise StorageError(f"Table '{table}' is not keyed by id")
            row = tbl.rows.get((id,))
            return copy.deepcopy(row) if row is not None else None

    def _select(self, tbl: _Table, predicates: Sequence[Predicate]) -> List[Record]:
        return [row for row in tbl.candidates(predicates) if matches(row, predicates)]

    def query(self, table: str, query: Optional[Query] = None) -> List[Record]:
        query = query or Query()
        predicates = normalize_where(query.where, get_table(table))
        with self._lock:
            tbl = self._table(table)
            rows = self._select(tbl, predicates)
            ordered = sort_records(rows, query.order, tbl.primary_key)
            page = paginate(ordered, query.limit, query.offset)
            return copy.deepcopy(page)

    def count(self, table: str, where: Optional[Where] = None) -> int:
        predicates = normalize_where(where, get_table(table))
        with self._lock:
            return len(self._select(self._table(table), predicates))

    def delete(self, table: str, where: Where) -> int:
        predicates = normalize_where(where, get_table(table))
        with self._lock:
            tbl = self._table(table)
            doomed = [tbl.key_of(row) for row in self._select(tbl, predicates)]
            for key in doomed:
                tbl.discard(key)
            return len(doomed)

    def upsert_many(
        self,
        table: str,
        records: Sequence[Record],
        conflict_fields: Sequence[str],
        update_fields: Sequence[str],
    ) -> int:
        with self._lock:
            tbl = self._table(table, create=True)
            target = tuple(conflict_fields)
            if tbl.schema is not None:
                tbl.schema.check_conflict_target(target)
                tbl.schema.check_columns(update_fields)
            elif target != tbl.primary_key:
                raise StorageError(f"Conflict target {target} is not a unique key of '{table}'")
            if records and any(set(r) != set(records[0]) for r in records):
                raise ValueError("upsert_many needs records with identical column sets")

            # (written key, replaced key, replaced row) per step, for rollback.
            undo: List[Tuple[Key, Optional[Key], Optional[Record]]] = []
            try:
                for record in records:
                    undo.append(self._upsert_one(tbl, target, update_fields, record))
            except Exception:
                # One statement, one transaction: a failing record undoes the batch.
                for written, replaced_key, replaced in reversed(undo):
                    tbl.discard(written)
                    if replaced is not None:
                        tbl.add(replaced_key, replaced)
                raise
            return len(records)

    def _upsert_one(
        self,
        tbl: _Table,
        target: Tuple[str, ...],
        update_fields: Sequence[str],
        record: Record,
    ) -> Tuple[Key, Optional[Key], Optional[Record]]:
        incoming = self._complete(tbl, record)
        existing_key = self._find_conflict(tbl, target, incoming)
        if existing_key is None:
            key = tbl.key_of(incoming)
            if key in tbl.rows:
                raise DuplicateKeyError(tbl.name, key)
            tbl.check_constraints(incoming)
            tbl.check_unique(incoming, key)
            tbl.add(key, incoming)
            return key, None, None
        current = tbl.rows[existing_key]
        merged = {**current, **{f: incoming.get(f) for f in update_fields}}
        key = tbl.key_of(merged)
        tbl.check_constraints(merged)
        tbl.check_unique(merged, existing_key)
        tbl.discard(existing_key)
        tbl.add(key, merged)
        return key, existing_key, current

    @staticmethod
    def _find_conflict(tbl: _Table, target: Tuple[str, ...], record: Record) -> Optional[Key]:
        if target == tbl.primary_key:
            key = tbl.key_of(record)
            return key if key in tbl.rows else None
        return tbl.unique[target[0]].get(record.get(target[0]))

    def execute(self, statement: str, params: Optional[Sequence[Any]] = None) -> ExecuteResult:
        """
        Limited raw statement support: only ``SELECT COUNT(*) FROM <table>``.
        """
        match = _COUNT_STATEMENT.match(statement)
        if not match:
            raise UnsupportedStatementError(f"MemoryProvider cannot execute: {statement!r}")
        with self._lock:
            return [{"count": len(self._table(match.group(1)).rows)}]

    def clear(self) -> None:
        log.warning("Clearing MemoryProvider")
        with self._lock:
            for name in list(self._tables):
                self._tables[name] = _Table(name, get_table(name))


__all__ = ["MemoryProvider"]
