"""
SQL statement compiler shared by the SQLite and PostgreSQL providers.

Each statement builder returns ``(sql, params)`` in the dialect's placeholder
style. Predicates come from `conditions.normalize_where`, so the compiled SQL
has to reproduce the in-memory reference semantics exactly. That is why NULL
handling is spelled out, ordering on text columns pins a byte-order collation
on PostgreSQL, and `like` only matches text columns.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple

from adstxt_cache.storage.abstract import Operator, Order, Query
from adstxt_cache.storage.conditions import Predicate, normalize_where, validate_identifier
from adstxt_cache.storage.schema import TableSchema

Statement = Tuple[str, List[Any]]

_COMPARISONS = {
    Operator.GT: ">",
    Operator.GTE: ">=",
    Operator.LT: "<",
    Operator.LTE: "<=",
}


@dataclass(frozen=True)
class Dialect:
    name: str
    placeholder: str
    contains: str  # template with {col} and {ph}
    text_collation: str = ""
    explicit_nulls_order: bool = False
    array_membership: bool = False
    offset_needs_limit: bool = False
    json_type: str = "TEXT"


SQLITE = Dialect(
    name="sqlite",
    placeholder="?",
    contains="instr({col}, {ph}) > 0",
    offset_needs_limit=True,
)

POSTGRES = Dialect(
    name="postgres",
    placeholder="%s",
    contains="strpos({col}, {ph}) > 0",
    text_collation=' COLLATE "C"',
    explicit_nulls_order=True,
    array_membership=True,
    json_type="JSONB",
)

_COLUMN_TYPES = {"text": "TEXT", "integer": "INTEGER"}


def quote(name: str) -> str:
    return f'"{validate_identifier(name)}"'


def _column_type(schema: Optional[TableSchema], field: str) -> Optional[str]:
    if schema is None:
        return None
    column = schema.column(field)
    return column.type if column else None


def compile_predicate(
    predicate: Predicate, dialect: Dialect, schema: Optional[TableSchema] = None
) -> Statement:
    col = quote(predicate.field)
    ph = dialect.placeholder
    op, value = predicate.op, predicate.value
    col_type = _column_type(schema, predicate.field)

    if op is Operator.EQ:
        if value is None:
            return f"{col} IS NULL", []
        return f"{col} = {ph}", [value]
    if op is Operator.NE:
        if value is None:
            return f"{col} IS NOT NULL", []
        return f"({col} IS NULL OR {col} <> {ph})", [value]
    if op is Operator.LIKE:
        if col_type not in (None, "text"):
            return "1 = 0", []
        contains = dialect.contains.format(col=col, ph=ph)
        if dialect.name == "sqlite":
            contains = f"(typeof({col}) = 'text' AND {contains})"
        return contains, [value]
    if op is Operator.IN:
        if not value:
            return "1 = 0", []
        if dialect.array_membership:
            return f"{col} = ANY({ph})", [list(value)]
        placeholders = ", ".join(ph for _ in value)
        return f"{col} IN ({placeholders})", list(value)

    if value is None:
        return "1 = 0", []
    collation = dialect.text_collation if col_type == "text" else ""
    return f"{col}{collation} {_COMPARISONS[op]} {ph}", [value]


def compile_where(
    predicates: Sequence[Predicate], dialect: Dialect, schema: Optional[TableSchema] = None
) -> Statement:
    if not predicates:
        return "", []
    clauses: List[str] = []
    params: List[Any] = []
    for predicate in predicates:
        clause, clause_params = compile_predicate(predicate, dialect, schema)
        clauses.append(clause)
        params.extend(clause_params)
    return " WHERE " + " AND ".join(clauses), params


def compile_order(
    order: Optional[Order],
    primary_key: Sequence[str],
    dialect: Dialect,
    schema: Optional[TableSchema] = None,
) -> str:
    terms: List[str] = []
    if order is not None:
        collation = dialect.text_collation if _column_type(schema, order.field) == "text" else ""
        term = f"{quote(order.field)}{collation} {order.direction}"
        if dialect.explicit_nulls_order:
            term += " NULLS LAST" if order.descending else " NULLS FIRST"
        terms.append(term)
    for key in primary_key:
        collation = dialect.text_collation if _column_type(schema, key) == "text" else ""
        terms.append(f"{quote(key)}{collation} ASC")
    return " ORDER BY " + ", ".join(terms)


def compile_select(
    table: str,
    query: Optional[Query],
    primary_key: Sequence[str],
    dialect: Dialect,
    schema: Optional[TableSchema] = None,
) -> Statement:
    query = query or Query()
    where_sql, params = compile_where(normalize_where(query.where, schema), dialect, schema)
    sql = f"SELECT * FROM {quote(table)}{where_sql}"
    sql += compile_order(query.order, primary_key, dialect, schema)

    ph = dialect.placeholder
    if query.limit is not None:
        sql += f" LIMIT {ph}"
        params.append(query.limit)
    elif query.offset and dialect.offset_needs_limit:
        sql += " LIMIT -1"
    if query.offset:
        sql += f" OFFSET {ph}"
        params.append(query.offset)
    return sql, params


def compile_count(
    table: str, predicates: Sequence[Predicate], dialect: Dialect, schema: Optional[TableSchema] = None
) -> Statement:
    where_sql, params = compile_where(predicates, dialect, schema)
    return f"SELECT COUNT(*) AS count FROM {quote(table)}{where_sql}", params


def compile_delete(
    table: str, predicates: Sequence[Predicate], dialect: Dialect, schema: Optional[TableSchema] = None
) -> Statement:
    where_sql, params = compile_where(predicates, dialect, schema)
    return f"DELETE FROM {quote(table)}{where_sql}", params


def compile_select_by_key(table: str, key_fields: Sequence[str], dialect: Dialect) -> str:
    clauses = " AND ".join(f"{quote(k)} = {dialect.placeholder}" for k in key_fields)
    return f"SELECT * FROM {quote(table)} WHERE {clauses}"


def compile_insert(table: str, columns: Sequence[str], dialect: Dialect) -> str:
    cols = ", ".join(quote(c) for c in columns)
    placeholders = ", ".join(dialect.placeholder for _ in columns)
    return f"INSERT INTO {quote(table)} ({cols}) VALUES ({placeholders})"


def compile_update(table: str, columns: Sequence[str], key: str, dialect: Dialect) -> str:
    assignments = ", ".join(f"{quote(c)} = {dialect.placeholder}" for c in columns)
    return f"UPDATE {quote(table)} SET {assignments} WHERE {quote(key)} = {dialect.placeholder}"


def compile_upsert(
    table: str,
    columns: Sequence[str],
    conflict_fields: Sequence[str],
    update_fields: Sequence[str],
    dialect: Dialect,
) -> str:
    sql = compile_insert(table, columns, dialect)
    target = ", ".join(quote(c) for c in conflict_fields)
    if not update_fields:
        return f"{sql} ON CONFLICT ({target}) DO NOTHING"
    assignments = ", ".join(f"{quote(c)} = excluded.{quote(c)}" for c in update_fields)
    return f"{sql} ON CONFLICT ({target}) DO UPDATE SET {assignments}"


def render_create_table(schema: TableSchema, dialect: Dialect) -> str:
    lines: List[str] = []
    for column in schema.columns:
        col_type = dialect.json_type if column.type == "json" else _COLUMN_TYPES[column.type]
        null = " NOT NULL" if not column.nullable else ""
        lines.append(f"{quote(column.name)} {col_type}{null}")
    lines.append(f"PRIMARY KEY ({', '.join(quote(k) for k in schema.primary_key)})")
    for unique in schema.unique:
        lines.append(f"UNIQUE ({quote(unique)})")
    for column, allowed in schema.checks.items():
        values = ", ".join(f"'{value}'" for value in allowed)
        lines.append(f"CHECK ({quote(column)} IN ({values}))")
    body = ",\n  ".join(lines)
    return f"CREATE TABLE IF NOT EXISTS {quote(schema.name)} (\n  {body}\n)"


def render_indexes(schema: TableSchema, dialect: Dialect) -> List[str]:
    statements: List[str] = []
    for index in schema.indexes:
        columns = list(index.columns)
        include = ""
        if index.include:
            if dialect.name == "postgres":
                include = f" INCLUDE ({', '.join(quote(c) for c in index.include)})"
            else:
                # SQLite has no INCLUDE; trailing key columns make the index covering.
                columns.extend(index.include)
        cols = ", ".join(quote(c) for c in columns)
        statements.append(
            f"CREATE INDEX IF NOT EXISTS {quote(index.name)} ON {quote(schema.name)} ({cols}){include}"
        )
    return statements


__all__ = [
    "Dialect",
    "SQLITE",
    "POSTGRES",
    "quote",
    "compile_predicate",
    "compile_where",
    "compile_order",
    "compile_select",
    "compile_count",
    "compile_delete",
    "compile_select_by_key",
    "compile_insert",
    "compile_update",
    "compile_upsert",
    "render_create_table",
    "render_indexes",
]
