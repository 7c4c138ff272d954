"""
Table definitions shared by every storage provider.

The relational providers render DDL from these definitions; the in-memory
provider uses the same keys, unique columns and indexes to enforce constraints
and to answer equality lookups without a scan. Keeping one registry is what
lets the three backends agree on observable behavior.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional, Sequence, Tuple

from adstxt_cache.errors import StorageError

ADS_TXT_CACHE_TABLE = "ads_txt_cache"
SELLERS_JSON_CACHE_TABLE = "sellers_json_cache"
SELLER_LOOKUP_TABLE = "sellers_json_seller_lookup"

CACHE_STATUSES = ("success", "error", "not_found", "invalid_format")


@dataclass(frozen=True)
class Column:
    name: str
    type: str  # "text" | "integer" | "json"
    nullable: bool = True


@dataclass(frozen=True)
class Index:
    name: str
    columns: Tuple[str, ...]
    # Extra payload columns carried by the index leaf (covering index).
    include: Tuple[str, ...] = ()


@dataclass(frozen=True)
class TableSchema:
    name: str
    columns: Tuple[Column, ...]
    primary_key: Tuple[str, ...]
    unique: Tuple[str, ...] = ()
    indexes: Tuple[Index, ...] = ()
    checks: Dict[str, Tuple[str, ...]] = field(default_factory=dict)

    @property
    def column_names(self) -> Tuple[str, ...]:
        return tuple(c.name for c in self.columns)

    @property
    def json_columns(self) -> Tuple[str, ...]:
        return tuple(c.name for c in self.columns if c.type == "json")

    def column(self, name: str) -> Optional[Column]:
        for col in self.columns:
            if col.name == name:
                return col
        return None

    def check_columns(self, names: Iterable[str]) -> None:
        unknown = sorted(set(names) - set(self.column_names))
        if unknown:
            raise StorageError(f"Unknown column(s) for table '{self.name}': {', '.join(unknown)}")

    def check_conflict_target(self, fields: Sequence[str]) -> None:
        """Upserts need a primary key or unique column as their conflict target."""
        target = tuple(fields)
        if target != self.primary_key and not (len(target) == 1 and target[0] in self.unique):
            raise StorageError(
                f"Conflict target {target} is not a unique key of table '{self.name}'"
            )


def _cache_table(name: str) -> TableSchema:
    return TableSchema(
        name=name,
        columns=(
            Column("id", "text", nullable=False),
            Column("domain", "text", nullable=False),
            Column("content", "text"),
            Column("status", "text", nullable=False),
            Column("status_code", "integer"),
            Column("url", "text"),
            Column("error_message", "text"),
            Column("created_at", "text", nullable=False),
            Column("updated_at", "text", nullable=False),
        ),
        primary_key=("id",),
        unique=("domain",),
        indexes=(Index(f"idx_{name}_updated_at", ("updated_at",)),),
        checks={"status": CACHE_STATUSES},
    )


ADS_TXT_CACHE = _cache_table(ADS_TXT_CACHE_TABLE)
SELLERS_JSON_CACHE = _cache_table(SELLERS_JSON_CACHE_TABLE)

SELLER_LOOKUP = TableSchema(
    name=SELLER_LOOKUP_TABLE,
    columns=(
        Column("cache_id", "text", nullable=False),
        Column("seller_id", "text", nullable=False),
        Column("domain", "text", nullable=False),
        Column("seller_data", "json", nullable=False),
        Column("created_at", "text", nullable=False),
        Column("updated_at", "text", nullable=False),
    ),
    primary_key=("cache_id", "seller_id"),
    indexes=(
        # The seller_data blob stays out of every index.
        Index("idx_seller_lookup_covering", ("domain", "seller_id"), include=("cache_id",)),
        Index("idx_seller_lookup_updated_at", ("updated_at",)),
    ),
)

TABLES: Dict[str, TableSchema] = {
    schema.name: schema for schema in (ADS_TXT_CACHE, SELLERS_JSON_CACHE, SELLER_LOOKUP)
}


def get_table(name: str) -> Optional[TableSchema]:
    """Return the registered schema for a table, or None for ad-hoc tables."""
    return TABLES.get(name)


def primary_key_of(table: str) -> Tuple[str, ...]:
    schema = TABLES.get(table)
    return schema.primary_key if schema else ("id",)


__all__ = [
    "ADS_TXT_CACHE_TABLE",
    "SELLERS_JSON_CACHE_TABLE",
    "SELLER_LOOKUP_TABLE",
    "CACHE_STATUSES",
    "Column",
    "Index",
    "TableSchema",
    "TABLES",
    "get_table",
    "primary_key_of",
]
