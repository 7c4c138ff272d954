"""
Storage provider interfaces and query contracts.

Concrete providers (in-memory, SQLite, PostgreSQL) implement the
StorageProvider protocol, usually by subclassing AbstractStorageProvider, and
must return identical observable results for identical inputs. Records travel
as plain dicts keyed by column name.
"""

from __future__ import annotations

import abc
import enum
from dataclasses import dataclass
from typing import (
    Any,
    Dict,
    List,
    Mapping,
    Optional,
    Protocol,
    Sequence,
    Union,
    runtime_checkable,
)

Record = Dict[str, Any]
Condition = Mapping[str, Any]
Where = Union[Condition, Sequence[Condition]]
# Rows for read statements, affected-row count otherwise.
ExecuteResult = Union[List[Record], int]


class Operator(str, enum.Enum):
    EQ = "eq"
    NE = "ne"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    LIKE = "like"
    IN = "in"


@dataclass(frozen=True)
class Order:
    field: str
    direction: str = "ASC"

    def __post_init__(self) -> None:
        direction = self.direction.upper()
        if direction not in ("ASC", "DESC"):
            raise ValueError(f"Order direction must be ASC or DESC, got '{self.direction}'")
        object.__setattr__(self, "direction", direction)

    @property
    def descending(self) -> bool:
        return self.direction == "DESC"


@dataclass(frozen=True)
class Query:
    """
    Filter, sort and pagination for `StorageProvider.query`.

    `where` is one condition mapping or a list of them (ANDed). A condition maps
    a field to a literal (equality) or to an operator dict such as
    ``{"gte": 10, "lt": 20}``.
    """

    where: Optional[Where] = None
    order: Optional[Order] = None
    limit: Optional[int] = None
    offset: Optional[int] = None

    def __post_init__(self) -> None:
        if self.limit is not None and self.limit < 0:
            raise ValueError("limit must be >= 0")
        if self.offset is not None and self.offset < 0:
            raise ValueError("offset must be >= 0")


@runtime_checkable
class StorageProvider(Protocol):
    """
    Common interface all storage backends must implement.

    Attributes
    ----------
    name : str
        A short machine-friendly identifier.
    """

    name: str

    def initialize(self) -> None:
        """Idempotently create tables and indexes."""
        ...

    def insert(self, table: str, record: Record) -> Record:
        """Insert a record; raises DuplicateKeyError when its key exists."""
        ...

    def update(self, table: str, id: str, data: Mapping[str, Any]) -> Optional[Record]:
        """Apply a partial update; returns None when the id does not exist."""
        ...

    def get_by_id(self, table: str, id: str) -> Optional[Record]:
        ...

    def query(self, table: str, query: Optional[Query] = None) -> List[Record]:
        ...

    def count(self, table: str, where: Optional[Where] = None) -> int:
        ...

    def delete(self, table: str, where: Where) -> int:
        ...

    def upsert_many(
        self,
        table: str,
        records: Sequence[Record],
        conflict_fields: Sequence[str],
        update_fields: Sequence[str],
    ) -> int:
        ...

    def execute(self, statement: str, params: Optional[Sequence[Any]] = None) -> ExecuteResult:
        ...

    def clear(self) -> None:
        ...

    def close(self) -> None:
        ...


class AbstractStorageProvider(abc.ABC):
    """
    ABC helper for class-based providers.

    Subclasses set `name` and implement the abstract operations. `execute` is a
    non-portable escape hatch for schema work and ad-hoc aggregates; ordinary
    code paths must not rely on it.
    """

    name: str

    @abc.abstractmethod
    def initialize(self) -> None:  # pragma: no cover - interface only
        raise NotImplementedError

    @abc.abstractmethod
    def insert(self, table: str, record: Record) -> Record:  # pragma: no cover
        raise NotImplementedError

    @abc.abstractmethod
    def update(
        self, table: str, id: str, data: Mapping[str, Any]
    ) -> Optional[Record]:  # pragma: no cover
        raise NotImplementedError

    @abc.abstractmethod
    def get_by_id(self, table: str, id: str) -> Optional[Record]:  # pragma: no cover
        raise NotImplementedError

    @abc.abstractmethod
    def query(self, table: str, query: Optional[Query] = None) -> List[Record]:  # pragma: no cover
        raise NotImplementedError

    @abc.abstractmethod
    def count(self, table: str, where: Optional[Where] = None) -> int:  # pragma: no cover
        raise NotImplementedError

    @abc.abstractmethod
    def delete(self, table: str, where: Where) -> int:  # pragma: no cover
        raise NotImplementedError

    @abc.abstractmethod
    def upsert_many(
        self,
        table: str,
        records: Sequence[Record],
        conflict_fields: Sequence[str],
        update_fields: Sequence[str],
    ) -> int:  # pragma: no cover
        raise NotImplementedError

    @abc.abstractmethod
    def execute(
        self, statement: str, params: Optional[Sequence[Any]] = None
    ) -> ExecuteResult:  # pragma: no cover
        raise NotImplementedError

    @abc.abstractmethod
    def clear(self) -> None:  # pragma: no cover
        raise NotImplementedError

    def close(self) -> None:
        """Release connections. Providers without resources keep the no-op."""

    def __enter__(self) -> "AbstractStorageProvider":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


__all__ = [
    "Record",
    "Condition",
    "Where",
    "ExecuteResult",
    "Operator",
    "Order",
    "Query",
    "StorageProvider",
    "AbstractStorageProvider",
]
