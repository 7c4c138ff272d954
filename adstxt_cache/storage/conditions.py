"""
Condition evaluation for storage queries.

`normalize_where` turns a query filter into a flat list of predicates (ANDed)
and rejects malformed filters. The in-memory provider evaluates predicates
with `matches`; the relational providers compile the same predicates to SQL.
The functions here are the reference semantics every backend must reproduce:

- a missing field reads as NULL,
- ``eq None`` / ``ne None`` test for NULL / not NULL,
- ``ne x`` also matches NULL,
- ordering operators never match NULL or incomparable values,
- ``like`` is a case-sensitive substring test on string fields,
- ``in`` needs a collection and matches nothing when it is empty,
- on registered tables, operands must match the column type (SQLite would
  otherwise coerce them through column affinity),
- ordering across mixed types follows SQLite: NULL, numbers, text, blobs.
"""

from __future__ import annotations

import re
from typing import Any, Iterable, List, Mapping, NamedTuple, Optional, Sequence

from adstxt_cache.errors import InvalidFilterError, UnknownOperatorError
from adstxt_cache.storage.abstract import Operator, Order, Record, Where
from adstxt_cache.storage.schema import TableSchema

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_COLLECTIONS = (list, tuple, set, frozenset)


class Predicate(NamedTuple):
    field: str
    op: Operator
    value: Any


def validate_identifier(name: str) -> str:
    """Field and table names end up in SQL text, so only plain identifiers pass."""
    if not isinstance(name, str) or not _IDENTIFIER.match(name):
        raise InvalidFilterError(f"Invalid identifier: {name!r}")
    return name


def _conditions(where: Where) -> Iterable[Mapping[str, Any]]:
    if isinstance(where, Mapping):
        return [where]
    if isinstance(where, (list, tuple)):
        for condition in where:
            if not isinstance(condition, Mapping):
                raise InvalidFilterError(f"Condition must be a mapping, got {type(condition).__name__}")
        return where
    raise InvalidFilterError(f"Filter must be a mapping or a list of mappings, got {type(where).__name__}")


def _operator(name: Any, field: str) -> Operator:
    try:
        return Operator(name)
    except ValueError:
        raise UnknownOperatorError(str(name), field) from None


def _operand_matches(column_type: str, value: Any) -> bool:
    if value is None:
        return True
    if column_type == "text":
        return isinstance(value, str)
    if column_type == "integer":
        return isinstance(value, int) and not isinstance(value, bool)
    return True


def _check_operands(schema: TableSchema, predicate: Predicate) -> None:
    column = schema.column(predicate.field)
    if column is None:
        raise InvalidFilterError(f"Unknown field '{predicate.field}' for table '{schema.name}'")
    # `like` is defined for every column type; it simply never matches non-text.
    if predicate.op is Operator.LIKE:
        return
    values = predicate.value if predicate.op is Operator.IN else (predicate.value,)
    for value in values:
        if not _operand_matches(column.type, value):
            raise InvalidFilterError(
                f"Field '{predicate.field}' is {column.type} but the filter value "
                f"{value!r} is {type(value).__name__}"
            )


def normalize_where(where: Optional[Where], schema: Optional[TableSchema] = None) -> List[Predicate]:
    """
    Flatten a filter into predicates.

    With a table schema, fields must be columns of the table and operands must
    have the column's type.

    Raises
    ------
    UnknownOperatorError
        For an operator outside eq/ne/gt/gte/lt/lte/like/in.
    InvalidFilterError
        For bad identifiers, empty operator dicts, list literals, an ``in``
        operand that is not a collection, or a field/operand that does not fit
        the schema.
    """
    if where is None:
        return []

    predicates: List[Predicate] = []
    for condition in _conditions(where):
        for field, constraint in condition.items():
            validate_identifier(field)
            if isinstance(constraint, Mapping):
                if not constraint:
                    raise InvalidFilterError(f"Empty operator mapping for field '{field}'")
                for name, value in constraint.items():
                    op = _operator(name, field)
                    if op is Operator.IN:
                        if not isinstance(value, _COLLECTIONS):
                            raise InvalidFilterError(
                                f"Operator 'in' for field '{field}' needs a collection"
                            )
                        value = tuple(value)
                    elif op is Operator.LIKE:
                        value = str(value)
                    predicates.append(Predicate(field, op, value))
            elif isinstance(constraint, _COLLECTIONS):
                raise InvalidFilterError(
                    f"List literal for field '{field}'; use the 'in' operator"
                )
            else:
                predicates.append(Predicate(field, Operator.EQ, constraint))
    if schema is not None:
        for predicate in predicates:
            _check_operands(schema, predicate)
    return predicates


def _compare(actual: Any, op: Operator, expected: Any) -> bool:
    if actual is None or expected is None:
        return False
    try:
        if op is Operator.GT:
            return actual > expected
        if op is Operator.GTE:
            return actual >= expected
        if op is Operator.LT:
            return actual < expected
        return actual <= expected
    except TypeError:
        return False


def evaluate(record: Mapping[str, Any], predicate: Predicate) -> bool:
    """Evaluate one predicate against a record."""
    actual = record.get(predicate.field)
    op, expected = predicate.op, predicate.value

    if op is Operator.EQ:
        if expected is None:
            return actual is None
        return actual is not None and actual == expected
    if op is Operator.NE:
        if expected is None:
            return actual is not None
        return actual is None or actual != expected
    if op is Operator.LIKE:
        return isinstance(actual, str) and expected in actual
    if op is Operator.IN:
        return actual is not None and actual in expected
    return _compare(actual, op, expected)


def matches(record: Mapping[str, Any], predicates: Sequence[Predicate]) -> bool:
    return all(evaluate(record, predicate) for predicate in predicates)


def matches_where(record: Mapping[str, Any], where: Optional[Where]) -> bool:
    """Convenience wrapper: normalize and evaluate in one step."""
    return matches(record, normalize_where(where))


def _sort_key(value: Any) -> tuple:
    # SQLite storage-class order; NULLs first ascending, like NULLS FIRST.
    if value is None:
        return (0,)
    if isinstance(value, (int, float)):
        return (1, value)
    if isinstance(value, str):
        return (2, value)
    if isinstance(value, (bytes, bytearray)):
        return (3, bytes(value))
    # Anything else (JSON documents) orders by its text form.
    return (4, repr(value))


def sort_records(
    records: Iterable[Record], order: Optional[Order], key_fields: Sequence[str]
) -> List[Record]:
    """
    Order records by the requested field with primary-key tie-breaks.

    Without an explicit order the primary key alone decides.
    """
    ordered = sorted(records, key=lambda r: tuple(_sort_key(r.get(k)) for k in key_fields))
    if order is not None:
        validate_identifier(order.field)
        ordered.sort(key=lambda r: _sort_key(r.get(order.field)), reverse=order.descending)
    return ordered


def paginate(records: List[Record], limit: Optional[int], offset: Optional[int]) -> List[Record]:
    start = offset or 0
    end = start + limit if limit is not None else None
    return records[start:end]


__all__ = [
    "Predicate",
    "validate_identifier",
    "normalize_where",
    "evaluate",
    "matches",
    "matches_where",
    "sort_records",
    "paginate",
]
