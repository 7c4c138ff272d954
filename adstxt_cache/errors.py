"""
Error taxonomy for the ads.txt / sellers.json cache core.

Storage failures surface as StorageError subclasses and are meant to be retried
by the caller. Filter construction problems are ValueErrors raised before any
storage access. Fetch and content failures are never raised; the domain cache
records them as cache statuses instead.
"""

from __future__ import annotations


class AdsTxtCacheError(Exception):
    """Base class for all errors raised by this package."""


class StorageError(AdsTxtCacheError):
    """A storage backend operation failed (connection loss, constraint, I/O)."""


class DuplicateKeyError(StorageError):
    """An insert collided with an existing primary key or unique column."""

    def __init__(self, table: str, key: object, message: str | None = None) -> None:
        self.table = table
        self.key = key
        super().__init__(message or f"Duplicate key {key!r} in table '{table}'")


class SchemaInitializationError(StorageError):
    """Tables or indexes could not be created. Fatal at startup."""


class UnsupportedStatementError(StorageError):
    """A raw statement was passed to a provider that cannot run it."""


class ProviderConfigurationError(AdsTxtCacheError):
    """The configured storage provider could not be constructed."""


class InvalidFilterError(AdsTxtCacheError, ValueError):
    """A query filter is structurally invalid."""


class UnknownOperatorError(InvalidFilterError):
    """A filter used an operator outside the supported set."""

    def __init__(self, operator: str, field: str) -> None:
        self.operator = operator
        self.field = field
        super().__init__(f"Unknown operator '{operator}' for field '{field}'")


class ContentFormatError(AdsTxtCacheError):
    """Fetched content does not have the expected document shape."""


__all__ = [
    "AdsTxtCacheError",
    "StorageError",
    "DuplicateKeyError",
    "SchemaInitializationError",
    "UnsupportedStatementError",
    "ProviderConfigurationError",
    "InvalidFilterError",
    "UnknownOperatorError",
    "ContentFormatError",
]
