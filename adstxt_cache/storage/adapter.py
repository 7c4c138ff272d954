"""
Storage adapter: the single composition seam between the cache/lookup code
and a concrete storage provider.

The provider is chosen once, when the adapter is built, and never swapped.
Construction failures surface as ProviderConfigurationError; there is no
fallback to another backend.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from adstxt_cache.config import Settings, get_settings
from adstxt_cache.errors import ProviderConfigurationError
from adstxt_cache.storage.abstract import ExecuteResult, Query, Record, StorageProvider, Where
from adstxt_cache.storage.memory import MemoryProvider
from adstxt_cache.utils.logging import get_logger

log = get_logger(__name__)


def _provider_factories() -> Dict[str, Callable[[Settings], StorageProvider]]:
    """Registry of available providers. Driver modules are imported lazily."""

    def _sqlite(settings: Settings) -> StorageProvider:
        from adstxt_cache.storage.sqlite import SqliteProvider

        return SqliteProvider(settings=settings)

    def _postgres(settings: Settings) -> StorageProvider:
        from adstxt_cache.storage.postgres import PostgresProvider

        return PostgresProvider(settings=settings)

    return {
        "memory": lambda settings: MemoryProvider(),
        "sqlite": _sqlite,
        "postgres": _postgres,
    }


def available_providers() -> List[str]:
    """List available provider names."""
    return sorted(_provider_factories().keys())


def resolve_provider_name(settings: Settings) -> str:
    """Test runs always get the volatile store, whatever DB_PROVIDER says."""
    if settings.app_env.lower() == "test":
        return "memory"
    return settings.db_provider.lower()


def build_provider(settings: Optional[Settings] = None) -> StorageProvider:
    """
    Construct the provider selected by settings.

    Raises
    ------
    ProviderConfigurationError
        For an unknown provider name or when the provider cannot be built
        (unreachable server, unwritable database file).
    """
    settings = settings or get_settings()
    name = resolve_provider_name(settings)
    factories = _provider_factories()
    if name not in factories:
        raise ProviderConfigurationError(
            f"Unknown storage provider '{name}'. Available: {', '.join(available_providers())}"
        )
    try:
        return factories[name](settings)
    except Exception as exc:
        raise ProviderConfigurationError(f"Cannot construct storage provider '{name}': {exc}") from exc


class StorageAdapter:
    """
    Forwards every provider operation unchanged.

    Parameters
    ----------
    provider : StorageProvider
        The bound provider for the adapter's lifetime.
    """

    def __init__(self, provider: StorageProvider) -> None:
        if not isinstance(provider, StorageProvider):
            raise ProviderConfigurationError(
                f"{type(provider).__name__} does not implement the storage provider contract"
            )
        self._provider = provider
        log.info("Using storage provider", extra={"provider": provider.name})

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "StorageAdapter":
        return cls(build_provider(settings))

    @property
    def provider(self) -> StorageProvider:
        return self._provider

    @property
    def name(self) -> str:
        return self._provider.name

    def initialize(self) -> None:
        self._provider.initialize()

    def insert(self, table: str, record: Record) -> Record:
        return self._provider.insert(table, record)

    def update(self, table: str, id: str, data: Mapping[str, Any]) -> Optional[Record]:
        return self._provider.update(table, id, data)

    def get_by_id(self, table: str, id: str) -> Optional[Record]:
        return self._provider.get_by_id(table, id)

    def query(self, table: str, query: Optional[Query] = None) -> List[Record]:
        return self._provider.query(table, query)

    def count(self, table: str, where: Optional[Where] = None) -> int:
        return self._provider.count(table, where)

    def delete(self, table: str, where: Where) -> int:
        return self._provider.delete(table, where)

    def upsert_many(
        self,
        table: str,
        records: Sequence[Record],
        conflict_fields: Sequence[str],
        update_fields: Sequence[str],
    ) -> int:
        return self._provider.upsert_many(table, records, conflict_fields, update_fields)

    def execute(self, statement: str, params: Optional[Sequence[Any]] = None) -> ExecuteResult:
        """Non-portable raw statement; see `StorageProvider.execute`."""
        return self._provider.execute(statement, params)

    def clear(self) -> None:
        self._provider.clear()

    def close(self) -> None:
        self._provider.close()

    def __enter__(self) -> "StorageAdapter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


__all__ = [
    "StorageAdapter",
    "available_providers",
    "build_provider",
    "resolve_provider_name",
]
