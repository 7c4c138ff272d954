from __future__ import annotations

from pathlib import Path

import pytest

from adstxt_cache.config import Settings
from adstxt_cache.errors import ProviderConfigurationError
from adstxt_cache.storage import adapter as adapter_module
from adstxt_cache.storage.abstract import Query
from adstxt_cache.storage.adapter import StorageAdapter, available_providers, build_provider
from adstxt_cache.storage.memory import MemoryProvider
from adstxt_cache.storage.schema import ADS_TXT_CACHE_TABLE
from adstxt_cache.storage.sqlite import SqliteProvider

TS = "2024-01-01T00:00:00.000000+00:00"


def test_available_providers() -> None:
    assert available_providers() == ["memory", "postgres", "sqlite"]


def test_test_environment_always_gets_memory() -> None:
    settings = Settings(app_env="test", db_provider="postgres")

    with StorageAdapter.from_settings(settings) as storage:
        assert isinstance(storage.provider, MemoryProvider)
        assert storage.name == "memory"


def test_sqlite_selected_by_configuration(tmp_path: Path) -> None:
    settings = Settings(app_env="development", db_provider="SQLite", sqlite_path=str(tmp_path / "a.sqlite"))

    with StorageAdapter.from_settings(settings) as storage:
        assert isinstance(storage.provider, SqliteProvider)
        assert storage.provider.path == str(tmp_path / "a.sqlite")


def test_unknown_provider_is_fatal() -> None:
    with pytest.raises(ProviderConfigurationError) as excinfo:
        build_provider(Settings(app_env="production", db_provider="mongodb"))

    assert "mongodb" in str(excinfo.value)


def test_construction_failure_has_no_fallback(monkeypatch: pytest.MonkeyPatch) -> None:
    def _broken(settings: Settings):
        raise RuntimeError("connection refused")

    monkeypatch.setattr(
        adapter_module,
        "_provider_factories",
        lambda: {"memory": lambda s: MemoryProvider(), "postgres": _broken},
    )

    with pytest.raises(ProviderConfigurationError) as excinfo:
        StorageAdapter.from_settings(Settings(app_env="production", db_provider="postgres"))

    assert isinstance(excinfo.value.__cause__, RuntimeError)


def test_rejects_objects_without_the_provider_contract() -> None:
    with pytest.raises(ProviderConfigurationError):
        StorageAdapter(object())  # type: ignore[arg-type]


def test_forwards_operations_unchanged() -> None:
    provider = MemoryProvider()
    storage = StorageAdapter(provider)
    storage.initialize()
    record = {
        "id": "1",
        "domain": "example.com",
        "status": "error",
        "error_message": "x",
        "created_at": TS,
        "updated_at": TS,
    }

    inserted = storage.insert(ADS_TXT_CACHE_TABLE, record)

    assert inserted == provider.get_by_id(ADS_TXT_CACHE_TABLE, "1")
    assert storage.query(ADS_TXT_CACHE_TABLE, Query(where={"domain": "example.com"})) == [inserted]
    assert storage.update(ADS_TXT_CACHE_TABLE, "1", {"status_code": 500})["status_code"] == 500
    assert storage.count(ADS_TXT_CACHE_TABLE) == 1
    assert storage.execute(f"SELECT COUNT(*) FROM {ADS_TXT_CACHE_TABLE}") == [{"count": 1}]
    assert storage.delete(ADS_TXT_CACHE_TABLE, {"id": "1"}) == 1
    assert storage.get_by_id(ADS_TXT_CACHE_TABLE, "1") is None
