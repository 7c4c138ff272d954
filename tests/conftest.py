"""
Pytest configuration for the ads.txt / sellers.json cache core.

Provides fixtures for:
- Storage providers (in-memory, file-backed SQLite) with the schema applied
- A controllable clock for cache freshness and lookup refresh timestamps
- Settings isolation (the cached Settings instance is reset around each test)
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Generator

import pytest

from adstxt_cache.config import get_settings
from adstxt_cache.storage.memory import MemoryProvider
from adstxt_cache.storage.sqlite import SqliteProvider

START = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock; tests move time explicitly."""

    def __init__(self, start: datetime = START) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **delta: float) -> datetime:
        self.current = self.current + timedelta(**delta)
        return self.current


@pytest.fixture(autouse=True)
def _reset_settings_cache() -> Generator[None, None, None]:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_provider() -> MemoryProvider:
    provider = MemoryProvider()
    provider.initialize()
    return provider


@pytest.fixture
def sqlite_path(tmp_path: Path) -> str:
    return str(tmp_path / "db" / "adstxt_cache.sqlite")


@pytest.fixture
def sqlite_provider(sqlite_path: str) -> Generator[SqliteProvider, None, None]:
    provider = SqliteProvider(path=sqlite_path)
    provider.initialize()
    try:
        yield provider
    finally:
        provider.close()


@pytest.fixture(params=["memory", "sqlite"])
def storage(request: pytest.FixtureRequest, tmp_path: Path):
    """Every provider that runs without external services."""
    if request.param == "memory":
        provider = MemoryProvider()
    else:
        provider = SqliteProvider(path=str(tmp_path / "param.sqlite"))
    provider.initialize()
    try:
        yield provider
    finally:
        provider.close()
