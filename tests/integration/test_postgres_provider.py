"""
Integration tests for the PostgreSQL provider.

These tests run against a real PostgreSQL instance and verify that:
1. The schema applies idempotently
2. Query semantics match the in-memory provider
3. The cache, lookup index and backfill work end to end

Run with: RUN_INTEGRATION_TESTS=1 pytest tests/integration/
Connection settings come from DATABASE_URL or DB_HOST/DB_PORT/DB_USER/DB_PASSWORD/DB_NAME.
"""

from __future__ import annotations

import json
import os
from typing import Generator

import pytest

from adstxt_cache.cache.domain_cache import AdsTxtCache, SellersJsonCache
from adstxt_cache.config import Settings
from adstxt_cache.errors import DuplicateKeyError
from adstxt_cache.lookup.backfill import SellerLookupBackfill
from adstxt_cache.lookup.seller_index import SellerLookupIndex
from adstxt_cache.storage.abstract import Order, Query
from adstxt_cache.storage.memory import MemoryProvider
from adstxt_cache.storage.postgres import PostgresProvider
from adstxt_cache.storage.schema import ADS_TXT_CACHE_TABLE, SELLER_LOOKUP_TABLE

TS = "2024-01-01T00:00:00.000000+00:00"
SELLER_COUNT = 50

pytestmark = pytest.mark.skipif(
    os.getenv("RUN_INTEGRATION_TESTS", "0") != "1",
    reason="Integration tests require RUN_INTEGRATION_TESTS=1 and reachable Postgres",
)


@pytest.fixture
def postgres() -> Generator[PostgresProvider, None, None]:
    provider = PostgresProvider(Settings(app_env="integration", pg_max_pool_size=4))
    provider.initialize()
    provider.clear()
    try:
        yield provider
    finally:
        provider.clear()
        provider.close()


def _row(id: str, domain: str, status: str = "error", status_code=None):
    return {
        "id": id,
        "domain": domain,
        "content": "a.com, 1, DIRECT" if status == "success" else None,
        "status": status,
        "status_code": status_code,
        "url": None,
        "error_message": None if status == "success" else "failed",
        "created_at": TS,
        "updated_at": TS,
    }


class TestSchema:
    def test_initialize_is_idempotent(self, postgres: PostgresProvider) -> None:
        postgres.initialize()
        postgres.initialize()

        assert postgres.count(ADS_TXT_CACHE_TABLE) == 0

    def test_unique_domain_is_enforced(self, postgres: PostgresProvider) -> None:
        postgres.insert(ADS_TXT_CACHE_TABLE, _row("1", "a.com"))

        with pytest.raises(DuplicateKeyError):
            postgres.insert(ADS_TXT_CACHE_TABLE, _row("2", "a.com"))


class TestParityWithMemory:
    ROWS = [
        _row("1", "b.com", status_code=500),
        _row("2", "A.com", status_code=None),
        _row("3", "a.com", status="success", status_code=200),
        _row("4", "c.org", status_code=404),
    ]

    QUERIES = [
        Query(order=Order("status_code", "ASC")),
        Query(order=Order("status_code", "DESC")),
        Query(order=Order("domain", "ASC")),
        Query(where={"domain": {"like": "%.com"}}, order=Order("id")),
        Query(where={"domain": {"like": "a%"}}),
        Query(where={"status_code": {"in": []}}),
        Query(where={"status_code": None}),
        Query(where={"status_code": {"ne": 500}}, order=Order("id")),
        Query(where={"status": "error"}, order=Order("id", "DESC"), limit=2, offset=1),
    ]

    @pytest.mark.parametrize("query", QUERIES)
    def test_query_matches_memory(self, postgres: PostgresProvider, query: Query) -> None:
        memory = MemoryProvider()
        memory.initialize()
        for row in self.ROWS:
            memory.insert(ADS_TXT_CACHE_TABLE, row)
            postgres.insert(ADS_TXT_CACHE_TABLE, row)

        expected = [r["id"] for r in memory.query(ADS_TXT_CACHE_TABLE, query)]
        actual = [r["id"] for r in postgres.query(ADS_TXT_CACHE_TABLE, query)]

        assert actual == expected


class TestEndToEnd:
    def test_cache_save_keeps_one_row(self, postgres: PostgresProvider) -> None:
        cache = AdsTxtCache(postgres)
        first = cache.save_cache({"domain": "example.com", "status": "success", "content": "a.com, 1, DIRECT"})
        second = cache.save_cache({"domain": "EXAMPLE.com", "status": "error", "error_message": "timeout"})

        assert second.id == first.id
        assert second.created_at == first.created_at
        assert postgres.count(ADS_TXT_CACHE_TABLE) == 1

    def test_sellers_json_save_and_backfill(self, postgres: PostgresProvider) -> None:
        sellers = [{"seller_id": str(i), "name": f"seller {i}"} for i in range(SELLER_COUNT)]
        index = SellerLookupIndex(postgres, chunk_size=7)
        cache = SellersJsonCache(postgres, lookup_index=index)

        cache.save_cache({"domain": "example.com", "status": "success", "content": json.dumps({"sellers": sellers})})
        assert index.count("example.com") == SELLER_COUNT
        assert index.find_seller("example.com", "7").seller_data == {"seller_id": "7", "name": "seller 7"}

        progress = SellerLookupBackfill(postgres, index=index, batch_size=1).run(rebuild=True)

        assert progress.sellers_inserted == SELLER_COUNT
        assert postgres.count(SELLER_LOOKUP_TABLE) == SELLER_COUNT

    def test_execute_raw_statement(self, postgres: PostgresProvider) -> None:
        postgres.insert(ADS_TXT_CACHE_TABLE, _row("1", "a.com"))

        rows = postgres.execute(f"SELECT COUNT(*) AS count FROM {ADS_TXT_CACHE_TABLE} WHERE domain = %s", ["a.com"])

        assert rows == [{"count": 1}]
