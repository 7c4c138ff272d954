from __future__ import annotations

import pytest

from adstxt_cache.errors import StorageError, UnsupportedStatementError
from adstxt_cache.storage.abstract import Query
from adstxt_cache.storage.conditions import normalize_where
from adstxt_cache.storage.memory import MemoryProvider
from adstxt_cache.storage.schema import SELLER_LOOKUP_TABLE

TS = "2024-01-01T00:00:00.000000+00:00"


def _lookup_row(cache_id: str, seller_id: str, domain: str = "example.com"):
    return {
        "cache_id": cache_id,
        "seller_id": seller_id,
        "domain": domain,
        "seller_data": {"seller_id": seller_id, "tags": ["a"]},
        "created_at": TS,
        "updated_at": TS,
    }


def test_returned_rows_are_copies(memory_provider: MemoryProvider) -> None:
    memory_provider.upsert_many(
        SELLER_LOOKUP_TABLE, [_lookup_row("s", "1")], ("cache_id", "seller_id"), ("seller_data",)
    )

    row = memory_provider.query(SELLER_LOOKUP_TABLE)[0]
    row["seller_data"]["tags"].append("mutated")

    assert memory_provider.query(SELLER_LOOKUP_TABLE)[0]["seller_data"]["tags"] == ["a"]


def test_covering_index_answers_domain_and_seller_lookups(memory_provider: MemoryProvider) -> None:
    rows = [_lookup_row("s1", str(i)) for i in range(50)] + [_lookup_row("s2", "7", "other.com")]
    memory_provider.upsert_many(SELLER_LOOKUP_TABLE, rows, ("cache_id", "seller_id"), ("seller_data",))

    table = memory_provider._table(SELLER_LOOKUP_TABLE)
    candidates = table.candidates(normalize_where({"domain": "example.com", "seller_id": "7"}))

    assert [c["cache_id"] for c in candidates] == ["s1"]
    assert memory_provider.query(
        SELLER_LOOKUP_TABLE, Query(where={"domain": "other.com", "seller_id": "7"})
    )[0]["cache_id"] == "s2"


def test_index_follows_deletes_and_updates(memory_provider: MemoryProvider) -> None:
    memory_provider.upsert_many(
        SELLER_LOOKUP_TABLE,
        [_lookup_row("s1", "1"), _lookup_row("s1", "2")],
        ("cache_id", "seller_id"),
        ("domain",),
    )
    memory_provider.upsert_many(
        SELLER_LOOKUP_TABLE,
        [_lookup_row("s1", "1", domain="moved.com")],
        ("cache_id", "seller_id"),
        ("domain",),
    )
    memory_provider.delete(SELLER_LOOKUP_TABLE, {"seller_id": "2"})

    assert memory_provider.query(SELLER_LOOKUP_TABLE, Query(where={"domain": "example.com", "seller_id": "1"})) == []
    assert memory_provider.count(SELLER_LOOKUP_TABLE, {"domain": "moved.com", "seller_id": "1"}) == 1
    assert memory_provider.count(SELLER_LOOKUP_TABLE) == 1


def test_execute_supports_only_count(memory_provider: MemoryProvider) -> None:
    memory_provider.upsert_many(
        SELLER_LOOKUP_TABLE, [_lookup_row("s", "1")], ("cache_id", "seller_id"), ("seller_data",)
    )

    assert memory_provider.execute(f"SELECT COUNT(*) FROM {SELLER_LOOKUP_TABLE}") == [{"count": 1}]
    assert memory_provider.execute("select count(*) as n from ads_txt_cache;") == [{"count": 0}]
    with pytest.raises(UnsupportedStatementError):
        memory_provider.execute("DELETE FROM ads_txt_cache")


def test_clear_keeps_tables_usable(memory_provider: MemoryProvider) -> None:
    memory_provider.upsert_many(
        SELLER_LOOKUP_TABLE, [_lookup_row("s", "1")], ("cache_id", "seller_id"), ("seller_data",)
    )
    memory_provider.clear()
    memory_provider.upsert_many(
        SELLER_LOOKUP_TABLE, [_lookup_row("s", "1")], ("cache_id", "seller_id"), ("seller_data",)
    )

    assert memory_provider.count(SELLER_LOOKUP_TABLE, {"domain": "example.com"}) == 1


def test_reads_of_an_unknown_table_fail_like_sql(memory_provider: MemoryProvider) -> None:
    for read in (
        lambda: memory_provider.query("gadgets"),
        lambda: memory_provider.count("gadgets"),
        lambda: memory_provider.delete("gadgets", {}),
    ):
        with pytest.raises(StorageError, match="no such table"):
            read()

    memory_provider.insert("gadgets", {"id": "g1", "size": 3})

    assert memory_provider.count("gadgets", {"size": {"gt": 1}}) == 1
