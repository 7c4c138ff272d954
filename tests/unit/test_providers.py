"""
Contract tests run against every provider that needs no external service.
"""

from __future__ import annotations

import pytest

from adstxt_cache.errors import (
    DuplicateKeyError,
    InvalidFilterError,
    StorageError,
    UnknownOperatorError,
)
from adstxt_cache.storage.abstract import Order, Query, StorageProvider
from adstxt_cache.storage.memory import MemoryProvider
from adstxt_cache.storage.schema import (
    ADS_TXT_CACHE_TABLE,
    SELLER_LOOKUP_TABLE,
    SELLERS_JSON_CACHE_TABLE,
)
from adstxt_cache.storage.sqlite import SqliteProvider

TS1 = "2024-01-01T00:00:00.000000+00:00"
TS2 = "2024-01-02T00:00:00.000000+00:00"
TS3 = "2024-01-03T00:00:00.000000+00:00"

# Operands SQLite would coerce through column affinity.
MISTYPED_FILTERS = [
    {"status_code": "200"},
    {"status_code": {"in": [200, "500"]}},
    {"domain": {"gt": 1}},
    {"url": {"ne": 0}},
    {"colour": "red"},
]


def _cache_row(id: str, domain: str, status: str = "success", **overrides):
    row = {
        "id": id,
        "domain": domain,
        "status": status,
        "content": "x, 1, DIRECT" if status == "success" else None,
        "error_message": None if status == "success" else "failed",
        "status_code": 200 if status == "success" else 500,
        "url": f"https://{domain}/ads.txt",
        "created_at": TS1,
        "updated_at": TS1,
    }
    row.update(overrides)
    return row


def _seed(storage: StorageProvider) -> None:
    storage.insert(ADS_TXT_CACHE_TABLE, _cache_row("id-3", "c.example", updated_at=TS3))
    storage.insert(ADS_TXT_CACHE_TABLE, _cache_row("id-1", "a.example", updated_at=TS2))
    storage.insert(ADS_TXT_CACHE_TABLE, _cache_row("id-2", "b.example", status="error"))
    storage.insert(
        ADS_TXT_CACHE_TABLE,
        _cache_row("id-4", "d.example", status="not_found", status_code=None, url=None),
    )


def _ids(rows):
    return [row["id"] for row in rows]


def test_providers_satisfy_the_protocol(storage: StorageProvider) -> None:
    assert isinstance(storage, StorageProvider)
    assert storage.name in ("memory", "sqlite")


def test_initialize_is_idempotent(storage: StorageProvider) -> None:
    storage.initialize()
    storage.initialize()

    assert storage.query(ADS_TXT_CACHE_TABLE) == []


def test_insert_returns_the_full_stored_record(storage: StorageProvider) -> None:
    stored = storage.insert(
        ADS_TXT_CACHE_TABLE,
        {
            "id": "id-1",
            "domain": "a.example",
            "status": "error",
            "error_message": "boom",
            "created_at": TS1,
            "updated_at": TS1,
        },
    )

    assert stored == {
        "id": "id-1",
        "domain": "a.example",
        "content": None,
        "status": "error",
        "status_code": None,
        "url": None,
        "error_message": "boom",
        "created_at": TS1,
        "updated_at": TS1,
    }


def test_duplicate_id_and_unique_domain_raise(storage: StorageProvider) -> None:
    storage.insert(ADS_TXT_CACHE_TABLE, _cache_row("id-1", "a.example"))

    with pytest.raises(DuplicateKeyError):
        storage.insert(ADS_TXT_CACHE_TABLE, _cache_row("id-1", "other.example"))
    with pytest.raises(DuplicateKeyError):
        storage.insert(ADS_TXT_CACHE_TABLE, _cache_row("id-2", "a.example"))

    assert storage.count(ADS_TXT_CACHE_TABLE) == 1


def test_status_check_constraint(storage: StorageProvider) -> None:
    with pytest.raises(StorageError):
        storage.insert(ADS_TXT_CACHE_TABLE, _cache_row("id-1", "a.example", status="stale"))


def test_unknown_column_is_rejected(storage: StorageProvider) -> None:
    with pytest.raises(StorageError):
        storage.insert(ADS_TXT_CACHE_TABLE, {**_cache_row("id-1", "a.example"), "colour": "red"})


def test_update_is_partial_and_never_creates(storage: StorageProvider) -> None:
    _seed(storage)

    updated = storage.update(ADS_TXT_CACHE_TABLE, "id-2", {"status_code": 503, "updated_at": TS3})
    missing = storage.update(ADS_TXT_CACHE_TABLE, "nope", {"status_code": 503})

    assert updated is not None
    assert updated["status_code"] == 503
    assert updated["updated_at"] == TS3
    assert updated["domain"] == "b.example"
    assert updated["created_at"] == TS1
    assert missing is None
    assert storage.get_by_id(ADS_TXT_CACHE_TABLE, "nope") is None


def test_update_cannot_steal_a_unique_domain(storage: StorageProvider) -> None:
    _seed(storage)

    with pytest.raises(DuplicateKeyError):
        storage.update(ADS_TXT_CACHE_TABLE, "id-2", {"domain": "a.example"})


def test_query_defaults_to_primary_key_order(storage: StorageProvider) -> None:
    _seed(storage)

    assert _ids(storage.query(ADS_TXT_CACHE_TABLE)) == ["id-1", "id-2", "id-3", "id-4"]


def test_query_filters_sorts_and_paginates(storage: StorageProvider) -> None:
    _seed(storage)

    newest_first = storage.query(ADS_TXT_CACHE_TABLE, Query(order=Order("updated_at", "DESC")))
    failures = storage.query(
        ADS_TXT_CACHE_TABLE,
        Query(where={"status": {"ne": "success"}}, order=Order("status_code", "ASC")),
    )
    page = storage.query(ADS_TXT_CACHE_TABLE, Query(limit=2, offset=1))
    tail = storage.query(ADS_TXT_CACHE_TABLE, Query(offset=3))

    # id-2 and id-4 share TS1; the primary key breaks the tie.
    assert _ids(newest_first) == ["id-3", "id-1", "id-2", "id-4"]
    assert _ids(failures) == ["id-4", "id-2"]
    assert _ids(page) == ["id-2", "id-3"]
    assert _ids(tail) == ["id-4"]


def test_query_with_nothing_matching_returns_empty_list(storage: StorageProvider) -> None:
    _seed(storage)

    assert storage.query(ADS_TXT_CACHE_TABLE, Query(where={"domain": "zzz.example"})) == []


def test_query_with_unknown_operator_raises(storage: StorageProvider) -> None:
    with pytest.raises(UnknownOperatorError):
        storage.query(ADS_TXT_CACHE_TABLE, Query(where={"domain": {"startswith": "a"}}))


def test_count_and_delete(storage: StorageProvider) -> None:
    _seed(storage)

    assert storage.count(ADS_TXT_CACHE_TABLE, {"status": "success"}) == 2
    assert storage.delete(ADS_TXT_CACHE_TABLE, {"status": {"in": ["error", "not_found"]}}) == 2
    assert _ids(storage.query(ADS_TXT_CACHE_TABLE)) == ["id-1", "id-3"]


def test_upsert_many_overwrites_only_update_fields(storage: StorageProvider) -> None:
    first = [
        {
            "cache_id": "snap-1",
            "seller_id": "1",
            "domain": "example.com",
            "seller_data": {"seller_id": "1", "name": "A"},
            "created_at": TS1,
            "updated_at": TS1,
        }
    ]
    second = [
        {**first[0], "seller_data": {"seller_id": "1", "name": "A2"}, "created_at": TS2, "updated_at": TS2},
        {**first[0], "seller_id": "2", "seller_data": {"seller_id": "2"}, "created_at": TS2, "updated_at": TS2},
    ]
    fields = ("cache_id", "seller_id")

    storage.upsert_many(SELLER_LOOKUP_TABLE, first, fields, ("domain", "seller_data", "updated_at"))
    written = storage.upsert_many(SELLER_LOOKUP_TABLE, second, fields, ("domain", "seller_data", "updated_at"))
    rows = storage.query(SELLER_LOOKUP_TABLE)

    assert written == 2
    assert [r["seller_id"] for r in rows] == ["1", "2"]
    assert [r["seller_data"].get("name") for r in rows] == ["A2", None]
    assert rows[0]["created_at"] == TS1
    assert rows[0]["updated_at"] == TS2


def test_upsert_many_needs_a_unique_conflict_target(storage: StorageProvider) -> None:
    with pytest.raises(StorageError):
        storage.upsert_many(
            SELLER_LOOKUP_TABLE,
            [{"cache_id": "s", "seller_id": "1", "domain": "d", "seller_data": {}, "created_at": TS1, "updated_at": TS1}],
            ("domain",),
            ("seller_data",),
        )


def test_upsert_many_by_unique_domain(storage: StorageProvider) -> None:
    _seed(storage)

    storage.upsert_many(
        SELLERS_JSON_CACHE_TABLE,
        [_cache_row("s-1", "a.example")],
        ("domain",),
        ("content", "updated_at"),
    )
    storage.upsert_many(
        SELLERS_JSON_CACHE_TABLE,
        [_cache_row("s-2", "a.example", content="new", updated_at=TS2)],
        ("domain",),
        ("content", "updated_at"),
    )
    rows = storage.query(SELLERS_JSON_CACHE_TABLE)

    assert len(rows) == 1
    assert rows[0]["id"] == "s-1"
    assert rows[0]["content"] == "new"


def test_seller_data_round_trips_as_a_dict(storage: StorageProvider) -> None:
    data = {"seller_id": "7", "name": "Ünïcode Média", "is_confidential": 0, "nested": {"a": [1, 2]}}
    storage.upsert_many(
        SELLER_LOOKUP_TABLE,
        [{"cache_id": "s", "seller_id": "7", "domain": "d", "seller_data": data, "created_at": TS1, "updated_at": TS1}],
        ("cache_id", "seller_id"),
        ("seller_data",),
    )

    assert storage.query(SELLER_LOOKUP_TABLE)[0]["seller_data"] == data


def test_lookup_table_has_no_id_access(storage: StorageProvider) -> None:
    with pytest.raises(StorageError):
        storage.get_by_id(SELLER_LOOKUP_TABLE, "x")


def test_clear_wipes_every_table(storage: StorageProvider) -> None:
    _seed(storage)
    storage.clear()

    assert storage.count(ADS_TXT_CACHE_TABLE) == 0


def test_memory_and_sqlite_agree(tmp_path) -> None:
    memory = MemoryProvider()
    lite = SqliteProvider(path=str(tmp_path / "parity.sqlite"))
    queries = [
        Query(),
        Query(where={"status_code": {"gte": 200, "lt": 600}}, order=Order("updated_at", "DESC")),
        Query(where={"url": None}),
        Query(where={"url": {"ne": None}}, order=Order("url", "ASC"), limit=2),
        Query(where={"domain": {"like": ".exam"}}, offset=1),
        Query(where=[{"status": {"in": ["success", "error"]}}, {"status_code": {"ne": 500}}]),
        Query(where={"status_code": {"like": "50"}}),
        Query(order=Order("status_code", "ASC")),
        Query(order=Order("status_code", "DESC")),
    ]
    try:
        for provider in (memory, lite):
            provider.initialize()
            _seed(provider)
        for query in queries:
            assert memory.query(ADS_TXT_CACHE_TABLE, query) == lite.query(ADS_TXT_CACHE_TABLE, query)
            assert memory.count(ADS_TXT_CACHE_TABLE, query.where) == lite.count(
                ADS_TXT_CACHE_TABLE, query.where
            )
        for where in MISTYPED_FILTERS:
            for provider in (memory, lite):
                with pytest.raises(InvalidFilterError):
                    provider.query(ADS_TXT_CACHE_TABLE, Query(where=where))
                with pytest.raises(InvalidFilterError):
                    provider.count(ADS_TXT_CACHE_TABLE, where)
                with pytest.raises(InvalidFilterError):
                    provider.delete(ADS_TXT_CACHE_TABLE, where)
            assert memory.count(ADS_TXT_CACHE_TABLE) == lite.count(ADS_TXT_CACHE_TABLE) == 4
    finally:
        lite.close()


def test_failed_upsert_many_leaves_no_partial_writes(storage: StorageProvider) -> None:
    row = {
        "cache_id": "snap-1",
        "seller_id": "1",
        "domain": "example.com",
        "seller_data": {"seller_id": "1", "name": "A"},
        "created_at": TS1,
        "updated_at": TS1,
    }
    fields = ("cache_id", "seller_id")
    update = ("domain", "seller_data", "updated_at")
    storage.upsert_many(SELLER_LOOKUP_TABLE, [row], fields, update)

    batch = [
        {**row, "seller_data": {"seller_id": "1", "name": "A2"}, "updated_at": TS2},
        {**row, "seller_id": "2", "seller_data": {"seller_id": "2"}},
        {**row, "seller_id": "3", "domain": None},
    ]
    with pytest.raises(StorageError):
        storage.upsert_many(SELLER_LOOKUP_TABLE, batch, fields, update)

    rows = storage.query(SELLER_LOOKUP_TABLE)
    assert [(r["seller_id"], r["seller_data"]["name"], r["updated_at"]) for r in rows] == [("1", "A", TS1)]


def test_text_that_is_not_utf8_encodable_is_a_storage_error(storage: StorageProvider) -> None:
    with pytest.raises(StorageError):
        storage.insert(ADS_TXT_CACHE_TABLE, _cache_row("id-1", "a.example", content="bad \ud800 text"))
    with pytest.raises(StorageError):
        storage.upsert_many(
            SELLER_LOOKUP_TABLE,
            [{"cache_id": "s", "seller_id": "1", "domain": "d", "seller_data": {"name": "\udfff"}, "created_at": TS1, "updated_at": TS1}],
            ("cache_id", "seller_id"),
            ("seller_data",),
        )

    assert storage.count(ADS_TXT_CACHE_TABLE) == 0
    assert storage.count(SELLER_LOOKUP_TABLE) == 0
