from __future__ import annotations

import json

from adstxt_cache.cache.domain_cache import SellersJsonCache
from adstxt_cache.config import Settings
from adstxt_cache.migration import MigrationRunner, run_migration
from adstxt_cache.storage.memory import MemoryProvider
from adstxt_cache.storage.schema import (
    ADS_TXT_CACHE_TABLE,
    SELLER_LOOKUP_TABLE,
    SELLERS_JSON_CACHE_TABLE,
)

SELLERS = [{"seller_id": str(i), "seller_type": "INTERMEDIARY"} for i in range(12)]


def _settings(**overrides) -> Settings:
    return Settings(_env_file=None, app_env="test", **overrides)


def _seed(storage, domains) -> None:
    # Snapshots only; the lookup table is left for the backfill.
    cache = SellersJsonCache(storage)
    for domain in domains:
        cache.save_cache(
            {"domain": domain, "status": "success", "content": json.dumps({"sellers": SELLERS})}
        )
    cache.lookup_index.clear()


def test_migration_creates_schema_and_backfills() -> None:
    storage = MemoryProvider()
    storage.initialize()
    _seed(storage, ["a.com", "b.com", "c.com"])

    report = MigrationRunner(storage, _settings(backfill_batch_size=2, seller_upsert_chunk_size=5)).run()

    assert report.provider == "memory"
    assert report.schema_initialized
    assert not report.data_migration_skipped
    assert report.backfill.snapshots_processed == 3
    assert report.backfill.sellers_inserted == 36
    assert report.backfill.batches == 2
    assert report.profile is not None and report.profile.label == "seller-lookup-backfill"
    assert report.tables == {
        ADS_TXT_CACHE_TABLE: 0,
        SELLERS_JSON_CACHE_TABLE: 3,
        SELLER_LOOKUP_TABLE: 36,
    }
    assert report.finished_at is not None


def test_skip_flag_from_settings_leaves_data_untouched() -> None:
    storage = MemoryProvider()
    storage.initialize()
    _seed(storage, ["a.com"])

    report = MigrationRunner(storage, _settings(skip_data_migration=True)).run()

    assert report.data_migration_skipped
    assert report.backfill is None
    assert report.profile is None
    assert report.tables[SELLER_LOOKUP_TABLE] == 0


def test_explicit_argument_overrides_skip_setting() -> None:
    storage = MemoryProvider()
    storage.initialize()
    _seed(storage, ["a.com"])

    report = MigrationRunner(storage, _settings(skip_data_migration=True)).run(skip_data_migration=False)

    assert report.backfill is not None
    assert report.tables[SELLER_LOOKUP_TABLE] == len(SELLERS)


def test_migration_is_repeatable() -> None:
    storage = MemoryProvider()
    storage.initialize()
    _seed(storage, ["a.com", "b.com"])
    runner = MigrationRunner(storage, _settings())

    first = runner.run()
    second = runner.run()

    assert first.tables == second.tables


def test_run_migration_builds_storage_from_settings() -> None:
    report = run_migration(_settings())

    assert report.provider == "memory"
    assert set(report.tables) == {ADS_TXT_CACHE_TABLE, SELLERS_JSON_CACHE_TABLE, SELLER_LOOKUP_TABLE}
    assert report.as_dict()["backfill"]["snapshots_total"] == 0
