"""
Migration runner: schema creation, index creation and the seller lookup
backfill, in that order.

Usage (example from CLI):
    from adstxt_cache.migration import run_migration

    report = run_migration(rebuild=False)
    print(report.as_dict())

A schema failure is fatal and raised. The data step runs unless the
skip-data-migration flag is set; the flag is read once at start and a
running backfill is not cancellable.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from adstxt_cache.config import Settings, get_settings
from adstxt_cache.lookup.backfill import BackfillProgress, SellerLookupBackfill
from adstxt_cache.lookup.seller_index import SellerLookupIndex
from adstxt_cache.storage.abstract import StorageProvider
from adstxt_cache.storage.adapter import StorageAdapter
from adstxt_cache.storage.schema import TABLES
from adstxt_cache.utils.logging import get_logger
from adstxt_cache.utils.profiler import ProfileStats, profile_block

log = get_logger(__name__)


@dataclass
class MigrationReport:
    provider: str
    started_at: str
    finished_at: Optional[str] = None
    schema_initialized: bool = False
    data_migration_skipped: bool = False
    backfill: Optional[BackfillProgress] = None
    profile: Optional[ProfileStats] = None
    tables: Dict[str, int] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "provider": self.provider,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "schema_initialized": self.schema_initialized,
            "data_migration_skipped": self.data_migration_skipped,
            "backfill": self.backfill.as_dict() if self.backfill else None,
            "profile": self.profile.as_dict() if self.profile else None,
            "tables": dict(self.tables),
        }


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


class MigrationRunner:
    """
    Runs the schema and data migration against one provider.

    Parameters
    ----------
    storage : StorageProvider
        Provider or adapter to migrate.
    settings : Settings | None
        Batch sizes and the skip-data-migration default.
    """

    def __init__(self, storage: StorageProvider, settings: Optional[Settings] = None) -> None:
        self.storage = storage
        self.settings = settings or get_settings()

    def run(
        self,
        skip_data_migration: Optional[bool] = None,
        rebuild: bool = False,
        start_offset: int = 0,
    ) -> MigrationReport:
        """
        Initialize the schema, then backfill the seller lookup index.

        Parameters
        ----------
        skip_data_migration : bool | None
            Skip the backfill. Defaults to `settings.skip_data_migration`.
        rebuild : bool
            Clear the lookup table before the backfill.
        start_offset : int
            Resume offset of an interrupted backfill.

        Returns
        -------
        MigrationReport
            Provider name, backfill progress, profiler stats and row counts
            per table after the run.
        """
        skip = self.settings.skip_data_migration if skip_data_migration is None else skip_data_migration
        report = MigrationReport(provider=self.storage.name, started_at=_now_iso())

        log.info("[MIGRATION START] schema", extra={"provider": self.storage.name})
        self.storage.initialize()
        report.schema_initialized = True

        if skip:
            log.info("[MIGRATION] data migration skipped", extra={"provider": self.storage.name})
            report.data_migration_skipped = True
        else:
            index = SellerLookupIndex(self.storage, chunk_size=self.settings.seller_upsert_chunk_size)
            backfill = SellerLookupBackfill(
                self.storage, index=index, batch_size=self.settings.backfill_batch_size
            )
            with profile_block("seller-lookup-backfill") as stats:
                report.backfill = backfill.run(start_offset=start_offset, rebuild=rebuild)
            report.profile = stats

        report.tables = {name: self.storage.count(name) for name in TABLES}
        report.finished_at = _now_iso()
        log.info("[MIGRATION SUCCESS]", extra={"provider": self.storage.name, "tables": report.tables})
        return report


def run_migration(
    settings: Optional[Settings] = None,
    skip_data_migration: Optional[bool] = None,
    rebuild: bool = False,
    start_offset: int = 0,
) -> MigrationReport:
    """Build storage from settings, migrate it and release it."""
    settings = settings or get_settings()
    with StorageAdapter.from_settings(settings) as storage:
        return MigrationRunner(storage, settings).run(
            skip_data_migration=skip_data_migration,
            rebuild=rebuild,
            start_offset=start_offset,
        )


__all__ = ["MigrationReport", "MigrationRunner", "run_migration"]
