"""
Batched backfill of the seller lookup index from cached sellers.json
snapshots.

An ETL job, not a transaction: snapshots are read in fixed-size pages ordered
by id, each snapshot's rows are upserted as they are extracted, and progress
is logged per batch. Interrupted runs resume from `next_offset`; re-running is
idempotent because every write is an upsert.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

from pydantic import ValidationError

from adstxt_cache.domain.models import CacheEntry, CacheStatus
from adstxt_cache.errors import ContentFormatError, StorageError
from adstxt_cache.lookup.seller_index import SellerLookupIndex
from adstxt_cache.storage.abstract import Order, Query, StorageProvider
from adstxt_cache.storage.schema import SELLERS_JSON_CACHE_TABLE
from adstxt_cache.utils.logging import get_logger

log = get_logger(__name__)

DEFAULT_BATCH_SIZE = 100


@dataclass
class BackfillProgress:
    """Cumulative counters of one backfill run."""

    snapshots_total: int = 0
    snapshots_processed: int = 0
    sellers_inserted: int = 0
    sellers_skipped: int = 0
    snapshots_failed: int = 0
    next_offset: int = 0
    batches: int = 0

    @property
    def complete(self) -> bool:
        return self.next_offset >= self.snapshots_total

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


class SellerLookupBackfill:
    """
    Rebuilds or tops up the lookup index from every success snapshot.

    Parameters
    ----------
    storage : StorageProvider
        Provider or adapter holding both the cache and the lookup table.
    index : SellerLookupIndex | None
        Index to write into; one is built on `storage` when omitted.
    batch_size : int
        Snapshots per page.
    """

    source_table = SELLERS_JSON_CACHE_TABLE

    def __init__(
        self,
        storage: StorageProvider,
        index: Optional[SellerLookupIndex] = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self.storage = storage
        self.index = index or SellerLookupIndex(storage)
        self.batch_size = batch_size

    def run(self, start_offset: int = 0, rebuild: bool = False) -> BackfillProgress:
        """
        Process snapshots from `start_offset` to the end.

        Malformed snapshots are logged and counted in `snapshots_failed`;
        malformed seller records in `sellers_skipped`. Storage errors
        propagate after logging the offset to resume from.
        """
        if start_offset < 0:
            raise ValueError("start_offset must be >= 0")
        if rebuild and start_offset:
            raise ValueError("rebuild clears the index and must start at offset 0")

        where = {"status": CacheStatus.SUCCESS.value}
        progress = BackfillProgress(
            snapshots_total=self.storage.count(self.source_table, where),
            next_offset=start_offset,
        )
        log.info(
            "Backfill started",
            extra={
                "snapshots_total": progress.snapshots_total,
                "start_offset": start_offset,
                "batch_size": self.batch_size,
                "rebuild": rebuild,
            },
        )
        if rebuild:
            self.index.clear()

        while True:
            try:
                rows = self.storage.query(
                    self.source_table,
                    Query(
                        where=where,
                        order=Order("id", "ASC"),
                        limit=self.batch_size,
                        offset=progress.next_offset,
                    ),
                )
                if not rows:
                    break
                for row in rows:
                    self._process(row, progress)
                    progress.next_offset += 1
            except StorageError:
                log.error(
                    "Backfill interrupted by storage error",
                    extra={"resume_offset": progress.next_offset, **progress.as_dict()},
                )
                raise

            progress.batches += 1
            log.info(
                f"Backfill batch {progress.batches}: "
                f"{progress.snapshots_processed}/{progress.snapshots_total} snapshots",
                extra=progress.as_dict(),
            )
            if len(rows) < self.batch_size:
                break

        log.info("Backfill finished", extra=progress.as_dict())
        return progress

    def _process(self, row: Dict[str, Any], progress: BackfillProgress) -> None:
        try:
            entry = CacheEntry.from_row(row)
            result = self.index.index_snapshot(entry)
        except (ContentFormatError, ValidationError) as exc:
            progress.snapshots_failed += 1
            log.warning(
                "Skipping unreadable snapshot",
                extra={"cache_id": row.get("id"), "domain": row.get("domain"), "error": str(exc)},
            )
            return
        progress.snapshots_processed += 1
        progress.sellers_inserted += result.inserted
        progress.sellers_skipped += result.skipped


__all__ = [
    "DEFAULT_BATCH_SIZE",
    "BackfillProgress",
    "SellerLookupBackfill",
]
