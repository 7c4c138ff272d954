"""
Seller lookup index.

Flattens the `sellers` array of cached sellers.json snapshots into one row per
(snapshot id, seller id), so "does domain D declare seller S" is an indexed
point lookup on (domain, seller_id) instead of parsing a multi-megabyte
document. Rows are derived data: written by the incremental refresh on every
sellers.json save and by the backfill, never edited by hand.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from adstxt_cache.cache.parsers import SellersJsonContent
from adstxt_cache.domain.models import (
    CacheEntry,
    SellerRecord,
    normalize_domain,
    parse_timestamp,
    to_iso,
)
from adstxt_cache.storage.abstract import Order, Query, Record, StorageProvider
from adstxt_cache.storage.schema import SELLER_LOOKUP_TABLE
from adstxt_cache.utils.logging import get_logger

log = get_logger(__name__)

DEFAULT_CHUNK_SIZE = 1000
# Keeps IN lists well under SQLite's bound-parameter limit.
_LOOKUP_CHUNK = 500

CONFLICT_FIELDS = ("cache_id", "seller_id")
UPDATE_FIELDS = ("domain", "seller_data", "updated_at")


@dataclass
class SnapshotResult:
    cache_id: str
    domain: str
    inserted: int = 0
    skipped: int = 0
    removed: int = 0

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


def normalize_seller_id(value: Any) -> Optional[str]:
    """
    Seller ids are compared as trimmed strings; JSON numbers are accepted.

    Returns None for missing, blank or non-scalar ids.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        value = str(value)
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def _is_utf8_encodable(seller: Dict[str, Any]) -> bool:
    # JSON escapes such as "\\ud800" decode to lone surrogates no backend can store.
    try:
        json.dumps(seller, ensure_ascii=False).encode("utf-8")
    except UnicodeEncodeError:
        return False
    return True


def extract_sellers(sellers: Iterable[Any], domain: str = "") -> Tuple[Dict[str, Dict[str, Any]], int]:
    """
    Deduplicate a sellers array by seller id.

    Parameters
    ----------
    sellers : iterable
        The raw `sellers` array of one snapshot.
    domain : str
        Only used to give skip warnings some context.

    Returns
    -------
    (dict, int)
        Seller objects keyed by normalized id, the later occurrence winning
        for repeated ids, and the number of malformed entries skipped.
    """
    unique: Dict[str, Dict[str, Any]] = {}
    skipped = 0
    for position, seller in enumerate(sellers):
        if not isinstance(seller, dict):
            skipped += 1
            log.warning(
                "Skipping malformed seller record",
                extra={"domain": domain, "position": position, "reason": "not an object"},
            )
            continue
        seller_id = normalize_seller_id(seller.get("seller_id"))
        if seller_id is None:
            skipped += 1
            log.warning(
                "Skipping malformed seller record",
                extra={"domain": domain, "position": position, "reason": "missing seller_id"},
            )
            continue
        if not _is_utf8_encodable(seller):
            skipped += 1
            log.warning(
                "Skipping malformed seller record",
                extra={"domain": domain, "position": position, "reason": "not valid UTF-8"},
            )
            continue
        unique[seller_id] = seller
    return unique, skipped


def _chunks(items: Sequence[Any], size: int) -> Iterable[Sequence[Any]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


class SellerLookupIndex:
    """
    Maintains and queries the `sellers_json_seller_lookup` table.

    Parameters
    ----------
    storage : StorageProvider
        Provider or adapter holding the lookup table.
    chunk_size : int
        Rows per `upsert_many` call; bounds statement size and memory.
    now : callable | None
        Clock returning an aware UTC datetime; injectable for tests.
    """

    table = SELLER_LOOKUP_TABLE

    def __init__(
        self,
        storage: StorageProvider,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        now: Optional[Callable[[], datetime]] = None,
    ) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self.storage = storage
        self.chunk_size = chunk_size
        self.shape = SellersJsonContent()
        self._now = now or (lambda: datetime.now(timezone.utc))

    def _timestamp(self) -> str:
        return to_iso(self._now())

    def _refresh_timestamp(self, domain: str) -> str:
        """
        A timestamp strictly newer than every row of the domain.

        The sweep deletes rows older than the refresh, so a clock that stepped
        backwards must not leave superseded rows behind.
        """
        ts = self._timestamp()
        newest = self.storage.query(
            self.table,
            Query(where={"domain": domain}, order=Order("updated_at", "DESC"), limit=1),
        )
        if newest and newest[0]["updated_at"] >= ts:
            ts = to_iso(parse_timestamp(newest[0]["updated_at"]) + timedelta(microseconds=1))
        return ts

    def index_snapshot(self, entry: CacheEntry, timestamp: Optional[str] = None) -> SnapshotResult:
        """
        Upsert one row per seller of a success snapshot.

        On conflict the row's domain, seller_data and updated_at are
        overwritten and created_at is kept, so re-indexing the same snapshot
        is idempotent. Raises ContentFormatError when the cached content is
        not a JSON object.
        """
        result = SnapshotResult(cache_id=entry.id, domain=entry.domain)
        if not entry.is_success or entry.content is None:
            return result

        sellers, result.skipped = extract_sellers(self.shape.sellers(entry.content), entry.domain)
        ts = timestamp or self._timestamp()
        domain = normalize_domain(entry.domain)
        rows: List[Record] = [
            {
                "cache_id": entry.id,
                "seller_id": seller_id,
                "domain": domain,
                "seller_data": seller,
                "created_at": ts,
                "updated_at": ts,
            }
            for seller_id, seller in sellers.items()
        ]
        for chunk in _chunks(rows, self.chunk_size):
            result.inserted += self.storage.upsert_many(
                self.table, chunk, CONFLICT_FIELDS, UPDATE_FIELDS
            )
        log.debug(
            "Snapshot indexed",
            extra={"cache_id": entry.id, "domain": domain, "inserted": result.inserted, "skipped": result.skipped},
        )
        return result

    def refresh_snapshot(self, entry: CacheEntry) -> SnapshotResult:
        """
        Bring the domain's lookup rows in line with its latest cache entry.

        Rows are upserted with one refresh timestamp, then every row of the
        domain older than that timestamp is deleted: sellers dropped from the
        document and rows of superseded snapshots. A non-success entry removes
        the domain's rows.
        """
        if not entry.is_success:
            result = SnapshotResult(cache_id=entry.id, domain=entry.domain)
            result.removed = self.remove_domain(entry.domain)
            return result

        domain = normalize_domain(entry.domain)
        ts = self._refresh_timestamp(domain)
        result = self.index_snapshot(entry, ts)
        result.removed = self.storage.delete(self.table, {"domain": domain, "updated_at": {"lt": ts}})
        log.info("Seller lookup refreshed", extra=result.as_dict())
        return result

    def _to_record(self, row: Record) -> SellerRecord:
        return SellerRecord(
            cache_id=row["cache_id"],
            domain=row["domain"],
            seller_id=row["seller_id"],
            seller_data=row["seller_data"],
            updated_at=row.get("updated_at"),
        )

    def find_seller(self, domain: str, seller_id: Any) -> Optional[SellerRecord]:
        """Point lookup on (domain, seller_id); the newest row wins."""
        normalized_id = normalize_seller_id(seller_id)
        if normalized_id is None:
            return None
        rows = self.storage.query(
            self.table,
            Query(
                where={"domain": normalize_domain(domain), "seller_id": normalized_id},
                order=Order("updated_at", "DESC"),
                limit=1,
            ),
        )
        return self._to_record(rows[0]) if rows else None

    def find_sellers(self, domain: str, seller_ids: Iterable[Any]) -> Dict[str, SellerRecord]:
        """Resolve many seller ids of one domain; ids not found are absent from the result."""
        ids = sorted({sid for sid in map(normalize_seller_id, seller_ids) if sid is not None})
        normalized_domain = normalize_domain(domain)
        found: Dict[str, SellerRecord] = {}
        for chunk in _chunks(ids, _LOOKUP_CHUNK):
            rows = self.storage.query(
                self.table,
                Query(
                    where={"domain": normalized_domain, "seller_id": {"in": list(chunk)}},
                    order=Order("updated_at", "ASC"),
                ),
            )
            # Ascending order: newer rows overwrite older ones.
            for row in rows:
                found[row["seller_id"]] = self._to_record(row)
        return found

    def count(self, domain: Optional[str] = None) -> int:
        where = {"domain": normalize_domain(domain)} if domain else None
        return self.storage.count(self.table, where)

    def remove_domain(self, domain: str) -> int:
        removed = self.storage.delete(self.table, {"domain": normalize_domain(domain)})
        if removed:
            log.info("Seller lookup rows removed", extra={"domain": domain, "removed": removed})
        return removed

    def clear(self) -> int:
        removed = self.storage.delete(self.table, {})
        log.warning("Seller lookup table cleared", extra={"removed": removed})
        return removed


__all__ = [
    "DEFAULT_CHUNK_SIZE",
    "SnapshotResult",
    "SellerLookupIndex",
    "extract_sellers",
    "normalize_seller_id",
]
