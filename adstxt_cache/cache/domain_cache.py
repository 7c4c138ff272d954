"""
Per-domain document caches for ads.txt and sellers.json.

A domain has at most one live cache row. Saves are upserts keyed by the
normalized domain: the row's id and created_at survive every refetch. Fetch
and content failures are recorded as statuses, never raised; storage errors
propagate to the caller unchanged.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Mapping, Optional, Union

from adstxt_cache.cache.parsers import AdsTxtContent, ContentShape, SellersJsonContent
from adstxt_cache.domain.models import (
    CacheEntry,
    CacheStatus,
    CacheWrite,
    FetchResult,
    normalize_domain,
    parse_timestamp,
    to_iso,
)
from adstxt_cache.errors import ContentFormatError, DuplicateKeyError
from adstxt_cache.storage.abstract import Query, Record, StorageProvider
from adstxt_cache.storage.schema import ADS_TXT_CACHE_TABLE, SELLERS_JSON_CACHE_TABLE
from adstxt_cache.utils.logging import get_logger

log = get_logger(__name__)

Clock = Callable[[], datetime]
Timestamp = Union[str, datetime]

DEFAULT_MAX_AGE_HOURS = 24.0


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def is_expired(
    last_updated: Timestamp,
    max_age_hours: float = DEFAULT_MAX_AGE_HOURS,
    now: Optional[datetime] = None,
) -> bool:
    """
    Whether a cache timestamp is older than `max_age_hours`.

    Parameters
    ----------
    last_updated : str | datetime
        The entry's `updated_at` (ISO-8601 string or datetime).
    max_age_hours : float
        Threshold; the entry expires once strictly more time has passed.
    now : datetime | None
        Reference time, defaults to the current UTC time.

    Returns
    -------
    bool
        True when the absolute elapsed time exceeds the threshold. Timestamps
        in the future count by their distance too, so clock skew cannot pin an
        entry as fresh forever.
    """
    reference = now or _utc_now()
    if reference.tzinfo is None:
        reference = reference.replace(tzinfo=timezone.utc)
    elapsed = abs((reference - parse_timestamp(last_updated)).total_seconds())
    return elapsed / 3600.0 > max_age_hours


@dataclass
class PurgeResult:
    table: str
    identified: int = 0
    deleted: int = 0
    dry_run: bool = False


class DomainCache:
    """
    Cache of fetched documents for one document type.

    Parameters
    ----------
    storage : StorageProvider
        Provider or adapter the rows live in.
    table : str
        Cache table name.
    shape : ContentShape
        Decodes and validates fetched bodies.
    now : callable | None
        Clock returning an aware UTC datetime; injectable for tests.
    max_age_hours : float
        Default freshness threshold for `is_fresh`.
    """

    not_found_message = "Document not found at {url}"

    def __init__(
        self,
        storage: StorageProvider,
        table: str,
        shape: ContentShape,
        now: Optional[Clock] = None,
        max_age_hours: float = DEFAULT_MAX_AGE_HOURS,
    ) -> None:
        self.storage = storage
        self.table = table
        self.shape = shape
        self.max_age_hours = max_age_hours
        self._now = now or _utc_now

    def _timestamp(self) -> str:
        return to_iso(self._now())

    def _find_row(self, domain: str) -> Optional[Record]:
        rows = self.storage.query(self.table, Query(where={"domain": domain}, limit=1))
        return rows[0] if rows else None

    def get_by_domain(self, domain: str) -> Optional[CacheEntry]:
        row = self._find_row(normalize_domain(domain))
        return CacheEntry.from_row(row) if row is not None else None

    def is_expired(self, last_updated: Timestamp, max_age_hours: float = DEFAULT_MAX_AGE_HOURS) -> bool:
        return is_expired(last_updated, max_age_hours, now=self._now())

    def is_fresh(self, entry: Optional[CacheEntry], max_age_hours: Optional[float] = None) -> bool:
        if entry is None:
            return False
        hours = self.max_age_hours if max_age_hours is None else max_age_hours
        return not self.is_expired(entry.last_updated, hours)

    def save_cache(self, entry: Union[CacheWrite, Mapping[str, Any]]) -> CacheEntry:
        """
        Upsert the cache row for the entry's domain.

        An existing row keeps its id and created_at; content, status,
        status_code, url, error_message and updated_at are overwritten. When
        another writer inserts the same domain between our lookup and insert,
        the save falls back to updating that row (last writer wins).
        """
        write = entry if isinstance(entry, CacheWrite) else CacheWrite.model_validate(dict(entry))
        now = self._timestamp()
        fields: Dict[str, Any] = {
            "content": write.content,
            "status": write.status.value,
            "status_code": write.status_code,
            "url": write.url,
            "error_message": write.error_message,
        }

        row = self._update_existing(write.domain, fields, now)
        if row is None:
            record = {"id": str(uuid.uuid4()), "domain": write.domain, **fields}
            record["created_at"] = record["updated_at"] = now
            try:
                row = self.storage.insert(self.table, record)
            except DuplicateKeyError:
                log.info(
                    "Concurrent insert for domain, updating instead",
                    extra={"table": self.table, "domain": write.domain},
                )
                row = self._update_existing(write.domain, fields, now)
                if row is None:
                    raise

        saved = CacheEntry.from_row(row)
        log.info(
            "Cache saved",
            extra={"table": self.table, "domain": saved.domain, "status": saved.status.value},
        )
        self._after_save(saved)
        return saved

    def _update_existing(self, domain: str, fields: Dict[str, Any], now: str) -> Optional[Record]:
        existing = self._find_row(domain)
        if existing is None:
            return None
        # Keep updated_at >= created_at even if the clock stepped back.
        updated_at = max(now, existing["created_at"])
        return self.storage.update(self.table, existing["id"], {**fields, "updated_at": updated_at})

    def _after_save(self, entry: CacheEntry) -> None:
        """Hook for derived data maintenance."""

    def classify(self, result: FetchResult) -> CacheWrite:
        """Map a fetch outcome to the cache write it should produce."""
        url = result.url or result.domain
        code = result.status_code
        base = {"domain": result.domain, "status_code": code, "url": result.url}

        if code == 404:
            return CacheWrite(
                **base,
                status=CacheStatus.NOT_FOUND,
                error_message=self.not_found_message.format(url=url),
            )
        if result.error:
            return CacheWrite(**base, status=CacheStatus.ERROR, error_message=result.error)
        if code is not None and not 200 <= code < 300:
            return CacheWrite(**base, status=CacheStatus.ERROR, error_message=f"HTTP error {code}")
        try:
            content = self.shape.normalize(result.body if result.body is not None else "")
        except ContentFormatError as exc:
            return CacheWrite(**base, status=CacheStatus.INVALID_FORMAT, error_message=str(exc))
        return CacheWrite(**base, status=CacheStatus.SUCCESS, content=content)

    def record_fetch(self, result: FetchResult) -> CacheEntry:
        """
        Store the outcome of a fetch attempt.

        Transport errors, non-2xx responses and malformed documents become
        `error` / `not_found` / `invalid_format` rows; only storage failures
        raise.
        """
        write = self.classify(result)
        if write.status is not CacheStatus.SUCCESS:
            log.warning(
                "Fetch recorded as failure",
                extra={
                    "table": self.table,
                    "domain": write.domain,
                    "status": write.status.value,
                    "error_message": write.error_message,
                },
            )
        return self.save_cache(write)

    def parsed_content(self, entry: Optional[CacheEntry]) -> Any:
        """Decoded content of a success entry, or None."""
        if entry is None or not entry.is_success or entry.content is None:
            return None
        return self.shape.parse(entry.content)

    def status_counts(self) -> Dict[str, int]:
        return {
            status.value: self.storage.count(self.table, {"status": status.value})
            for status in CacheStatus
        }

    def purge_failures(self, older_than_days: float, dry_run: bool = False) -> PurgeResult:
        """
        Delete non-success entries not updated within the retention window.

        Success rows are never purged; they are refreshed in place instead.
        """
        cutoff = to_iso(self._now() - timedelta(days=older_than_days))
        where = {"status": {"ne": CacheStatus.SUCCESS.value}, "updated_at": {"lt": cutoff}}
        result = PurgeResult(table=self.table, dry_run=dry_run)
        result.identified = self.storage.count(self.table, where)
        if not dry_run and result.identified:
            result.deleted = self.storage.delete(self.table, where)
        log.info(
            "Purged failed cache entries",
            extra={
                "table": self.table,
                "cutoff": cutoff,
                "identified": result.identified,
                "deleted": result.deleted,
                "dry_run": dry_run,
            },
        )
        return result


class AdsTxtCache(DomainCache):
    not_found_message = "Ads.txt not found at {url}"

    def __init__(
        self,
        storage: StorageProvider,
        now: Optional[Clock] = None,
        max_age_hours: float = DEFAULT_MAX_AGE_HOURS,
    ) -> None:
        super().__init__(storage, ADS_TXT_CACHE_TABLE, AdsTxtContent(), now, max_age_hours)


class SellersJsonCache(DomainCache):
    """
    sellers.json cache wired to the seller lookup index.

    Every save refreshes the domain's lookup rows so point lookups never see a
    superseded snapshot. Without an explicit `lookup_index` one is built over
    the same storage and clock.
    """

    not_found_message = "sellers.json file not found"

    def __init__(
        self,
        storage: StorageProvider,
        lookup_index: Optional[Any] = None,
        now: Optional[Clock] = None,
        max_age_hours: float = DEFAULT_MAX_AGE_HOURS,
    ) -> None:
        super().__init__(storage, SELLERS_JSON_CACHE_TABLE, SellersJsonContent(), now, max_age_hours)
        if lookup_index is None:
            # Local import: the lookup package imports the cache parsers.
            from adstxt_cache.lookup.seller_index import SellerLookupIndex

            lookup_index = SellerLookupIndex(storage, now=now)
        self.lookup_index = lookup_index

    def _after_save(self, entry: CacheEntry) -> None:
        self.lookup_index.refresh_snapshot(entry)


__all__ = [
    "DEFAULT_MAX_AGE_HOURS",
    "PurgeResult",
    "DomainCache",
    "AdsTxtCache",
    "SellersJsonCache",
    "is_expired",
]
