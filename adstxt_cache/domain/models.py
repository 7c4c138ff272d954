"""
Domain models for the ads.txt / sellers.json cache core.

Defines the cache entry shapes (what the domain caches read and write), the
fetch result handed over by the fetch collaborator, and the seller lookup
results. Storage rows travel as plain dicts; these models validate them at the
cache and lookup boundaries.
"""
from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator


def utc_now_iso() -> str:
    """Current UTC time in the fixed ISO-8601 format all tables store."""
    return to_iso(datetime.now(timezone.utc))


def to_iso(moment: datetime) -> str:
    """Format a datetime so lexicographic order equals chronological order."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")


def parse_timestamp(value: Union[str, datetime]) -> datetime:
    """Parse a stored timestamp; naive values are taken as UTC."""
    moment = value if isinstance(value, datetime) else datetime.fromisoformat(value)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


def normalize_domain(domain: str) -> str:
    """Trim and lowercase a domain; the cache key for both caches."""
    normalized = domain.strip().lower()
    if not normalized:
        raise ValueError("domain must not be empty")
    return normalized


class CacheStatus(str, enum.Enum):
    SUCCESS = "success"
    ERROR = "error"
    NOT_FOUND = "not_found"
    INVALID_FORMAT = "invalid_format"


_DEFAULT_ERROR_MESSAGES = {
    CacheStatus.ERROR: "Fetch failed",
    CacheStatus.NOT_FOUND: "Document not found",
    CacheStatus.INVALID_FORMAT: "Document has an invalid format",
}


class CacheWrite(BaseModel):
    """
    Input of `DomainCache.save_cache`.

    Enforces the status invariants: content only with `success` (and required
    then), error_message only without it.
    """

    domain: str = Field(..., description="Domain as supplied; normalized on validation.")
    status: CacheStatus
    content: Optional[str] = None
    error_message: Optional[str] = None
    status_code: Optional[int] = Field(None, description="HTTP status of the fetch.")
    url: Optional[str] = Field(None, description="URL the document was fetched from.")

    model_config = {"frozen": True}

    @field_validator("domain")
    @classmethod
    def _normalize_domain(cls, value: str) -> str:
        return normalize_domain(value)

    @model_validator(mode="before")
    @classmethod
    def _apply_status_invariants(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        status = CacheStatus(data.get("status"))
        if status is CacheStatus.SUCCESS:
            if data.get("content") is None:
                raise ValueError("content is required when status is 'success'")
            data["error_message"] = None
        else:
            data["content"] = None
            if not data.get("error_message"):
                data["error_message"] = _DEFAULT_ERROR_MESSAGES[status]
        return data


class CacheEntry(BaseModel):
    """
    One live cache row for a domain (ads.txt or sellers.json flavor).
    """

    id: str
    domain: str
    status: CacheStatus
    content: Optional[str] = None
    error_message: Optional[str] = None
    status_code: Optional[int] = None
    url: Optional[str] = None
    created_at: str
    updated_at: str

    model_config = {"frozen": True}

    @property
    def last_updated(self) -> str:
        return self.updated_at

    @property
    def is_success(self) -> bool:
        return self.status is CacheStatus.SUCCESS

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "CacheEntry":
        return cls.model_validate(row)


class FetchResult(BaseModel):
    """
    What the fetch collaborator hands over after trying to download a document.

    `error` carries a transport failure (DNS, timeout, TLS); in that case
    `status_code` is usually None.
    """

    domain: str
    body: Optional[Union[bytes, str]] = None
    url: Optional[str] = None
    status_code: Optional[int] = None
    error: Optional[str] = None

    model_config = {"frozen": True}


class SellerRecord(BaseModel):
    """A single seller resolved through the seller lookup index."""

    cache_id: str
    domain: str
    seller_id: str
    seller_data: Dict[str, Any]
    updated_at: Optional[str] = None

    model_config = {"frozen": True}

    @property
    def seller_type(self) -> Optional[str]:
        return self.seller_data.get("seller_type")

    @property
    def seller_domain(self) -> Optional[str]:
        return self.seller_data.get("domain")

    @property
    def is_confidential(self) -> bool:
        return bool(self.seller_data.get("is_confidential"))


__all__ = [
    "CacheStatus",
    "CacheWrite",
    "CacheEntry",
    "FetchResult",
    "SellerRecord",
    "normalize_domain",
    "parse_timestamp",
    "to_iso",
    "utc_now_iso",
]
