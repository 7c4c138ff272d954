"""
Content shapes for the two domain caches.

A shape turns a fetched body into the text stored in the cache row and rejects
bodies that do not look like the expected document. Rejections raise
ContentFormatError; the cache records them as `invalid_format`.

These checks only gate what gets cached. Record-level ads.txt validation
belongs to the rule engine, which consumes `parse()` output.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Union

from adstxt_cache.errors import ContentFormatError

Body = Union[bytes, str]


class ContentShape:
    """Base shape: UTF-8 text, BOM tolerant, no structural checks."""

    name: str = "text"

    def decode(self, body: Body) -> str:
        if isinstance(body, bytes):
            try:
                return body.decode("utf-8-sig")
            except UnicodeDecodeError as exc:
                raise ContentFormatError(f"{self.name} body is not valid UTF-8") from exc
        return self.ensure_utf8(body[1:] if body.startswith("\ufeff") else body)

    def ensure_utf8(self, text: str) -> str:
        """Reject text that cannot be stored as UTF-8 (lone surrogates)."""
        try:
            text.encode("utf-8")
        except UnicodeEncodeError as exc:
            raise ContentFormatError(f"{self.name} content is not valid UTF-8 text") from exc
        return text

    def normalize(self, body: Body) -> str:
        """Decode and validate a fetched body; returns the text to cache."""
        return self.decode(body)

    def parse(self, content: str) -> Any:
        return content


def data_lines(text: str) -> List[str]:
    """Non-empty, non-comment lines of an ads.txt file, stripped."""
    lines = []
    for line in text.splitlines():
        stripped = line.strip()
        if stripped and not stripped.startswith("#"):
            lines.append(stripped)
    return lines


class AdsTxtContent(ContentShape):
    """
    ads.txt text.

    Rejected when it has no data lines, or when more than half of the first
    five data lines have fewer than three comma-separated fields.
    """

    name = "ads.txt"
    sample_size = 5
    min_fields = 3

    def normalize(self, body: Body) -> str:
        text = self.decode(body)
        lines = data_lines(text)
        if not lines:
            raise ContentFormatError("Ads.txt file is empty or contains only comments")
        sample = lines[: self.sample_size]
        invalid = [line for line in sample if len(line.split(",")) < self.min_fields]
        if len(invalid) > len(sample) / 2:
            raise ContentFormatError("Ads.txt file appears to be in an invalid format")
        return text

    def parse(self, content: str) -> List[str]:
        return data_lines(content)


class SellersJsonContent(ContentShape):
    """
    sellers.json document, stored as compact JSON text.

    Accepted when it is an object with a `sellers` list, or at least a
    `contact_email` or `identifiers` entry.
    """

    name = "sellers.json"

    def load(self, text: str) -> Dict[str, Any]:
        try:
            document = json.loads(text)
        except ValueError as exc:
            raise ContentFormatError("Failed to parse JSON response") from exc
        if not isinstance(document, dict):
            raise ContentFormatError("sellers.json document must be a JSON object")
        return document

    def normalize(self, body: Body) -> str:
        document = self.load(self.decode(body))
        if not (
            isinstance(document.get("sellers"), list)
            or document.get("contact_email")
            or document.get("identifiers")
        ):
            raise ContentFormatError(
                "Response is JSON but does not contain required sellers.json fields"
            )
        # JSON escapes can still decode to lone surrogates.
        return self.ensure_utf8(json.dumps(document, separators=(",", ":"), ensure_ascii=False))

    def parse(self, content: str) -> Dict[str, Any]:
        return self.load(content)

    def sellers(self, content: str) -> List[Any]:
        """The raw `sellers` array; empty when absent or not a list."""
        sellers = self.parse(content).get("sellers")
        return sellers if isinstance(sellers, list) else []


__all__ = [
    "ContentShape",
    "AdsTxtContent",
    "SellersJsonContent",
    "data_lines",
]
