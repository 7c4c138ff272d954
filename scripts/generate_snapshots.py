"""
Synthetic sellers.json snapshot generator.

Seeds the sellers.json cache with deterministic pseudo-random documents so the
seller lookup backfill can be exercised (and timed) against any provider.
Documents include the quality problems real files have: repeated seller ids
and records without a seller_id.
"""

from __future__ import annotations

import json
import random
import sys
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer

from adstxt_cache.cache.domain_cache import SellersJsonCache
from adstxt_cache.config import get_settings
from adstxt_cache.domain.models import FetchResult
from adstxt_cache.lookup.seller_index import SellerLookupIndex
from adstxt_cache.storage.adapter import StorageAdapter
from adstxt_cache.utils.logging import configure_logging

app = typer.Typer(help="Generate synthetic sellers.json snapshots and store them in the cache.")

SELLER_TYPES = ["PUBLISHER", "INTERMEDIARY", "BOTH"]


def build_document(rng: random.Random, domain: str, sellers: int, duplicate_ratio: float, broken_ratio: float) -> Dict[str, Any]:
    records: List[Dict[str, Any]] = []
    for i in range(sellers):
        seller: Dict[str, Any] = {
            "seller_id": f"{rng.randint(1, 10**9)}-{i}",
            "name": f"Seller {i} of {domain}",
            "domain": f"seller{i}.{domain}",
            "seller_type": rng.choice(SELLER_TYPES),
        }
        if rng.random() < 0.05:
            seller["is_confidential"] = 1
        if records and rng.random() < duplicate_ratio:
            # Re-declare an earlier seller; the later record must win.
            seller["seller_id"] = rng.choice(records)["seller_id"]
        if rng.random() < broken_ratio:
            del seller["seller_id"]
        records.append(seller)
    return {
        "contact_email": f"adops@{domain}",
        "version": "1.0",
        "identifiers": [{"name": "TAG-ID", "value": f"{rng.getrandbits(32):08x}"}],
        "sellers": records,
    }


@app.command()
def main(
    domains: int = typer.Option(100, "--domains", "-n", help="Number of snapshots to generate."),
    sellers: int = typer.Option(1_000, "--sellers", "-s", help="Sellers per snapshot."),
    duplicate_ratio: float = typer.Option(0.01, "--duplicates", help="Share of repeated seller ids."),
    broken_ratio: float = typer.Option(0.001, "--broken", help="Share of records without seller_id."),
    seed: int = typer.Option(42, "--seed", help="Deterministic RNG seed."),
    keep_index: bool = typer.Option(
        False, "--keep-index", help="Keep the lookup rows written while saving (default: clear them and leave the index to backfill)."
    ),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Also write each document as <domain>.json into this directory."
    ),
) -> None:
    """
    Generate snapshots and save them through the configured storage provider.
    """
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)
    rng = random.Random(seed)
    if output:
        output.mkdir(parents=True, exist_ok=True)

    start = time.perf_counter()
    with StorageAdapter.from_settings(settings) as storage:
        storage.initialize()
        lookup = SellerLookupIndex(storage, chunk_size=settings.seller_upsert_chunk_size)
        cache = SellersJsonCache(storage, lookup_index=lookup)

        typer.echo(f"Generating {domains:,} snapshots x {sellers:,} sellers (seed={seed}, provider={storage.name})")
        for n in range(domains):
            domain = f"exchange{n:05d}.example"
            document = build_document(rng, domain, sellers, duplicate_ratio, broken_ratio)
            body = json.dumps(document)
            if output:
                (output / f"{domain}.json").write_text(body, encoding="utf-8")
            cache.record_fetch(
                FetchResult(domain=domain, body=body, url=f"https://{domain}/sellers.json", status_code=200)
            )
        if not keep_index:
            lookup.clear()

    duration = time.perf_counter() - start
    typer.echo(f"Stored {domains:,} snapshots in {duration:.2f}s ({domains / duration:,.1f} snapshots/s)")


if __name__ == "__main__":
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)
