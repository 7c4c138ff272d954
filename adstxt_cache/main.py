from __future__ import annotations

import json
import sys
from typing import Optional

import typer
from rich.console import Console

from adstxt_cache.cache.domain_cache import AdsTxtCache, SellersJsonCache
from adstxt_cache.config import Settings, get_settings
from adstxt_cache.errors import AdsTxtCacheError, ProviderConfigurationError
from adstxt_cache.infrastructure.db_factory import build_dsn
from adstxt_cache.lookup.seller_index import SellerLookupIndex
from adstxt_cache.migration import MigrationRunner
from adstxt_cache.reporter import (
    print_cache_entry,
    print_migration_report,
    print_seller,
    table_counts,
)
from adstxt_cache.storage.adapter import StorageAdapter, available_providers, resolve_provider_name
from adstxt_cache.utils.logging import configure_logging

app = typer.Typer(help="ads.txt / sellers.json cache and seller lookup CLI.")


def _open_storage(settings: Settings) -> StorageAdapter:
    configure_logging(level=settings.log_level, json_logs=settings.log_json)
    try:
        return StorageAdapter.from_settings(settings)
    except ProviderConfigurationError as exc:
        typer.echo(f"Storage unavailable: {exc}", err=True)
        raise typer.Exit(code=2)


@app.command()
def info() -> None:
    """
    Show effective configuration values.
    """
    settings = get_settings()
    provider = resolve_provider_name(settings)
    if provider == "postgres":
        target = build_dsn(settings).split("@")[-1]
    elif provider == "sqlite":
        target = settings.sqlite_path
    else:
        target = "in-memory"
    typer.echo(
        f"env={settings.app_env} provider={provider} ({target}) | "
        f"max_age={settings.cache_max_age_hours}h batch={settings.backfill_batch_size} "
        f"chunk={settings.seller_upsert_chunk_size} | available: {', '.join(available_providers())}"
    )


@app.command("init-db")
def init_db() -> None:
    """
    Create tables and indexes (idempotent).
    """
    settings = get_settings()
    with _open_storage(settings) as storage:
        try:
            report = MigrationRunner(storage, settings).run(skip_data_migration=True)
        except AdsTxtCacheError as exc:
            typer.echo(f"Schema initialization failed: {exc}", err=True)
            raise typer.Exit(code=1)
        print_migration_report(report)


@app.command()
def backfill(
    rebuild: bool = typer.Option(
        False, "--rebuild", help="Clear the seller lookup table before backfilling."
    ),
    offset: int = typer.Option(
        0, "--offset", "-o", min=0, help="Resume from this snapshot offset."
    ),
    batch_size: Optional[int] = typer.Option(
        None,
        "--batch-size",
        "-b",
        min=1,
        help="Snapshots per batch (default from settings).",
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the report as JSON."),
) -> None:
    """
    Initialize the schema and (re)build the seller lookup index.
    """
    settings = get_settings()
    if batch_size:
        settings = settings.model_copy(update={"backfill_batch_size": batch_size})
    with _open_storage(settings) as storage:
        try:
            report = MigrationRunner(storage, settings).run(
                skip_data_migration=False, rebuild=rebuild, start_offset=offset
            )
        except (AdsTxtCacheError, ValueError) as exc:
            typer.echo(f"Backfill failed: {exc}", err=True)
            raise typer.Exit(code=1)
    if as_json:
        typer.echo(json.dumps(report.as_dict(), indent=2))
    else:
        print_migration_report(report)


@app.command("find-seller")
def find_seller(
    domain: str = typer.Argument(..., help="sellers.json domain, e.g. example.com"),
    seller_id: str = typer.Argument(..., help="Seller id to look up."),
    as_json: bool = typer.Option(False, "--json", help="Print the seller object as JSON."),
) -> None:
    """
    Point lookup of one seller in the lookup index.
    """
    settings = get_settings()
    with _open_storage(settings) as storage:
        storage.initialize()
        record = SellerLookupIndex(storage).find_seller(domain, seller_id)
    if as_json:
        typer.echo(json.dumps(record.model_dump() if record else None, indent=2))
    else:
        print_seller(domain, seller_id, record)
    if record is None:
        raise typer.Exit(code=1)


@app.command("cache-status")
def cache_status(
    domain: Optional[str] = typer.Argument(None, help="Domain to inspect; omit for totals."),
    max_age_hours: Optional[float] = typer.Option(
        None, "--max-age-hours", help="Freshness threshold (default from settings)."
    ),
) -> None:
    """
    Show the cached ads.txt and sellers.json entries of a domain, or per-status totals.
    """
    settings = get_settings()
    hours = max_age_hours if max_age_hours is not None else settings.cache_max_age_hours
    with _open_storage(settings) as storage:
        storage.initialize()
        caches = {
            "ads.txt": AdsTxtCache(storage, max_age_hours=hours),
            "sellers.json": SellersJsonCache(storage, max_age_hours=hours),
        }
        for label, cache in caches.items():
            if domain:
                entry = cache.get_by_domain(domain)
                expired = cache.is_expired(entry.last_updated, hours) if entry else None
                print_cache_entry(label, entry, expired)
            else:
                Console().print(table_counts(cache.status_counts(), title=f"{label} entries by status"))


@app.command()
def cleanup(
    days: Optional[int] = typer.Option(
        None, "--days", "-d", min=0, help="Retention in days (default from settings)."
    ),
    dry_run: bool = typer.Option(False, "--dry-run", help="Only count what would be deleted."),
) -> None:
    """
    Delete failed (non-success) cache entries older than the retention window.
    """
    settings = get_settings()
    retention = days if days is not None else settings.cleanup_retention_days
    with _open_storage(settings) as storage:
        storage.initialize()
        index = SellerLookupIndex(storage)
        for cache in (AdsTxtCache(storage), SellersJsonCache(storage, lookup_index=index)):
            result = cache.purge_failures(retention, dry_run=dry_run)
            verb = "would delete" if dry_run else "deleted"
            count = result.identified if dry_run else result.deleted
            typer.echo(f"{result.table}: {verb} {count} of {result.identified} entries")


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
