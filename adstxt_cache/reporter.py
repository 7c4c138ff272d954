from __future__ import annotations

from typing import Dict, Optional

from rich import box
from rich.console import Console
from rich.table import Table

from adstxt_cache.domain.models import CacheEntry, SellerRecord
from adstxt_cache.lookup.backfill import BackfillProgress
from adstxt_cache.migration import MigrationReport


def _console(console: Optional[Console]) -> Console:
    return console or Console()


def backfill_table(progress: BackfillProgress, title: str = "Seller Lookup Backfill") -> Table:
    table = Table(title=title, box=box.ROUNDED)
    table.add_column("Metric", style="cyan", no_wrap=True)
    table.add_column("Value", justify="right", style="magenta")

    table.add_row("Snapshots", f"{progress.snapshots_processed:,} / {progress.snapshots_total:,}")
    table.add_row("Sellers inserted", f"{progress.sellers_inserted:,}")
    table.add_row("Sellers skipped", f"{progress.sellers_skipped:,}")
    table.add_row("Snapshots failed", f"{progress.snapshots_failed:,}")
    table.add_row("Batches", f"{progress.batches:,}")
    table.add_row("Next offset", f"{progress.next_offset:,}")
    return table


def print_migration_report(report: MigrationReport, console: Optional[Console] = None) -> None:
    """
    Render a migration run: schema step, backfill counters, profile and the
    row count of every table.
    """
    console = _console(console)

    summary = Table(title=f"Migration ({report.provider})", box=box.ROUNDED)
    summary.add_column("Step", style="cyan", no_wrap=True)
    summary.add_column("Result", style="green")
    summary.add_row("Schema", "initialized" if report.schema_initialized else "[red]failed[/red]")
    summary.add_row(
        "Data migration", "[yellow]skipped[/yellow]" if report.data_migration_skipped else "ran"
    )
    if report.profile is not None:
        summary.add_row("Duration (s)", f"{report.profile.duration_seconds:.2f}")
        mem = report.profile.peak_rss_mb
        summary.add_row("Peak Memory (MB)", f"{mem:.2f}" if mem is not None else "N/A")
    console.print(summary)

    if report.backfill is not None:
        console.print(backfill_table(report.backfill))

    if report.tables:
        console.print(table_counts(report.tables))


def table_counts(counts: Dict[str, int], title: str = "Rows per table") -> Table:
    table = Table(title=title, box=box.ROUNDED)
    table.add_column("Table", style="cyan", no_wrap=True)
    table.add_column("Rows", justify="right", style="magenta")
    for name, count in counts.items():
        table.add_row(name, f"{count:,}")
    return table


def print_cache_entry(label: str, entry: Optional[CacheEntry], expired: Optional[bool], console: Optional[Console] = None) -> None:
    console = _console(console)
    if entry is None:
        console.print(f"[yellow]{label}: no cache entry[/yellow]")
        return

    table = Table(title=f"{label}: {entry.domain}", box=box.ROUNDED, show_header=False)
    table.add_column("Field", style="cyan", no_wrap=True)
    table.add_column("Value")
    status_style = "green" if entry.is_success else "red"
    table.add_row("Status", f"[{status_style}]{entry.status.value}[/{status_style}]")
    table.add_row("HTTP status", str(entry.status_code) if entry.status_code is not None else "-")
    table.add_row("URL", entry.url or "-")
    table.add_row("Created", entry.created_at)
    table.add_row("Updated", entry.updated_at)
    if expired is not None:
        table.add_row("Expired", "yes" if expired else "no")
    if entry.error_message:
        table.add_row("Error", entry.error_message)
    if entry.content is not None:
        table.add_row("Content size", f"{len(entry.content):,} chars")
    console.print(table)


def print_seller(domain: str, seller_id: str, record: Optional[SellerRecord], console: Optional[Console] = None) -> None:
    console = _console(console)
    if record is None:
        console.print(f"[yellow]Seller '{seller_id}' not found for {domain}.[/yellow]")
        return

    table = Table(title=f"{record.domain} / {record.seller_id}", box=box.ROUNDED, show_header=False)
    table.add_column("Field", style="cyan", no_wrap=True)
    table.add_column("Value")
    table.add_row("Snapshot", record.cache_id)
    for key, value in record.seller_data.items():
        table.add_row(str(key), str(value))
    if record.updated_at:
        table.add_row("Indexed", record.updated_at)
    console.print(table)


__all__ = [
    "backfill_table",
    "print_cache_entry",
    "print_migration_report",
    "print_seller",
    "table_counts",
]
