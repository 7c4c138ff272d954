"""
Profiling helpers for long-running maintenance jobs (schema migration,
seller lookup backfill).

`profile_block` records wall-clock duration, peak RSS sampled by a background
thread, the peak of Python-level allocations (tracemalloc) and a CPU percent
snapshot:

    from adstxt_cache.utils.profiler import profile_block

    with profile_block("seller-lookup-backfill") as stats:
        backfill.run()

    log.info("done", extra=stats.as_dict())
"""

from __future__ import annotations

import contextlib
import threading
import time
import tracemalloc
from dataclasses import dataclass, field
from typing import Any, Dict, Generator, Optional

import psutil


@dataclass
class ProfileStats:
    """
    Measurements of one profiled block.
    """

    label: str
    start_ts: float = field(default=0.0)
    end_ts: float = field(default=0.0)
    duration_seconds: float = field(default=0.0)
    peak_rss_bytes: Optional[int] = field(default=None)
    peak_traced_bytes: Optional[int] = field(default=None)
    cpu_percent: Optional[float] = field(default=None)

    @property
    def peak_rss_mb(self) -> Optional[float]:
        if self.peak_rss_bytes is None:
            return None
        return round(self.peak_rss_bytes / (1024 * 1024), 2)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "label": self.label,
            "duration_seconds": round(self.duration_seconds, 3),
            "peak_rss_bytes": self.peak_rss_bytes,
            "peak_traced_bytes": self.peak_traced_bytes,
            "cpu_percent": round(self.cpu_percent, 1) if self.cpu_percent is not None else None,
        }


@contextlib.contextmanager
def profile_block(
    label: str, sample_interval_ms: int = 50, enable_tracemalloc: bool = True
) -> Generator[ProfileStats, None, None]:
    """
    Profile a block of code.

    Parameters
    ----------
    label : str
        Human-friendly label for the profiled block.
    sample_interval_ms : int
        RSS sampling interval. Lower is more accurate but costs more.
    enable_tracemalloc : bool
        Track Python-level allocations. Left running if it already was.

    Notes
    -----
    Backfills allocate in bursts (one snapshot document at a time), so peak
    RSS is sampled continuously rather than read at the start and the end.
    """
    stats = ProfileStats(label=label)
    process = psutil.Process()
    peak_rss = process.memory_info().rss
    stop_sampling = threading.Event()

    def _sample_memory() -> None:
        nonlocal peak_rss
        while not stop_sampling.is_set():
            try:
                peak_rss = max(peak_rss, process.memory_info().rss)
            except psutil.Error:
                return
            stop_sampling.wait(timeout=sample_interval_ms / 1000.0)

    tracemalloc_was_running = tracemalloc.is_tracing()
    if enable_tracemalloc and not tracemalloc_was_running:
        tracemalloc.start()

    # First call only primes the counter.
    process.cpu_percent(interval=None)

    sampler = threading.Thread(target=_sample_memory, name=f"rss-sampler-{label}", daemon=True)
    sampler.start()

    stats.start_ts = time.perf_counter()
    try:
        yield stats
    finally:
        stats.end_ts = time.perf_counter()
        stats.duration_seconds = stats.end_ts - stats.start_ts

        stop_sampling.set()
        sampler.join(timeout=1.0)
        stats.peak_rss_bytes = peak_rss or None
        stats.cpu_percent = process.cpu_percent(interval=None)

        if enable_tracemalloc and tracemalloc.is_tracing():
            _, stats.peak_traced_bytes = tracemalloc.get_traced_memory()
            if not tracemalloc_was_running:
                tracemalloc.stop()


__all__ = ["ProfileStats", "profile_block"]
