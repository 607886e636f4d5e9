from __future__ import annotations

import threading

from bookclub_catalog.core.models import CacheStatsSnapshot

_COUNTERS = (
    "page_hits",
    "page_misses",
    "detail_hits",
    "detail_misses",
    "fetches",
    "fetch_errors",
    "inflight_waits",
    "prefetch_scheduled",
    "prefetch_done",
    "prefetch_errors",
)


class StatsTracker:
    """
    Thread-safe counters for the lookup pipeline.

    Rule: All mutation is done under one lock.
    Call snapshot() to get a consistent CacheStatsSnapshot for printing/logging.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counts = {name: 0 for name in _COUNTERS}

    def inc(self, name: str, n: int = 1) -> None:
        if name not in self._counts:
            raise KeyError(f"unknown counter: {name}")
        with self._lock:
            self._counts[name] += int(n)

    def reset(self) -> None:
        with self._lock:
            for name in self._counts:
                self._counts[name] = 0

    def snapshot(self) -> CacheStatsSnapshot:
        with self._lock:
            return CacheStatsSnapshot(**self._counts)

    def snapshot_dict(self) -> dict:
        with self._lock:
            return dict(self._counts)
