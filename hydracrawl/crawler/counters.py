"""
Shared crawl counters.
"""

import threading
from dataclasses import dataclass


@dataclass(frozen=True)
class CounterSnapshot:
    """Consistent point-in-time copy of the crawl counters."""
    pages_crawled: int
    error_count: int
    total_errors: int
    active_workers: int


class CrawlCounters:
    """
    Counters shared by every worker and the supervisor.

    Each method is a single indivisible read-modify-write; callers never
    read a value and write it back in two steps.
    """

    def __init__(self, initial_workers: int = 1):
        self._lock = threading.Lock()
        self._pages_crawled = 0
        self._error_count = 0
        self._total_errors = 0
        self._active_workers = initial_workers

    def record_page(self) -> int:
        """Count a visited page and decay the rolling error count (floor zero)."""
        with self._lock:
            self._pages_crawled += 1
            if self._error_count > 0:
                self._error_count -= 1
            return self._pages_crawled

    def record_error(self) -> int:
        """Count a failure. Returns the new rolling error count."""
        with self._lock:
            self._error_count += 1
            self._total_errors += 1
            return self._error_count

    def adjust_workers(self, delta: int, floor: int, ceiling: int) -> int:
        """Move active_workers by delta, clamped to [floor, ceiling]."""
        with self._lock:
            self._active_workers = max(floor, min(ceiling, self._active_workers + delta))
            return self._active_workers

    @property
    def pages_crawled(self) -> int:
        with self._lock:
            return self._pages_crawled

    @property
    def error_count(self) -> int:
        with self._lock:
            return self._error_count

    @property
    def total_errors(self) -> int:
        with self._lock:
            return self._total_errors

    @property
    def active_workers(self) -> int:
        with self._lock:
            return self._active_workers

    def snapshot(self) -> CounterSnapshot:
        with self._lock:
            return CounterSnapshot(
                pages_crawled=self._pages_crawled,
                error_count=self._error_count,
                total_errors=self._total_errors,
                active_workers=self._active_workers
            )
