"""
Error-driven concurrency control.
"""

import logging

from .counters import CrawlCounters


class ConcurrencyController:
    """
    Re-evaluates the worker target once per round.

    At or above the soft error threshold the target shrinks by one (never
    below min_workers); below it the target grows by one (never above
    max_workers). The target moves at most one step per round.
    """

    def __init__(self, min_workers: int, max_workers: int, error_threshold: int):
        if min_workers < 1 or max_workers < min_workers:
            raise ValueError(f"Invalid worker bounds [{min_workers}, {max_workers}]")
        self.min_workers = min_workers
        self.max_workers = max_workers
        self.error_threshold = error_threshold
        self.logger = logging.getLogger(__name__)

    @classmethod
    def from_config(cls, config) -> 'ConcurrencyController':
        return cls(config.min_workers, config.max_workers, config.error_threshold)

    def decide(self, error_count: int, active_workers: int) -> int:
        """Return the worker delta (-1, 0 or +1) for the observed state."""
        if error_count >= self.error_threshold and active_workers > self.min_workers:
            return -1
        if error_count < self.error_threshold and active_workers < self.max_workers:
            return 1
        return 0

    def adjust(self, counters: CrawlCounters) -> int:
        """Apply one scaling step to counters.active_workers and return the new target."""
        snapshot = counters.snapshot()
        delta = self.decide(snapshot.error_count, snapshot.active_workers)
        if delta == 0:
            # Still clamp, in case the counters were created outside the bounds
            return counters.adjust_workers(0, self.min_workers, self.max_workers)

        new_target = counters.adjust_workers(delta, self.min_workers, self.max_workers)
        if delta < 0:
            self.logger.info(f"Backing off: {snapshot.error_count} errors >= {self.error_threshold}, "
                             f"workers {snapshot.active_workers} -> {new_target}")
        else:
            self.logger.debug(f"Scaling up: workers {snapshot.active_workers} -> {new_target}")
        return new_target
