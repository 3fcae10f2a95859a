"""
URL Frontier implementation for managing URLs to crawl.
Implements per-domain FIFO queues with round-robin dequeue across domains.
"""

import heapq
import itertools
import logging
import threading
import time
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Deque, Dict, List, Optional, Set, Tuple

from ..errors import SharedStateError


@dataclass
class URLTask:
    """Represents a URL crawling task."""
    url: str
    canonical: str
    depth: int
    domain: str
    parent_url: Optional[str] = None
    retry_count: int = 0
    eligible_at: float = 0.0
    discovered_time: float = field(default_factory=time.time)


class URLFrontier:
    """
    Manages URLs waiting to be fetched, with a per-domain politeness delay.

    Every public method runs start to finish under one lock and never
    awaits, so a dequeue, enqueue or retry is indivisible with respect to
    other workers. Callers never see the underlying queues.
    """

    def __init__(self, max_depth: int, politeness_delay: float = 0.0, lock_timeout: float = 5.0,
                 clock=time.monotonic):
        self.max_depth = max_depth
        self.politeness_delay = politeness_delay
        self.logger = logging.getLogger(__name__)
        self._clock = clock
        self._lock = threading.Lock()
        self._lock_timeout = lock_timeout

        self._domain_queues: Dict[str, Deque[URLTask]] = {}
        # Domains with queued work, in the order they will be served
        self._rotation: Deque[str] = deque()
        # Retries waiting out their backoff: (eligible_at, seq, task)
        self._held: List[Tuple[float, int, URLTask]] = []
        self._seq = itertools.count()
        self._in_flight: Set[str] = set()
        self.domain_last_access: Dict[str, float] = {}
        self._closed = False

        self.stats = {
            'enqueued': 0,
            'rejected_depth': 0,
            'rejected_closed': 0,
            'dequeued': 0,
            'retries': 0,
            'polite_waits': 0
        }

    @contextmanager
    def _guard(self):
        if not self._lock.acquire(timeout=self._lock_timeout):
            raise SharedStateError("Timed out waiting for the frontier lock")
        try:
            yield
        finally:
            self._lock.release()

    def _append(self, task: URLTask):
        queue = self._domain_queues.setdefault(task.domain, deque())
        if not queue:
            self._rotation.append(task.domain)
        queue.append(task)

    def _insert_by_depth(self, task: URLTask):
        """Place a retried task ahead of any deeper entries of its domain."""
        queue = self._domain_queues.setdefault(task.domain, deque())
        if not queue:
            self._rotation.append(task.domain)
        for index, queued in enumerate(queue):
            if queued.depth > task.depth:
                queue.insert(index, task)
                return
        queue.append(task)

    def _promote_eligible(self, now: float):
        while self._held and self._held[0][0] <= now:
            _, _, task = heapq.heappop(self._held)
            self._insert_by_depth(task)

    def _polite_wait(self, domain: str, now: float) -> float:
        """Seconds before domain may be served again (0 when it may be served now)."""
        last_access = self.domain_last_access.get(domain)
        if last_access is None:
            return 0.0
        return max(0.0, last_access + self.politeness_delay - now)

    def enqueue(self, task: URLTask) -> bool:
        """
        Append a task to its domain queue.
        Returns False if the task is deeper than max_depth or the frontier is closed.
        """
        with self._guard():
            if task.depth > self.max_depth:
                self.stats['rejected_depth'] += 1
                self.logger.debug(f"Rejected URL beyond max depth {self.max_depth}: {task.url}")
                return False
            if self._closed:
                self.stats['rejected_closed'] += 1
                self.logger.debug(f"Frontier closed, dropping: {task.url}")
                return False

            self._append(task)
            self.stats['enqueued'] += 1
            return True

    def requeue(self, task: URLTask, delay: float) -> bool:
        """Hold a retried task for delay seconds before it can be dequeued again."""
        with self._guard():
            if self._closed:
                self.stats['rejected_closed'] += 1
                return False
            task.eligible_at = self._clock() + max(0.0, delay)
            heapq.heappush(self._held, (task.eligible_at, next(self._seq), task))
            self.stats['retries'] += 1
            return True

    def dequeue_any(self) -> Optional[Tuple[str, URLTask]]:
        """
        Remove and return the next (domain, task), rotating across domains.
        Domains served less than politeness_delay ago are skipped but keep
        their place in the rotation. Returns None when nothing is eligible
        or the frontier is closed.
        """
        with self._guard():
            if self._closed:
                return None

            now = self._clock()
            self._promote_eligible(now)

            for _ in range(len(self._rotation)):
                domain = self._rotation[0]
                if self._polite_wait(domain, now) > 0:
                    self._rotation.rotate(-1)
                    continue

                self._rotation.popleft()
                queue = self._domain_queues[domain]
                task = queue.popleft()
                if queue:
                    self._rotation.append(domain)

                self.domain_last_access[domain] = now
                self._in_flight.add(task.canonical)
                self.stats['dequeued'] += 1
                return domain, task

            if self._rotation:
                self.stats['polite_waits'] += 1
            return None

    def task_done(self, task: URLTask):
        """Mark a dequeued task as no longer in flight."""
        with self._guard():
            self._in_flight.discard(task.canonical)

    def close(self):
        """Stop handing out work. In-flight tasks may still finish."""
        with self._guard():
            if not self._closed:
                self._closed = True
                self.logger.info("Frontier closed to new dequeues")

    @property
    def closed(self) -> bool:
        with self._guard():
            return self._closed

    @property
    def in_flight(self) -> int:
        with self._guard():
            return len(self._in_flight)

    def is_empty(self) -> bool:
        """True when no task is queued or waiting on a retry."""
        with self._guard():
            return not self._rotation and not self._held

    def is_exhausted(self) -> bool:
        """True when nothing is queued, held for retry, or in flight."""
        with self._guard():
            return not self._rotation and not self._held and not self._in_flight

    def next_eligible_in(self) -> Optional[float]:
        """
        Seconds until some queued task can be dequeued: the earliest held
        retry or the shortest politeness wait. None when nothing is waiting.
        """
        with self._guard():
            now = self._clock()
            polite_waits = (self._polite_wait(domain, now) for domain in self._rotation)
            waits = [wait for wait in polite_waits if wait > 0]
            if self._held:
                waits.append(max(0.0, self._held[0][0] - now))
            if not waits:
                return None
            return min(waits)

    def get_stats(self) -> Dict[str, int]:
        """Get frontier statistics."""
        with self._guard():
            total_queued = sum(len(queue) for queue in self._domain_queues.values())
            return {
                'total_queued': total_queued,
                'held_for_retry': len(self._held),
                'in_flight': len(self._in_flight),
                'domains_with_urls': len(self._rotation),
                'total_domains': len(self._domain_queues),
                **self.stats
            }
