"""
Fetch worker: dequeue, fetch, extract, enqueue, record.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

from .counters import CrawlCounters
from ..errors import (
    FetchError, OutputError, ParseError, PermanentFetchError, RobotsDisallowedError, SharedStateError,
    TransientFetchError
)
from .normalizer import URLNormalizer
from .url_frontier import URLFrontier, URLTask
from ..storage.dedup_gate import DedupGate
from ..storage.output_sink import OutputSink
from ..utils.logger import get_crawler_logger
from ..utils.monitoring import CrawlerMonitor


@dataclass
class CrawlContext:
    """Everything a worker shares with the supervisor and the other workers."""
    config: object
    normalizer: URLNormalizer
    frontier: URLFrontier
    dedup_gate: DedupGate
    counters: CrawlCounters
    fetcher: object
    link_extractor: object
    output_sink: OutputSink
    monitor: CrawlerMonitor
    is_draining: Callable[[], bool]


@dataclass
class WorkerReport:
    """What one worker did during one round."""
    worker_id: str
    processed: int = 0
    pages: int = 0
    errors: int = 0
    excluded: int = 0
    redirects: int = 0


class FetchWorker:
    """
    Runs the per-entry state machine until the round budget is spent, the
    crawl starts draining, or the frontier is exhausted.
    """

    def __init__(self, worker_id: str, context: CrawlContext, round_budget: int):
        self.worker_id = worker_id
        self.ctx = context
        self.config = context.config
        self.round_budget = round_budget
        self.report = WorkerReport(worker_id=worker_id)
        self.logger = get_crawler_logger(__name__, worker=worker_id)

    def _must_stop(self) -> bool:
        counters = self.ctx.counters
        return (self.ctx.is_draining()
                or counters.pages_crawled >= self.config.max_pages_per_domain
                or counters.error_count >= self.config.fatal_error_threshold)

    def _must_hold(self) -> bool:
        """
        Budgets could be overrun by fetches already in flight: wait for them
        instead of dequeuing more.
        """
        snapshot = self.ctx.counters.snapshot()
        in_flight = self.ctx.frontier.in_flight
        if not in_flight:
            return False
        return (snapshot.pages_crawled + in_flight >= self.config.max_pages_per_domain
                or snapshot.error_count + in_flight >= self.config.fatal_error_threshold)

    def _idle_delay(self) -> float:
        next_ready = self.ctx.frontier.next_eligible_in()
        if next_ready is None:
            return self.config.idle_wait
        return max(0.001, min(self.config.idle_wait, next_ready))

    async def run(self) -> WorkerReport:
        self.logger.debug("Worker started")

        while self.report.processed < self.round_budget:
            try:
                if self._must_stop():
                    break
                item = None if self._must_hold() else self.ctx.frontier.dequeue_any()
                if item is None:
                    if self.ctx.frontier.is_exhausted():
                        break
                    await asyncio.sleep(self._idle_delay())
                    continue
            except SharedStateError as e:
                self.logger.error(f"Frontier unavailable, backing off: {e}", exc_info=True)
                self._count_error('shared_state')
                await asyncio.sleep(self.config.idle_wait)
                continue

            _, task = item
            try:
                await self.process(task)
            except SharedStateError as e:
                self.logger.error(f"Shared state failure while processing {task.canonical}: {e}",
                                  exc_info=True)
                self._count_error('shared_state')
            except Exception as e:
                self.logger.error(f"Unexpected error processing {task.canonical}: {e}", exc_info=True)
                self._count_error('unexpected')
            finally:
                self.report.processed += 1
                self._task_done(task)

        self.logger.debug(f"Worker finished: {self.report}")
        return self.report

    def _task_done(self, task: URLTask):
        try:
            self.ctx.frontier.task_done(task)
        except SharedStateError as e:
            self.logger.error(f"Could not release {task.canonical}: {e}", exc_info=True)
            self._count_error('shared_state')

    def _count_error(self, error_type: str):
        self.ctx.counters.record_error()
        self.ctx.monitor.record_error(error_type)
        self.report.errors += 1

    async def process(self, task: URLTask):
        """Run one frontier entry through Excluded / Fetching / Success / Failure."""
        if task.depth > self.config.max_depth or self.ctx.normalizer.is_excluded(task.canonical):
            self.logger.debug(f"Dropping excluded or too-deep URL: {task.canonical}")
            self.report.excluded += 1
            self.ctx.monitor.record_skipped('excluded')
            return

        start_time = time.time()
        try:
            result = await self.ctx.fetcher.fetch(task.canonical, timeout=self.config.request_timeout)
            if not result.ok and not result.is_redirect:
                error_cls = (TransientFetchError if result.status_code in self.config.retryable_statuses
                             else PermanentFetchError)
                raise error_cls(task.canonical, f"HTTP status {result.status_code}",
                                status=result.status_code)
        except RobotsDisallowedError as e:
            self.logger.info(f"Skipping {task.canonical}: {e}")
            self.report.excluded += 1
            self.ctx.monitor.record_skipped('robots')
            return
        except TransientFetchError as e:
            self._handle_transient(task, e)
            return
        except FetchError as e:
            self.logger.warning(f"Dropping {task.canonical}: {e}")
            self._count_error('permanent')
            return

        if result.is_redirect:
            await self._follow_redirect(result, task)
            return

        links = self._extract_links(result, task)
        await self._enqueue_links(links, result.url, task)

        try:
            await self.ctx.output_sink.append_line(task.canonical)
        except OutputError as e:
            self.logger.error(f"Could not record {task.canonical}: {e}", exc_info=True)
            self._count_error('output')
            return

        pages = self.ctx.counters.record_page()
        self.ctx.monitor.record_page(task.canonical, time.time() - start_time)
        self.report.pages += 1
        self.logger.info(f"Crawled: {task.canonical} (depth {task.depth}, {pages} total)")

    def _handle_transient(self, task: URLTask, error: TransientFetchError):
        self._count_error('transient')
        if task.retry_count >= self.config.retry_limit:
            self.logger.warning(f"URL failed permanently after {task.retry_count + 1} attempts: "
                                f"{task.canonical} ({error})")
            return

        task.retry_count += 1
        delay = min(self.config.retry_backoff * (2 ** (task.retry_count - 1)),
                    self.config.retry_backoff_max)
        if self.ctx.frontier.requeue(task, delay):
            self.logger.info(f"Retrying ({task.retry_count}/{self.config.retry_limit}) in {delay:.2f}s: "
                             f"{task.canonical} ({error})")

    def _extract_links(self, result, task: URLTask) -> List[str]:
        # Nothing discovered here could be enqueued anyway
        if task.depth >= self.config.max_depth or not result.content:
            return []
        try:
            return self.ctx.link_extractor.extract_links(result.content, result.url)
        except ParseError as e:
            self.logger.warning(f"No links from {task.canonical}: {e}")
            return []

    async def _follow_redirect(self, result, task: URLTask):
        """Treat the redirect target as a link found on the same level as task."""
        self.report.redirects += 1
        added = await self._enqueue_links([result.location], result.url, task, depth=task.depth)
        if not added:
            self.logger.debug(f"Not following redirect {task.canonical} -> {result.location}")

    async def _enqueue_links(self, links: List[str], base_url: str, task: URLTask,
                             depth: Optional[int] = None) -> int:
        """Canonicalize, scope-filter and claim each link; enqueue winners at depth (default depth+1)."""
        if depth is None:
            depth = task.depth + 1
        added = 0
        for href in links:
            canonical = self.ctx.normalizer.canonicalize(base_url, href)
            if canonical is None or not self.ctx.normalizer.is_in_scope(canonical):
                continue
            try:
                claimed = await self.ctx.dedup_gate.claim(canonical)
            except SharedStateError as e:
                self.logger.error(f"Dedup gate failure, skipping {canonical}: {e}", exc_info=True)
                self._count_error('shared_state')
                continue
            if not claimed:
                continue

            new_task = URLTask(
                url=href,
                canonical=canonical,
                depth=depth,
                domain=self.ctx.normalizer.domain_of(canonical),
                parent_url=task.canonical
            )
            if self.ctx.frontier.enqueue(new_task):
                added += 1

        if added:
            self.ctx.monitor.record_discovered(added)
            self.logger.debug(f"Queued {added} new URLs from {task.canonical}")
        return added
