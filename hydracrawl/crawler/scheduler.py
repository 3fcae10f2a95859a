"""
Crawl supervisor: seeds the frontier, dispatches rounds of fetch workers,
adapts concurrency and decides when the crawl is over.
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Union

from .controller import ConcurrencyController
from .counters import CrawlCounters
from .fetcher import WebFetcher
from .normalizer import URLNormalizer
from .parser import LinkExtractor
from .url_frontier import URLFrontier, URLTask
from .worker import CrawlContext, FetchWorker
from ..storage.dedup_gate import DedupGate, MemoryDedupGate, create_dedup_gate
from ..storage.output_sink import OutputSink, create_output_sink
from ..utils.config import Config, CrawlerConfig
from ..utils.monitoring import CrawlerMonitor, initialize_monitoring


class CrawlState(Enum):
    """Supervisor lifecycle."""
    SEEDED = 'seeded'
    RUNNING = 'running'
    DRAINING = 'draining'
    TERMINATED = 'terminated'


@dataclass
class CrawlSummary:
    """Outcome of a crawl, returned even when it ends early."""
    pages_crawled: int
    errors: int
    duration: float
    final_workers: int = 0
    urls_discovered: int = 0
    urls_remaining: int = 0
    rounds: int = 0
    stop_reason: str = ''
    errors_by_type: Dict[str, float] = field(default_factory=dict)
    skipped: Dict[str, float] = field(default_factory=dict)

    @property
    def pages_per_minute(self) -> float:
        return self.pages_crawled / (self.duration / 60) if self.duration > 0 else 0


class CrawlSupervisor:
    """
    Drives one crawl through SEEDED -> RUNNING -> DRAINING -> TERMINATED.

    Each round spawns counters.active_workers workers, waits for all of
    them, lets the concurrency controller pick the next round's size and
    re-checks the page budget, the fatal error budget and frontier
    exhaustion.
    """

    def __init__(self, config: CrawlerConfig, fetcher, link_extractor, output_sink: OutputSink,
                 dedup_gate: Optional[DedupGate] = None, monitor: Optional[CrawlerMonitor] = None):
        self.config = config
        self.logger = logging.getLogger(__name__)

        self.normalizer = URLNormalizer.from_config(config)
        self.frontier = URLFrontier(config.max_depth, politeness_delay=config.politeness_delay)
        self.dedup_gate = dedup_gate or MemoryDedupGate()
        self.counters = CrawlCounters(initial_workers=config.min_workers)
        self.controller = ConcurrencyController.from_config(config)
        self.monitor = monitor or CrawlerMonitor()

        self.context = CrawlContext(
            config=config,
            normalizer=self.normalizer,
            frontier=self.frontier,
            dedup_gate=self.dedup_gate,
            counters=self.counters,
            fetcher=fetcher,
            link_extractor=link_extractor,
            output_sink=output_sink,
            monitor=self.monitor,
            is_draining=self.is_draining
        )

        self._state: Optional[CrawlState] = None
        self._stop_reason: Optional[str] = None
        self._workers: List[asyncio.Task] = []
        self._rounds = 0

    @property
    def state(self) -> Optional[CrawlState]:
        return self._state

    def is_draining(self) -> bool:
        return self._state in (CrawlState.DRAINING, CrawlState.TERMINATED)

    async def seed(self):
        """Claim the seed URL and enqueue it at depth 0."""
        if self._state is not None:
            raise RuntimeError(f"Cannot seed a crawl in state {self._state.value}")

        seed_url = self.normalizer.seed_url
        if await self.dedup_gate.claim(seed_url):
            self.frontier.enqueue(URLTask(
                url=self.config.seed_url,
                canonical=seed_url,
                depth=0,
                domain=self.normalizer.domain_of(seed_url)
            ))
        else:
            self.logger.warning(f"Seed URL already claimed in dedup set: {seed_url}")

        self._state = CrawlState.SEEDED
        self.logger.info(f"Seeded frontier with {seed_url}")

    def stop(self, reason: str = 'stopped'):
        """Begin draining: no new dequeues, in-flight fetches finish."""
        if self.is_draining():
            return
        self._stop_reason = self._stop_reason or reason
        self._state = CrawlState.DRAINING
        self.frontier.close()
        self.logger.info(f"Draining crawl: {self._stop_reason}")

    def _termination_reason(self) -> Optional[str]:
        if self._stop_reason:
            return self._stop_reason

        snapshot = self.counters.snapshot()
        if snapshot.pages_crawled >= self.config.max_pages_per_domain:
            return 'page_budget'
        if snapshot.error_count >= self.config.fatal_error_threshold:
            return 'fatal_errors'
        if self.frontier.is_exhausted():
            return 'frontier_exhausted'
        return None

    async def run(self) -> CrawlSummary:
        """Run rounds until a termination condition holds, then drain."""
        if self._state is None:
            await self.seed()
        if self._state not in (CrawlState.SEEDED, CrawlState.DRAINING):
            raise RuntimeError(f"Cannot run a crawl in state {self._state.value}")

        start_time = time.monotonic()
        if self._state is CrawlState.SEEDED:
            self._state = CrawlState.RUNNING
        self.logger.info(f"Starting crawl of {self.normalizer.seed_url} with "
                         f"{self.counters.active_workers} workers "
                         f"({self.config.min_workers}-{self.config.max_workers}, dynamic)")

        try:
            while True:
                reason = self._termination_reason()
                if reason:
                    self.stop(reason)
                    break

                await self._run_round()
                self.controller.adjust(self.counters)
                self._log_progress()
        finally:
            await self._cleanup_workers()
            if not self.is_draining():
                self.stop('cancelled')
            self._state = CrawlState.TERMINATED

        summary = self._build_summary(time.monotonic() - start_time)
        self._log_final_stats(summary)
        return summary

    async def _run_round(self):
        self._rounds += 1
        num_workers = self.counters.active_workers
        self.logger.debug(f"Round {self._rounds}: dispatching {num_workers} workers")

        self._workers = [
            asyncio.create_task(
                FetchWorker(f"worker-{self._rounds}-{i}", self.context, self.config.round_budget).run()
            )
            for i in range(num_workers)
        ]
        results = await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []

        for result in results:
            if isinstance(result, Exception):
                self.logger.error(f"Worker task failed: {result!r}")
                self.counters.record_error()
                self.monitor.record_error('worker')

        frontier_stats = self.frontier.get_stats()
        self.monitor.record_round(self.counters.active_workers, frontier_stats['total_queued'])

    def _log_progress(self):
        snapshot = self.counters.snapshot()
        frontier_stats = self.frontier.get_stats()
        self.logger.info(
            f"Progress: round={self._rounds}, "
            f"crawled={snapshot.pages_crawled}, "
            f"errors={snapshot.error_count} (total {snapshot.total_errors}), "
            f"queued={frontier_stats['total_queued']}, "
            f"retrying={frontier_stats['held_for_retry']}, "
            f"workers={snapshot.active_workers}"
        )

    async def _cleanup_workers(self):
        """Cancel and collect any worker tasks left by an interrupted round."""
        if self._workers:
            for worker in self._workers:
                if not worker.done():
                    worker.cancel()
            await asyncio.gather(*self._workers, return_exceptions=True)
            self._workers = []

    def _build_summary(self, duration: float) -> CrawlSummary:
        snapshot = self.counters.snapshot()
        frontier_stats = self.frontier.get_stats()
        metrics = self.monitor.get_summary()
        return CrawlSummary(
            pages_crawled=snapshot.pages_crawled,
            errors=snapshot.total_errors,
            duration=duration,
            final_workers=snapshot.active_workers,
            urls_discovered=frontier_stats['enqueued'],
            urls_remaining=frontier_stats['total_queued'] + frontier_stats['held_for_retry'],
            rounds=self._rounds,
            stop_reason=self._stop_reason or '',
            errors_by_type=metrics['errors'],
            skipped=metrics['skipped']
        )

    def _log_final_stats(self, summary: CrawlSummary):
        self.logger.info("=== CRAWL COMPLETED ===")
        self.logger.info(f"Stop reason: {summary.stop_reason}")
        self.logger.info(f"Pages crawled: {summary.pages_crawled}")
        self.logger.info(f"Errors: {summary.errors} {summary.errors_by_type}")
        self.logger.info(f"Skipped URLs: {summary.skipped}")
        self.logger.info(f"URLs discovered: {summary.urls_discovered}")
        self.logger.info(f"URLs remaining in queue: {summary.urls_remaining}")
        self.logger.info(f"Rounds: {summary.rounds}, final workers: {summary.final_workers}")
        self.logger.info(f"Total time: {summary.duration:.2f} seconds")
        self.logger.info(f"Average rate: {summary.pages_per_minute:.1f} pages/min")


async def start_crawl(config: Union[Config, CrawlerConfig], *, fetcher=None, link_extractor=None,
                      output_sink: Optional[OutputSink] = None, dedup_gate: Optional[DedupGate] = None,
                      monitor: Optional[CrawlerMonitor] = None,
                      supervisor_ready=None, crawl_id: Optional[str] = None) -> CrawlSummary:
    """
    Crawl from config.seed_url and return a CrawlSummary.

    Collaborators that are not passed in are built from config and closed
    when the crawl ends. supervisor_ready, if given, is called with the
    CrawlSupervisor before the first round (used by the CLI to wire signals).
    crawl_id scopes shared state such as the Redis dedup key to this run and
    is generated when not given.
    """
    if isinstance(config, CrawlerConfig):
        config = Config(crawler=config)
    crawler_config = config.crawler
    crawl_id = crawl_id or uuid.uuid4().hex[:12]
    logger = logging.getLogger(__name__)
    logger.info(f"Crawl id: {crawl_id}")

    owned = []
    try:
        if fetcher is None:
            fetcher = WebFetcher.from_config(crawler_config)
            await fetcher.start()
            owned.append(fetcher)
        if link_extractor is None:
            link_extractor = LinkExtractor()
        if output_sink is None:
            output_sink = create_output_sink(config)
            owned.append(output_sink)
        await output_sink.open()
        if dedup_gate is None:
            dedup_gate = await create_dedup_gate(config, crawl_id=crawl_id)
            owned.append(dedup_gate)
        if monitor is None:
            monitor = initialize_monitoring(config)

        supervisor = CrawlSupervisor(crawler_config, fetcher, link_extractor, output_sink,
                                     dedup_gate=dedup_gate, monitor=monitor)
        if supervisor_ready is not None:
            supervisor_ready(supervisor)
        return await supervisor.run()
    finally:
        for resource in reversed(owned):
            await resource.close()
