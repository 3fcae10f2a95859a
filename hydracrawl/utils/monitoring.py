"""
Monitoring and metrics collection for the crawl engine.
"""

import time
import logging
from typing import Any, Dict, Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, start_http_server


class CrawlerMonitor:
    """
    Prometheus metrics for one crawl.

    Uses a private registry so several crawls (or tests) in one process do
    not collide on metric names.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.logger = logging.getLogger(__name__)
        self.registry = registry or CollectorRegistry()
        self.start_time = time.time()

        self.pages_crawled = Counter(
            'crawler_pages_crawled_total',
            'Total number of pages successfully visited',
            registry=self.registry
        )
        self.errors = Counter(
            'crawler_errors_total',
            'Total number of crawl errors',
            ['error_type'],
            registry=self.registry
        )
        self.urls_discovered = Counter(
            'crawler_urls_discovered_total',
            'Total number of new in-scope URLs claimed',
            registry=self.registry
        )
        self.urls_skipped = Counter(
            'crawler_urls_skipped_total',
            'URLs dropped without being counted as errors',
            ['reason'],
            registry=self.registry
        )
        self.rounds = Counter(
            'crawler_rounds_total',
            'Total number of dispatch rounds',
            registry=self.registry
        )
        self.response_time = Histogram(
            'crawler_response_time_seconds',
            'Response time for HTTP requests',
            registry=self.registry
        )
        self.queue_size = Gauge(
            'crawler_queue_size',
            'Number of URLs in queue',
            registry=self.registry
        )
        self.active_workers = Gauge(
            'crawler_active_workers',
            'Target number of concurrent fetch workers',
            registry=self.registry
        )

    def start_server(self, port: int):
        """Start Prometheus metrics HTTP server."""
        try:
            start_http_server(port, registry=self.registry)
            self.logger.info(f"Prometheus metrics server started on port {port}")
        except OSError as e:
            self.logger.error(f"Failed to start Prometheus server: {e}")

    def record_page(self, url: str, response_time: float):
        self.pages_crawled.inc()
        self.response_time.observe(response_time)

    def record_error(self, error_type: str):
        self.errors.labels(error_type=error_type).inc()

    def record_skipped(self, reason: str):
        self.urls_skipped.labels(reason=reason).inc()

    def record_discovered(self, count: int):
        if count:
            self.urls_discovered.inc(count)

    def record_round(self, active_workers: int, queue_size: int):
        self.rounds.inc()
        self.active_workers.set(active_workers)
        self.queue_size.set(queue_size)

    def _value(self, name: str, labels: Optional[Dict[str, str]] = None) -> float:
        return self.registry.get_sample_value(name, labels or {}) or 0.0

    @staticmethod
    def _by_label(metric, sample_name: str, label: str) -> Dict[str, float]:
        values = {}
        for family in metric.collect():
            for sample in family.samples:
                if sample.name == sample_name:
                    values[sample.labels[label]] = sample.value
        return values

    def get_summary(self) -> Dict[str, Any]:
        """Get a summary of all metrics."""
        runtime = time.time() - self.start_time
        pages = self._value('crawler_pages_crawled_total')

        errors_by_type = self._by_label(self.errors, 'crawler_errors_total', 'error_type')
        skipped_by_reason = self._by_label(self.urls_skipped, 'crawler_urls_skipped_total', 'reason')

        return {
            'runtime_seconds': runtime,
            'pages_crawled': pages,
            'urls_discovered': self._value('crawler_urls_discovered_total'),
            'rounds': self._value('crawler_rounds_total'),
            'active_workers': self._value('crawler_active_workers'),
            'queue_size': self._value('crawler_queue_size'),
            'errors': errors_by_type,
            'skipped': skipped_by_reason,
            'pages_per_minute': pages / (runtime / 60) if runtime > 0 else 0,
        }


def initialize_monitoring(config) -> CrawlerMonitor:
    """Create a monitor and expose it over HTTP when metrics are enabled."""
    monitor = CrawlerMonitor()
    if config.monitoring.metrics_enabled:
        monitor.start_server(config.monitoring.prometheus_port)
    return monitor
