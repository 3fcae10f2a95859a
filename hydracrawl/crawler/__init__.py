"""
Crawl engine components.
"""

from ..errors import (
    CrawlError, FetchError, TransientFetchError, PermanentFetchError,
    RobotsDisallowedError, ParseError, SharedStateError, OutputError
)
from .counters import CrawlCounters, CounterSnapshot
from .normalizer import URLNormalizer
from .url_frontier import URLFrontier, URLTask
from .fetcher import WebFetcher, FetchResult
from .parser import LinkExtractor
from .controller import ConcurrencyController
from .worker import FetchWorker, CrawlContext, WorkerReport
from .scheduler import CrawlSupervisor, CrawlState, CrawlSummary, start_crawl

__all__ = [
    'CrawlError', 'FetchError', 'TransientFetchError', 'PermanentFetchError',
    'RobotsDisallowedError', 'ParseError', 'SharedStateError', 'OutputError',
    'CrawlCounters', 'CounterSnapshot',
    'URLNormalizer',
    'URLFrontier', 'URLTask',
    'WebFetcher', 'FetchResult',
    'LinkExtractor',
    'ConcurrencyController',
    'FetchWorker', 'CrawlContext', 'WorkerReport',
    'CrawlSupervisor', 'CrawlState', 'CrawlSummary', 'start_crawl'
]
