"""
Exception hierarchy for the crawl engine.
"""

from typing import Optional


class CrawlError(Exception):
    """Base class for crawl engine errors."""
    pass


class FetchError(CrawlError):
    """A page could not be fetched."""

    def __init__(self, url: str, message: str, status: Optional[int] = None):
        super().__init__(f"{message} ({url})")
        self.url = url
        self.status = status


class TransientFetchError(FetchError):
    """Timeout, connection reset or a retryable status. Worth another attempt."""
    pass


class PermanentFetchError(FetchError):
    """Non-retryable failure: bad status or malformed URL."""
    pass


class RobotsDisallowedError(PermanentFetchError):
    """robots.txt forbids the URL. A policy outcome, not a failure of the target."""
    pass


class ParseError(CrawlError):
    """Page body could not be parsed for links."""
    pass


class SharedStateError(CrawlError):
    """Shared crawl state (frontier, dedup set) could not be safely accessed."""
    pass


class OutputError(CrawlError):
    """Visited URL could not be written to the output sink."""
    pass
