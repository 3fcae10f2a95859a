"""Shared fixtures: an in-process fake site and fast crawl settings."""

from __future__ import annotations

import asyncio
from collections import Counter
from typing import Dict, List, Optional

import pytest

from hydracrawl.crawler.fetcher import FetchResult
from hydracrawl.errors import TransientFetchError
from hydracrawl.utils.config import CrawlerConfig

BASE = "http://site.test"


def page_html(links: List[str]) -> str:
    anchors = "".join(f'<a href="{href}">link</a>' for href in links)
    return f"<html><head><title>t</title></head><body>{anchors}</body></html>"


class FakeSite:
    """
    Serves a fixed link graph.

    pages maps canonical URL -> hrefs on that page. URLs missing from pages
    answer 404. statuses overrides the status per URL, default_status applies
    to everything else. transient maps URL -> number of leading attempts that
    raise TransientFetchError.
    """

    def __init__(self, pages: Dict[str, List[str]], statuses: Optional[Dict[str, int]] = None,
                 default_status: int = 200, transient: Optional[Dict[str, int]] = None,
                 delay: float = 0.0, bodies: Optional[Dict[str, Optional[str]]] = None):
        self.pages = pages
        self.statuses = statuses or {}
        self.default_status = default_status
        self.transient = dict(transient or {})
        self.delay = delay
        self.bodies = bodies or {}
        self.fetches: List[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    @property
    def fetch_counts(self) -> Counter:
        return Counter(self.fetches)

    async def fetch(self, url: str, timeout: Optional[float] = None) -> FetchResult:
        self.fetches.append(url)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            if self.transient.get(url, 0) > 0:
                self.transient[url] -= 1
                raise TransientFetchError(url, "Request timeout")

            if url not in self.pages:
                return FetchResult(url=url, status_code=404, content="not found",
                                   content_type="text/html")

            status = self.statuses.get(url, self.default_status)
            content = self.bodies[url] if url in self.bodies else page_html(self.pages[url])
            return FetchResult(url=url, status_code=status, content=content,
                               content_type="text/html")
        finally:
            self.in_flight -= 1


def make_config(**overrides) -> CrawlerConfig:
    settings = dict(
        seed_url=f"{BASE}/",
        max_depth=3,
        max_pages_per_domain=1000,
        min_workers=1,
        max_workers=4,
        error_threshold=3,
        fatal_error_threshold=20,
        request_timeout=1.0,
        retry_limit=2,
        retry_backoff=0.01,
        retry_backoff_max=0.05,
        round_budget=5,
        idle_wait=0.005,
        politeness_delay=0.0,
    )
    settings.update(overrides)
    return CrawlerConfig(**settings)


@pytest.fixture
def crawl_config():
    return make_config


@pytest.fixture
def output_path(tmp_path):
    return tmp_path / "visited.txt"


def read_lines(path) -> List[str]:
    if not path.exists():
        return []
    return path.read_text(encoding="utf-8").splitlines()
