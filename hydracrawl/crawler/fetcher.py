"""
Web page fetcher implementation with robots.txt support and bounded-time requests.
"""

import asyncio
import aiohttp
import logging
import time
from typing import Optional, Dict
from urllib.parse import urljoin, urlparse
from urllib.robotparser import RobotFileParser
from dataclasses import dataclass
from aiohttp import ClientSession, ClientTimeout, ClientError

from ..errors import PermanentFetchError, RobotsDisallowedError, TransientFetchError


@dataclass
class FetchResult:
    """Result of a fetch operation. location holds the raw Location header of a redirect."""
    url: str
    status_code: int
    content: Optional[str] = None
    headers: Optional[Dict[str, str]] = None
    fetch_time: float = 0.0
    content_type: Optional[str] = None
    encoding: Optional[str] = None
    location: Optional[str] = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def is_redirect(self) -> bool:
        return 300 <= self.status_code < 400 and bool(self.location)


class RobotsChecker:
    """Manages robots.txt checking for domains."""

    def __init__(self, user_agent: str):
        self.user_agent = user_agent
        self.robots_cache: Dict[str, RobotFileParser] = {}
        self.robots_check_time: Dict[str, float] = {}
        self.cache_ttl = 3600  # 1 hour cache TTL
        self.logger = logging.getLogger(__name__)

    def _get_domain(self, url: str) -> str:
        """Extract domain from URL."""
        parsed = urlparse(url)
        return f"{parsed.scheme}://{parsed.netloc}"

    async def can_fetch(self, url: str, session: ClientSession) -> bool:
        """Check if URL can be fetched according to robots.txt."""
        domain = self._get_domain(url)
        current_time = time.time()

        # Check if we have a cached robots.txt that's still valid
        if (domain in self.robots_cache and
                current_time - self.robots_check_time[domain] < self.cache_ttl):
            return self.robots_cache[domain].can_fetch(self.user_agent, url)

        robots_url = urljoin(domain, '/robots.txt')
        rp = RobotFileParser()
        rp.set_url(robots_url)
        try:
            async with session.get(robots_url, timeout=ClientTimeout(total=10)) as response:
                if response.status == 200:
                    rp.parse((await response.text()).splitlines())
                else:
                    # If robots.txt doesn't exist, allow all
                    rp.parse([])
        except (ClientError, asyncio.TimeoutError, UnicodeDecodeError) as e:
            self.logger.warning(f"Could not fetch robots.txt for {domain}: {e}")
            # If we can't fetch robots.txt, allow by default
            return True

        self.robots_cache[domain] = rp
        self.robots_check_time[domain] = current_time
        return rp.can_fetch(self.user_agent, url)


class WebFetcher:
    """
    Fetches web pages with a bounded timeout, robots.txt compliance and a
    response size limit.

    fetch() returns a FetchResult for any HTTP status; classifying statuses
    is the caller's business. Redirects are not followed: a 3xx comes back
    with its Location so the caller can scope-check the target before it is
    fetched. Network-level failures raise TransientFetchError, malformed
    URLs raise PermanentFetchError and robots.txt refusals raise
    RobotsDisallowedError.
    """

    def __init__(self, user_agent: str, request_timeout: float = 10,
                 max_concurrent_requests: int = 50, respect_robots_txt: bool = False,
                 max_content_size: int = 10 * 1024 * 1024):
        self.user_agent = user_agent
        self.request_timeout = request_timeout
        self.max_concurrent_requests = max_concurrent_requests
        self.respect_robots_txt = respect_robots_txt
        self.max_content_size = max_content_size

        self.logger = logging.getLogger(__name__)
        self.robots_checker = RobotsChecker(user_agent) if respect_robots_txt else None

        # Session management
        self.session: Optional[ClientSession] = None
        self.semaphore = asyncio.Semaphore(max_concurrent_requests)

        # Statistics
        self.stats = {
            'total_requests': 0,
            'successful_requests': 0,
            'failed_requests': 0,
            'robots_blocked': 0,
            'total_bytes_downloaded': 0
        }

    @classmethod
    def from_config(cls, config) -> 'WebFetcher':
        return cls(
            user_agent=config.user_agent,
            request_timeout=config.request_timeout,
            max_concurrent_requests=config.max_workers,
            respect_robots_txt=config.respect_robots_txt,
            max_content_size=config.max_content_size
        )

    async def __aenter__(self):
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    async def start(self):
        """Initialize the fetcher session."""
        if self.session is None:
            timeout = ClientTimeout(total=self.request_timeout)
            headers = {'User-Agent': self.user_agent}

            self.session = aiohttp.ClientSession(
                timeout=timeout,
                headers=headers,
                connector=aiohttp.TCPConnector(
                    limit=self.max_concurrent_requests * 2,
                    limit_per_host=self.max_concurrent_requests,
                    ttl_dns_cache=300,
                    use_dns_cache=True
                )
            )
            self.logger.info("WebFetcher session started")

    async def close(self):
        """Close the fetcher session."""
        if self.session:
            await self.session.close()
            self.session = None
            self.logger.info("WebFetcher session closed")

    async def fetch(self, url: str, timeout: Optional[float] = None) -> FetchResult:
        """
        Fetch a single URL.

        Args:
            url: The URL to fetch
            timeout: Total time allowed for the request, defaults to request_timeout

        Returns:
            FetchResult with status, headers and decoded text (None for non-text bodies)
        """
        if self.session is None:
            await self.start()

        start_time = time.time()
        total_timeout = ClientTimeout(total=timeout or self.request_timeout)

        async with self.semaphore:
            # Check robots.txt if enabled
            if self.robots_checker:
                if not await self.robots_checker.can_fetch(url, self.session):
                    self.stats['robots_blocked'] += 1
                    self.logger.info(f"Robots.txt blocks access to: {url}")
                    raise RobotsDisallowedError(url, "Blocked by robots.txt")

            self.stats['total_requests'] += 1
            try:
                async with self.session.get(url, timeout=total_timeout, allow_redirects=False) as response:
                    headers = dict(response.headers)
                    content_type = response.headers.get('content-type', '').lower()

                    content = None
                    if self._is_text_content(content_type):
                        content = await self._read_content_safely(response)
                    else:
                        self.logger.debug(f"Not reading non-text content: {url} ({content_type})")

                    if content:
                        self.stats['total_bytes_downloaded'] += len(content)
                    self.stats['successful_requests'] += 1

                    result = FetchResult(
                        url=str(response.url),
                        status_code=response.status,
                        content=content,
                        headers=headers,
                        content_type=content_type,
                        encoding=response.charset,
                        location=response.headers.get('Location'),
                        fetch_time=time.time() - start_time
                    )

                    self.logger.debug(f"Fetched {url}: {response.status} ({len(content) if content else 0} chars)")
                    return result

            except asyncio.TimeoutError as e:
                self.stats['failed_requests'] += 1
                raise TransientFetchError(url, "Request timeout") from e

            except aiohttp.InvalidURL as e:
                self.stats['failed_requests'] += 1
                raise PermanentFetchError(url, f"Invalid URL: {e}") from e

            except ClientError as e:
                self.stats['failed_requests'] += 1
                raise TransientFetchError(url, f"Client error: {e}") from e

    def _is_text_content(self, content_type: str) -> bool:
        """Check if content type is text-based."""
        text_types = [
            'text/html',
            'text/plain',
            'text/xml',
            'application/xml',
            'application/xhtml+xml'
        ]

        # Servers that omit the header usually serve HTML
        return not content_type or any(text_type in content_type for text_type in text_types)

    async def _read_content_safely(self, response) -> Optional[str]:
        """
        Read response content with a size limit.

        Returns:
            Content string or None if the body exceeds max_content_size
        """
        max_size = self.max_content_size
        content_length = response.headers.get('content-length')
        if content_length and content_length.isdigit() and int(content_length) > max_size:
            self.logger.warning(f"Content too large ({content_length} bytes): {response.url}")
            return None

        # Read content in chunks to respect size limit
        chunks = []
        size = 0
        async for chunk in response.content.iter_chunked(8192):
            size += len(chunk)
            if size > max_size:
                self.logger.warning(f"Content exceeded size limit during reading: {response.url}")
                return None
            chunks.append(chunk)
        content_bytes = b''.join(chunks)

        # Decode content
        encoding = response.charset or 'utf-8'
        try:
            return content_bytes.decode(encoding)
        except (UnicodeDecodeError, LookupError):
            # Try common encodings
            for fallback_encoding in ['utf-8', 'cp1252']:
                try:
                    return content_bytes.decode(fallback_encoding)
                except UnicodeDecodeError:
                    continue

            # If all else fails, decode with errors ignored
            return content_bytes.decode('utf-8', errors='ignore')

    def get_stats(self) -> Dict[str, int]:
        """Get fetcher statistics."""
        return self.stats.copy()
