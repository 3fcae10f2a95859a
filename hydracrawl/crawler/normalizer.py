"""
URL canonicalization and crawl-scope decisions.
"""

import logging
from typing import Iterable, Optional
from urllib.parse import urljoin, urlsplit, urlunsplit


DEFAULT_PORTS = {'http': 80, 'https': 443}


class URLNormalizer:
    """
    Turns raw hrefs into canonical absolute URLs and decides whether a URL
    belongs to the crawl.

    Canonical form: lowercase scheme and host, default port dropped, empty
    path replaced by '/', query kept, fragment removed.
    """

    def __init__(self, seed_url: str, excluded_domains: Iterable[str] = (),
                 include_subdomains: bool = False, exclusion_match: str = 'host',
                 skip_extensions: Iterable[str] = ()):
        self.logger = logging.getLogger(__name__)
        self.excluded_domains = frozenset(d.lower() for d in excluded_domains)
        self.include_subdomains = include_subdomains
        self.exclusion_match = exclusion_match
        self.skip_extensions = tuple(e.lower() for e in skip_extensions)

        self.seed_url = self.normalize_seed(seed_url)
        self.seed_host = self.domain_of(self.seed_url)

    @classmethod
    def from_config(cls, config) -> 'URLNormalizer':
        return cls(
            seed_url=config.seed_url,
            excluded_domains=config.excluded_domains,
            include_subdomains=config.include_subdomains,
            exclusion_match=config.exclusion_match,
            skip_extensions=config.skip_extensions
        )

    def normalize_seed(self, seed_url: str) -> str:
        """Canonicalize the seed, assuming https when no scheme is given."""
        seed_url = seed_url.strip()
        if '://' not in seed_url:
            seed_url = f"https://{seed_url}"
        canonical = self._canonical_form(seed_url)
        if canonical is None:
            raise ValueError(f"Invalid seed URL: {seed_url}")
        return canonical

    def canonicalize(self, base_url: str, href: str) -> Optional[str]:
        """
        Resolve href against base_url and return its canonical form.

        Returns None for empty or fragment-only hrefs, non-http(s) schemes
        and anything that does not parse.
        """
        if href is None:
            return None
        href = href.strip()
        if not href or href.startswith('#'):
            return None

        try:
            absolute_url = urljoin(base_url, href)
        except ValueError as e:
            self.logger.debug(f"Rejected malformed href {href!r} on {base_url}: {e}")
            return None

        return self._canonical_form(absolute_url)

    def _canonical_form(self, url: str) -> Optional[str]:
        try:
            parts = urlsplit(url)
            scheme = parts.scheme.lower()
            if scheme not in DEFAULT_PORTS:
                return None

            host = parts.hostname
            if not host:
                return None

            # .port raises ValueError for out-of-range or non-numeric ports
            port = parts.port
        except ValueError as e:
            self.logger.debug(f"Rejected malformed URL {url!r}: {e}")
            return None

        if ':' in host:
            host = f"[{host}]"
        netloc = host
        if port is not None and port != DEFAULT_PORTS[scheme]:
            netloc = f"{host}:{port}"

        path = parts.path or '/'
        return urlunsplit((scheme, netloc, path, parts.query, ''))

    def domain_of(self, url: str) -> str:
        """Lowercase host of url, used as the frontier key."""
        try:
            return (urlsplit(url).hostname or '').lower()
        except ValueError:
            return ''

    def is_excluded(self, url: str) -> bool:
        """
        Substring match against excluded_domains.

        Approximate: 'tube' excludes 'youtube.com' and also
        'tube.example.org'. Matches the host unless exclusion_match is 'url'.
        """
        if not self.excluded_domains:
            return False
        target = url.lower() if self.exclusion_match == 'url' else self.domain_of(url)
        return any(excluded in target for excluded in self.excluded_domains)

    def _host_in_scope(self, host: str) -> bool:
        if host == self.seed_host:
            return True
        return self.include_subdomains and host.endswith(f".{self.seed_host}")

    def is_in_scope(self, url: str) -> bool:
        """Same host as the seed (or a subdomain, when enabled), not excluded, not a binary asset."""
        host = self.domain_of(url)
        if not host or not self._host_in_scope(host):
            return False
        if self.is_excluded(url):
            return False
        path = urlsplit(url).path.lower()
        if self.skip_extensions and path.endswith(self.skip_extensions):
            return False
        return True
