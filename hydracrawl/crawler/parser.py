"""
Link extraction from fetched HTML pages.
"""

import logging
from typing import List
from urllib.parse import urljoin

from bs4 import BeautifulSoup, SoupStrainer

from ..errors import ParseError


# Only <a href> and <base href> matter for link discovery
LINK_STRAINER = SoupStrainer(['a', 'base'])


class LinkExtractor:
    """
    Pulls raw href strings out of HTML.

    Hrefs are returned as written in the page, in document order. When the
    page declares <base href>, hrefs are resolved against it so that callers
    resolving against the page URL still land on the right target.
    """

    def __init__(self, features: str = 'lxml'):
        self.features = features
        self.logger = logging.getLogger(__name__)

    def extract_links(self, html_content: str, base_url: str) -> List[str]:
        """
        Extract outbound hrefs from a page.

        Args:
            html_content: Raw HTML content
            base_url: URL the page was fetched from

        Returns:
            List of href strings

        Raises:
            ParseError: if the document cannot be parsed
        """
        try:
            soup = BeautifulSoup(html_content, self.features, parse_only=LINK_STRAINER)
        except Exception as e:
            raise ParseError(f"Cannot parse {base_url}: {e}") from e

        document_base = None
        base_tag = soup.find('base', href=True)
        if base_tag and base_tag['href'].strip():
            document_base = urljoin(base_url, base_tag['href'].strip())

        links = []
        for anchor in soup.find_all('a', href=True):
            href = anchor['href'].strip()
            if not href:
                continue
            if document_base and not href.startswith('#'):
                href = urljoin(document_base, href)
            links.append(href)

        self.logger.debug(f"Extracted {len(links)} links from {base_url}")
        return links
