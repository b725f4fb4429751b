"""Fetch pages and reduce them to cleaned text, metadata and outbound links."""

import asyncio
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from email.utils import parsedate_to_datetime
from typing import List, Optional, Sequence

import aiohttp
from bs4 import BeautifulSoup

from indexer.models import DiscoveredLink
from sources.loader import SiteConfig
from .links import classify_link

logger = logging.getLogger(__name__)

ACCEPT_HTML = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"

# Elements removed before text extraction, and content containers in preference order.
CRAWL_STRIP_SELECTORS = "script, style, nav, footer, .navigation, .menu, #sidebar"
CRAWL_CONTENT_SELECTORS = ("main", ".main", ".content", "body")

DOCUMENT_STRIP_SELECTORS = "script, style, nav, header, footer, .nav, .navigation"
DOCUMENT_CONTENT_SELECTORS = ("main", ".content", ".main-content", "body")

_WHITESPACE = re.compile(r"\s+")
_SITEMAP_LOC = re.compile(r"<loc>(.*?)</loc>", re.DOTALL)


@dataclass
class RawPage:
    """Result of one fetch-and-extract cycle."""
    url: str
    text: str
    title: str = ""
    meta_description: str = ""
    content_type: str = "text/html"
    status: int = 200
    links: List[DiscoveredLink] = field(default_factory=list)
    last_modified: Optional[datetime] = None

    @property
    def ok(self) -> bool:
        return self.status < 400


def collapse_whitespace(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip()


def parse_last_modified(value: Optional[str]) -> Optional[datetime]:
    """Parse an HTTP ``Last-Modified`` header, ignoring malformed values."""
    if not value:
        return None
    try:
        return parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None


def parse_html(
    html: str,
    url: str,
    domain: Optional[str] = None,
    page_extensions: Optional[Sequence[str]] = None,
    strip_selectors: str = CRAWL_STRIP_SELECTORS,
    content_selectors: Sequence[str] = CRAWL_CONTENT_SELECTORS,
) -> RawPage:
    """Extract cleaned text, metadata and links from an HTML document.

    Links are only collected when ``domain`` is given, and only from what
    remains after ``strip_selectors`` are removed.
    """
    soup = BeautifulSoup(html, "html.parser")

    title_tag = soup.find("title")
    title = title_tag.get_text().strip() if title_tag else ""

    meta = soup.find("meta", attrs={"name": "description"})
    meta_description = (meta.get("content") or "").strip() if meta else ""

    for element in soup.select(strip_selectors):
        element.decompose()

    links: List[DiscoveredLink] = []
    if domain:
        extra = {"page_extensions": page_extensions} if page_extensions is not None else {}
        for anchor in soup.find_all("a", href=True):
            link = classify_link(anchor["href"], url, anchor.get_text().strip(), domain, **extra)
            if link:
                links.append(link)

    container = None
    for selector in content_selectors:
        container = soup.select_one(selector)
        if container is not None:
            break
    raw_text = container.get_text(" ") if container is not None else soup.get_text(" ")

    return RawPage(
        url=url,
        text=collapse_whitespace(raw_text),
        title=title,
        meta_description=meta_description,
        links=links,
    )


def parse_sitemap(xml: str, base_url: str) -> List[str]:
    """URLs listed in ``<loc>`` entries that belong to ``base_url``."""
    urls = []
    for match in _SITEMAP_LOC.findall(xml):
        loc = match.strip()
        if loc.startswith(base_url):
            urls.append(loc)
    return urls


class ContentExtractor:
    """HTTP fetcher bound to one site's identity and link rules."""

    def __init__(self, site: SiteConfig, session: Optional[aiohttp.ClientSession] = None):
        self.site = site
        self.session = session
        self._owns_session = session is None

    async def __aenter__(self):
        """Async context manager entry."""
        if self.session is None:
            timeout = aiohttp.ClientTimeout(total=self.site.timeout)
            self.session = aiohttp.ClientSession(
                timeout=timeout,
                headers={'User-Agent': self.site.user_agent}
            )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    async def close(self):
        if self.session and self._owns_session:
            await self.session.close()
            self.session = None

    async def fetch(self, url: str) -> Optional[RawPage]:
        """Fetch and extract one page.

        Returns:
            The extracted page (including error statuses), or None on a
            network-level failure.
        """
        headers = {'User-Agent': self.site.user_agent, 'Accept': ACCEPT_HTML}
        try:
            async with self.session.get(url, headers=headers, allow_redirects=True) as response:
                body = await response.text(errors="replace")
                status = response.status
                content_type = response.headers.get('content-type', 'text/html')
                last_modified = parse_last_modified(response.headers.get('last-modified'))
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"Error fetching {url}: {e}")
            return None

        page = parse_html(body, url, self.site.domain, self.site.page_extensions)
        page.status = status
        page.content_type = content_type
        page.last_modified = last_modified
        return page

    async def fetch_document(self, url: str) -> Optional[RawPage]:
        """Fetch a curated page using document-style cleanup (no link collection)."""
        headers = {'User-Agent': self.site.user_agent, 'Accept': ACCEPT_HTML}
        try:
            async with self.session.get(url, headers=headers, allow_redirects=True) as response:
                if response.status >= 400:
                    logger.warning(f"Failed to fetch {url}: HTTP {response.status}")
                    return None
                body = await response.text(errors="replace")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"Error fetching {url}: {e}")
            return None

        return parse_html(
            body, url,
            strip_selectors=DOCUMENT_STRIP_SELECTORS,
            content_selectors=DOCUMENT_CONTENT_SELECTORS,
        )

    async def fetch_sitemap_urls(self) -> List[str]:
        """Seed URLs from the site's sitemap; empty when it is unavailable."""
        sitemap_url = self.site.sitemap_url
        try:
            async with self.session.get(sitemap_url, headers={'User-Agent': self.site.user_agent}) as response:
                if response.status != 200:
                    logger.info(f"Sitemap not found: {sitemap_url} (HTTP {response.status})")
                    return []
                xml = await response.text(errors="replace")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"Error fetching sitemap {sitemap_url}: {e}")
            return []

        urls = parse_sitemap(xml, self.site.base_url)
        logger.info(f"Found {len(urls)} URLs in sitemap")
        return urls
