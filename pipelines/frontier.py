"""Crawl frontier: bounded, sequential traversal of one site.

A ``CrawlFrontier`` holds the queue, visited set and exclusion rules of a
single crawl run. ``FrontierManager`` drives it: fetch, chunk, index, store
links, enqueue internal links, then wait out the politeness delay.
"""

import asyncio
import logging
from collections import deque
from typing import Deque, Iterable, List, Optional, Pattern, Set

from indexer.models import CrawlSession, LinkStatus, LinkType
from observability.logging import get_structured_logger
from observability.metrics import record_links, record_page
from sources.loader import SiteConfig
from .chunker import SectionChunker
from .extractor import ContentExtractor
from .indexer import EmbeddingIndexer
from .session import CrawlSessionTracker

logger = logging.getLogger(__name__)


class PageFailure(Exception):
    """A single URL could not be processed."""


class CrawlFrontier:
    """FIFO work queue plus visited set, owned by one crawl run."""

    def __init__(self, exclusions: Iterable[Pattern[str]] = ()):
        self.queue: Deque[str] = deque()
        self.visited: Set[str] = set()
        self.seen: Set[str] = set()
        self.exclusions: List[Pattern[str]] = list(exclusions)

    def __len__(self) -> int:
        return len(self.queue)

    def is_excluded(self, url: str) -> bool:
        return any(pattern.search(url) for pattern in self.exclusions)

    def push(self, url: str) -> bool:
        """Append ``url`` unless it was queued or visited before or is excluded.

        Returns:
            True when the URL was newly added.
        """
        if url in self.seen or url in self.visited or self.is_excluded(url):
            return False
        self.seen.add(url)
        self.queue.append(url)
        return True

    def pop(self) -> Optional[str]:
        """Next URL that still needs a visit, or None when the queue is drained."""
        while self.queue:
            url = self.queue.popleft()
            if url in self.visited or self.is_excluded(url):
                continue
            return url
        return None

    def mark_visited(self, url: str) -> None:
        self.visited.add(url)


class FrontierManager:
    """Runs crawl sessions for one site."""

    def __init__(
        self,
        site: SiteConfig,
        store=None,
        indexer: Optional[EmbeddingIndexer] = None,
        chunker: Optional[SectionChunker] = None,
        extractor: Optional[ContentExtractor] = None,
    ):
        """Initialize the manager.

        Args:
            site: Site to crawl
            store: Chunk/link/session store, or None to crawl without persistence
            indexer: Embedding indexer (defaults to one over ``store`` with no provider)
            chunker: Section chunker
            extractor: Content extractor; when omitted one is opened per run
        """
        self.site = site
        self.store = store
        self.indexer = indexer or EmbeddingIndexer(store, None)
        self.chunker = chunker or SectionChunker()
        self.extractor = extractor

    async def run(
        self,
        max_pages: Optional[int] = None,
        seed_urls: Optional[List[str]] = None,
        cancel_event: Optional[asyncio.Event] = None,
        seed_from_pending: bool = False,
        embed: bool = True,
        use_sitemap: Optional[bool] = None,
    ) -> CrawlSession:
        """Crawl until the queue empties, the budget is spent or ``cancel_event`` is set.

        Args:
            max_pages: Page budget (defaults to the site's)
            seed_urls: Explicit seeds, replacing the configured ones
            cancel_event: Stops the run before the next URL once set
            seed_from_pending: Seed from stored pending internal links
            embed: Attach vectors while indexing
            use_sitemap: Override the site's sitemap toggle

        Returns:
            The finalized crawl session.

        Raises:
            CrawlSessionError: If the session record cannot be created.
        """
        budget = max_pages or self.site.max_pages
        tracker = CrawlSessionTracker(self.store)
        await tracker.start()
        log = get_structured_logger(__name__, session_id=tracker.session_id)
        frontier = CrawlFrontier(self.site.exclusion_patterns())

        extractor = self.extractor or ContentExtractor(self.site)
        owns_extractor = self.extractor is None

        try:
            if owns_extractor:
                await extractor.__aenter__()

            seeds = await self._seed_urls(extractor, seed_urls, seed_from_pending, budget, use_sitemap)
            for url in seeds:
                if frontier.push(url):
                    tracker.record_discovered()
            log.info(f"Crawl started with {len(frontier)} seed URLs", budget=budget)

            while len(frontier) and tracker.session.pages_processed < budget:
                if cancel_event is not None and cancel_event.is_set():
                    log.info("Crawl cancelled", processed=tracker.session.pages_processed)
                    break

                url = frontier.pop()
                if url is None:
                    break

                frontier.mark_visited(url)
                tracker.record_processed()
                await self._process(url, extractor, frontier, tracker, embed, log)

                if len(frontier) and tracker.session.pages_processed < budget:
                    await self._pause(cancel_event)

        except Exception as e:
            log.exception(f"Crawl session failed: {e}")
            await tracker.fail(str(e))
            raise
        finally:
            if owns_extractor:
                await extractor.close()

        return await tracker.complete()

    async def _seed_urls(self, extractor, seed_urls, seed_from_pending, budget, use_sitemap) -> List[str]:
        if seed_urls is not None:
            return list(seed_urls)

        if seed_from_pending:
            pending = await self.store.pending_internal_links(budget) if self.store is not None else []
            if pending:
                logger.info(f"Seeding from {len(pending)} pending links")
                return pending
            logger.info("No pending links stored; using fallback URLs")
            return list(self.site.fallback_urls or self.site.seed_urls())

        seeds = self.site.seed_urls()
        sitemap = self.site.use_sitemap if use_sitemap is None else use_sitemap
        if sitemap:
            seeds.extend(await extractor.fetch_sitemap_urls())
        return seeds

    async def _pause(self, cancel_event: Optional[asyncio.Event]) -> None:
        delay = self.site.crawl_delay
        if delay <= 0:
            return
        if cancel_event is None:
            await asyncio.sleep(delay)
            return
        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass

    async def _process(self, url, extractor, frontier: CrawlFrontier,
                       tracker: CrawlSessionTracker, embed: bool, log) -> None:
        if self.store is not None:
            await self.store.ensure_link(url)

        try:
            page = await extractor.fetch(url)
            if page is None:
                raise PageFailure("No content returned")
            if not page.ok:
                raise PageFailure(f"HTTP {page.status}")

            records = self.chunker.chunk_page(
                page.text,
                url,
                page.title,
                meta_description=page.meta_description or None,
                content_type=page.content_type,
                response_status=page.status,
                last_modified=page.last_modified,
            )
            await self.indexer.index_source(url, records, embed=embed)

            internal = [link for link in page.links if link.link_type == LinkType.INTERNAL]
            external = [link for link in page.links if link.link_type == LinkType.EXTERNAL]
            if self.store is not None and page.links:
                await self.store.upsert_links(page.links)
            tracker.record_links(len(internal), len(external))
            record_links(LinkType.INTERNAL.value, len(internal))
            record_links(LinkType.EXTERNAL.value, len(external))

            for link in internal:
                if frontier.push(link.url):
                    tracker.record_discovered()

        except Exception as e:
            tracker.record_failure()
            record_page("failed")
            log.warning(f"Failed to process {url}: {e}", url=url)
            if self.store is not None:
                await self.store.mark_link(url, LinkStatus.FAILED, str(e))
            return

        tracker.record_success()
        record_page("success")
        if self.store is not None:
            await self.store.mark_link(url, LinkStatus.SUCCESS)
        log.info(f"Processed {url}: {len(records)} chunks, {len(internal)} internal links", url=url)
