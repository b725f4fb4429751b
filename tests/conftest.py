"""Shared fixtures: a temporary SQLite store, a keyword embedding provider and a fake extractor."""

from typing import Dict, List, Optional, Union

import pytest
import pytest_asyncio

from indexer.embeddings import EmbeddingProvider
from indexer.sqlite_adapter import SQLiteAdapter
from pipelines.extractor import RawPage
from pipelines.links import classify_link
from sources.loader import SiteConfig

VOCABULARY = ["fence", "color", "brown", "natural", "approval", "shed", "parking", "deck"]


class KeywordEmbeddingProvider(EmbeddingProvider):
    """Deterministic vectors built from keyword counts, with a constant bias term."""

    def __init__(self, model: str = "keyword-test-model"):
        self.model = model
        self.dimensions = len(VOCABULARY) + 1
        self.calls: List[List[str]] = []

    async def _embed(self, texts):
        self.calls.append(list(texts))
        return [self.vector(text) for text in texts]

    @staticmethod
    def vector(text: str) -> List[float]:
        lowered = text.lower()
        return [float(lowered.count(word)) for word in VOCABULARY] + [0.1]


class FakeExtractor:
    """Serves canned pages; URLs missing from ``pages`` behave like network failures."""

    def __init__(self, pages: Optional[Dict[str, Union[RawPage, None]]] = None, page_factory=None,
                 sitemap: Optional[List[str]] = None, on_fetch=None):
        self.pages = pages or {}
        self.page_factory = page_factory
        self.sitemap = sitemap or []
        self.on_fetch = on_fetch
        self.fetched: List[str] = []

    async def fetch(self, url):
        self.fetched.append(url)
        if self.on_fetch:
            self.on_fetch(url)
        if self.page_factory is not None:
            return self.page_factory(url)
        return self.pages.get(url)

    async def fetch_document(self, url):
        return await self.fetch(url)

    async def fetch_sitemap_urls(self):
        return list(self.sitemap)

    async def close(self):
        pass


def make_page(url: str, text: str, hrefs=(), domain: str = "example.org", title: str = "", status: int = 200) -> RawPage:
    links = [classify_link(href, url, "", domain) for href in hrefs]
    return RawPage(url=url, text=text, title=title, status=status,
                   links=[link for link in links if link is not None])


@pytest.fixture
def site():
    return SiteConfig(name="example", domain="example.org", seed_paths=[""],
                      crawl_delay=0, use_sitemap=False, max_pages=500)


@pytest.fixture
def provider():
    return KeywordEmbeddingProvider()


@pytest_asyncio.fixture
async def store(tmp_path):
    adapter = SQLiteAdapter(str(tmp_path / "copilot.db"))
    await adapter.initialize()
    yield adapter
    await adapter.close()
