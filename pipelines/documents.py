"""Curated document processing: the community-rules PDF and key web pages.

A rebuild clears the chunk table and re-indexes every curated document in
one embedding batch.
"""

import logging
from pathlib import Path
from typing import List, Optional, Sequence

from pypdf import PdfReader
from pypdf.errors import PdfReadError

from indexer.models import ChunkRecord
from sources.loader import SiteConfig
from .chunker import SectionChunker, page_locator_for
from .extractor import ContentExtractor
from .indexer import EmbeddingIndexer

logger = logging.getLogger(__name__)

MIN_PAGE_CONTENT = 100
PAGE_SEPARATOR = "\n"


def extract_pdf_pages(pdf_path) -> List[str]:
    """Text of each PDF page, in page order."""
    reader = PdfReader(str(pdf_path))
    return [page.extract_text() or "" for page in reader.pages]


class DocumentProcessor:
    """Builds chunk records for curated documents and rebuilds the index."""

    def __init__(self, site: SiteConfig, indexer: EmbeddingIndexer,
                 chunker: Optional[SectionChunker] = None,
                 extractor: Optional[ContentExtractor] = None):
        self.site = site
        self.indexer = indexer
        self.chunker = chunker or SectionChunker()
        self.extractor = extractor

    def process_pdf(self, pdf_path, title: Optional[str] = None) -> List[ChunkRecord]:
        """Section-split and window a PDF.

        Sections carry the range of pages they span and each chunk carries
        the page it starts on. PDF chunks have no source URL.
        """
        path = Path(pdf_path)
        if not path.exists():
            logger.warning(f"PDF not found: {path}")
            return []

        try:
            pages = extract_pdf_pages(path)
        except PdfReadError as e:
            logger.error(f"Failed to read PDF {path}: {e}")
            return []

        text = PAGE_SEPARATOR.join(pages)
        locator = page_locator_for(pages, PAGE_SEPARATOR)
        records = self.chunker.chunk_document(
            text,
            default_title=title or self.site.pdf_title or path.stem,
            page_locator=locator,
        )
        logger.info(f"Processed PDF {path.name}: {len(pages)} pages, {len(records)} chunks")
        return records

    async def process_web_pages(self, urls: Sequence[str]) -> List[ChunkRecord]:
        """Fetch curated pages and chunk those with enough content."""
        extractor = self.extractor or ContentExtractor(self.site)
        owns_extractor = self.extractor is None
        records: List[ChunkRecord] = []

        if owns_extractor:
            await extractor.__aenter__()
        try:
            for url in urls:
                page = await extractor.fetch_document(url)
                if page is None:
                    continue
                if len(page.text) <= MIN_PAGE_CONTENT:
                    logger.info(f"Skipping {url}: only {len(page.text)} characters of content")
                    continue
                page_records = self.chunker.chunk_document(page.text, default_title=page.title or url,
                                                           source_url=url)
                logger.info(f"Processed {url}: {len(page_records)} chunks")
                records.extend(page_records)
        finally:
            if owns_extractor:
                await extractor.close()

        return records

    async def rebuild_index(self, pdf_path=None, include_web: bool = True) -> int:
        """Replace the whole index with the curated documents.

        Returns:
            Number of chunks persisted.
        """
        records: List[ChunkRecord] = []

        pdf = pdf_path or self.site.pdf_path
        if pdf:
            records.extend(self.process_pdf(pdf))

        if include_web and self.site.curated_pages:
            records.extend(await self.process_web_pages(self.site.curated_urls()))

        if not records:
            logger.warning("No curated documents produced any chunks; index left unchanged")
            return 0

        return await self.indexer.rebuild(records)
