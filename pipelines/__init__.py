"""Pipelines package for Covenant Copilot.

Provides link classification, content extraction, chunking, indexing and
the crawl frontier.
"""

from .links import classify_link, resolve_href
from .tags import TAG_TABLE, extract_tags, boost_tags_for_query, is_conflict_prone
from .extractor import ContentExtractor, RawPage, parse_html, parse_sitemap
from .chunker import Section, SectionChunker, TextWindow, split_by_heading, window_text
from .session import CrawlSessionTracker
from .indexer import EmbeddingIndexer
from .frontier import CrawlFrontier, FrontierManager
from .documents import DocumentProcessor

__all__ = [
    # Links and tags
    'classify_link',
    'resolve_href',
    'TAG_TABLE',
    'extract_tags',
    'boost_tags_for_query',
    'is_conflict_prone',

    # Extraction
    'ContentExtractor',
    'RawPage',
    'parse_html',
    'parse_sitemap',

    # Chunking
    'Section',
    'SectionChunker',
    'TextWindow',
    'split_by_heading',
    'window_text',

    # Indexing and crawling
    'CrawlSessionTracker',
    'EmbeddingIndexer',
    'CrawlFrontier',
    'FrontierManager',
    'DocumentProcessor'
]
