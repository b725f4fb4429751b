#!/usr/bin/env python3
"""Rebuild the index from the curated documents (rules PDF and key pages)."""

import asyncio
import argparse
import logging
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from config.database import open_store
from indexer.embeddings import get_embedding_provider
from indexer.models import CopilotError
from observability.logging import setup_logging
from pipelines.documents import DocumentProcessor
from pipelines.indexer import EmbeddingIndexer
from sources.loader import DEFAULT_SITE, load_site_config

logger = logging.getLogger(__name__)


async def main():
    parser = argparse.ArgumentParser(description="Rebuild the Covenant Copilot index from curated documents")
    parser.add_argument("--site", default=DEFAULT_SITE, help="Site configuration name")
    parser.add_argument("--pdf", help="Path to the rules PDF (overrides the site configuration)")
    parser.add_argument("--skip-web", action="store_true", help="Only process the PDF")
    parser.add_argument("--log-level", default="INFO", help="Log level")

    args = parser.parse_args()
    setup_logging(level=args.log_level)

    site = load_site_config(args.site)
    if site is None:
        logger.error(f"Unknown site: {args.site}")
        sys.exit(2)

    store = await open_store()
    provider = get_embedding_provider()
    if store is None or provider is None:
        logger.error("A datastore and an embedding provider are required to rebuild the index")
        sys.exit(2)

    processor = DocumentProcessor(site, EmbeddingIndexer(store, provider))
    try:
        count = await processor.rebuild_index(pdf_path=args.pdf, include_web=not args.skip_web)
    except CopilotError as e:
        logger.error(f"Document processing failed: {e}")
        sys.exit(1)
    finally:
        await store.close()

    print(f"Indexed {count} chunks")


if __name__ == "__main__":
    asyncio.run(main())
