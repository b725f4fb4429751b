#!/usr/bin/env python3
"""Backfill embeddings for chunks stored by a content-only crawl."""

import asyncio
import argparse
import logging
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from config.database import open_store
from config.settings import EmbeddingConfig
from indexer.embeddings import get_embedding_provider
from indexer.models import CopilotError
from observability.logging import setup_logging
from pipelines.indexer import EmbeddingIndexer

logger = logging.getLogger(__name__)


async def main():
    parser = argparse.ArgumentParser(description="Embed chunks that have no vector yet")
    parser.add_argument("--batch-size", type=int, help="Chunks per provider request")
    parser.add_argument("--max-batches", type=int, help="Stop after this many batches")
    parser.add_argument("--log-level", default="INFO", help="Log level")

    args = parser.parse_args()
    setup_logging(level=args.log_level)

    config = EmbeddingConfig.from_env()
    store = await open_store()
    provider = get_embedding_provider(config)
    if store is None or provider is None:
        logger.error("A datastore and an embedding provider are required")
        sys.exit(2)

    indexer = EmbeddingIndexer(store, provider, batch_size=args.batch_size or config.batch_size)
    try:
        count = await indexer.embed_pending(max_batches=args.max_batches)
    except CopilotError as e:
        logger.error(f"Embedding failed: {e}")
        sys.exit(1)
    finally:
        await store.close()

    print(f"Embedded {count} chunks")


if __name__ == "__main__":
    asyncio.run(main())
