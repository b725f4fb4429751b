#!/usr/bin/env python3
"""Run a query against the index and print ranked chunks and rule conflicts."""

import asyncio
import argparse
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from config.database import open_store
from config.settings import RetrievalConfig
from indexer.embeddings import get_embedding_provider
from indexer.retrieval import RetrievalEngine
from observability.logging import setup_logging

logger = logging.getLogger(__name__)


async def main():
    parser = argparse.ArgumentParser(description="Search the Covenant Copilot index")
    parser.add_argument("query", help="Free-text question")
    parser.add_argument("--threshold", type=float, help="Minimum cosine similarity")
    parser.add_argument("--count", type=int, help="Number of results")
    parser.add_argument("--json", action="store_true", help="Print results as JSON")
    parser.add_argument("--log-level", default="WARNING", help="Log level")

    args = parser.parse_args()
    setup_logging(level=args.log_level)

    store = await open_store()
    engine = RetrievalEngine(store, get_embedding_provider(), RetrievalConfig.from_env())
    try:
        response = await engine.search_with_conflicts(args.query, args.threshold, args.count)
    finally:
        if store is not None:
            await store.close()

    if args.json:
        print(json.dumps({
            "query": response.query,
            "strategy": response.strategy,
            "results": [asdict(r) for r in response.results],
            "conflicts": [asdict(c) for c in response.conflicts],
        }, indent=2, default=str))
        return

    if not response.results:
        print("No relevant information found.")
        return

    for rank, result in enumerate(response.results, 1):
        source = result.source_url or (f"PDF page {result.pdf_page}" if result.pdf_page else "documents")
        print(f"{rank}. [{result.similarity:.3f} +{result.tag_boost_score or 0:.2f}] {source}")
        if result.section_title:
            print(f"   Section: {result.section_title}")
        if result.tags:
            print(f"   Tags: {', '.join(result.tags)}")
        print(f"   {result.content[:200]}")

    for message in response.conflict_messages:
        print(f"\nWARNING {message}")


if __name__ == "__main__":
    asyncio.run(main())
