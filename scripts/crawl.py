#!/usr/bin/env python3
"""Crawl a configured site and index its pages.

Full crawls embed each page as it is stored. ``--content-only`` stores chunks
without vectors (run ``embed_pending.py`` afterwards) and seeds itself from
pending links left by earlier crawls.
"""

import asyncio
import argparse
import logging
import signal
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from config.database import open_store
from config.settings import ChunkingConfig
from indexer.embeddings import get_embedding_provider
from indexer.models import CopilotError
from observability.logging import setup_logging
from pipelines.chunker import SectionChunker
from pipelines.frontier import FrontierManager
from pipelines.indexer import EmbeddingIndexer
from sources.loader import DEFAULT_SITE, load_site_config

logger = logging.getLogger(__name__)

CONTENT_ONLY_BUDGET = 50


def _install_cancel_handler(cancel_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, cancel_event.set)
        except (NotImplementedError, RuntimeError):
            # Signal handlers are unavailable on some platforms
            pass


async def main():
    parser = argparse.ArgumentParser(description="Crawl a site into the Covenant Copilot index")
    parser.add_argument("--site", default=DEFAULT_SITE, help="Site configuration name")
    parser.add_argument("--max-pages", type=int, help="Page budget for this session")
    parser.add_argument("--delay", type=float, help="Politeness delay between pages in seconds")
    parser.add_argument("--content-only", action="store_true",
                        help="Store chunks without embeddings, seeding from pending links")
    parser.add_argument("--no-sitemap", action="store_true", help="Do not seed from sitemap.xml")
    parser.add_argument("--log-level", default="INFO", help="Log level")
    parser.add_argument("--log-file", help="Also write JSON logs to this file")
    parser.add_argument("--json-logs", action="store_true", help="Log JSON to the console")

    args = parser.parse_args()
    setup_logging(level=args.log_level, log_file=args.log_file, use_json=args.json_logs)

    overrides = {} if args.delay is None else {"crawl_delay": args.delay}
    try:
        site = load_site_config(args.site, **overrides)
    except ValueError as e:
        logger.error(f"Invalid override for {args.site}: {e}")
        sys.exit(2)
    if site is None:
        logger.error(f"Unknown site: {args.site}")
        sys.exit(2)

    store = await open_store()
    provider = None if args.content_only else get_embedding_provider()
    manager = FrontierManager(
        site,
        store=store,
        indexer=EmbeddingIndexer(store, provider),
        chunker=SectionChunker(ChunkingConfig()),
    )

    cancel_event = asyncio.Event()
    _install_cancel_handler(cancel_event)

    try:
        if args.content_only:
            session = await manager.run(
                max_pages=args.max_pages or CONTENT_ONLY_BUDGET,
                cancel_event=cancel_event,
                seed_from_pending=True,
                embed=False,
                use_sitemap=False,
            )
        else:
            session = await manager.run(
                max_pages=args.max_pages,
                cancel_event=cancel_event,
                use_sitemap=False if args.no_sitemap else None,
            )
    except CopilotError as e:
        logger.error(f"Crawl failed: {e}")
        sys.exit(1)
    finally:
        if store is not None:
            await store.close()

    print(f"Session {session.id}: {session.status.value}")
    print(f"  Pages processed:  {session.pages_processed}")
    print(f"  Successful:       {session.pages_successful}")
    print(f"  Failed:           {session.pages_failed}")
    print(f"  Discovered:       {session.total_pages_discovered}")
    print(f"  Internal links:   {session.internal_links_found}")
    print(f"  External links:   {session.external_links_found}")


if __name__ == "__main__":
    asyncio.run(main())
