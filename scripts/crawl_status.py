#!/usr/bin/env python3
"""Report crawl health: latest session, link totals, failures and content freshness."""

import asyncio
import argparse
import json
import logging
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from config.database import open_store
from observability.logging import setup_logging
from pipelines.session import crawl_status_report

logger = logging.getLogger(__name__)


def _print_report(report):
    latest = report["latest_session"]
    if latest:
        print(f"Latest session {latest['id']} ({latest['status']})")
        print(f"  Started:    {latest['started_at']}")
        print(f"  Completed:  {latest['completed_at'] or '-'}")
        print(f"  Processed:  {latest['pages_processed']} "
              f"({latest['pages_successful']} ok, {latest['pages_failed']} failed)")
        if latest["error_message"]:
            print(f"  Error:      {latest['error_message']}")
    else:
        print("No crawl sessions recorded")

    counts = report["counts"]
    print(f"\nChunks: {counts['documents']} ({counts['documents_with_embeddings']} embedded) "
          f"from {counts['sources']} sources")
    print(f"Links:  {counts['links_total']} total, {counts['internal_links']} internal, "
          f"{counts['external_links']} external, {counts['pending_links']} pending")

    print(f"\nSessions in the last 7 days: {len(report['recent_sessions'])}")

    if report["failed_links"]:
        print("\nRecent failures:")
        for link in report["failed_links"]:
            print(f"  {link['url']}: {link['error']}")

    if report["top_external_domains"]:
        print("\nTop external domains:")
        for domain, count in report["top_external_domains"]:
            print(f"  {domain}: {count}")

    age = report["content_age_hours"]
    freshness = "STALE" if report["stale"] else "fresh"
    print(f"\nContent freshness: {freshness}" + (f" ({age} hours old)" if age is not None else ""))


async def main():
    parser = argparse.ArgumentParser(description="Show Covenant Copilot crawl status")
    parser.add_argument("--json", action="store_true", help="Print the report as JSON")
    parser.add_argument("--log-level", default="WARNING", help="Log level")

    args = parser.parse_args()
    setup_logging(level=args.log_level)

    store = await open_store()
    if store is None:
        logger.error("No datastore configured")
        sys.exit(2)

    try:
        report = await crawl_status_report(store)
    finally:
        await store.close()

    if args.json:
        print(json.dumps(report, indent=2, default=str))
    else:
        _print_report(report)


if __name__ == "__main__":
    asyncio.run(main())
