"""Crawl session bookkeeping.

One tracker belongs to one crawl run. Counters only ever grow, and the
session is finalized exactly once.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from indexer.models import CrawlSession, CrawlSessionError, SessionStatus, utcnow

logger = logging.getLogger(__name__)

STALE_AFTER = timedelta(days=2)
RECENT_WINDOW = timedelta(days=7)


class CrawlSessionTracker:
    """Records start, end, counters and failure of one crawl run."""

    def __init__(self, store=None):
        self.store = store
        self.session = CrawlSession()
        self._finished = False

    @property
    def session_id(self) -> str:
        return self.session.id

    @property
    def finished(self) -> bool:
        return self._finished

    async def start(self) -> CrawlSession:
        """Persist the session record.

        Raises:
            CrawlSessionError: If the store cannot create the record.
        """
        if self.store is not None:
            try:
                await self.store.create_crawl_session(self.session)
            except Exception as e:
                raise CrawlSessionError(f"Could not create crawl session: {e}") from e
        logger.info(f"Started crawl session {self.session.id}")
        return self.session

    def record_discovered(self, count: int = 1) -> None:
        self.session.total_pages_discovered += max(count, 0)

    def record_processed(self) -> None:
        self.session.pages_processed += 1

    def record_success(self) -> None:
        self.session.pages_successful += 1

    def record_failure(self) -> None:
        self.session.pages_failed += 1

    def record_links(self, internal: int, external: int) -> None:
        self.session.internal_links_found += max(internal, 0)
        self.session.external_links_found += max(external, 0)

    async def complete(self) -> CrawlSession:
        return await self._finish(SessionStatus.COMPLETED)

    async def fail(self, message: str) -> CrawlSession:
        return await self._finish(SessionStatus.FAILED, message)

    async def _finish(self, status: SessionStatus, error_message: Optional[str] = None) -> CrawlSession:
        if self._finished:
            return self.session

        self.session.status = status
        self.session.error_message = error_message
        self.session.completed_at = utcnow()
        self._finished = True

        if self.store is not None:
            try:
                await self.store.finish_crawl_session(self.session)
            except Exception as e:
                logger.error(f"Failed to finalize crawl session {self.session.id}: {e}")

        logger.info(
            f"Crawl session {self.session.id} {status.value}: "
            f"{self.session.pages_processed} processed, "
            f"{self.session.pages_successful} successful, "
            f"{self.session.pages_failed} failed"
        )
        return self.session


async def crawl_status_report(store, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Summarize crawl health: latest session, totals, failures and freshness."""
    now = now or utcnow()
    counts = await store.status_counts()
    latest = await store.latest_crawl_session()
    recent = await store.recent_crawl_sessions(now - RECENT_WINDOW)

    latest_crawl = counts.get("latest_crawled_at")
    if latest_crawl is not None and latest_crawl.tzinfo is None:
        latest_crawl = latest_crawl.replace(tzinfo=timezone.utc)
    age = now - latest_crawl if latest_crawl else None

    return {
        "latest_session": latest.to_dict() if latest else None,
        "counts": counts,
        "recent_sessions": [s.to_dict() for s in recent],
        "failed_links": [
            {"url": link.url, "error": link.error_message,
             "last_attempt": link.last_crawl_attempt.isoformat() if link.last_crawl_attempt else None}
            for link in await store.recent_failed_links(10)
        ],
        "top_external_domains": await store.top_external_domains(10),
        "content_age_hours": round(age.total_seconds() / 3600, 1) if age is not None else None,
        "stale": age is None or age > STALE_AFTER,
    }
