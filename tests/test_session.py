"""Tests for crawl session tracking and the crawl status report."""

from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest

from indexer.models import (
    ChunkRecord,
    CrawlSessionError,
    DiscoveredLink,
    LinkStatus,
    LinkType,
    SessionStatus,
    utcnow,
)
from pipelines.session import CrawlSessionTracker, crawl_status_report


class TestCrawlSessionTracker:

    @pytest.mark.asyncio
    async def test_counters_and_completion(self, store):
        tracker = CrawlSessionTracker(store)
        await tracker.start()
        tracker.record_discovered(3)
        tracker.record_processed()
        tracker.record_success()
        tracker.record_links(internal=2, external=1)

        session = await tracker.complete()

        assert session.status == SessionStatus.COMPLETED
        assert session.completed_at >= session.started_at
        stored = await store.get_crawl_session(tracker.session_id)
        assert stored.total_pages_discovered == 3
        assert stored.internal_links_found == 2
        assert stored.external_links_found == 1

    @pytest.mark.asyncio
    async def test_finalized_only_once(self):
        tracker = CrawlSessionTracker()
        await tracker.start()
        await tracker.complete()
        session = await tracker.fail("late failure")

        assert session.status == SessionStatus.COMPLETED
        assert session.error_message is None
        assert tracker.finished

    def test_counters_never_decrease(self):
        tracker = CrawlSessionTracker()
        tracker.record_discovered(-4)
        tracker.record_links(-1, -1)
        assert tracker.session.total_pages_discovered == 0
        assert tracker.session.internal_links_found == 0

    @pytest.mark.asyncio
    async def test_start_failure(self, store):
        with patch.object(store, "create_crawl_session", AsyncMock(side_effect=RuntimeError("readonly"))):
            with pytest.raises(CrawlSessionError, match="readonly"):
                await CrawlSessionTracker(store).start()

    @pytest.mark.asyncio
    async def test_finish_failure_is_logged(self, store, caplog):
        tracker = CrawlSessionTracker(store)
        await tracker.start()

        with patch.object(store, "finish_crawl_session", AsyncMock(side_effect=RuntimeError("gone"))):
            session = await tracker.fail("boom")

        assert session.status == SessionStatus.FAILED
        assert "Failed to finalize crawl session" in caplog.text


class TestCrawlStatusReport:

    @pytest.mark.asyncio
    async def test_empty_store_is_stale(self, store):
        report = await crawl_status_report(store)

        assert report["latest_session"] is None
        assert report["content_age_hours"] is None
        assert report["stale"] is True
        assert report["failed_links"] == []

    @pytest.mark.asyncio
    async def test_report_contents(self, store):
        tracker = CrawlSessionTracker(store)
        await tracker.start()
        await tracker.complete()
        await store.insert_chunks([ChunkRecord(content="fence", source_url="https://example.org")])
        await store.upsert_links([
            DiscoveredLink("https://example.org/a", "https://example.org", LinkType.INTERNAL),
            DiscoveredLink("https://other.com/x", "https://example.org", LinkType.EXTERNAL),
        ])
        await store.mark_link("https://example.org/a", LinkStatus.FAILED, "HTTP 503")

        report = await crawl_status_report(store)

        assert report["latest_session"]["id"] == tracker.session_id
        assert report["latest_session"]["status"] == "completed"
        assert len(report["recent_sessions"]) == 1
        assert report["counts"]["documents"] == 1
        assert report["failed_links"][0]["url"] == "https://example.org/a"
        assert report["failed_links"][0]["error"] == "HTTP 503"
        assert report["top_external_domains"] == [("other.com", 1)]
        assert report["stale"] is False

        later = await crawl_status_report(store, now=utcnow() + timedelta(days=3))
        assert later["stale"] is True
        assert later["content_age_hours"] >= 72
        assert later["recent_sessions"][0]["id"] == tracker.session_id
