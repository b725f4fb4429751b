"""Tests for the SQLite chunk, link and session store."""

import sqlite3
from datetime import timedelta

import pytest

from indexer.models import (
    ChunkRecord,
    CrawlSession,
    DiscoveredLink,
    EnhancedSearchUnavailable,
    LinkStatus,
    LinkType,
    SessionStatus,
    utcnow,
)
from indexer.sqlite_adapter import SQLiteAdapter, deserialize_embedding, serialize_embedding

SOURCE = "https://example.org/fences"
VECTOR = [1.0, 0.5, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.1]


def link(url, link_type=LinkType.INTERNAL, source_url="https://example.org"):
    return DiscoveredLink(url=url, source_url=source_url, link_type=link_type)


def test_embedding_blob_is_float32():
    blob = serialize_embedding([0.5, -1.25, 2.0])
    assert len(blob) == 12
    assert deserialize_embedding(blob).tolist() == [0.5, -1.25, 2.0]


class TestChunks:

    @pytest.mark.asyncio
    async def test_replace_is_atomic(self, store):
        await store.replace_source_chunks(SOURCE, [ChunkRecord(content="old", source_url=SOURCE)])

        broken = ChunkRecord(content="new", source_url=SOURCE)
        broken.pdf_page = object()
        with pytest.raises(sqlite3.Error):
            await store.replace_source_chunks(SOURCE, [ChunkRecord(content="fine", source_url=SOURCE), broken])

        assert await store.count_chunks(SOURCE) == 1

    @pytest.mark.asyncio
    async def test_model_is_only_stored_with_a_vector(self, store):
        await store.insert_chunks([
            ChunkRecord(content="no vector", embedding_model="m"),
            ChunkRecord(content="vector", embedding=VECTOR, embedding_model="m"),
        ])
        rows = store.conn.execute("SELECT content, embedding_model FROM documents ORDER BY id").fetchall()
        assert [tuple(r) for r in rows] == [("no vector", None), ("vector", "m")]

    @pytest.mark.asyncio
    async def test_delete_and_clear(self, store):
        await store.insert_chunks([
            ChunkRecord(content="a", source_url=SOURCE),
            ChunkRecord(content="b", source_url="https://example.org/other"),
            ChunkRecord(content="pdf chunk"),
        ])
        assert await store.delete_chunks_by_source(SOURCE) == 1
        assert await store.count_chunks() == 2
        assert await store.clear_documents() == 2
        assert await store.count_chunks() == 0

    @pytest.mark.asyncio
    async def test_required_tags_filter(self, store):
        await store.insert_chunks([
            ChunkRecord(content="fence only", embedding=VECTOR, embedding_model="m", tags=["fence"]),
            ChunkRecord(content="fence paint", embedding=VECTOR, embedding_model="m", tags=["fence", "paint"]),
        ])

        results = await store.match_documents_enhanced(VECTOR, 0.5, 10, require_tags=["paint"])

        assert [r.content for r in results] == ["fence paint"]
        assert results[0].tags == ["fence", "paint"]

    @pytest.mark.asyncio
    async def test_mismatched_dimensions_are_skipped(self, store):
        await store.insert_chunks([ChunkRecord(content="short", embedding=[1.0, 0.0], embedding_model="m")])
        assert await store.match_documents(VECTOR, 0.0, 10) == []

    @pytest.mark.asyncio
    async def test_enhanced_search_can_be_disabled(self, tmp_path):
        adapter = SQLiteAdapter(str(tmp_path / "plain.db"), enhanced_search=False)
        await adapter.initialize()
        try:
            with pytest.raises(EnhancedSearchUnavailable):
                await adapter.match_documents_enhanced(VECTOR, 0.5, 5)
        finally:
            await adapter.close()


class TestLinks:

    @pytest.mark.asyncio
    async def test_upsert_keeps_existing_status(self, store):
        assert await store.upsert_links([link("https://example.org/a")]) == 1
        await store.mark_link("https://example.org/a", LinkStatus.SUCCESS)

        assert await store.upsert_links([
            link("https://example.org/a", source_url="https://example.org/b"),
            link("https://example.org/c"),
        ]) == 1
        assert await store.upsert_links([]) == 0

        stored = await store.get_link("https://example.org/a")
        assert stored.crawl_status == LinkStatus.SUCCESS
        assert stored.source_url == "https://example.org"

    @pytest.mark.asyncio
    async def test_ensure_and_mark(self, store):
        await store.ensure_link("https://example.org")
        stored = await store.get_link("https://example.org")
        assert stored.source_url == "seed"
        assert stored.crawl_status == LinkStatus.PENDING

        await store.mark_link("https://example.org", LinkStatus.FAILED, "HTTP 500")
        stored = await store.get_link("https://example.org")
        assert stored.crawl_status == LinkStatus.FAILED
        assert stored.error_message == "HTTP 500"
        assert stored.last_crawl_attempt is not None

        failed = await store.recent_failed_links()
        assert [l.url for l in failed] == ["https://example.org"]

    @pytest.mark.asyncio
    async def test_pending_internal_links_only(self, store):
        await store.upsert_links([
            link("https://example.org/a"),
            link("https://example.org/b"),
            link("https://other.com/x", LinkType.EXTERNAL),
            link("https://example.org/guide.pdf", LinkType.FILE),
        ])
        await store.mark_link("https://example.org/b", LinkStatus.SUCCESS)

        assert await store.pending_internal_links() == ["https://example.org/a"]

    @pytest.mark.asyncio
    async def test_top_external_domains(self, store):
        await store.upsert_links([
            link("https://other.com/a", LinkType.EXTERNAL),
            link("https://other.com/b", LinkType.EXTERNAL),
            link("https://third.net/", LinkType.EXTERNAL),
            link("https://example.org/in"),
        ])
        assert await store.top_external_domains() == [("other.com", 2), ("third.net", 1)]


class TestSessions:

    @pytest.mark.asyncio
    async def test_session_round_trip(self, store):
        session = CrawlSession()
        await store.create_crawl_session(session)

        session.pages_processed = 3
        session.pages_successful = 2
        session.pages_failed = 1
        session.status = SessionStatus.COMPLETED
        session.completed_at = utcnow()
        await store.finish_crawl_session(session)

        stored = await store.get_crawl_session(session.id)
        assert stored.status == SessionStatus.COMPLETED
        assert (stored.pages_processed, stored.pages_successful, stored.pages_failed) == (3, 2, 1)
        assert stored.started_at == session.started_at
        assert stored.duration_seconds >= 0

    @pytest.mark.asyncio
    async def test_latest_and_recent_sessions(self, store):
        old = CrawlSession(started_at=utcnow() - timedelta(days=30))
        new = CrawlSession()
        await store.create_crawl_session(old)
        await store.create_crawl_session(new)

        assert (await store.latest_crawl_session()).id == new.id
        recent = await store.recent_crawl_sessions(utcnow() - timedelta(days=7))
        assert [s.id for s in recent] == [new.id]


@pytest.mark.asyncio
async def test_status_counts(store):
    await store.insert_chunks([
        ChunkRecord(content="a", source_url=SOURCE, embedding=VECTOR, embedding_model="m"),
        ChunkRecord(content="b", source_url=SOURCE),
        ChunkRecord(content="c", source_url="https://example.org/other"),
    ])
    await store.upsert_links([
        link("https://example.org/a"),
        link("https://example.org/b"),
        link("https://other.com/x", LinkType.EXTERNAL),
    ])
    await store.mark_link("https://example.org/b", LinkStatus.FAILED, "timeout")

    counts = await store.status_counts()

    assert counts["documents"] == 3
    assert counts["documents_with_embeddings"] == 1
    assert counts["sources"] == 2
    assert counts["latest_crawled_at"] is not None
    assert counts["links_total"] == 3
    assert counts["internal_links"] == 2
    assert counts["external_links"] == 1
    assert counts["pending_links"] == 1
    assert counts["failed_links"] == 1
    assert counts["successful_links"] == 0


@pytest.mark.asyncio
async def test_status_counts_on_empty_store(store):
    counts = await store.status_counts()
    assert counts["documents"] == 0
    assert counts["latest_crawled_at"] is None
    assert counts["pending_links"] == 0
