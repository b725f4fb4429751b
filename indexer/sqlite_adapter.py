"""SQLite database adapter for Covenant Copilot.

Development store with the same interface as the PostgreSQL adapter.
Vectors are stored as float32 BLOBs and compared in-process with numpy.
"""

import sqlite3
import logging
import json
from collections import Counter
from datetime import datetime
from typing import List, Dict, Any, Optional, Sequence, Tuple
from urllib.parse import urlparse
from pathlib import Path

import numpy as np

from .models import (
    ChunkRecord,
    CrawlSession,
    DiscoveredLink,
    EnhancedSearchUnavailable,
    LinkStatus,
    LinkType,
    SearchResult,
    SessionStatus,
    utcnow,
)

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).parent / "schema.sql"


def _ts(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat(timespec="microseconds") if value else None


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def serialize_embedding(embedding: Sequence[float]) -> bytes:
    """Serialize embedding to bytes for storage"""
    return np.asarray(embedding, dtype=np.float32).tobytes()


def deserialize_embedding(data: bytes) -> np.ndarray:
    """Deserialize embedding from bytes"""
    return np.frombuffer(data, dtype=np.float32)


class SQLiteAdapter:
    """SQLite database adapter with unified interface."""

    def __init__(self, db_path: str, enhanced_search: bool = True):
        self.db_path = db_path
        self.enhanced_search = enhanced_search
        self.conn: Optional[sqlite3.Connection] = None

    async def initialize(self):
        """Initialize SQLite connection and ensure schema exists."""
        try:
            if self.db_path != ":memory:":
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self.conn.row_factory = sqlite3.Row
            await self.execute_schema(SCHEMA_PATH)
            logger.info(f"SQLite adapter initialized: {self.db_path}")
        except sqlite3.Error as e:
            logger.error(f"Failed to initialize SQLite: {e}")
            raise

    async def close(self):
        """Close SQLite connection."""
        if self.conn:
            self.conn.close()
            self.conn = None
            logger.info("SQLite connection closed")

    async def execute_schema(self, schema_path):
        """Execute schema SQL file."""
        with open(schema_path, 'r', encoding='utf-8') as f:
            schema_sql = f.read()

        self.conn.executescript(schema_sql)
        self.conn.commit()

    # Chunks

    def _insert_chunks(self, records: Sequence[ChunkRecord]) -> int:
        rows = [
            (
                r.content,
                serialize_embedding(r.embedding) if r.embedding is not None else None,
                r.embedding_model if r.embedding is not None else None,
                r.source_url,
                r.pdf_page,
                r.section_title,
                json.dumps(r.tags),
                r.page_range,
                r.page_title,
                r.meta_description,
                r.content_type,
                r.response_status,
                _ts(r.last_modified),
                r.content_hash,
                _ts(r.crawled_at),
            )
            for r in records
        ]
        self.conn.executemany(
            """
            INSERT INTO documents (content, embedding, embedding_model, source_url, pdf_page,
                                   section_title, tags, page_range, page_title, meta_description,
                                   content_type, response_status, last_modified, content_hash, crawled_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            rows
        )
        return len(rows)

    async def insert_chunks(self, records: Sequence[ChunkRecord]) -> int:
        with self.conn:
            return self._insert_chunks(records)

    async def delete_chunks_by_source(self, source_url: str) -> int:
        with self.conn:
            cursor = self.conn.execute("DELETE FROM documents WHERE source_url = ?", (source_url,))
        return cursor.rowcount

    async def replace_source_chunks(self, source_url: str, records: Sequence[ChunkRecord]) -> int:
        """Delete every chunk of ``source_url`` and insert ``records`` in one transaction."""
        with self.conn:
            self.conn.execute("DELETE FROM documents WHERE source_url = ?", (source_url,))
            return self._insert_chunks(records)

    async def clear_documents(self) -> int:
        with self.conn:
            cursor = self.conn.execute("DELETE FROM documents")
        return cursor.rowcount

    async def count_chunks(self, source_url: Optional[str] = None) -> int:
        if source_url is None:
            row = self.conn.execute("SELECT COUNT(*) FROM documents").fetchone()
        else:
            row = self.conn.execute(
                "SELECT COUNT(*) FROM documents WHERE source_url = ?", (source_url,)).fetchone()
        return row[0]

    async def chunks_missing_embeddings(self, limit: int = 100) -> List[Dict[str, Any]]:
        cursor = self.conn.execute(
            "SELECT id, content FROM documents WHERE embedding IS NULL ORDER BY id LIMIT ?",
            (limit,)
        )
        return [dict(row) for row in cursor.fetchall()]

    async def update_chunk_embeddings(self, updates: Sequence[Tuple[int, List[float]]], model: str) -> int:
        with self.conn:
            self.conn.executemany(
                "UPDATE documents SET embedding = ?, embedding_model = ? WHERE id = ?",
                [(serialize_embedding(vector), model, chunk_id) for chunk_id, vector in updates]
            )
        return len(updates)

    # Similarity search

    def _scored_rows(self, query_embedding: Sequence[float], embedding_model: Optional[str]):
        query = np.asarray(query_embedding, dtype=np.float32)
        query_norm = np.linalg.norm(query)

        cursor = self.conn.execute(
            """
            SELECT id, content, embedding, source_url, pdf_page, section_title, tags, page_range
            FROM documents
            WHERE embedding IS NOT NULL AND (? IS NULL OR embedding_model = ?)
            """,
            (embedding_model, embedding_model)
        )
        for row in cursor:
            vector = deserialize_embedding(row["embedding"])
            if vector.shape != query.shape:
                continue
            norm = np.linalg.norm(vector)
            similarity = 0.0 if norm == 0 or query_norm == 0 else float(np.dot(query, vector) / (query_norm * norm))
            yield row, similarity

    @staticmethod
    def _to_result(row: sqlite3.Row, similarity: float, boost: Optional[float]) -> SearchResult:
        return SearchResult(
            id=row["id"],
            content=row["content"],
            similarity=similarity,
            source_url=row["source_url"],
            pdf_page=row["pdf_page"],
            section_title=row["section_title"],
            tags=json.loads(row["tags"] or "[]"),
            page_range=row["page_range"],
            tag_boost_score=boost,
        )

    async def match_documents(self, query_embedding: Sequence[float], match_threshold: float,
                              match_count: int, embedding_model: Optional[str] = None) -> List[SearchResult]:
        """Top-k rows at or above ``match_threshold`` cosine similarity."""
        results = [
            self._to_result(row, similarity, None)
            for row, similarity in self._scored_rows(query_embedding, embedding_model)
            if similarity >= match_threshold
        ]
        results.sort(key=lambda r: (-r.similarity, r.id))
        return results[:match_count]

    async def match_documents_enhanced(self, query_embedding: Sequence[float], match_threshold: float,
                                       match_count: int, boost_tags: Sequence[str] = (),
                                       require_tags: Sequence[str] = (), boost_weight: float = 0.05,
                                       embedding_model: Optional[str] = None) -> List[SearchResult]:
        """Threshold search ranked by similarity plus a per-matching-tag boost.

        Raises:
            EnhancedSearchUnavailable: When this store was opened without
                enhanced search support.
        """
        if not self.enhanced_search:
            raise EnhancedSearchUnavailable("match_documents_enhanced is not available on this store")

        boost = set(boost_tags)
        required = set(require_tags)
        results = []
        for row, similarity in self._scored_rows(query_embedding, embedding_model):
            if similarity < match_threshold:
                continue
            tags = set(json.loads(row["tags"] or "[]"))
            if not required <= tags:
                continue
            results.append(self._to_result(row, similarity, boost_weight * len(tags & boost)))

        results.sort(key=lambda r: (-r.score, r.id))
        return results[:match_count]

    # Discovered links

    async def upsert_links(self, links: Sequence[DiscoveredLink]) -> int:
        """Insert links not seen before; existing rows keep their status.

        Returns the number of links newly inserted.
        """
        if not links:
            return 0
        with self.conn:
            cursor = self.conn.executemany(
                """
                INSERT INTO discovered_links (url, source_url, link_type, link_text, crawl_status)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(url) DO NOTHING
                """,
                [(l.url, l.source_url, l.link_type.value, l.link_text, l.crawl_status.value) for l in links]
            )
        return cursor.rowcount

    async def ensure_link(self, url: str, source_url: str = "seed") -> None:
        with self.conn:
            self.conn.execute(
                """
                INSERT INTO discovered_links (url, source_url, link_type, crawl_status)
                VALUES (?, ?, 'internal', 'pending')
                ON CONFLICT(url) DO NOTHING
                """,
                (url, source_url)
            )

    async def mark_link(self, url: str, status: LinkStatus, error_message: Optional[str] = None) -> None:
        with self.conn:
            self.conn.execute(
                """
                UPDATE discovered_links
                SET crawl_status = ?, last_crawl_attempt = ?, error_message = ?
                WHERE url = ?
                """,
                (status.value, _ts(utcnow()), error_message, url)
            )

    async def get_link(self, url: str) -> Optional[DiscoveredLink]:
        row = self.conn.execute("SELECT * FROM discovered_links WHERE url = ?", (url,)).fetchone()
        return self._to_link(row) if row else None

    @staticmethod
    def _to_link(row: sqlite3.Row) -> DiscoveredLink:
        return DiscoveredLink(
            url=row["url"],
            source_url=row["source_url"],
            link_type=LinkType(row["link_type"]),
            link_text=row["link_text"] or "",
            crawl_status=LinkStatus(row["crawl_status"]),
            last_crawl_attempt=_parse_ts(row["last_crawl_attempt"]),
            error_message=row["error_message"],
        )

    async def pending_internal_links(self, limit: int = 50) -> List[str]:
        cursor = self.conn.execute(
            """
            SELECT url FROM discovered_links
            WHERE link_type = 'internal' AND crawl_status = 'pending'
            ORDER BY discovered_at, url
            LIMIT ?
            """,
            (limit,)
        )
        return [row["url"] for row in cursor.fetchall()]

    async def recent_failed_links(self, limit: int = 10) -> List[DiscoveredLink]:
        cursor = self.conn.execute(
            """
            SELECT * FROM discovered_links
            WHERE crawl_status = 'failed'
            ORDER BY last_crawl_attempt DESC
            LIMIT ?
            """,
            (limit,)
        )
        return [self._to_link(row) for row in cursor.fetchall()]

    async def top_external_domains(self, limit: int = 10) -> List[Tuple[str, int]]:
        cursor = self.conn.execute("SELECT url FROM discovered_links WHERE link_type = 'external'")
        domains = Counter()
        for row in cursor:
            hostname = urlparse(row["url"]).hostname
            if hostname:
                domains[hostname] += 1
        return domains.most_common(limit)

    # Crawl sessions

    async def create_crawl_session(self, session: CrawlSession) -> str:
        with self.conn:
            self.conn.execute(
                "INSERT INTO crawl_sessions (id, started_at, status) VALUES (?, ?, ?)",
                (session.id, _ts(session.started_at), session.status.value)
            )
        return session.id

    async def finish_crawl_session(self, session: CrawlSession) -> None:
        with self.conn:
            self.conn.execute(
                """
                UPDATE crawl_sessions
                SET completed_at = ?, status = ?, error_message = ?,
                    total_pages_discovered = ?, pages_processed = ?, pages_successful = ?,
                    pages_failed = ?, internal_links_found = ?, external_links_found = ?
                WHERE id = ?
                """,
                (
                    _ts(session.completed_at), session.status.value, session.error_message,
                    session.total_pages_discovered, session.pages_processed, session.pages_successful,
                    session.pages_failed, session.internal_links_found, session.external_links_found,
                    session.id,
                )
            )

    @staticmethod
    def _to_session(row: sqlite3.Row) -> CrawlSession:
        return CrawlSession(
            id=row["id"],
            started_at=_parse_ts(row["started_at"]),
            completed_at=_parse_ts(row["completed_at"]),
            status=SessionStatus(row["status"]),
            total_pages_discovered=row["total_pages_discovered"],
            pages_processed=row["pages_processed"],
            pages_successful=row["pages_successful"],
            pages_failed=row["pages_failed"],
            internal_links_found=row["internal_links_found"],
            external_links_found=row["external_links_found"],
            error_message=row["error_message"],
        )

    async def get_crawl_session(self, session_id: str) -> Optional[CrawlSession]:
        row = self.conn.execute("SELECT * FROM crawl_sessions WHERE id = ?", (session_id,)).fetchone()
        return self._to_session(row) if row else None

    async def latest_crawl_session(self) -> Optional[CrawlSession]:
        row = self.conn.execute(
            "SELECT * FROM crawl_sessions ORDER BY started_at DESC LIMIT 1").fetchone()
        return self._to_session(row) if row else None

    async def recent_crawl_sessions(self, since: datetime) -> List[CrawlSession]:
        cursor = self.conn.execute(
            "SELECT * FROM crawl_sessions WHERE started_at >= ? ORDER BY started_at DESC",
            (_ts(since),)
        )
        return [self._to_session(row) for row in cursor.fetchall()]

    # Reporting

    async def status_counts(self) -> Dict[str, Any]:
        """Aggregate counts over chunks and discovered links."""
        docs = self.conn.execute(
            """
            SELECT COUNT(*) AS total,
                   COUNT(embedding) AS embedded,
                   COUNT(DISTINCT source_url) AS sources,
                   MAX(crawled_at) AS latest_crawled_at
            FROM documents
            """
        ).fetchone()
        links = self.conn.execute(
            """
            SELECT COUNT(*) AS total,
                   SUM(CASE WHEN link_type = 'internal' THEN 1 ELSE 0 END) AS internal,
                   SUM(CASE WHEN link_type = 'external' THEN 1 ELSE 0 END) AS external,
                   SUM(CASE WHEN link_type = 'internal' AND crawl_status = 'pending' THEN 1 ELSE 0 END) AS pending,
                   SUM(CASE WHEN crawl_status = 'success' THEN 1 ELSE 0 END) AS success,
                   SUM(CASE WHEN crawl_status = 'failed' THEN 1 ELSE 0 END) AS failed
            FROM discovered_links
            """
        ).fetchone()
        return {
            "documents": docs["total"],
            "documents_with_embeddings": docs["embedded"],
            "sources": docs["sources"],
            "latest_crawled_at": _parse_ts(docs["latest_crawled_at"]),
            "links_total": links["total"],
            "internal_links": links["internal"] or 0,
            "external_links": links["external"] or 0,
            "pending_links": links["pending"] or 0,
            "successful_links": links["success"] or 0,
            "failed_links": links["failed"] or 0,
        }
