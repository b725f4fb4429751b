"""PostgreSQL database adapter for Covenant Copilot.

Production store using asyncpg with pgvector. Similarity search runs in the
``match_documents`` and ``match_documents_enhanced`` SQL functions.
"""

import logging
from datetime import datetime
from typing import List, Dict, Any, Optional, Sequence, Tuple
from pathlib import Path

import asyncpg
import numpy as np
from pgvector.asyncpg import register_vector
from pydantic import BaseModel

from .models import (
    ChunkRecord,
    CrawlSession,
    DiscoveredLink,
    EnhancedSearchUnavailable,
    LinkStatus,
    LinkType,
    SearchResult,
    SessionStatus,
)

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).parent / "schema_postgres.sql"


class PostgresConfig(BaseModel):
    """PostgreSQL connection configuration."""
    host: str = "localhost"
    port: int = 5432
    database: str = "covenant_copilot"
    user: str = "copilot"
    password: str = ""
    min_connections: int = 2
    max_connections: int = 10
    command_timeout: int = 60
    embedding_dimensions: int = 1536
    apply_schema: bool = True


def _vector(values: Sequence[float]) -> np.ndarray:
    return np.asarray(values, dtype=np.float32)


class PostgresAdapter:
    """PostgreSQL database adapter with pgvector support."""

    def __init__(self, config: PostgresConfig):
        self.config = config
        self.pool: Optional[asyncpg.Pool] = None

    async def _init_connection(self, conn: asyncpg.Connection):
        await register_vector(conn)

    async def initialize(self):
        """Initialize connection pool and ensure schema exists."""
        try:
            # The extension must exist before the vector codec can be registered.
            conn = await asyncpg.connect(
                host=self.config.host,
                port=self.config.port,
                database=self.config.database,
                user=self.config.user,
                password=self.config.password
            )
            try:
                await conn.execute("CREATE EXTENSION IF NOT EXISTS vector")
            finally:
                await conn.close()

            self.pool = await asyncpg.create_pool(
                host=self.config.host,
                port=self.config.port,
                database=self.config.database,
                user=self.config.user,
                password=self.config.password,
                min_size=self.config.min_connections,
                max_size=self.config.max_connections,
                command_timeout=self.config.command_timeout,
                init=self._init_connection
            )
            logger.info("PostgreSQL connection pool initialized")

            if self.config.apply_schema:
                await self.execute_schema(SCHEMA_PATH)

        except (asyncpg.PostgresError, OSError) as e:
            logger.error(f"Failed to initialize PostgreSQL: {e}")
            raise

    async def close(self):
        """Close connection pool."""
        if self.pool:
            await self.pool.close()
            self.pool = None
            logger.info("PostgreSQL connection pool closed")

    async def execute_schema(self, schema_path):
        """Execute schema SQL file."""
        with open(schema_path, 'r', encoding='utf-8') as f:
            schema_sql = f.read().replace("{dimensions}", str(self.config.embedding_dimensions))

        async with self.pool.acquire() as conn:
            await conn.execute(schema_sql)
        logger.info(f"Schema executed from {schema_path}")

    # Chunks

    @staticmethod
    def _chunk_row(r: ChunkRecord) -> tuple:
        has_vector = r.embedding is not None
        return (
            r.content,
            _vector(r.embedding) if has_vector else None,
            r.embedding_model if has_vector else None,
            r.source_url,
            r.pdf_page,
            r.section_title,
            list(r.tags),
            r.page_range,
            r.page_title,
            r.meta_description,
            r.content_type,
            r.response_status,
            r.last_modified,
            r.content_hash,
            r.crawled_at,
        )

    _INSERT_CHUNK = """
        INSERT INTO documents (content, embedding, embedding_model, source_url, pdf_page,
                               section_title, tags, page_range, page_title, meta_description,
                               content_type, response_status, last_modified, content_hash, crawled_at)
        VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14, $15)
    """

    async def insert_chunks(self, records: Sequence[ChunkRecord]) -> int:
        async with self.pool.acquire() as conn:
            await conn.executemany(self._INSERT_CHUNK, [self._chunk_row(r) for r in records])
        return len(records)

    async def delete_chunks_by_source(self, source_url: str) -> int:
        async with self.pool.acquire() as conn:
            status = await conn.execute("DELETE FROM documents WHERE source_url = $1", source_url)
        return int(status.split()[-1])

    async def replace_source_chunks(self, source_url: str, records: Sequence[ChunkRecord]) -> int:
        """Delete every chunk of ``source_url`` and insert ``records`` in one transaction."""
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                await conn.execute("DELETE FROM documents WHERE source_url = $1", source_url)
                if records:
                    await conn.executemany(self._INSERT_CHUNK, [self._chunk_row(r) for r in records])
        return len(records)

    async def clear_documents(self) -> int:
        async with self.pool.acquire() as conn:
            status = await conn.execute("DELETE FROM documents")
        return int(status.split()[-1])

    async def count_chunks(self, source_url: Optional[str] = None) -> int:
        async with self.pool.acquire() as conn:
            if source_url is None:
                return await conn.fetchval("SELECT COUNT(*) FROM documents")
            return await conn.fetchval(
                "SELECT COUNT(*) FROM documents WHERE source_url = $1", source_url)

    async def chunks_missing_embeddings(self, limit: int = 100) -> List[Dict[str, Any]]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                "SELECT id, content FROM documents WHERE embedding IS NULL ORDER BY id LIMIT $1", limit)
        return [dict(row) for row in rows]

    async def update_chunk_embeddings(self, updates: Sequence[Tuple[int, List[float]]], model: str) -> int:
        async with self.pool.acquire() as conn:
            await conn.executemany(
                "UPDATE documents SET embedding = $1, embedding_model = $2 WHERE id = $3",
                [(_vector(vector), model, chunk_id) for chunk_id, vector in updates]
            )
        return len(updates)

    # Similarity search

    async def match_documents(self, query_embedding: Sequence[float], match_threshold: float,
                              match_count: int, embedding_model: Optional[str] = None) -> List[SearchResult]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                "SELECT * FROM match_documents($1, $2, $3, $4)",
                _vector(query_embedding), match_threshold, match_count, embedding_model
            )
        return [SearchResult.from_row(dict(row)) for row in rows]

    async def match_documents_enhanced(self, query_embedding: Sequence[float], match_threshold: float,
                                       match_count: int, boost_tags: Sequence[str] = (),
                                       require_tags: Sequence[str] = (), boost_weight: float = 0.05,
                                       embedding_model: Optional[str] = None) -> List[SearchResult]:
        """Tag-boosted similarity search.

        Raises:
            EnhancedSearchUnavailable: When the database lacks the
                ``match_documents_enhanced`` function.
        """
        try:
            async with self.pool.acquire() as conn:
                rows = await conn.fetch(
                    "SELECT * FROM match_documents_enhanced($1, $2, $3, $4, $5, $6, $7)",
                    _vector(query_embedding), match_threshold, match_count,
                    list(boost_tags), list(require_tags), boost_weight, embedding_model
                )
        except asyncpg.exceptions.UndefinedFunctionError as e:
            raise EnhancedSearchUnavailable(str(e)) from e
        return [SearchResult.from_row(dict(row)) for row in rows]

    # Discovered links

    async def upsert_links(self, links: Sequence[DiscoveredLink]) -> int:
        """Insert links not seen before; existing rows keep their status.

        Returns the number of links newly inserted.
        """
        if not links:
            return 0
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                """
                INSERT INTO discovered_links (url, source_url, link_type, link_text, crawl_status)
                SELECT * FROM unnest($1::text[], $2::text[], $3::text[], $4::text[], $5::text[])
                ON CONFLICT (url) DO NOTHING
                RETURNING url
                """,
                [l.url for l in links],
                [l.source_url for l in links],
                [l.link_type.value for l in links],
                [l.link_text for l in links],
                [l.crawl_status.value for l in links],
            )
        return len(rows)

    async def ensure_link(self, url: str, source_url: str = "seed") -> None:
        async with self.pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO discovered_links (url, source_url, link_type, crawl_status)
                VALUES ($1, $2, 'internal', 'pending')
                ON CONFLICT (url) DO NOTHING
                """,
                url, source_url
            )

    async def mark_link(self, url: str, status: LinkStatus, error_message: Optional[str] = None) -> None:
        async with self.pool.acquire() as conn:
            await conn.execute(
                """
                UPDATE discovered_links
                SET crawl_status = $1, last_crawl_attempt = NOW(), error_message = $2
                WHERE url = $3
                """,
                status.value, error_message, url
            )

    @staticmethod
    def _to_link(row) -> DiscoveredLink:
        return DiscoveredLink(
            url=row["url"],
            source_url=row["source_url"],
            link_type=LinkType(row["link_type"]),
            link_text=row["link_text"] or "",
            crawl_status=LinkStatus(row["crawl_status"]),
            last_crawl_attempt=row["last_crawl_attempt"],
            error_message=row["error_message"],
        )

    async def get_link(self, url: str) -> Optional[DiscoveredLink]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow("SELECT * FROM discovered_links WHERE url = $1", url)
        return self._to_link(row) if row else None

    async def pending_internal_links(self, limit: int = 50) -> List[str]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT url FROM discovered_links
                WHERE link_type = 'internal' AND crawl_status = 'pending'
                ORDER BY discovered_at, url
                LIMIT $1
                """,
                limit
            )
        return [row["url"] for row in rows]

    async def recent_failed_links(self, limit: int = 10) -> List[DiscoveredLink]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT * FROM discovered_links
                WHERE crawl_status = 'failed'
                ORDER BY last_crawl_attempt DESC NULLS LAST
                LIMIT $1
                """,
                limit
            )
        return [self._to_link(row) for row in rows]

    async def top_external_domains(self, limit: int = 10) -> List[Tuple[str, int]]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT lower(substring(url FROM '^[a-zA-Z]+://([^/:?#]+)')) AS domain, COUNT(*) AS links
                FROM discovered_links
                WHERE link_type = 'external'
                GROUP BY 1
                HAVING lower(substring(url FROM '^[a-zA-Z]+://([^/:?#]+)')) IS NOT NULL
                ORDER BY links DESC, domain
                LIMIT $1
                """,
                limit
            )
        return [(row["domain"], row["links"]) for row in rows]

    # Crawl sessions

    async def create_crawl_session(self, session: CrawlSession) -> str:
        async with self.pool.acquire() as conn:
            await conn.execute(
                "INSERT INTO crawl_sessions (id, started_at, status) VALUES ($1, $2, $3)",
                session.id, session.started_at, session.status.value
            )
        return session.id

    async def finish_crawl_session(self, session: CrawlSession) -> None:
        async with self.pool.acquire() as conn:
            await conn.execute(
                """
                UPDATE crawl_sessions
                SET completed_at = $1, status = $2, error_message = $3,
                    total_pages_discovered = $4, pages_processed = $5, pages_successful = $6,
                    pages_failed = $7, internal_links_found = $8, external_links_found = $9
                WHERE id = $10
                """,
                session.completed_at, session.status.value, session.error_message,
                session.total_pages_discovered, session.pages_processed, session.pages_successful,
                session.pages_failed, session.internal_links_found, session.external_links_found,
                session.id
            )

    @staticmethod
    def _to_session(row) -> CrawlSession:
        data = dict(row)
        data["status"] = SessionStatus(data["status"])
        return CrawlSession(**data)

    async def get_crawl_session(self, session_id: str) -> Optional[CrawlSession]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow("SELECT * FROM crawl_sessions WHERE id = $1", session_id)
        return self._to_session(row) if row else None

    async def latest_crawl_session(self) -> Optional[CrawlSession]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow("SELECT * FROM crawl_sessions ORDER BY started_at DESC LIMIT 1")
        return self._to_session(row) if row else None

    async def recent_crawl_sessions(self, since: datetime) -> List[CrawlSession]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                "SELECT * FROM crawl_sessions WHERE started_at >= $1 ORDER BY started_at DESC", since)
        return [self._to_session(row) for row in rows]

    # Reporting

    async def status_counts(self) -> Dict[str, Any]:
        """Aggregate counts over chunks and discovered links."""
        async with self.pool.acquire() as conn:
            docs = await conn.fetchrow(
                """
                SELECT COUNT(*) AS total,
                       COUNT(embedding) AS embedded,
                       COUNT(DISTINCT source_url) AS sources,
                       MAX(crawled_at) AS latest_crawled_at
                FROM documents
                """
            )
            links = await conn.fetchrow(
                """
                SELECT COUNT(*) AS total,
                       COUNT(*) FILTER (WHERE link_type = 'internal') AS internal,
                       COUNT(*) FILTER (WHERE link_type = 'external') AS external,
                       COUNT(*) FILTER (WHERE link_type = 'internal' AND crawl_status = 'pending') AS pending,
                       COUNT(*) FILTER (WHERE crawl_status = 'success') AS success,
                       COUNT(*) FILTER (WHERE crawl_status = 'failed') AS failed
                FROM discovered_links
                """
            )
        return {
            "documents": docs["total"],
            "documents_with_embeddings": docs["embedded"],
            "sources": docs["sources"],
            "latest_crawled_at": docs["latest_crawled_at"],
            "links_total": links["total"],
            "internal_links": links["internal"],
            "external_links": links["external"],
            "pending_links": links["pending"],
            "successful_links": links["success"],
            "failed_links": links["failed"],
        }
