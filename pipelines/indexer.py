"""Embedding indexer: vectors in, one generation of chunks per source out.

Each source is embedded in a single provider request so vectors stay aligned
with the chunk list, then its previous chunks are replaced atomically.
"""

import logging
from typing import List, Optional, Sequence

from config.settings import EmbeddingConfig
from indexer.embeddings import EmbeddingProvider
from indexer.models import ChunkRecord, CopilotError, IndexingError
from observability.metrics import record_indexing

logger = logging.getLogger(__name__)


class EmbeddingIndexer:
    """Embeds chunk records and persists them to the chunk store."""

    def __init__(self, store, provider: Optional[EmbeddingProvider], batch_size: Optional[int] = None):
        self.store = store
        self.provider = provider
        self.batch_size = batch_size or EmbeddingConfig().batch_size

    async def _attach_embeddings(self, source_url: Optional[str], records: Sequence[ChunkRecord]) -> None:
        try:
            vectors = await self.provider.embed_documents([r.content for r in records])
        except CopilotError as e:
            raise IndexingError(source_url, str(e)) from e

        for record, vector in zip(records, vectors):
            record.embedding = vector
            record.embedding_model = self.provider.model

    async def index_source(self, source_url: str, records: List[ChunkRecord], embed: bool = True) -> int:
        """Replace every persisted chunk of ``source_url`` with ``records``.

        Args:
            source_url: Source whose previous generation is deleted
            records: New chunks, in order
            embed: Attach vectors before persisting; when False the chunks
                are stored without vectors for a later ``embed_pending`` run

        Returns:
            Number of chunks persisted (0 when persistence is skipped)

        Raises:
            IndexingError: If embedding or persistence fails for this source.
        """
        if self.store is None:
            logger.warning(f"No datastore configured; skipping persistence of {source_url}")
            return 0
        if embed and self.provider is None:
            logger.warning(f"No embedding provider configured; skipping persistence of {source_url}")
            return 0

        if embed and records:
            await self._attach_embeddings(source_url, records)

        try:
            count = await self.store.replace_source_chunks(source_url, records)
        except Exception as e:
            record_indexing(0, error=str(e))
            raise IndexingError(source_url, str(e)) from e

        record_indexing(count)
        logger.info(f"Indexed {count} chunks for {source_url}")
        return count

    async def rebuild(self, records: List[ChunkRecord]) -> int:
        """Clear the whole chunk table, then embed and insert ``records`` in one batch."""
        if self.store is None or self.provider is None:
            logger.warning("Datastore or embedding provider not configured; skipping rebuild")
            return 0

        if records:
            await self._attach_embeddings(None, records)

        try:
            cleared = await self.store.clear_documents()
            logger.info(f"Cleared {cleared} existing chunks")
            count = await self.store.insert_chunks(records)
        except Exception as e:
            record_indexing(0, error=str(e))
            raise IndexingError(None, str(e)) from e

        record_indexing(count)
        logger.info(f"Rebuilt index with {count} chunks")
        return count

    async def embed_pending(self, max_batches: Optional[int] = None) -> int:
        """Backfill vectors for chunks stored without one.

        Each batch is a single provider request.

        Returns:
            Number of chunks that received a vector.
        """
        if self.store is None or self.provider is None:
            logger.warning("Datastore or embedding provider not configured; nothing to embed")
            return 0

        updated = 0
        batches = 0
        while max_batches is None or batches < max_batches:
            pending = await self.store.chunks_missing_embeddings(self.batch_size)
            if not pending:
                break

            try:
                vectors = await self.provider.embed_documents([row["content"] for row in pending])
            except CopilotError as e:
                raise IndexingError(None, str(e)) from e

            updated += await self.store.update_chunk_embeddings(
                [(row["id"], vector) for row, vector in zip(pending, vectors)],
                self.provider.model
            )
            batches += 1
            logger.info(f"Embedded batch {batches} ({len(pending)} chunks)")

        return updated
