"""Query-time retrieval: embed, derive boost tags, search, flag conflicts."""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from config.settings import RetrievalConfig
from observability.metrics import record_search
from pipelines.tags import boost_tags_for_query, is_conflict_prone
from .conflicts import detect_conflicts
from .embeddings import EmbeddingProvider
from .models import ConflictRecord, EmbeddingModelMismatch, EnhancedSearchUnavailable, SearchResult

logger = logging.getLogger(__name__)


@dataclass
class RetrievalResponse:
    """Ranked results for one query plus any rule conflicts among them."""
    query: str
    results: List[SearchResult] = field(default_factory=list)
    conflicts: List[ConflictRecord] = field(default_factory=list)
    strategy: str = "skipped"

    @property
    def conflict_messages(self) -> List[str]:
        return [c.description for c in self.conflicts]


def widened_count(query: str, count: int, config: RetrievalConfig) -> int:
    """Result count for ``query``, widened for conflict-prone topics.

    Widening never shrinks the request.
    """
    if not is_conflict_prone(query, config.conflict_prone_topics):
        return count
    return max(count, min(count + config.widen_by, config.widened_count_cap))


class RetrievalEngine:
    """Stateless similarity search over the chunk store.

    Safe to share between concurrent requests: each call embeds its own
    query and issues an independent search.
    """

    def __init__(self, store, provider: Optional[EmbeddingProvider],
                 config: Optional[RetrievalConfig] = None,
                 index_model: Optional[str] = None):
        """Initialize the engine.

        Args:
            store: Chunk store adapter, or None when no datastore is configured
            provider: Embedding provider, or None when credentials are absent
            config: Retrieval defaults
            index_model: Model the index was built with; queries embedded
                with any other model are rejected
        """
        self.store = store
        self.provider = provider
        self.config = config or RetrievalConfig()
        self.index_model = index_model

    @property
    def available(self) -> bool:
        return self.store is not None and self.provider is not None

    async def search(self, query: str, match_threshold: Optional[float] = None,
                     match_count: Optional[int] = None) -> List[SearchResult]:
        """Ranked chunks for ``query``; an empty list is a normal outcome."""
        response = await self._search(query, match_threshold, match_count)
        return response.results

    async def search_with_conflicts(self, query: str, match_threshold: Optional[float] = None,
                                    match_count: Optional[int] = None) -> RetrievalResponse:
        response = await self._search(query, match_threshold, match_count)
        response.conflicts = detect_conflicts(response.results)
        return response

    async def _search(self, query: str, match_threshold: Optional[float],
                      match_count: Optional[int]) -> RetrievalResponse:
        if not self.available:
            logger.warning("Search skipped: datastore or embedding provider is not configured")
            record_search("skipped")
            return RetrievalResponse(query=query)

        if self.index_model and self.provider.model != self.index_model:
            raise EmbeddingModelMismatch(
                f"Query model {self.provider.model} does not match index model {self.index_model}")

        threshold = self.config.match_threshold if match_threshold is None else match_threshold
        count = widened_count(query, match_count or self.config.match_count, self.config)
        boost_tags = boost_tags_for_query(query)

        query_embedding = await self.provider.embed_query(query)

        try:
            results = await self.store.match_documents_enhanced(
                query_embedding,
                match_threshold=threshold,
                match_count=count,
                boost_tags=boost_tags,
                require_tags=[],
                boost_weight=self.config.tag_boost_weight,
                embedding_model=self.provider.model,
            )
            strategy = "enhanced"
            record_search(strategy)
        except EnhancedSearchUnavailable as e:
            logger.info(f"Enhanced search unavailable, falling back to basic search: {e}")
            results = await self.store.match_documents(
                query_embedding,
                match_threshold=threshold,
                match_count=count,
                embedding_model=self.provider.model,
            )
            strategy = "basic"
            record_search(strategy, fell_back=True)

        logger.debug(f"Query matched {len(results)} chunks via {strategy} search (boost={boost_tags})")
        return RetrievalResponse(query=query, results=results, strategy=strategy)
