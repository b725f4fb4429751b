# Covenant Copilot Embeddings Module
# Turns chunk and query text into vectors

import asyncio
import logging
import time
from typing import List, Optional

import openai

from config.settings import EmbeddingConfig, EmbeddingProviderType
from observability.metrics import record_embedding
from .models import EmbeddingError

logger = logging.getLogger(__name__)


class EmbeddingProvider:
    """Maps a batch of texts to an order-preserving batch of vectors."""

    model: str
    dimensions: int

    async def _embed(self, texts: List[str]) -> List[List[float]]:
        raise NotImplementedError

    async def embed_documents(self, texts: List[str]) -> List[List[float]]:
        """Embed ``texts`` in a single provider request.

        Raises:
            EmbeddingError: If the request fails or returns a batch that does
                not line up with ``texts``.
        """
        if not texts:
            return []

        started = time.perf_counter()
        vectors = await self._embed(texts)
        record_embedding(self.model, time.perf_counter() - started)

        if len(vectors) != len(texts):
            raise EmbeddingError(
                f"Provider returned {len(vectors)} vectors for {len(texts)} texts")
        for vector in vectors:
            if len(vector) != self.dimensions:
                raise EmbeddingError(
                    f"Expected {self.dimensions}-dimensional vectors from {self.model}, got {len(vector)}")
        return vectors

    async def embed_query(self, text: str) -> List[float]:
        vectors = await self.embed_documents([text])
        return vectors[0]


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """Embeddings from the OpenAI API."""

    def __init__(self, config: EmbeddingConfig, client: Optional[openai.AsyncOpenAI] = None):
        self.model = config.model
        self.dimensions = config.dimensions
        self.client = client or openai.AsyncOpenAI(api_key=config.api_key)

    async def _embed(self, texts: List[str]) -> List[List[float]]:
        try:
            response = await self.client.embeddings.create(model=self.model, input=texts)
        except openai.OpenAIError as e:
            raise EmbeddingError(f"OpenAI embedding request failed: {e}") from e
        data = sorted(response.data, key=lambda item: item.index)
        return [list(item.embedding) for item in data]


class SentenceTransformerProvider(EmbeddingProvider):
    """Local embeddings with sentence-transformers."""

    def __init__(self, config: EmbeddingConfig):
        self.model = config.model
        self.dimensions = config.dimensions
        self._model = None

    def _load_model(self):
        """Load the sentence transformer model"""
        if self._model is None:
            from sentence_transformers import SentenceTransformer

            logger.info(f"Loading embedding model: {self.model}")
            self._model = SentenceTransformer(self.model)
            dimension = self._model.get_sentence_embedding_dimension()
            if dimension != self.dimensions:
                raise EmbeddingError(
                    f"Model {self.model} produces {dimension}-dimensional vectors, "
                    f"configured for {self.dimensions}")
            logger.info(f"Model loaded successfully. Embedding dimension: {dimension}")
        return self._model

    async def _embed(self, texts: List[str]) -> List[List[float]]:
        model = self._load_model()
        embeddings = await asyncio.to_thread(model.encode, texts, convert_to_numpy=True)
        return [row.tolist() for row in embeddings]


def get_embedding_provider(config: Optional[EmbeddingConfig] = None) -> Optional[EmbeddingProvider]:
    """Build the configured provider, or None when its credentials are absent."""
    if config is None:
        config = EmbeddingConfig.from_env()

    if config.provider == EmbeddingProviderType.SENTENCE_TRANSFORMERS:
        return SentenceTransformerProvider(config)

    if not config.api_key:
        logger.warning("OPENAI_API_KEY is not set; embedding is disabled")
        return None
    return OpenAIEmbeddingProvider(config)
