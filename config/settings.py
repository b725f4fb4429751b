"""Runtime settings for embedding, chunking and retrieval.

Values come from the environment after ``.env`` and ``.env.local`` are loaded.
"""

import os
import logging
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple

from dotenv import load_dotenv
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

_ENV_LOADED = False


def load_environment(base_dir: Optional[Path] = None) -> None:
    """Load ``.env`` then ``.env.local`` (which wins) once per process."""
    global _ENV_LOADED
    if _ENV_LOADED:
        return
    base = Path(base_dir) if base_dir else Path.cwd()
    load_dotenv(base / ".env")
    load_dotenv(base / ".env.local", override=True)
    _ENV_LOADED = True


class EmbeddingProviderType(str, Enum):
    """Supported embedding providers."""
    OPENAI = "openai"
    SENTENCE_TRANSFORMERS = "sentence-transformers"


class EmbeddingConfig(BaseModel):
    """Embedding provider configuration."""
    provider: EmbeddingProviderType = Field(default=EmbeddingProviderType.OPENAI)
    model: str = Field(default="text-embedding-3-small", description="Embedding model identifier")
    dimensions: int = Field(default=1536, description="Vector dimensionality")
    api_key: Optional[str] = Field(default=None, description="OpenAI API key")
    batch_size: int = Field(default=100, description="Texts per provider request when backfilling")

    @classmethod
    def from_env(cls) -> 'EmbeddingConfig':
        """Create configuration from environment variables."""
        load_environment()
        provider = os.getenv('COPILOT_EMBEDDING_PROVIDER', 'openai').lower()
        return cls(
            provider=EmbeddingProviderType(provider),
            model=os.getenv('COPILOT_EMBEDDING_MODEL', 'text-embedding-3-small'),
            dimensions=int(os.getenv('COPILOT_EMBEDDING_DIMENSIONS', '1536')),
            api_key=os.getenv('OPENAI_API_KEY') or None,
            batch_size=int(os.getenv('COPILOT_EMBEDDING_BATCH_SIZE', '100'))
        )


class ChunkingConfig(BaseModel):
    """Windowing parameters for the section chunker."""
    chunk_size: int = Field(default=1000, gt=0)
    overlap: int = Field(default=200, ge=0)
    max_windows: int = Field(default=1000, gt=0, description="Hard cap on windows per text")
    min_section_length: int = Field(default=100, ge=0)
    document_min_chunk_length: int = Field(default=50, ge=0)


class RetrievalConfig(BaseModel):
    """Defaults for similarity search and tag boosting."""
    match_threshold: float = Field(default=0.78, ge=0.0, le=1.0)
    match_count: int = Field(default=5, gt=0)
    widened_count_cap: int = Field(default=8, gt=0)
    widen_by: int = Field(default=3, ge=0)
    tag_boost_weight: float = Field(default=0.05, ge=0.0)
    conflict_prone_topics: Tuple[str, ...] = ('fence',)

    @classmethod
    def from_env(cls) -> 'RetrievalConfig':
        load_environment()
        return cls(
            match_threshold=float(os.getenv('COPILOT_MATCH_THRESHOLD', '0.78')),
            match_count=int(os.getenv('COPILOT_MATCH_COUNT', '5'))
        )
