"""Configuration module for Covenant Copilot.

Provides configuration management for the datastore, embeddings, chunking
and retrieval.
"""

from .settings import (
    ChunkingConfig,
    EmbeddingConfig,
    EmbeddingProviderType,
    RetrievalConfig,
    load_environment
)
from .database import (
    DatabaseConfig,
    DatabaseType,
    open_store
)

__all__ = [
    'ChunkingConfig',
    'EmbeddingConfig',
    'EmbeddingProviderType',
    'RetrievalConfig',
    'load_environment',
    'DatabaseConfig',
    'DatabaseType',
    'open_store'
]
