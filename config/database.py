"""Database configuration and factory for Covenant Copilot.

Provides a unified interface over the SQLite (development) and
PostgreSQL (production) chunk stores.
"""

import os
import logging
from typing import Union, Optional
from enum import Enum
from pydantic import BaseModel, Field

from config.settings import load_environment
from indexer.models import ConfigurationError
from indexer.postgres_adapter import PostgresAdapter, PostgresConfig
from indexer.sqlite_adapter import SQLiteAdapter

logger = logging.getLogger(__name__)

Store = Union[PostgresAdapter, SQLiteAdapter]


class DatabaseType(str, Enum):
    """Supported database types."""
    SQLITE = "sqlite"
    POSTGRESQL = "postgresql"


class DatabaseConfig(BaseModel):
    """Database configuration."""
    type: DatabaseType = Field(default=DatabaseType.SQLITE, description="Database type")

    # SQLite configuration
    sqlite_path: Optional[str] = Field(default="covenant_copilot.db", description="SQLite database path")

    # PostgreSQL configuration
    postgres: Optional[PostgresConfig] = Field(default=None, description="PostgreSQL configuration")

    @classmethod
    def from_env(cls) -> 'DatabaseConfig':
        """Create configuration from environment variables."""
        load_environment()
        db_type = os.getenv('COPILOT_DB_TYPE', 'sqlite').lower()
        if db_type not in ('sqlite', 'postgresql'):
            raise ConfigurationError(f"Unsupported COPILOT_DB_TYPE: {db_type}")

        if db_type == 'postgresql':
            host = os.getenv('POSTGRES_HOST')
            if not host:
                return cls(type=DatabaseType.POSTGRESQL, sqlite_path=None, postgres=None)

            postgres_config = PostgresConfig(
                host=host,
                port=int(os.getenv('POSTGRES_PORT', '5432')),
                database=os.getenv('POSTGRES_DB', 'covenant_copilot'),
                user=os.getenv('POSTGRES_USER', 'copilot'),
                password=os.getenv('POSTGRES_PASSWORD', ''),
                min_connections=int(os.getenv('POSTGRES_MIN_CONNECTIONS', '2')),
                max_connections=int(os.getenv('POSTGRES_MAX_CONNECTIONS', '10')),
                command_timeout=int(os.getenv('POSTGRES_COMMAND_TIMEOUT', '60')),
                embedding_dimensions=int(os.getenv('COPILOT_EMBEDDING_DIMENSIONS', '1536'))
            )
            return cls(type=DatabaseType.POSTGRESQL, postgres=postgres_config)

        return cls(
            type=DatabaseType.SQLITE,
            sqlite_path=os.getenv('SQLITE_PATH', 'covenant_copilot.db')
        )

    @property
    def is_configured(self) -> bool:
        if self.type == DatabaseType.POSTGRESQL:
            return self.postgres is not None
        return bool(self.sqlite_path)


async def open_store(config: Optional[DatabaseConfig] = None) -> Optional[Store]:
    """Create and initialize the configured store.

    Returns:
        An initialized adapter, or None when no datastore is configured.
    """
    if config is None:
        config = DatabaseConfig.from_env()

    if not config.is_configured:
        logger.warning(f"No {config.type.value} datastore configured; persistence is disabled")
        return None

    if config.type == DatabaseType.POSTGRESQL:
        logger.info("Initializing PostgreSQL adapter")
        adapter: Store = PostgresAdapter(config.postgres)
    else:
        logger.info("Initializing SQLite adapter")
        adapter = SQLiteAdapter(config.sqlite_path)

    await adapter.initialize()
    logger.info(f"Database adapter initialized: {config.type.value}")
    return adapter

