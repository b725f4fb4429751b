"""Record types and errors shared by the crawl, indexing and retrieval layers."""

from __future__ import annotations

import hashlib
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CopilotError(Exception):
    """Base class for errors raised by this package."""


class ConfigurationError(CopilotError):
    """Settings are present but unusable."""


class EmbeddingError(CopilotError):
    """The embedding provider failed or returned a misaligned batch."""


class EmbeddingModelMismatch(CopilotError):
    """A query was embedded with a different model than the index it targets."""


class IndexingError(CopilotError):
    """Persisting the chunks of one source failed."""

    def __init__(self, source_url: Optional[str], message: str):
        super().__init__(f"Failed to index {source_url or 'document batch'}: {message}")
        self.source_url = source_url


class EnhancedSearchUnavailable(CopilotError):
    """The datastore does not provide tag-boosted similarity search."""


class CrawlSessionError(CopilotError):
    """A crawl session record could not be created."""


class LinkType(str, Enum):
    INTERNAL = "internal"
    EXTERNAL = "external"
    FILE = "file"
    EMAIL = "email"
    TEL = "tel"


class LinkStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


class SessionStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


# Link text is truncated before persistence.
MAX_LINK_TEXT = 500


@dataclass
class DiscoveredLink:
    """A link seen on a crawled page, keyed by its absolute URL."""
    url: str
    source_url: str
    link_type: LinkType
    link_text: str = ""
    crawl_status: Optional[LinkStatus] = None
    last_crawl_attempt: Optional[datetime] = None
    error_message: Optional[str] = None

    def __post_init__(self):
        if self.crawl_status is None:
            # Only internal pages are ever queued for crawling.
            self.crawl_status = (LinkStatus.PENDING if self.link_type == LinkType.INTERNAL
                                 else LinkStatus.SKIPPED)
        self.link_text = (self.link_text or "")[:MAX_LINK_TEXT]


@dataclass
class CrawlSession:
    """Audit record for one crawl run."""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    started_at: datetime = field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    status: SessionStatus = SessionStatus.RUNNING
    total_pages_discovered: int = 0
    pages_processed: int = 0
    pages_successful: int = 0
    pages_failed: int = 0
    internal_links_found: int = 0
    external_links_found: int = 0
    error_message: Optional[str] = None

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "status": self.status.value,
            "total_pages_discovered": self.total_pages_discovered,
            "pages_processed": self.pages_processed,
            "pages_successful": self.pages_successful,
            "pages_failed": self.pages_failed,
            "internal_links_found": self.internal_links_found,
            "external_links_found": self.external_links_found,
            "error_message": self.error_message,
        }


def content_hash(text: str) -> str:
    """Stable hash of chunk content for change detection."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


@dataclass
class ChunkRecord:
    """A chunk ready for persistence (the ``documents`` table row)."""
    content: str
    embedding: Optional[List[float]] = None
    embedding_model: Optional[str] = None
    source_url: Optional[str] = None
    pdf_page: Optional[int] = None
    section_title: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    page_range: Optional[str] = None
    page_title: Optional[str] = None
    meta_description: Optional[str] = None
    content_type: Optional[str] = None
    response_status: Optional[int] = None
    last_modified: Optional[datetime] = None
    content_hash: Optional[str] = None
    crawled_at: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        if self.content_hash is None:
            self.content_hash = content_hash(self.content)
        self.tags = sorted(set(self.tags))


@dataclass
class SearchResult:
    """A persisted chunk scored against a query. Never persisted."""
    id: Any
    content: str
    similarity: float
    source_url: Optional[str] = None
    pdf_page: Optional[int] = None
    section_title: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    page_range: Optional[str] = None
    tag_boost_score: Optional[float] = None

    @property
    def score(self) -> float:
        """Ranking score: similarity plus any tag boost."""
        return self.similarity + (self.tag_boost_score or 0.0)

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "SearchResult":
        return cls(
            id=row["id"],
            content=row["content"],
            similarity=float(row["similarity"]),
            source_url=row.get("source_url"),
            pdf_page=row.get("pdf_page"),
            section_title=row.get("section_title"),
            tags=list(row.get("tags") or []),
            page_range=row.get("page_range"),
            tag_boost_score=(float(row["tag_boost_score"])
                             if row.get("tag_boost_score") is not None else None),
        )


@dataclass(frozen=True)
class ConflictRecord:
    """A plausible contradiction between rules found in one result set."""
    category: str
    description: str
