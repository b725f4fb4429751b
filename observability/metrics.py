"""Prometheus metrics for crawling, indexing and retrieval."""

from prometheus_client import Counter, Histogram, generate_latest
from prometheus_client.core import CollectorRegistry
from typing import Dict, Optional
import logging

logger = logging.getLogger(__name__)

copilot_registry = CollectorRegistry()

# Crawl metrics
pages_crawled = Counter(
    'copilot_crawl_pages_total',
    'Pages processed by the crawl frontier',
    ['outcome'],
    registry=copilot_registry
)

links_discovered = Counter(
    'copilot_crawl_links_total',
    'Links discovered while crawling',
    ['link_type'],
    registry=copilot_registry
)

# Indexing metrics
chunks_indexed = Counter(
    'copilot_chunks_indexed_total',
    'Chunks persisted to the datastore',
    registry=copilot_registry
)

sources_replaced = Counter(
    'copilot_sources_replaced_total',
    'Source generations replaced (delete-then-insert)',
    ['status'],
    registry=copilot_registry
)

embedding_duration = Histogram(
    'copilot_embedding_duration_seconds',
    'Embedding provider request duration in seconds',
    ['model'],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
    registry=copilot_registry
)

# Retrieval metrics
search_requests = Counter(
    'copilot_search_requests_total',
    'Similarity searches by strategy',
    ['strategy'],
    registry=copilot_registry
)

search_fallbacks = Counter(
    'copilot_search_fallbacks_total',
    'Enhanced searches that fell back to the basic strategy',
    registry=copilot_registry
)

conflicts_detected = Counter(
    'copilot_conflicts_detected_total',
    'Rule conflicts flagged in result sets',
    ['category'],
    registry=copilot_registry
)


def record_page(outcome: str) -> None:
    """Count one processed page (``success`` or ``failed``)."""
    pages_crawled.labels(outcome=outcome).inc()


def record_links(link_type: str, count: int) -> None:
    if count:
        links_discovered.labels(link_type=link_type).inc(count)


def record_indexing(chunk_count: int, error: Optional[str] = None) -> None:
    """Record the outcome of replacing one source's chunks."""
    status = "error" if error else "success"
    sources_replaced.labels(status=status).inc()
    if not error:
        chunks_indexed.inc(chunk_count)


def record_embedding(model: str, duration: float) -> None:
    embedding_duration.labels(model=model).observe(duration)


def record_search(strategy: str, fell_back: bool = False) -> None:
    search_requests.labels(strategy=strategy).inc()
    if fell_back:
        search_fallbacks.inc()


def record_conflict(category: str) -> None:
    conflicts_detected.labels(category=category).inc()


def render_metrics() -> bytes:
    """Prometheus exposition text for the copilot registry."""
    return generate_latest(copilot_registry)


def get_metrics_summary() -> Dict[str, float]:
    """Get a summary of current metric totals keyed by metric family name."""
    summary: Dict[str, float] = {}
    for family in copilot_registry.collect():
        total = 0.0
        for sample in family.samples:
            if sample.name.endswith("_total") or sample.name.endswith("_count"):
                total += sample.value
        summary[family.name] = total
    return summary
