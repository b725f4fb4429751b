"""Observability package for Covenant Copilot."""

from .logging import setup_logging, get_logger, get_structured_logger, StructuredLogger
from .metrics import (
    copilot_registry,
    record_page,
    record_links,
    record_indexing,
    record_embedding,
    record_search,
    record_conflict,
    render_metrics,
    get_metrics_summary
)

__all__ = [
    'setup_logging',
    'get_logger',
    'get_structured_logger',
    'StructuredLogger',
    'copilot_registry',
    'record_page',
    'record_links',
    'record_indexing',
    'record_embedding',
    'record_search',
    'record_conflict',
    'render_metrics',
    'get_metrics_summary'
]
