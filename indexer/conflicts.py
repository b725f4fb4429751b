"""Heuristic detection of contradictory rules within a result set.

Each rule is a pair of mutually exclusive signals. When both appear in the
combined text of the results, a warning is produced for human or LLM
review. False positives are expected.
"""

import logging
import re
from dataclasses import dataclass
from typing import Iterable, List, Pattern, Sequence, Union

from observability.metrics import record_conflict
from .models import ConflictRecord, SearchResult

logger = logging.getLogger(__name__)

PREFIX = "POTENTIAL CONFLICT DETECTED: "

FENCE_COLOR_LOCATION_MESSAGE = (
    PREFIX + "Different fence color requirements found - 'Highlands Ranch Brown' and "
    "'natural wood tones'. This likely indicates different rules for interior vs exterior "
    "fences. Please specify fence location for accurate guidance."
)
FENCE_COLOR_MESSAGE = (
    PREFIX + "Some sections reference 'natural wood tones', while others require "
    "'Highlands Ranch Brown'. This may indicate different rules for interior vs exterior fences."
)
APPROVAL_MESSAGE = (
    PREFIX + "Documents contain conflicting approval requirements. Please review specific "
    "circumstances and contact ARC for clarification."
)
SIZE_MESSAGE = (
    PREFIX + "Mixed information about size limitations. Different rules may apply to "
    "different areas or structure types."
)

_BROWN = re.compile(r"highlands?\s*ranch\s*brown|hrca\s*brown")
_NATURAL = re.compile(r"natural\s*wood\s*tones?|earth\s*tones?")
_EXTERIOR_FENCE = re.compile(r"exterior\s*fence")
_INTERIOR_FENCE = re.compile(r"interior\s*fence")


@dataclass(frozen=True)
class SignalPair:
    """Two signals that contradict each other when both are present.

    ``negative`` phrases are removed before ``positive`` is tested, so that
    "no approval required" does not also count as "approval required".
    """
    category: str
    positive: Pattern[str]
    negative: Pattern[str]
    message: str

    def triggered(self, text: str) -> bool:
        if not self.negative.search(text):
            return False
        return bool(self.positive.search(self.negative.sub(" ", text)))


SIGNAL_PAIRS: Sequence[SignalPair] = (
    SignalPair(
        category="approval",
        positive=re.compile(r"approval\s*required|arc\s*approval|must\s*be\s*approved"),
        negative=re.compile(r"no\s*approval\s*required|approval\s*not\s*required"),
        message=APPROVAL_MESSAGE,
    ),
    SignalPair(
        category="size",
        positive=re.compile(r"maximum|max|limit|not\s*exceed"),
        negative=re.compile(r"no\s*size\s*limit|unlimited\s*size"),
        message=SIZE_MESSAGE,
    ),
)


def _combined_text(results: Iterable[Union[SearchResult, str]]) -> str:
    parts = [r if isinstance(r, str) else r.content for r in results]
    return " ".join(parts).lower()


def _fence_color_conflict(text: str) -> List[ConflictRecord]:
    if not (_BROWN.search(text) and _NATURAL.search(text)):
        return []
    if _EXTERIOR_FENCE.search(text) and _INTERIOR_FENCE.search(text):
        return [ConflictRecord("fence-color-location", FENCE_COLOR_LOCATION_MESSAGE)]
    return [ConflictRecord("fence-color", FENCE_COLOR_MESSAGE)]


def detect_conflicts(results: Iterable[Union[SearchResult, str]]) -> List[ConflictRecord]:
    """Scan the combined, case-folded text of ``results`` for rule conflicts.

    Args:
        results: Search results (or raw chunk texts)

    Returns:
        One ConflictRecord per triggered signal pair, in a fixed order.
    """
    text = _combined_text(results)
    if not text.strip():
        return []

    conflicts = _fence_color_conflict(text)
    conflicts.extend(
        ConflictRecord(pair.category, pair.message)
        for pair in SIGNAL_PAIRS
        if pair.triggered(text)
    )

    for conflict in conflicts:
        record_conflict(conflict.category)
    if conflicts:
        logger.info(f"Detected {len(conflicts)} potential rule conflicts")
    return conflicts


def conflict_messages(results: Iterable[Union[SearchResult, str]]) -> List[str]:
    """Human-readable warnings for ``results``."""
    return [conflict.description for conflict in detect_conflicts(results)]
