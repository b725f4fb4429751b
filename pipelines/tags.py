"""Domain keyword table shared by indexing and query-time boosting.

Chunks are tagged at ingestion and queries are tagged at search time from the
same ``TAG_TABLE`` so the two sides cannot drift apart.
"""

import re
from typing import FrozenSet, Iterable, List, Pattern, Tuple

# Ordered (label, pattern) pairs. Matching is done on lowercased text.
TAG_TABLE: Tuple[Tuple[str, Pattern[str]], ...] = tuple(
    (label, re.compile(rf"\b(?:{alternatives})\b"))
    for label, alternatives in (
        ("fence", r"fence|fencing|boundary|perimeter"),
        ("paint", r"paint|color|stain|finish"),
        ("exterior", r"exterior|outside|outdoor|external"),
        ("interior", r"interior|inside|indoor|internal"),
        ("brown", r"brown|highlands ranch brown|earth tone"),
        ("natural", r"natural|wood tone|natural wood"),
        ("approval", r"approval|permit|arc|committee|review"),
        ("shed", r"shed|storage|outbuilding|structure"),
        ("deck", r"deck|patio|outdoor living"),
        ("landscaping", r"landscape|garden|plant|tree|lawn"),
        ("parking", r"park|parking|vehicle|rv|trailer"),
        ("holiday", r"holiday|christmas|decoration|light"),
        ("required", r"required|must|mandatory|shall"),
        ("prohibited", r"prohibited|not allowed|forbidden|banned"),
    )
)

TAG_LABELS: Tuple[str, ...] = tuple(label for label, _ in TAG_TABLE)


def extract_tags(text: str, table: Iterable[Tuple[str, Pattern[str]]] = TAG_TABLE) -> FrozenSet[str]:
    """Return every tag label whose pattern matches ``text``.

    The result is a set, so the iteration order of ``table`` has no effect.
    """
    lowered = (text or "").lower()
    return frozenset(label for label, pattern in table if pattern.search(lowered))


def sorted_tags(text: str) -> List[str]:
    """Tags of ``text`` in a stable order, for persistence."""
    return sorted(extract_tags(text))


def boost_tags_for_query(query: str) -> List[str]:
    """Tags a query should boost in similarity search."""
    return sorted(extract_tags(query))


def is_conflict_prone(query: str, topics: Iterable[str] = ("fence",)) -> bool:
    """True when the query mentions a topic known to have contradictory rules."""
    lowered = (query or "").lower()
    return any(topic in lowered for topic in topics)
