"""Tests for rule conflict detection."""

from indexer.conflicts import (
    APPROVAL_MESSAGE,
    FENCE_COLOR_MESSAGE,
    PREFIX,
    SIZE_MESSAGE,
    conflict_messages,
    detect_conflicts,
)
from indexer.models import SearchResult


def result(content, id=1):
    return SearchResult(id=id, content=content, similarity=0.9)


def categories(results):
    return [c.category for c in detect_conflicts(results)]


def test_fence_color_with_locations():
    results = [
        result("Exterior fence color must be Highlands Ranch Brown", 1),
        result("Interior fence color may use natural wood tones", 2),
    ]
    assert categories(results) == ["fence-color-location"]


def test_fence_color_without_locations():
    texts = ["Fences must be painted HRCA Brown.", "Earth tones are acceptable for fences."]
    assert detect_conflicts(texts)[0].description == FENCE_COLOR_MESSAGE


def test_single_color_rule_is_not_a_conflict():
    assert detect_conflicts(["Fences must be Highlands Ranch Brown."]) == []


def test_approval_conflict():
    texts = ["No approval required for small planters.", "ARC approval required for sheds."]
    assert categories(texts) == ["approval"]


def test_negative_phrase_alone_does_not_conflict_with_itself():
    assert detect_conflicts(["No approval required for holiday lights."]) == []
    assert detect_conflicts(["There is no size limit for planters."]) == []


def test_size_conflict():
    texts = ["There is no size limit for planters.", "Sheds may not exceed 120 square feet."]
    assert conflict_messages(texts) == [SIZE_MESSAGE]


def test_categories_in_fixed_order():
    texts = [
        "Exterior fence: Highlands Ranch Brown. Interior fence: natural wood tones.",
        "No approval required for paint. Sheds must be approved.",
        "Unlimited size for gardens; maximum shed height is 10 feet.",
    ]
    assert categories([result(t, i) for i, t in enumerate(texts)]) == [
        "fence-color-location", "approval", "size"]


def test_messages_share_prefix():
    assert APPROVAL_MESSAGE.startswith(PREFIX)
    assert SIZE_MESSAGE.startswith("POTENTIAL CONFLICT DETECTED: ")


def test_empty_input():
    assert detect_conflicts([]) == []
    assert detect_conflicts(["", "   "]) == []
