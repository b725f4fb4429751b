"""Tests for the shared domain keyword table."""

import random

from pipelines.tags import TAG_LABELS, TAG_TABLE, boost_tags_for_query, extract_tags, is_conflict_prone


def test_table_is_ordered_label_pattern_pairs():
    """Every label appears once and carries a compiled pattern."""
    assert len(set(TAG_LABELS)) == len(TAG_TABLE) == 14
    assert TAG_LABELS[0] == "fence"


def test_extract_tags_matches_keywords():
    tags = extract_tags("The fence color must be Highlands Ranch Brown and requires ARC approval.")
    assert {"fence", "paint", "brown", "required", "approval"} <= tags
    assert "shed" not in tags


def test_extract_tags_is_case_insensitive():
    assert extract_tags("FENCING ALONG THE PERIMETER") == {"fence"}


def test_whole_words_only():
    """Keywords only match on word boundaries."""
    assert "fence" not in extract_tags("fences")
    assert "approval" not in extract_tags("architecture")


def test_tag_set_ignores_table_order():
    text = "Sheds and decks need committee review; holiday lights are prohibited in the parking lot."
    expected = extract_tags(text)
    shuffled = list(TAG_TABLE)
    for seed in range(5):
        random.Random(seed).shuffle(shuffled)
        assert extract_tags(text, shuffled) == expected
    assert {"approval", "holiday", "prohibited", "parking"} <= expected


def test_empty_text_has_no_tags():
    assert extract_tags("") == frozenset()
    assert extract_tags(None) == frozenset()


def test_query_boost_tags_use_same_table():
    assert boost_tags_for_query("What color can my fence be?") == ["fence", "paint"]


def test_conflict_prone_topics():
    assert is_conflict_prone("What color can my fence be?")
    assert is_conflict_prone("Fence height limits")
    assert not is_conflict_prone("Can I park an RV in my driveway?")
    assert is_conflict_prone("Where can I put a shed?", topics=("shed",))
