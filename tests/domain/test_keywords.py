"""Tests for keyword patterns used by the textual fallback."""

import pytest

from handbook_rag.domain.services.keywords import KeywordPattern, parse_keyword_groups


def test_default_group_matches_both_orders_case_insensitive():
    pattern = KeywordPattern(groups=(("elders", "quorum"),))
    assert pattern.matches("The Elders Quorum meets on Sunday.")
    assert pattern.matches("A quorum of elders was organized.")
    assert not pattern.matches("The Relief Society meets on Sunday.")


def test_group_needs_every_word():
    pattern = KeywordPattern(groups=(("elders", "quorum"),))
    assert not pattern.matches("Elders serve as ministering brothers.")


def test_any_group_may_match():
    pattern = parse_keyword_groups("elders quorum, relief society")
    assert pattern.matches("relief society presidency")
    assert pattern.matches("ELDERS and their QUORUM")


def test_words_are_escaped():
    pattern = KeywordPattern(groups=(("c++",),))
    assert pattern.matches("learning c++ today")
    assert not pattern.matches("learning c today")


def test_phrases_for_store_prefilter():
    pattern = parse_keyword_groups("Elders Quorum , relief society,")
    assert pattern.phrases == ["elders quorum", "relief society"]


def test_empty_pattern_rejected():
    with pytest.raises(ValueError):
        KeywordPattern(groups=())
    with pytest.raises(ValueError):
        parse_keyword_groups(" , ")
