"""
Tests for word similarity scoring.
"""

from unittest import mock

import pytest

from readcue import scoring
from readcue.scoring import NO_MATCH, is_match, score_word_match


class TestScoreLadder:
    """Each rung of the scoring ladder."""

    def test_exact(self) -> None:
        assert score_word_match("hello", "hello") == 3.0

    @pytest.mark.parametrize("a,b", [
        ("recog", "recognition"),
        ("recognition", "recog"),
    ])
    def test_prefix_either_direction(self, a: str, b: str) -> None:
        assert score_word_match(a, b) == 2.0

    def test_single_edit(self) -> None:
        assert score_word_match("cat", "cot") == 2.0
        assert score_word_match("quick", "quack") == 2.0

    def test_two_edits_long_words(self) -> None:
        assert score_word_match("brown", "crowd") == 1.5

    def test_two_edits_four_letter_words(self) -> None:
        assert score_word_match("fish", "wash") == 1.2

    def test_within_half_length(self) -> None:
        # distance 3, shorter word has 6 letters
        assert score_word_match("kitten", "sitting") == 1.0

    @pytest.mark.parametrize("similarity,expected", [
        (0.80, 1.2),
        (0.75, 1.2),
        (0.72, 0.9),
        (0.66, 0.7),
        (0.61, 0.5),
    ])
    def test_jaro_winkler_tiers(self, similarity: float, expected: float) -> None:
        with mock.patch.object(scoring.JaroWinkler, "similarity", return_value=similarity):
            assert score_word_match("abcdefgh", "zyxwvuts") == expected

    def test_jaro_winkler_below_lowest_tier(self) -> None:
        with mock.patch.object(scoring.JaroWinkler, "similarity", return_value=0.59):
            assert score_word_match("abcdefgh", "zyxwvuts") == NO_MATCH

    def test_short_unrelated_words_skip_jaro_winkler(self) -> None:
        with mock.patch.object(scoring.JaroWinkler, "similarity") as similarity:
            assert score_word_match("the", "dog") == NO_MATCH
            similarity.assert_not_called()


class TestNoMatch:
    """Inputs that must never match."""

    @pytest.mark.parametrize("a,b", [("", "word"), ("word", ""), ("", "")])
    def test_empty(self, a: str, b: str) -> None:
        assert score_word_match(a, b) == NO_MATCH

    def test_unrelated(self) -> None:
        assert score_word_match("charlie", "umbrella") == NO_MATCH

    def test_is_match(self) -> None:
        assert is_match(score_word_match("hello", "hello"))
        assert not is_match(NO_MATCH)
        assert is_match(0.0)
