"""
Tests for context-window matching in the precise aligner.
"""

import pytest

from readcue.precise_aligner import (
    ContextOrder,
    PreciseAligner,
    PreciseSettings,
    distance_penalty,
    score_window,
)
from readcue.scoring import NO_MATCH

REFERENCE: list[str] = "the quick brown fox jumps over the lazy dog".split()
BOTH_ORDERS = [ContextOrder.LONGEST_FIRST, ContextOrder.SHORTEST_FIRST]


def make_aligner(order: ContextOrder = ContextOrder.LONGEST_FIRST) -> PreciseAligner:
    return PreciseAligner(REFERENCE, PreciseSettings(context_order=order))


class TestHelpers:
    """Tests for the scoring helpers."""

    def test_no_penalty_at_or_behind_base(self) -> None:
        assert distance_penalty(0, 0.8, 0.3) == 0.0
        assert distance_penalty(-3, 0.8, 0.3) == 0.0

    def test_penalty_grows_with_distance(self) -> None:
        assert distance_penalty(1, 0.8, 0.3) == pytest.approx(1.1)
        assert distance_penalty(3, 0.8, 0.3) == pytest.approx(2.5)
        assert distance_penalty(10, 0.8, 0.3) > distance_penalty(5, 0.8, 0.3)

    def test_score_window(self) -> None:
        assert score_window(REFERENCE, 2, ["brown", "fox"]) == 6.0
        assert score_window(REFERENCE, 0, ["the", "zebra"]) == NO_MATCH


class TestFindNext:
    """Tests for PreciseAligner.find_next."""

    def test_default_order_is_longest_first(self) -> None:
        assert PreciseSettings().context_order is ContextOrder.LONGEST_FIRST

    @pytest.mark.parametrize("order", BOTH_ORDERS)
    def test_first_words(self, order: ContextOrder) -> None:
        match = make_aligner(order).find_next(["the", "quick"], -1, 14)
        assert match is not None
        assert match.index == 1
        assert match.first_index == 0

    @pytest.mark.parametrize("order", BOTH_ORDERS)
    def test_continues_from_base(self, order: ContextOrder) -> None:
        match = make_aligner(order).find_next(["brown", "fox", "jumps"], 1, 22)
        assert match is not None
        assert match.index == 4
        assert match.first_index == 2

    def test_longest_first_uses_full_window(self) -> None:
        match = make_aligner(ContextOrder.LONGEST_FIRST).find_next(
            ["brown", "fox", "jumps"], 1, 22)
        assert match is not None
        assert match.context == 3

    def test_shortest_first_accepts_smallest_window(self) -> None:
        match = make_aligner(ContextOrder.SHORTEST_FIRST).find_next(
            ["the", "quick"], -1, 14)
        assert match is not None
        assert match.context == 1

    def test_backward_extension_stops_at_base(self) -> None:
        # "over" also matches reference index 5, but that is the base itself
        match = make_aligner(ContextOrder.SHORTEST_FIRST).find_next(
            ["over", "the"], 5, 14)
        assert match is not None
        assert match.index == 6
        assert match.first_index == 6

    def test_repeated_word_prefers_nearest_ahead(self) -> None:
        match = make_aligner().find_next(
            ["fox", "jumps", "over", "the"], 4, 14)
        assert match is not None
        assert match.index == 6

    def test_unrelated_words_fail(self) -> None:
        assert make_aligner().find_next(["zebra"], -1, 14) is None

    def test_empty_inputs(self) -> None:
        assert make_aligner().find_next([], -1, 14) is None
        assert PreciseAligner([]).find_next(["the"], -1, 14) is None

    def test_lookahead_bounds_search(self) -> None:
        # "dog" is 8 words past the base; a lookahead of 3 cannot reach it
        assert make_aligner().find_next(["lazy", "dog"], -1, 3) is None

    def test_context_never_exceeds_four_words(self) -> None:
        recognized = "the quick brown fox jumps over".split()
        match = make_aligner().find_next(recognized, 1, 14)
        assert match is not None
        assert match.context == 4
        assert match.index == 5


class TestFindGlobal:
    """Tests for PreciseAligner.find_global."""

    REF: list[str] = "alpha bravo charlie delta echo foxtrot golf hotel".split()

    def test_finds_forward_match(self) -> None:
        aligner = PreciseAligner(self.REF)
        match = aligner.find_global(["delta", "echo"], 1)
        assert match is not None
        assert match.index == 4
        assert match.first_index == 3

    def test_never_returns_position_at_or_behind_base(self) -> None:
        aligner = PreciseAligner(self.REF)
        match = aligner.find_global(["bravo", "charlie"], 3)
        assert match is None or match.index > 3

    def test_empty_inputs(self) -> None:
        assert PreciseAligner(self.REF).find_global([], 0) is None
        assert PreciseAligner([]).find_global(["alpha"], -1) is None
