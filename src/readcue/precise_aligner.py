# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Context-window matching for the "precise" tracking mode.

Each recognition event is reduced to its last few recognized words. Those
words are slid over a bounded neighbourhood of the reference text and the
best-scoring contiguous window (after a distance penalty) wins.
"""

import logging
import math
from dataclasses import dataclass
from enum import Enum

from .scoring import NO_MATCH, STRONG_MATCH, is_match, score_word_match

logger = logging.getLogger(__name__)

MAX_CONTEXT: int = 4


class ContextOrder(Enum):
    """Order in which context window lengths are tried.

    LONGEST_FIRST favours precision: a 4-word agreement beats a lone word
    that happens to match nearby. SHORTEST_FIRST favours recall and reacts
    to the newest word even when older words were misrecognized.
    """
    LONGEST_FIRST = "longest_first"
    SHORTEST_FIRST = "shortest_first"


@dataclass(frozen=True)
class PreciseSettings:
    """Thresholds for the precise aligner."""
    backtrack: int = 3
    lookahead_interim: int = 14
    lookahead_final: int = 22
    penalty_log: float = 0.8
    penalty_linear: float = 0.3
    min_score_single: float = 0.8
    min_score_per_word: float = 1.0
    global_lookahead: int = 64
    global_penalty_log: float = 1.2
    global_penalty_linear: float = 0.4
    global_min_score_single: float = 0.6
    global_min_score_per_word: float = 0.8
    global_min_threshold: float = 0.6
    context_order: ContextOrder = ContextOrder.LONGEST_FIRST


@dataclass(frozen=True)
class AlignmentMatch:
    """Where a window of recognized words landed in the reference."""
    index: int  # Reference index of the last word in the window
    first_index: int  # Reference index of the first word confidently heard
    score: float  # Penalty-adjusted window score
    context: int  # Number of recognized words in the accepted window


def distance_penalty(distance: int, log_weight: float, linear_weight: float) -> float:
    """Penalty for a candidate ``distance`` words past the base index."""
    if distance <= 0:
        return 0.0
    return math.log2(distance + 1) * log_weight + distance * linear_weight


def score_window(reference: list[str], start: int, recognized: list[str]) -> float:
    """Sum word scores of ``recognized`` laid over ``reference[start:]``.

    Returns NO_MATCH if any single word fails to match.
    """
    total: float = 0.0
    for offset, spoken in enumerate(recognized):
        word_score = score_word_match(reference[start + offset], spoken)
        if not is_match(word_score):
            return NO_MATCH
        total += word_score
    return total


class PreciseAligner:
    """
    Finds the next reference position for a window of recognized words.

    The aligner is stateless apart from the reference words it searches;
    cursor bookkeeping belongs to the tracker.
    """

    def __init__(self, reference: list[str], settings: PreciseSettings | None = None) -> None:
        self.reference: list[str] = reference
        self.settings: PreciseSettings = settings or PreciseSettings()

    def _context_lengths(self, available: int) -> list[int]:
        max_context = min(MAX_CONTEXT, available)
        lengths = list(range(1, max_context + 1))
        if self.settings.context_order is ContextOrder.LONGEST_FIRST:
            lengths.reverse()
        return lengths

    def _best_in_range(
        self,
        recognized: list[str],
        context: int,
        base_index: int,
        start: int,
        end: int,
        log_weight: float,
        linear_weight: float,
    ) -> tuple[int, float]:
        """Best (candidate_index, score) for one context length over [start, end)."""
        window = recognized[-context:]
        best_idx: int = -1
        best_score: float = NO_MATCH
        for i in range(start, end):
            score = score_window(self.reference, i, window)
            if score <= NO_MATCH:
                continue
            candidate_idx = i + context - 1
            penalty = distance_penalty(
                candidate_idx - base_index, log_weight, linear_weight)
            final_score = score - penalty
            if final_score > best_score:
                best_score = final_score
                best_idx = candidate_idx
        return best_idx, best_score

    def _extend_backward(self, recognized: list[str], context: int,
                         candidate_idx: int, floor: int) -> int:
        """Walk back over earlier recognized words that also match the reference.

        Returns the first reference index that was confidently heard. Never
        extends to or before ``floor``.
        """
        first = candidate_idx - context + 1
        spoken_pos = len(recognized) - context - 1
        ref_pos = first - 1
        while spoken_pos >= 0 and ref_pos > floor:
            if score_word_match(self.reference[ref_pos], recognized[spoken_pos]) < STRONG_MATCH:
                break
            first = ref_pos
            spoken_pos -= 1
            ref_pos -= 1
        return first

    def find_next(self, recognized: list[str], base_index: int,
                  lookahead: int) -> AlignmentMatch | None:
        """
        Find the reference index matching the newest recognized words.

        Args:
            recognized: Normalized recognized words of the current transcript
            base_index: Last known reference position (-1 for none)
            lookahead: How many words past base_index to search

        Returns:
            The accepted match, or None if no window clears its threshold
        """
        if not recognized or not self.reference:
            return None
        s = self.settings
        start = max(0, base_index + 1 - s.backtrack)
        for context in self._context_lengths(len(recognized)):
            end = min(len(self.reference) - context + 1,
                      base_index + 1 + lookahead)
            if end <= start:
                continue
            best_idx, best_score = self._best_in_range(
                recognized, context, base_index, start, end,
                s.penalty_log, s.penalty_linear)
            min_score = (s.min_score_single if context == 1
                         else context * s.min_score_per_word)
            if best_idx != -1 and best_score >= min_score:
                logger.debug("find_next: context=%d idx=%d score=%.2f",
                             context, best_idx, best_score)
                first = self._extend_backward(
                    recognized, context, best_idx, base_index)
                return AlignmentMatch(best_idx, min(first, best_idx), best_score, context)
        return None

    def find_global(self, recognized: list[str], base_index: int) -> AlignmentMatch | None:
        """
        Recovery search: forward only, wide window, stricter penalties.

        Args:
            recognized: Normalized recognized words of the current transcript
            base_index: Last known reference position (-1 for none)

        Returns:
            The accepted match, or None
        """
        if not recognized or not self.reference:
            return None
        s = self.settings
        start = max(0, base_index + 1)
        best_idx: int = -1
        best_score: float = NO_MATCH
        best_context: int = 0
        for context in self._context_lengths(len(recognized)):
            end = min(len(self.reference) - context + 1,
                      base_index + 1 + s.global_lookahead)
            if end <= start:
                continue
            idx, score = self._best_in_range(
                recognized, context, base_index, start, end,
                s.global_penalty_log, s.global_penalty_linear)
            if score > best_score:
                best_idx, best_score, best_context = idx, score, context
            min_score = (s.global_min_score_single if context == 1
                         else context * s.global_min_score_per_word)
            if idx != -1 and score >= min_score:
                first = self._extend_backward(recognized, context, idx, base_index)
                return AlignmentMatch(idx, min(first, idx), score, context)
        if best_idx != -1 and best_score >= s.global_min_threshold:
            first = self._extend_backward(
                recognized, best_context, best_idx, base_index)
            return AlignmentMatch(best_idx, min(first, best_idx), best_score, best_context)
        return None
