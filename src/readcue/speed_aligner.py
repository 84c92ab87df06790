# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Incremental alignment for the "speed" tracking mode.

Instead of re-searching on every event, this aligner remembers which
reference index each recognized word was assigned to. A new event only
has to:
1. Diff its words against the previous ones (common prefix). If the
   recognizer revised an earlier word, roll back to the last word that is
   still agreed on.
2. Greedily place each new word a short distance ahead of the anchor.
3. When greedy placement keeps failing, realign the recent words with a
   small dynamic-programming alignment over a bounded reference window.
"""

import logging
import math
from dataclasses import dataclass, field
from enum import Enum

from .precise_aligner import distance_penalty
from .scoring import is_match, score_word_match

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SpeedSettings:
    """Thresholds for the speed aligner."""
    lookahead_interim: int = 12
    lookahead_final: int = 20
    max_context: int = 4
    context_weight: float = 0.5
    penalty_log: float = 0.6
    penalty_linear: float = 0.25
    final_bonus: float = 0.3
    accept_interim: float = 1.6
    accept_final: float = 1.2
    match_quality: float = 2.0
    miss_limit_interim: int = 3
    miss_limit_final: int = 2
    dp_tail: int = 8
    dp_backtrack: int = 2
    dp_window: int = 24
    dp_skip_reference: float = 0.6
    dp_skip_recognized: float = 0.9
    dp_distance_weight: float = 0.05
    dp_min_coverage: float = 0.5
    stability_decay: float = 0.8


class StepKind(Enum):
    """Decision produced by the aligner for one recognized word or event."""
    MATCH = "match"
    SKIP = "skip"
    ROLLBACK = "rollback"


@dataclass(frozen=True)
class AlignmentStep:
    """One decision for the highlight layer."""
    kind: StepKind
    index: int
    first_index: int = -1  # First reference index heard (matches only)
    quality: float = 0.0
    from_dp: bool = False


@dataclass
class AlignmentState:
    """Everything the speed aligner remembers between events."""
    history: list[str] = field(default_factory=list)
    # index_map[k] is the reference index of history[k], or -1 if unresolved
    index_map: list[int] = field(default_factory=list)
    anchor: int = -1
    last_reliable: int = -1
    miss_count: int = 0
    stability: float = 0.0
    # Anchor when the current utterance began; rollback floor
    utterance_base: int = -1
    # Interim skip placement not yet committed by a match or a final result
    pending_skip: int = -1

    @classmethod
    def starting_at(cls, index: int) -> 'AlignmentState':
        """Fresh state whose anchor sits at an existing cursor position."""
        return cls(anchor=index, last_reliable=index, utterance_base=index)


@dataclass(frozen=True)
class DpResult:
    """Outcome of a window alignment."""
    index: int  # Reference index of the best end column
    cost: float
    coverage: int  # Recognized words aligned on the diagonal
    pairs: tuple[tuple[int, int], ...]  # (tail position, reference index)


def common_prefix_length(a: list[str], b: list[str]) -> int:
    """Length of the shared prefix of two word lists."""
    n = 0
    for x, y in zip(a, b):
        if x != y:
            break
        n += 1
    return n


def dp_align(
    tail: list[str],
    reference: list[str],
    start: int,
    end: int,
    anchor: int,
    settings: SpeedSettings | None = None
) -> DpResult | None:
    """
    Align recognized words against ``reference[start:end]``.

    Rows are recognized words, columns are reference words. Moves:
    diagonal match (cost = -score, only for matching words), skip a
    reference word, skip a recognized word. The alignment may start at any
    column. The result is the last-row column with the lowest cost plus a
    small penalty for distance from ``anchor``.

    Returns None for an empty tail or window.
    """
    s = settings or SpeedSettings()
    start = max(0, start)
    end = min(len(reference), end)
    rows: int = len(tail)
    cols: int = end - start
    if rows == 0 or cols <= 0:
        return None

    cost: list[list[float]] = [[0.0] * (cols + 1) for _ in range(rows + 1)]
    # 'M' match, 'R' skip reference, 'S' skip recognized
    moves: list[list[str]] = [[''] * (cols + 1) for _ in range(rows + 1)]
    for r in range(1, rows + 1):
        cost[r][0] = r * s.dp_skip_recognized
        moves[r][0] = 'S'

    for r in range(1, rows + 1):
        spoken = tail[r - 1]
        for c in range(1, cols + 1):
            best = math.inf
            move = ''
            word_score = score_word_match(reference[start + c - 1], spoken)
            if is_match(word_score):
                best = cost[r - 1][c - 1] - word_score
                move = 'M'
            skip_ref = cost[r][c - 1] + s.dp_skip_reference
            if skip_ref < best:
                best, move = skip_ref, 'R'
            skip_rec = cost[r - 1][c] + s.dp_skip_recognized
            if skip_rec < best:
                best, move = skip_rec, 'S'
            cost[r][c] = best
            moves[r][c] = move

    best_col: int = -1
    best_adjusted: float = math.inf
    for c in range(1, cols + 1):
        ref_index = start + c - 1
        adjusted = cost[rows][c] + s.dp_distance_weight * abs(ref_index - anchor)
        if adjusted < best_adjusted:
            best_adjusted = adjusted
            best_col = c

    pairs: list[tuple[int, int]] = []
    r, c = rows, best_col
    while r > 0:
        move = moves[r][c]
        if move == 'M':
            pairs.append((r - 1, start + c - 1))
            r, c = r - 1, c - 1
        elif move == 'R':
            c -= 1
        else:
            r -= 1
    pairs.reverse()

    return DpResult(
        index=start + best_col - 1,
        cost=cost[rows][best_col],
        coverage=len(pairs),
        pairs=tuple(pairs),
    )


class SpeedAligner:
    """
    Maps recognized words to reference indices incrementally.

    Usage:
        aligner = SpeedAligner(reference_words)
        for step in aligner.align(["the", "quick"], is_final=False):
            ...  # apply MATCH / SKIP / ROLLBACK to the highlight layer
    """

    def __init__(self, reference: list[str], settings: SpeedSettings | None = None) -> None:
        self.reference: list[str] = reference
        self.settings: SpeedSettings = settings or SpeedSettings()
        self.state: AlignmentState = AlignmentState()

    def reset(self, anchor: int = -1) -> None:
        """Discard all alignment state, keeping ``anchor`` as the start point."""
        self.state = AlignmentState.starting_at(anchor)

    def align(self, words: list[str], is_final: bool) -> list[AlignmentStep]:
        """
        Process the full word list of one recognition event.

        Args:
            words: Normalized recognized words of the current utterance
            is_final: True if the recognizer settled this utterance

        Returns:
            Steps in the order they should be applied
        """
        steps: list[AlignmentStep] = []
        state = self.state

        rollback = self._diff_history(words)
        if rollback is not None:
            steps.append(rollback)

        for k in range(len(state.index_map), len(words)):
            step = self._place_word(words, k, is_final)
            if step is not None:
                state.index_map.append(step.index)
                self._accept(step)
                self._note_pending(step, is_final)
                steps.append(step)
                continue

            state.index_map.append(-1)
            state.miss_count += 1
            state.stability *= self.settings.stability_decay
            limit = (self.settings.miss_limit_final if is_final
                     else self.settings.miss_limit_interim)
            if state.miss_count >= limit:
                dp_step = self._window_fallback(words, k)
                if dp_step is not None:
                    self._accept(dp_step)
                    self._note_pending(dp_step, is_final)
                    steps.append(dp_step)

        state.history = list(words)
        if is_final:
            pending = state.pending_skip
            if pending >= 0 and not any(
                    st.index >= pending for st in steps if st.kind is not StepKind.ROLLBACK):
                # Already placed by an interim result; commit it now
                steps.append(AlignmentStep(StepKind.SKIP, pending, pending))
            state.pending_skip = -1
            # Utterance closed; later interims start from here
            state.history = []
            state.index_map = []
            state.utterance_base = state.anchor
        return steps

    def _diff_history(self, words: list[str]) -> AlignmentStep | None:
        """Truncate state at the first revised word; roll back if it was placed."""
        state = self.state
        prefix = common_prefix_length(state.history, words)
        if prefix >= len(state.history):
            return None

        target = state.utterance_base
        for mapped in reversed(state.index_map[:prefix]):
            if mapped >= 0:
                target = mapped
                break
        dropped = [m for m in state.index_map[prefix:] if m >= 0]

        state.history = state.history[:prefix]
        state.index_map = state.index_map[:prefix]
        state.miss_count = 0
        if state.pending_skip not in state.index_map:
            state.pending_skip = -1

        if not dropped or max(dropped) <= target:
            return None

        logger.debug("Speed rollback: prefix=%d target=%d dropped=%s",
                     prefix, target, dropped)
        state.anchor = target
        state.last_reliable = min(state.last_reliable, target)
        return AlignmentStep(StepKind.ROLLBACK, target, target)

    def _place_word(self, words: list[str], k: int, is_final: bool) -> AlignmentStep | None:
        """Greedy forward search for recognized word ``k``."""
        s = self.settings
        state = self.state
        spoken = words[k]
        lookahead = s.lookahead_final if is_final else s.lookahead_interim
        start = state.anchor + 1
        end = min(len(self.reference), start + lookahead)

        best_idx: int = -1
        best_quality: float = -math.inf
        for i in range(start, end):
            word_score = score_word_match(self.reference[i], spoken)
            if not is_match(word_score):
                continue
            context_score: float = 0.0
            for j in range(1, min(s.max_context - 1, k) + 1):
                ref_pos = i - j
                if ref_pos < 0:
                    break
                ctx = score_word_match(self.reference[ref_pos], words[k - j])
                if ctx > 0:
                    context_score += ctx
            quality = (word_score
                       + s.context_weight * context_score
                       - distance_penalty(i - start, s.penalty_log, s.penalty_linear))
            if is_final:
                quality += s.final_bonus
            if quality > best_quality:
                best_quality = quality
                best_idx = i

        threshold = s.accept_final if is_final else s.accept_interim
        if best_idx <= state.anchor or best_quality < threshold:
            return None
        kind = StepKind.MATCH if best_quality >= s.match_quality else StepKind.SKIP
        return AlignmentStep(kind, best_idx, best_idx, best_quality)

    def _window_fallback(self, words: list[str], k: int) -> AlignmentStep | None:
        """Realign the recent recognized words when greedy placement stalls."""
        s = self.settings
        state = self.state
        tail_start = max(0, k + 1 - s.dp_tail)
        tail = words[tail_start:k + 1]
        window_start = state.anchor + 1 - s.dp_backtrack
        window_end = state.anchor + 1 + s.dp_window
        result = dp_align(tail, self.reference, window_start,
                          window_end, state.anchor, s)
        if result is None:
            return None

        min_coverage = math.ceil(len(tail) * s.dp_min_coverage)
        if (result.index <= state.anchor or result.coverage < min_coverage
                or result.cost >= 0):
            logger.debug("DP fallback rejected: idx=%d coverage=%d cost=%.2f",
                         result.index, result.coverage, result.cost)
            return None

        ahead = [ref for _, ref in result.pairs if ref > state.anchor]
        for pos, ref in result.pairs:
            word_pos = tail_start + pos
            if ref > state.anchor and state.index_map[word_pos] < 0:
                state.index_map[word_pos] = ref
        first = min(ahead) if ahead else result.index
        logger.debug("DP fallback accepted: idx=%d first=%d coverage=%d",
                     result.index, first, result.coverage)
        return AlignmentStep(StepKind.MATCH, result.index, first,
                             -result.cost, from_dp=True)

    def _note_pending(self, step: AlignmentStep, is_final: bool) -> None:
        state = self.state
        if step.kind is StepKind.SKIP and not is_final:
            state.pending_skip = step.index
        elif step.index >= state.pending_skip:
            state.pending_skip = -1

    def _accept(self, step: AlignmentStep) -> None:
        state = self.state
        decay = self.settings.stability_decay
        state.anchor = step.index
        state.miss_count = 0
        if step.kind is StepKind.MATCH:
            state.last_reliable = max(state.last_reliable, step.index)
            state.stability = decay * state.stability + (1 - decay)
        else:
            state.stability = decay * state.stability + (1 - decay) * 0.5
