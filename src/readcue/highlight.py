# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Highlight state machine: owns the cursor and the per-word states.

Every change is reported as a HighlightCommand for a rendering layer. The
command types form a closed set; each carries only the fields its outcome
needs.
"""

import logging
from dataclasses import dataclass
from enum import Enum

from . import debug_log
from .confidence import DEFAULT_CONFIDENCE, sanitize_confidence

logger = logging.getLogger(__name__)

# A tentative highlight may only preview this many words ahead of the cursor
MAX_TENTATIVE_DISTANCE: int = 5


class WordState(Enum):
    """Classification of a single reference word."""
    PENDING = "pending"
    MATCHED = "matched"
    MISSED = "missed"


class HighlightOutcome(Enum):
    """What kind of change a highlight command describes."""
    MATCH = "match"
    SKIP = "skip"
    ROLLBACK = "rollback"
    TENTATIVE = "tentative"
    MANUAL = "manual"


@dataclass(frozen=True)
class MatchCommand:
    """Words ``first_index..index`` were heard; ``index`` becomes active."""
    index: int
    confidence: float
    mark_skipped: bool
    first_index: int

    @property
    def outcome(self) -> HighlightOutcome:
        return HighlightOutcome.MATCH


@dataclass(frozen=True)
class SkipCommand:
    """The cursor moved to ``index`` without the word being heard."""
    index: int
    mark_skipped: bool
    confidence: float

    @property
    def outcome(self) -> HighlightOutcome:
        return HighlightOutcome.SKIP


@dataclass(frozen=True)
class RollbackCommand:
    """Everything after ``index`` reverted to pending (``index`` may be -1)."""
    index: int

    @property
    def outcome(self) -> HighlightOutcome:
        return HighlightOutcome.ROLLBACK


@dataclass(frozen=True)
class TentativeCommand:
    """Preview ``index`` without committing anything."""
    index: int
    confidence: float

    @property
    def outcome(self) -> HighlightOutcome:
        return HighlightOutcome.TENTATIVE


@dataclass(frozen=True)
class ManualCommand:
    """The user placed the cursor at ``index``."""
    index: int

    @property
    def outcome(self) -> HighlightOutcome:
        return HighlightOutcome.MANUAL


HighlightCommand = MatchCommand | SkipCommand | RollbackCommand | TentativeCommand | ManualCommand


def command_to_dict(command: HighlightCommand) -> dict[str, object]:
    """Serialize a command for JSON transport (camelCase keys, as the UI expects)."""
    data: dict[str, object] = {
        "outcome": command.outcome.value,
        "index": command.index,
    }
    if isinstance(command, MatchCommand):
        data["confidence"] = command.confidence
        data["markSkipped"] = command.mark_skipped
        data["firstIndex"] = command.first_index
    elif isinstance(command, SkipCommand):
        data["confidence"] = command.confidence
        data["markSkipped"] = command.mark_skipped
    elif isinstance(command, TentativeCommand):
        data["confidence"] = command.confidence
    return data


class HighlightStateMachine:
    """
    Cursor and word-state bookkeeping.

    State transitions per word:
        PENDING -> MATCHED          on a match covering the word
        PENDING -> MISSED           on a match/skip that passes over the word
        MATCHED|MISSED -> PENDING   only through rollback
    """

    def __init__(self, word_count: int = 0) -> None:
        self.word_count: int = 0
        self.states: list[WordState] = []
        self.confidences: list[float] = []
        self.current_word: int = -1
        self.last_mic_index: int = -1
        # Index of the tentative preview, if one is showing
        self.tentative_index: int | None = None
        self.resize(word_count)

    def resize(self, word_count: int) -> None:
        """Start over for a reference text with ``word_count`` words."""
        self.word_count = max(0, word_count)
        self.reset()

    def reset(self) -> None:
        """Set every word to pending and clear the cursor."""
        self.states = [WordState.PENDING] * self.word_count
        self.confidences = [0.0] * self.word_count
        self.current_word = -1
        self.last_mic_index = -1
        self.tentative_index = None

    def _in_range(self, index: int) -> bool:
        return 0 <= index < self.word_count

    def _set_range(self, start: int, end: int, state: WordState) -> None:
        """Set words start..end (inclusive, clamped) to ``state``."""
        lo = max(0, start)
        hi = min(self.word_count - 1, end)
        for i in range(lo, hi + 1):
            self.states[i] = state

    def _activate(self, index: int) -> None:
        self.current_word = index
        self.last_mic_index = index
        self.tentative_index = None

    def match(
        self,
        index: int,
        confidence: float = DEFAULT_CONFIDENCE,
        mark_skipped: bool = True,
        first_index: int | None = None
    ) -> MatchCommand | None:
        """
        Commit a match ending at ``index``.

        Words from ``first_index`` to ``index`` become MATCHED. With
        ``mark_skipped``, words between the previous cursor and
        ``first_index`` become MISSED.
        """
        if not self._in_range(index):
            return None
        confidence = sanitize_confidence(confidence)
        first = index if first_index is None else max(0, min(first_index, index))
        prev = self.current_word
        if mark_skipped:
            self._set_range(prev + 1, first - 1, WordState.MISSED)
        for i in range(first, index + 1):
            self.states[i] = WordState.MATCHED
            self.confidences[i] = confidence
        self._activate(index)
        debug_log.log_engine_word(index, "match", prev)
        return MatchCommand(index, confidence, mark_skipped, first)

    def skip(
        self,
        index: int,
        mark_skipped: bool = False,
        confidence: float = DEFAULT_CONFIDENCE
    ) -> SkipCommand | None:
        """
        Move the cursor to ``index`` without hearing it.

        With ``mark_skipped``, the words passed over (and ``index`` itself)
        become MISSED.
        """
        if not self._in_range(index):
            return None
        prev = self.current_word
        if mark_skipped:
            start = prev + 1 if prev < index else index
            self._set_range(start, index, WordState.MISSED)
        self._activate(index)
        debug_log.log_engine_word(index, "skip", prev)
        return SkipCommand(index, mark_skipped, sanitize_confidence(confidence))

    def rollback(self, target: int) -> RollbackCommand:
        """Revert every word after ``target`` to pending and move the cursor there."""
        clamped = min(max(target, -1), self.word_count - 1)
        prev = self.current_word
        for i in range(clamped + 1, self.word_count):
            self.states[i] = WordState.PENDING
            self.confidences[i] = 0.0
        self._activate(clamped)
        logger.debug("Rollback %d -> %d", prev, clamped)
        debug_log.log_engine_word(clamped, "rollback", prev)
        return RollbackCommand(clamped)

    def tentative(self, index: int, confidence: float = DEFAULT_CONFIDENCE) -> TentativeCommand | None:
        """
        Preview ``index`` without touching committed state.

        Rejected when the cursor is set and ``index`` is not 1..5 words ahead.
        """
        if not self._in_range(index):
            return None
        if self.current_word >= 0:
            distance = index - self.current_word
            if distance > MAX_TENTATIVE_DISTANCE or distance < 1:
                return None
        self.tentative_index = index
        return TentativeCommand(index, sanitize_confidence(confidence))

    def manual(self, index: int) -> ManualCommand | None:
        """Place the cursor directly; word classifications are left alone."""
        if not self._in_range(index):
            return None
        prev = self.current_word
        self._activate(index)
        debug_log.log_engine_word(index, "manual", prev)
        return ManualCommand(index)

    def count(self, state: WordState) -> int:
        """Number of words currently in ``state``."""
        return sum(1 for s in self.states if s is state)
