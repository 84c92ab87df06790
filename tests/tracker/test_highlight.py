"""
Tests for the highlight state machine and command serialization.
"""

import math
from unittest import mock

import pytest

from readcue import debug_log
from readcue.highlight import (
    HighlightOutcome,
    HighlightStateMachine,
    ManualCommand,
    MatchCommand,
    RollbackCommand,
    SkipCommand,
    TentativeCommand,
    WordState,
    command_to_dict,
)

P, M, X = WordState.PENDING, WordState.MATCHED, WordState.MISSED


class TestMatch:
    """Tests for HighlightStateMachine.match."""

    def test_match_marks_word_and_moves_cursor(self) -> None:
        hsm = HighlightStateMachine(4)
        command = hsm.match(0, 0.9)
        assert command == MatchCommand(0, 0.9, True, 0)
        assert hsm.current_word == 0
        assert hsm.last_mic_index == 0
        assert hsm.states == [M, P, P, P]
        assert hsm.confidences[0] == 0.9

    def test_passed_words_become_missed(self) -> None:
        hsm = HighlightStateMachine(6)
        hsm.match(0)
        hsm.match(3)
        assert hsm.states == [M, X, X, M, P, P]

    def test_first_index_marks_window_matched(self) -> None:
        hsm = HighlightStateMachine(6)
        hsm.match(0)
        hsm.match(3, first_index=2)
        assert hsm.states == [M, X, M, M, P, P]

    def test_without_mark_skipped_passed_words_stay_pending(self) -> None:
        hsm = HighlightStateMachine(4)
        hsm.match(2, mark_skipped=False)
        assert hsm.states == [P, P, M, P]

    def test_out_of_range_is_ignored(self) -> None:
        hsm = HighlightStateMachine(3)
        assert hsm.match(3) is None
        assert hsm.match(-1) is None
        assert hsm.current_word == -1

    def test_confidence_is_sanitized(self) -> None:
        hsm = HighlightStateMachine(3)
        command = hsm.match(0, math.nan)
        assert command is not None
        assert command.confidence == 0.5
        command = hsm.match(1, 7.0)
        assert command is not None
        assert command.confidence == 1.0


class TestSkipAndRollback:
    """Tests for skip and rollback."""

    def test_skip_moves_cursor_without_matching(self) -> None:
        hsm = HighlightStateMachine(4)
        hsm.match(0)
        command = hsm.skip(1)
        assert isinstance(command, SkipCommand)
        assert hsm.current_word == 1
        assert hsm.states == [M, P, P, P]

    def test_skip_with_mark_skipped(self) -> None:
        hsm = HighlightStateMachine(5)
        hsm.match(0)
        hsm.skip(2, mark_skipped=True)
        assert hsm.states == [M, X, X, P, P]

    def test_rollback_reverts_later_words(self) -> None:
        hsm = HighlightStateMachine(5)
        hsm.match(3, first_index=0)
        command = hsm.rollback(1)
        assert command == RollbackCommand(1)
        assert hsm.current_word == 1
        assert hsm.states == [M, M, P, P, P]
        assert hsm.confidences[2:] == [0.0, 0.0, 0.0]

    def test_rollback_clamps_target(self) -> None:
        hsm = HighlightStateMachine(3)
        hsm.match(2, first_index=0)
        assert hsm.rollback(-7) == RollbackCommand(-1)
        assert hsm.states == [P, P, P]
        assert hsm.current_word == -1


class TestTentative:
    """Tests for the tentative preview gate."""

    def test_any_word_when_cursor_unset(self) -> None:
        hsm = HighlightStateMachine(10)
        assert hsm.tentative(8) == TentativeCommand(8, 0.5)

    @pytest.mark.parametrize("index,accepted", [
        (2, False),  # not ahead
        (1, False),  # behind
        (3, True),
        (7, True),  # exactly five ahead
        (8, False),  # six ahead
    ])
    def test_gate_relative_to_cursor(self, index: int, accepted: bool) -> None:
        hsm = HighlightStateMachine(10)
        hsm.match(2)
        command = hsm.tentative(index)
        assert (command is not None) == accepted

    def test_tentative_does_not_commit(self) -> None:
        hsm = HighlightStateMachine(10)
        hsm.match(2)
        before = list(hsm.states)
        hsm.tentative(4)
        assert hsm.states == before
        assert hsm.current_word == 2
        assert hsm.tentative_index == 4

    def test_commit_clears_tentative(self) -> None:
        hsm = HighlightStateMachine(10)
        hsm.tentative(4)
        hsm.match(1)
        assert hsm.tentative_index is None


class TestManualAndReset:
    """Tests for manual placement, reset and resize."""

    def test_manual_keeps_word_states(self) -> None:
        hsm = HighlightStateMachine(6)
        hsm.match(1, first_index=0)
        assert hsm.manual(4) == ManualCommand(4)
        assert hsm.current_word == 4
        assert hsm.states == [M, M, P, P, P, P]

    def test_manual_out_of_range(self) -> None:
        hsm = HighlightStateMachine(3)
        assert hsm.manual(3) is None

    def test_reset(self) -> None:
        hsm = HighlightStateMachine(3)
        hsm.match(1)
        hsm.reset()
        assert hsm.states == [P, P, P]
        assert hsm.current_word == -1

    def test_resize(self) -> None:
        hsm = HighlightStateMachine(3)
        hsm.match(1)
        hsm.resize(5)
        assert hsm.word_count == 5
        assert hsm.states == [P] * 5
        assert hsm.current_word == -1

    def test_count(self) -> None:
        hsm = HighlightStateMachine(5)
        hsm.match(3, first_index=2)
        assert hsm.count(M) == 2
        assert hsm.count(X) == 2
        assert hsm.count(P) == 1


class TestCommands:
    """Tests for command outcome and serialization."""

    def test_outcomes(self) -> None:
        assert MatchCommand(1, 0.5, True, 0).outcome is HighlightOutcome.MATCH
        assert SkipCommand(1, False, 0.5).outcome is HighlightOutcome.SKIP
        assert RollbackCommand(1).outcome is HighlightOutcome.ROLLBACK
        assert TentativeCommand(1, 0.5).outcome is HighlightOutcome.TENTATIVE
        assert ManualCommand(1).outcome is HighlightOutcome.MANUAL

    def test_command_to_dict(self) -> None:
        assert command_to_dict(MatchCommand(4, 0.8, True, 2)) == {
            "outcome": "match",
            "index": 4,
            "confidence": 0.8,
            "markSkipped": True,
            "firstIndex": 2,
        }
        assert command_to_dict(SkipCommand(3, False, 0.5)) == {
            "outcome": "skip",
            "index": 3,
            "confidence": 0.5,
            "markSkipped": False,
        }
        assert command_to_dict(RollbackCommand(-1)) == {"outcome": "rollback", "index": -1}
        assert command_to_dict(TentativeCommand(5, 0.6)) == {
            "outcome": "tentative", "index": 5, "confidence": 0.6}
        assert command_to_dict(ManualCommand(0)) == {"outcome": "manual", "index": 0}

    def test_changes_are_sent_to_debug_log(self) -> None:
        hsm = HighlightStateMachine(3)
        with mock.patch.object(debug_log, "log_engine_word") as log_word:
            hsm.match(1)
            hsm.rollback(0)
        assert log_word.call_args_list == [
            mock.call(1, "match", -1),
            mock.call(0, "rollback", 1),
        ]
