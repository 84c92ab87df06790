# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Script tracking module that follows a reader through a reference text.

ScriptTracker is the single engine object: it owns the tokenized script,
the highlight state, the alignment state of both tracking modes and the
confidence smoother, and turns each recognition event into highlight
commands.
"""

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from . import debug_log
from .confidence import (
    ConfidencePredictor,
    ConfidenceSmoother,
    KalmanConfidencePredictor,
    raw_confidence,
)
from .config import InvalidTrackingSettings, validate_tracking_settings
from .highlight import (
    HighlightCommand,
    HighlightStateMachine,
    WordState,
)
from .precise_aligner import ContextOrder, PreciseAligner, PreciseSettings
from .script_parser import TokenizedScript, normalize_for_match, tokenize
from .speed_aligner import SpeedAligner, SpeedSettings, StepKind

logger = logging.getLogger(__name__)


class TrackingMode(Enum):
    """Which alignment strategy follows the reader."""
    PRECISE = "precise"
    SPEED = "speed"


class StatusEvent(Enum):
    """Semantic event behind each status string."""
    READY = "ready"
    NO_TEXT = "no_text"
    LISTENING = "listening"
    RECOGNIZED = "recognized"
    MODE_READY = "mode_ready"
    RESET = "reset"
    RESTARTED = "restarted"
    IDLE_GAP = "idle_gap"
    SEEK = "seek"


@dataclass(frozen=True)
class TrackerSettings:
    """Constructor-injected configuration for ScriptTracker."""
    mode: TrackingMode = TrackingMode.PRECISE
    precise: PreciseSettings = field(default_factory=PreciseSettings)
    speed: SpeedSettings = field(default_factory=SpeedSettings)
    # Interim failures before the precise mode escalates to a global search
    recovery_after_misses: int = 2
    confidence_window: int = 10
    # "mean" (sliding window) or "kalman"
    confidence_model: str = "mean"

    @classmethod
    def from_config(cls, tracking: dict[str, Any]) -> 'TrackerSettings':
        """
        Build settings from the ``tracking`` section of the YAML config.

        Raises:
            InvalidTrackingSettings: on unknown keys or unusable values
        """
        validate_tracking_settings(tracking)
        precise_kwargs: dict[str, Any] = dict(tracking.get("precise", {}))
        if "context_order" in precise_kwargs:
            precise_kwargs["context_order"] = ContextOrder(
                precise_kwargs["context_order"])
        try:
            precise = PreciseSettings(**precise_kwargs)
            speed = SpeedSettings(**dict(tracking.get("speed", {})))
        except TypeError as e:
            raise InvalidTrackingSettings(f"Unknown tracking setting: {e}") from e
        return cls(
            mode=TrackingMode(tracking.get("mode", TrackingMode.PRECISE.value)),
            precise=precise,
            speed=speed,
            recovery_after_misses=int(tracking.get("recovery_after_misses", 2)),
            confidence_window=int(tracking.get("confidence_window", 10)),
            confidence_model=str(tracking.get("confidence_model", "mean")),
        )


def _make_predictor(settings: TrackerSettings) -> ConfidencePredictor:
    if settings.confidence_model == "kalman":
        return KalmanConfidencePredictor()
    return ConfidenceSmoother(window=settings.confidence_window)


class ScriptTracker:
    """
    Tracks the reader's position in a reference text from recognition events.

    All mutation happens synchronously inside one call; the tracker is not
    thread-safe and does not need to be.

    Usage:
        tracker = ScriptTracker("the quick brown fox")
        commands = tracker.on_recognition_event("the quick", is_final=False)
        tracker.current_word  # -> 1
    """

    script: TokenizedScript
    words: list[str]
    highlight: HighlightStateMachine
    precise: PreciseAligner
    speed: SpeedAligner

    def __init__(
        self,
        reference_text: str = "",
        settings: TrackerSettings | None = None,
        command_listener: Callable[[HighlightCommand], None] | None = None,
        status_listener: Callable[[str], None] | None = None
    ) -> None:
        self.settings: TrackerSettings = settings or TrackerSettings()
        self.mode: TrackingMode = self.settings.mode
        self.command_listener = command_listener
        self.status_listener = status_listener
        self.confidence: ConfidencePredictor = _make_predictor(self.settings)

        self.status_text: str = ""
        self.last_status: StatusEvent = StatusEvent.READY

        # Precise-mode transient state
        self.last_result_key: str = ""
        self.unmatched_count: int = 0
        self.pending_gap: bool = False

        self.highlight = HighlightStateMachine(0)
        self.set_reference_text(reference_text)

    # ----- External interface -----

    def set_reference_text(self, text: object) -> None:
        """Tokenize a new reference text and reset everything."""
        self.script = tokenize(text)
        self.words = self.script.words
        self.highlight.resize(self.script.word_count)
        self.precise = PreciseAligner(self.words, self.settings.precise)
        self.speed = SpeedAligner(self.words, self.settings.speed)
        self._clear_transient()
        self.confidence.reset()
        logger.info("Reference text set: %d words", self.script.word_count)
        self._status(StatusEvent.READY)

    def set_mode(self, mode: TrackingMode) -> None:
        """Switch alignment strategy, discarding in-flight alignment state."""
        self.mode = mode
        self._clear_transient()
        self._status(StatusEvent.MODE_READY)

    def reset(self) -> None:
        """Return every word to pending and clear the cursor."""
        self.highlight.reset()
        self._clear_transient()
        self.confidence.reset()
        self._status(StatusEvent.RESET)

    def manual_seek(self, index: int) -> list[HighlightCommand]:
        """Place the cursor at ``index`` (e.g. the user clicked a word)."""
        command = self.highlight.manual(index)
        if command is None:
            return []
        self._clear_transient()
        self._status(StatusEvent.SEEK)
        return self._emit([command])

    def recognition_restarted(self) -> None:
        """The recognizer started a new session.

        Alignment state (history, map, anchor) is rebuilt from the cursor and
        the confidence window starts over; committed word states are kept.
        """
        self._clear_transient()
        self.confidence.reset()
        self._status(StatusEvent.RESTARTED)

    def note_idle_gap(self) -> None:
        """No speech arrived for a while; escalate recovery on the next event."""
        self.pending_gap = True
        self._status(StatusEvent.IDLE_GAP)

    def on_recognition_event(
        self,
        transcript: str,
        is_final: bool = False,
        confidence_samples: Sequence[object] | None = None
    ) -> list[HighlightCommand]:
        """
        Update position from one recognition event.

        Args:
            transcript: Recognized text of the current utterance
            is_final: True if the recognizer settled this text
            confidence_samples: Raw per-result confidences (may be empty/invalid)

        Returns:
            Highlight commands produced by this event, in order
        """
        smoothed = self.confidence.admit(raw_confidence(confidence_samples))
        norm = normalize_for_match(transcript)
        parts = [w for w in norm.split(' ') if w]
        if not parts:
            self._status(StatusEvent.LISTENING, transcript, smoothed)
            return []
        if not self.words:
            self._status(StatusEvent.NO_TEXT)
            return []

        debug_log.log_transcript(transcript, is_final, self.mode.value)

        if self.mode is TrackingMode.SPEED:
            commands = self._speed_update(parts, is_final, smoothed)
        else:
            commands = self._precise_update(norm, parts, is_final, smoothed)

        self._status(StatusEvent.RECOGNIZED if is_final else StatusEvent.LISTENING,
                     transcript, smoothed)
        return self._emit(commands)

    # ----- Read-only views -----

    @property
    def current_word(self) -> int:
        """Index of the active word (-1 for none)."""
        return self.highlight.current_word

    @property
    def word_states(self) -> list[WordState]:
        return list(self.highlight.states)

    @property
    def stability(self) -> float:
        """Speed-mode alignment stability in [0, 1]; informational only."""
        return self.speed.state.stability

    @property
    def progress(self) -> float:
        """Get overall progress through the script (0.0 to 1.0)."""
        if not self.words:
            return 0.0
        return (self.current_word + 1) / len(self.words)

    def snapshot(self) -> dict[str, object]:
        """Serializable view of the tracking state for hosts."""
        return {
            "mode": self.mode.value,
            "currentWord": self.current_word,
            "wordCount": len(self.words),
            "states": [s.value for s in self.highlight.states],
            "progress": self.progress,
            "stability": self.stability,
            "status": self.status_text,
        }

    # ----- Precise mode -----

    def _precise_update(self, norm: str, parts: list[str], is_final: bool,
                        confidence: float) -> list[HighlightCommand]:
        if norm == self.last_result_key and not is_final:
            return []
        self.last_result_key = norm

        current = self.highlight.current_word
        base_index = max(current, self.highlight.last_mic_index, -1)
        ps = self.settings.precise
        lookahead = ps.lookahead_final if is_final else ps.lookahead_interim

        found = self.precise.find_next(parts, base_index, lookahead)
        if found is not None and found.index <= current:
            # Re-recognition of words already passed
            logger.debug("Precise: stale match at %d (cursor %d)",
                         found.index, current)
            return []
        if found is not None:
            return self._commit_match(found.index, found.first_index, confidence)

        self.unmatched_count += 1
        needs_recovery = (is_final
                          or self.unmatched_count >= self.settings.recovery_after_misses
                          or self.pending_gap)
        if not needs_recovery:
            self.pending_gap = True
            return []

        recovered = self.precise.find_global(parts, base_index)
        if recovered is not None and recovered.index > current:
            logger.debug("Precise: global recovery to %d", recovered.index)
            return self._commit_match(recovered.index, recovered.first_index, confidence)

        if is_final:
            soft_advance = min(current + 1, len(self.words) - 1)
            if soft_advance > current:
                logger.debug("Precise: soft advance to %d", soft_advance)
                command = self.highlight.skip(soft_advance, mark_skipped=False,
                                              confidence=confidence)
                self._after_commit()
                return [command] if command else []

        self.pending_gap = True
        return []

    def _commit_match(self, index: int, first_index: int,
                      confidence: float) -> list[HighlightCommand]:
        command = self.highlight.match(index, confidence, mark_skipped=True,
                                       first_index=first_index)
        self._after_commit()
        return [command] if command else []

    def _after_commit(self) -> None:
        self.pending_gap = False
        self.unmatched_count = 0

    # ----- Speed mode -----

    def _speed_update(self, parts: list[str], is_final: bool,
                      confidence: float) -> list[HighlightCommand]:
        commands: list[HighlightCommand] = []
        for step in self.speed.align(parts, is_final):
            command: HighlightCommand | None = None
            if step.kind is StepKind.ROLLBACK:
                if step.index < self.highlight.current_word:
                    command = self.highlight.rollback(step.index)
                else:
                    self.highlight.tentative_index = None
            elif step.kind is StepKind.MATCH:
                command = self.highlight.match(
                    step.index, confidence, mark_skipped=True,
                    first_index=step.first_index)
            elif is_final:
                if step.index > self.highlight.current_word:
                    command = self.highlight.skip(step.index, mark_skipped=False,
                                                  confidence=confidence)
            else:
                command = self.highlight.tentative(step.index, confidence)
            if command is not None:
                commands.append(command)

        if commands:
            self._after_commit()
        elif self.speed.state.miss_count:
            self.pending_gap = True
        return commands

    # ----- Helpers -----

    def _clear_transient(self) -> None:
        """Drop in-flight alignment state; committed word states survive."""
        self.last_result_key = ""
        self.unmatched_count = 0
        self.pending_gap = False
        self.highlight.tentative_index = None
        self.speed.reset(self.highlight.current_word)

    def _emit(self, commands: list[HighlightCommand]) -> list[HighlightCommand]:
        if self.command_listener is not None:
            for command in commands:
                self.command_listener(command)
        return commands

    def _status(self, event: StatusEvent, transcript: str = "",
                confidence: float | None = None) -> None:
        self.last_status = event
        self.status_text = format_status(event, self.mode, transcript, confidence)
        if self.status_listener is not None:
            self.status_listener(self.status_text)


def format_status(
    event: StatusEvent,
    mode: TrackingMode,
    transcript: str = "",
    confidence: float | None = None
) -> str:
    """Human-readable status line for a status event."""
    prefix = "[speed]" if mode is TrackingMode.SPEED else "[precise]"
    suffix = f" (confidence {confidence * 100:.0f}%)" if confidence is not None else ""
    if event is StatusEvent.LISTENING:
        return f"{prefix} Listening: {transcript}{suffix}"
    if event is StatusEvent.RECOGNIZED:
        return f"{prefix} Recognized: {transcript}{suffix}"
    messages: dict[StatusEvent, str] = {
        StatusEvent.READY: "Ready",
        StatusEvent.NO_TEXT: "No reference text loaded",
        StatusEvent.MODE_READY: "Mode ready",
        StatusEvent.RESET: "Highlights reset",
        StatusEvent.RESTARTED: "Recognition restarted, keep reading",
        StatusEvent.IDLE_GAP: "No speech detected, reconnecting",
        StatusEvent.SEEK: "Position set manually",
    }
    return f"{prefix} {messages[event]}"
