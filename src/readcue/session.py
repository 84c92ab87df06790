# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Recognizer session handling.

The speech source lives outside this process (typically a browser
recognizer talking to the web server). RecognitionSession sits between
its lifecycle events and the ScriptTracker:
- classifies recognizer errors and decides whether listening may resume
- restarts the recognizer shortly after it ends on its own
- stops the recognizer when no transcript arrived for a while, so that it
  comes back fresh and the tracker escalates recovery
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from enum import Enum

from .config import SessionSettings
from .highlight import HighlightCommand
from .tracker import ScriptTracker

logger = logging.getLogger(__name__)

IDLE_TIMEOUT_S: float = 9.0
IDLE_CHECK_S: float = 4.0
RESTART_DEBOUNCE_S: float = 0.18

PERMISSION_ERRORS: frozenset[str] = frozenset(["not-allowed", "service-not-allowed"])

RecognizerControl = Callable[[], Awaitable[None]]


class RecognitionErrorKind(Enum):
    """How a recognizer error code is handled."""
    PERMISSION_DENIED = "permission_denied"  # stop, never auto-resume
    TRANSIENT_SILENCE = "transient_silence"  # ignore
    ABORTED = "aborted"  # ignore
    OTHER = "other"  # report, keep tracking state

    @property
    def reported(self) -> bool:
        """Whether the host should surface this error to the user."""
        return self in (RecognitionErrorKind.PERMISSION_DENIED, RecognitionErrorKind.OTHER)


def classify_error(code: object) -> RecognitionErrorKind:
    """Map a recognizer error code onto its handling policy."""
    code_str = str(code or "").strip().lower()
    if code_str in PERMISSION_ERRORS:
        return RecognitionErrorKind.PERMISSION_DENIED
    if code_str == "no-speech":
        return RecognitionErrorKind.TRANSIENT_SILENCE
    if code_str == "aborted":
        return RecognitionErrorKind.ABORTED
    return RecognitionErrorKind.OTHER


class RecognitionSession:
    """
    Lifecycle glue between a recognizer and a ScriptTracker.

    The host supplies two coroutines that ask the recognizer to start or
    stop, and forwards the recognizer's own events to ``on_start``,
    ``on_end``, ``on_error`` and ``on_result``.
    """

    def __init__(
        self,
        tracker: ScriptTracker,
        start_recognizer: RecognizerControl,
        stop_recognizer: RecognizerControl,
        report_error: Callable[[str, RecognitionErrorKind], Awaitable[None]] | None = None,
        idle_timeout: float = IDLE_TIMEOUT_S,
        idle_check: float = IDLE_CHECK_S,
        restart_debounce: float = RESTART_DEBOUNCE_S,
        clock: Callable[[], float] = time.monotonic
    ) -> None:
        self.tracker: ScriptTracker = tracker
        self.start_recognizer = start_recognizer
        self.stop_recognizer = stop_recognizer
        self.report_error = report_error
        self.idle_timeout: float = idle_timeout
        self.idle_check: float = idle_check
        self.restart_debounce: float = restart_debounce
        self.clock = clock

        # True while the recognizer reports itself running
        self.running: bool = False
        # True while the user wants to be listening
        self.auto_restart: bool = False
        self.user_stop_requested: bool = False
        self.last_transcript_time: float = clock()

        self._watchdog: asyncio.Task[None] | None = None
        self._restart: asyncio.Task[None] | None = None

    @classmethod
    def from_settings(
        cls,
        tracker: ScriptTracker,
        settings: SessionSettings,
        start_recognizer: RecognizerControl,
        stop_recognizer: RecognizerControl,
        report_error: Callable[[str, RecognitionErrorKind], Awaitable[None]] | None = None
    ) -> 'RecognitionSession':
        """Build a session from the ``session`` section of the config."""
        return cls(
            tracker,
            start_recognizer,
            stop_recognizer,
            report_error=report_error,
            idle_timeout=float(settings.get("idle_timeout_s", IDLE_TIMEOUT_S)),
            idle_check=float(settings.get("idle_check_s", IDLE_CHECK_S)),
            restart_debounce=float(
                settings.get("restart_debounce_ms", RESTART_DEBOUNCE_S * 1000)) / 1000,
        )

    # ----- Requests from the user -----

    async def start(self) -> None:
        """User asked to start listening."""
        self._cancel_restart()
        self._cancel_watchdog()
        self.auto_restart = True
        self.user_stop_requested = False
        await self.start_recognizer()

    async def stop(self) -> None:
        """User asked to stop listening; no automatic restart follows."""
        self.user_stop_requested = True
        self.auto_restart = False
        self._cancel_restart()
        self._cancel_watchdog()
        await self.stop_recognizer()

    async def close(self) -> None:
        """Cancel background tasks (host shutdown)."""
        self.auto_restart = False
        self._cancel_restart()
        self._cancel_watchdog()

    # ----- Events from the recognizer -----

    async def on_start(self) -> None:
        """The recognizer started (first start or a restart)."""
        self.running = True
        self.last_transcript_time = self.clock()
        self.tracker.recognition_restarted()
        self._cancel_watchdog()
        self._watchdog = asyncio.create_task(self._watch_idle())

    async def on_end(self) -> None:
        """The recognizer ended; restart it unless the user stopped it."""
        self.running = False
        self._cancel_watchdog()
        if self.user_stop_requested or not self.auto_restart:
            logger.info("Recognizer ended (%s)",
                        "user stop" if self.user_stop_requested else "not restarting")
            self.user_stop_requested = False
            self.auto_restart = False
            return
        self._cancel_restart()
        self._restart = asyncio.create_task(self._restart_after_debounce())

    async def on_error(self, code: object) -> RecognitionErrorKind:
        """Classify a recognizer error and apply its policy."""
        kind = classify_error(code)
        if kind is RecognitionErrorKind.PERMISSION_DENIED:
            logger.warning("Recognizer permission denied (%s); listening stopped", code)
            self.auto_restart = False
            self._cancel_restart()
        elif kind is RecognitionErrorKind.OTHER:
            logger.warning("Recognizer error: %s", code)
        else:
            logger.debug("Ignoring recognizer error: %s", code)

        if kind.reported and self.report_error is not None:
            await self.report_error(str(code), kind)
        return kind

    async def on_result(
        self,
        transcript: str,
        is_final: bool = False,
        confidence_samples: Sequence[object] | None = None
    ) -> list[HighlightCommand]:
        """Forward a recognition result to the tracker."""
        self.last_transcript_time = self.clock()
        return self.tracker.on_recognition_event(
            transcript, is_final, confidence_samples)

    # ----- Background tasks -----

    async def _watch_idle(self) -> None:
        while True:
            await asyncio.sleep(self.idle_check)
            if not self.running or not self.auto_restart:
                return
            elapsed = self.clock() - self.last_transcript_time
            if elapsed >= self.idle_timeout:
                logger.info("No transcript for %.1fs, restarting recognizer", elapsed)
                self._watchdog = None
                self.tracker.note_idle_gap()
                await self.stop_recognizer()
                return

    async def _restart_after_debounce(self) -> None:
        await asyncio.sleep(self.restart_debounce)
        self._restart = None
        if not self.auto_restart:
            return
        logger.info("Restarting recognizer")
        await self.start_recognizer()

    def _cancel_watchdog(self) -> None:
        if self._watchdog is not None:
            self._watchdog.cancel()
            self._watchdog = None

    def _cancel_restart(self) -> None:
        if self._restart is not None:
            self._restart.cancel()
            self._restart = None
