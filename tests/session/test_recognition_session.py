"""
Tests for recognizer error classification, the idle watchdog and the
automatic restart after the recognizer ends.
"""

import asyncio
from unittest import mock

import pytest

from readcue.session import (
    RecognitionErrorKind,
    RecognitionSession,
    classify_error,
)
from readcue.tracker import ScriptTracker, StatusEvent


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self) -> None:
        self.now: float = 100.0

    def __call__(self) -> float:
        return self.now


def make_session(
    tracker: ScriptTracker | None = None,
    clock: FakeClock | None = None,
    **kwargs: float
) -> RecognitionSession:
    return RecognitionSession(
        tracker or ScriptTracker("the quick brown fox"),
        start_recognizer=mock.AsyncMock(),
        stop_recognizer=mock.AsyncMock(),
        report_error=mock.AsyncMock(),
        idle_check=kwargs.get("idle_check", 0.01),
        idle_timeout=kwargs.get("idle_timeout", 9.0),
        restart_debounce=kwargs.get("restart_debounce", 0.01),
        clock=clock or FakeClock(),
    )


class TestClassifyError:
    """Tests for classify_error."""

    @pytest.mark.parametrize("code,kind", [
        ("not-allowed", RecognitionErrorKind.PERMISSION_DENIED),
        ("service-not-allowed", RecognitionErrorKind.PERMISSION_DENIED),
        ("no-speech", RecognitionErrorKind.TRANSIENT_SILENCE),
        ("aborted", RecognitionErrorKind.ABORTED),
        ("network", RecognitionErrorKind.OTHER),
        ("audio-capture", RecognitionErrorKind.OTHER),
        (None, RecognitionErrorKind.OTHER),
        ("  NO-SPEECH ", RecognitionErrorKind.TRANSIENT_SILENCE),
    ])
    def test_classification(self, code: object, kind: RecognitionErrorKind) -> None:
        assert classify_error(code) is kind

    def test_reported_kinds(self) -> None:
        assert RecognitionErrorKind.PERMISSION_DENIED.reported
        assert RecognitionErrorKind.OTHER.reported
        assert not RecognitionErrorKind.TRANSIENT_SILENCE.reported
        assert not RecognitionErrorKind.ABORTED.reported


class TestSessionLifecycle:
    """Tests for start/stop and automatic restart."""

    @pytest.mark.asyncio
    async def test_start_requests_recognizer(self) -> None:
        session = make_session()
        await session.start()
        session.start_recognizer.assert_awaited_once()
        assert session.auto_restart

    @pytest.mark.asyncio
    async def test_unrequested_end_restarts_after_debounce(self) -> None:
        session = make_session()
        await session.start()
        await session.on_start()
        await session.on_end()
        assert session.start_recognizer.await_count == 1
        await asyncio.sleep(0.05)
        assert session.start_recognizer.await_count == 2
        await session.close()

    @pytest.mark.asyncio
    async def test_user_stop_does_not_restart(self) -> None:
        session = make_session()
        await session.start()
        await session.on_start()
        await session.stop()
        session.stop_recognizer.assert_awaited_once()
        await session.on_end()
        await asyncio.sleep(0.05)
        assert session.start_recognizer.await_count == 1
        assert not session.auto_restart

    @pytest.mark.asyncio
    async def test_start_event_resets_alignment_state(self) -> None:
        tracker = ScriptTracker("the quick brown fox")
        tracker.on_recognition_event("the quick")
        session = make_session(tracker)
        await session.on_start()
        assert session.running
        assert tracker.last_status is StatusEvent.RESTARTED
        assert tracker.current_word == 1
        await session.close()

    @pytest.mark.asyncio
    async def test_on_result_forwards_to_tracker(self) -> None:
        clock = FakeClock()
        session = make_session(clock=clock)
        clock.now = 150.0
        commands = await session.on_result("the quick", False, [0.8])
        assert [c.index for c in commands] == [1]
        assert session.last_transcript_time == 150.0


class TestSessionErrors:
    """Tests for the error policy."""

    @pytest.mark.asyncio
    async def test_permission_denied_stops_auto_restart(self) -> None:
        session = make_session()
        await session.start()
        await session.on_start()
        kind = await session.on_error("not-allowed")
        assert kind is RecognitionErrorKind.PERMISSION_DENIED
        session.report_error.assert_awaited_once_with(
            "not-allowed", RecognitionErrorKind.PERMISSION_DENIED)
        await session.on_end()
        await asyncio.sleep(0.05)
        assert session.start_recognizer.await_count == 1

    @pytest.mark.asyncio
    async def test_no_speech_is_ignored(self) -> None:
        session = make_session()
        await session.start()
        kind = await session.on_error("no-speech")
        assert kind is RecognitionErrorKind.TRANSIENT_SILENCE
        session.report_error.assert_not_awaited()
        assert session.auto_restart

    @pytest.mark.asyncio
    async def test_other_error_is_reported_and_keeps_state(self) -> None:
        tracker = ScriptTracker("the quick brown fox")
        tracker.on_recognition_event("the quick")
        session = make_session(tracker)
        await session.start()
        await session.on_error("network")
        session.report_error.assert_awaited_once_with(
            "network", RecognitionErrorKind.OTHER)
        assert session.auto_restart
        assert tracker.current_word == 1


class TestIdleWatchdog:
    """Tests for the idle watchdog."""

    @pytest.mark.asyncio
    async def test_silence_stops_recognizer_and_sets_gap(self) -> None:
        clock = FakeClock()
        tracker = ScriptTracker("the quick brown fox")
        session = make_session(tracker, clock)
        await session.start()
        await session.on_start()

        await asyncio.sleep(0.03)
        session.stop_recognizer.assert_not_awaited()

        clock.now += 9.5
        await asyncio.sleep(0.05)
        session.stop_recognizer.assert_awaited_once()
        assert tracker.pending_gap
        assert tracker.last_status is StatusEvent.IDLE_GAP
        await session.close()

    @pytest.mark.asyncio
    async def test_results_keep_watchdog_quiet(self) -> None:
        clock = FakeClock()
        session = make_session(clock=clock)
        await session.start()
        await session.on_start()
        for _ in range(3):
            clock.now += 5.0
            await session.on_result("the")
            await asyncio.sleep(0.03)
        session.stop_recognizer.assert_not_awaited()
        await session.close()

    @pytest.mark.asyncio
    async def test_watchdog_idle_without_auto_restart(self) -> None:
        clock = FakeClock()
        session = make_session(clock=clock)
        await session.on_start()
        clock.now += 20.0
        await asyncio.sleep(0.05)
        session.stop_recognizer.assert_not_awaited()
        await session.close()

    def test_from_settings(self) -> None:
        session = RecognitionSession.from_settings(
            ScriptTracker(),
            {"idle_timeout_s": 5.0, "idle_check_s": 1.0, "restart_debounce_ms": 250},
            mock.AsyncMock(),
            mock.AsyncMock(),
        )
        assert session.idle_timeout == 5.0
        assert session.idle_check == 1.0
        assert session.restart_debounce == pytest.approx(0.25)
