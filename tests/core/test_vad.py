import asyncio

import pytest

from voicehub.core.scheduling import AsyncioScheduler, PeriodicCallback
from voicehub.core.vad import (
    CaptureAction,
    CaptureEvent,
    CaptureState,
    average_level,
    is_speech,
    speech_threshold,
    transition,
)


class TestLevels:
    def test_average_level_normalized(self):
        assert average_level([255] * 4) == 1.0
        assert average_level([0, 255]) == 0.5
        assert average_level([]) == 0.0

    def test_threshold_scales_with_sensitivity(self):
        assert speech_threshold(70) == pytest.approx(0.105)
        assert speech_threshold(100) == pytest.approx(0.15)
        assert speech_threshold(0) == 0.0

    def test_speech_is_strictly_above_threshold(self):
        threshold = speech_threshold(70)
        assert is_speech(threshold + 0.001, threshold)
        assert not is_speech(threshold, threshold)


class TestTransition:
    def test_start_from_idle(self):
        assert transition(CaptureState.IDLE, CaptureEvent.START).state is CaptureState.RECORDING

    def test_quiet_before_speech_stays_recording(self):
        result = transition(CaptureState.RECORDING, CaptureEvent.QUIET)
        assert result.state is CaptureState.RECORDING
        assert result.actions == ()

    def test_first_quiet_after_speech_arms_timer(self):
        result = transition(CaptureState.SPEAKING, CaptureEvent.QUIET)
        assert result.state is CaptureState.SILENT
        assert result.actions == (CaptureAction.START_SILENCE_TIMER,)

    def test_repeated_quiet_does_not_rearm(self):
        assert transition(CaptureState.SILENT, CaptureEvent.QUIET).actions == ()

    def test_speech_cancels_timer(self):
        result = transition(CaptureState.SILENT, CaptureEvent.SPEECH)
        assert result.state is CaptureState.SPEAKING
        assert result.actions == (CaptureAction.CANCEL_SILENCE_TIMER,)

    def test_silence_elapsed_finalizes(self):
        result = transition(CaptureState.SILENT, CaptureEvent.SILENCE_ELAPSED)
        assert result.state is CaptureState.STOPPED
        assert result.actions == (CaptureAction.FINALIZE, CaptureAction.RELEASE)

    def test_silence_elapsed_ignored_while_speaking(self):
        assert transition(CaptureState.SPEAKING, CaptureEvent.SILENCE_ELAPSED).state is CaptureState.SPEAKING

    @pytest.mark.parametrize("state", [CaptureState.RECORDING, CaptureState.SPEAKING, CaptureState.SILENT])
    def test_stop_from_any_active_state(self, state):
        result = transition(state, CaptureEvent.STOP)
        assert result.state is CaptureState.STOPPED
        assert CaptureAction.FINALIZE in result.actions
        assert CaptureAction.RELEASE in result.actions

    def test_failure_releases_without_finalizing(self):
        result = transition(CaptureState.SPEAKING, CaptureEvent.FAILURE)
        assert result.state is CaptureState.IDLE
        assert CaptureAction.FINALIZE not in result.actions
        assert CaptureAction.RELEASE in result.actions

    @pytest.mark.parametrize("event", list(CaptureEvent))
    def test_stopped_is_inert_except_start(self, event):
        result = transition(CaptureState.STOPPED, event)
        expected = CaptureState.RECORDING if event is CaptureEvent.START else CaptureState.STOPPED
        assert result.state is expected
        assert result.actions == ()


class TestPeriodicCallback:
    def test_fires_every_interval(self, scheduler):
        calls = []
        periodic = PeriodicCallback(scheduler, 0.1, lambda: calls.append(scheduler.now()))

        periodic.start()
        scheduler.advance(0.35)

        assert len(calls) == 3

    def test_cancel_prevents_armed_invocation(self, scheduler):
        calls = []
        periodic = PeriodicCallback(scheduler, 0.1, lambda: calls.append(1))
        periodic.start()

        periodic.cancel()
        scheduler.advance(1.0)

        assert calls == []
        assert periodic.active is False

    def test_callback_may_cancel_itself(self, scheduler):
        calls = []

        def tick():
            calls.append(1)
            periodic.cancel()

        periodic = PeriodicCallback(scheduler, 0.1, tick)
        periodic.start()
        scheduler.advance(1.0)

        assert calls == [1]
        assert scheduler.pending == 0


class TestAsyncioScheduler:
    @pytest.mark.asyncio
    async def test_periodic_on_event_loop(self):
        scheduler = AsyncioScheduler()
        fired = asyncio.Event()
        calls = []

        def tick():
            calls.append(scheduler.now())
            if len(calls) == 2:
                periodic.cancel()
                fired.set()

        periodic = PeriodicCallback(scheduler, 0.01, tick)
        periodic.start()
        await asyncio.wait_for(fired.wait(), timeout=1.0)

        assert calls[1] > calls[0]
        assert periodic.active is False
