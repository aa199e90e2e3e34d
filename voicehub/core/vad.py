"""
Voice activity classification and the single-shot recording state machine.

Everything here is pure: the capture engine in ``recorder.py`` owns the
device, timers and callbacks, and asks ``transition`` what to do next.

States::

    IDLE --START--> RECORDING --SPEECH--> SPEAKING <--SPEECH-- SILENT
                                              |                  ^
                                              +------QUIET-------+
    SILENT --SILENCE_ELAPSED--> STOPPED
    RECORDING/SPEAKING/SILENT --STOP--> STOPPED
    RECORDING/SPEAKING/SILENT --FAILURE--> IDLE

The silence timer only starts once the user has spoken; quiet frames
before the first speech frame keep the engine in RECORDING.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Sequence, Tuple

SPEECH_THRESHOLD_FACTOR = 0.15


def average_level(frequency_bins: Sequence[int]) -> float:
    """Mean of byte-scaled frequency bins, normalized to [0, 1]."""
    if not frequency_bins:
        return 0.0
    return (sum(frequency_bins) / len(frequency_bins)) / 255.0


def speech_threshold(vad_sensitivity: float) -> float:
    """Level threshold for a user sensitivity setting on the 0-100 scale."""
    return (float(vad_sensitivity) / 100.0) * SPEECH_THRESHOLD_FACTOR


def is_speech(level: float, threshold: float) -> bool:
    return level > threshold


class CaptureState(str, Enum):
    IDLE = "idle"
    RECORDING = "recording"
    SPEAKING = "speaking"
    SILENT = "silent"
    STOPPED = "stopped"


class CaptureEvent(str, Enum):
    START = "start"
    SPEECH = "speech"
    QUIET = "quiet"
    SILENCE_ELAPSED = "silence_elapsed"
    STOP = "stop"
    FAILURE = "failure"


class CaptureAction(str, Enum):
    START_SILENCE_TIMER = "start_silence_timer"
    CANCEL_SILENCE_TIMER = "cancel_silence_timer"
    FINALIZE = "finalize"
    RELEASE = "release"


ACTIVE_STATES = frozenset({CaptureState.RECORDING, CaptureState.SPEAKING, CaptureState.SILENT})


@dataclass(frozen=True)
class Transition:
    state: CaptureState
    actions: Tuple[CaptureAction, ...] = ()


def transition(state: CaptureState, event: CaptureEvent) -> Transition:
    """Next state and side effects for ``event`` in ``state``; unknown pairs are no-ops."""
    if event is CaptureEvent.START:
        if state in (CaptureState.IDLE, CaptureState.STOPPED):
            return Transition(CaptureState.RECORDING)
        return Transition(state)

    if state not in ACTIVE_STATES:
        return Transition(state)

    if event is CaptureEvent.STOP:
        return Transition(
            CaptureState.STOPPED,
            (CaptureAction.CANCEL_SILENCE_TIMER, CaptureAction.FINALIZE, CaptureAction.RELEASE),
        )
    if event is CaptureEvent.FAILURE:
        return Transition(CaptureState.IDLE, (CaptureAction.CANCEL_SILENCE_TIMER, CaptureAction.RELEASE))

    if event is CaptureEvent.SPEECH:
        if state is CaptureState.SILENT:
            return Transition(CaptureState.SPEAKING, (CaptureAction.CANCEL_SILENCE_TIMER,))
        return Transition(CaptureState.SPEAKING)

    if event is CaptureEvent.QUIET:
        if state is CaptureState.SPEAKING:
            return Transition(CaptureState.SILENT, (CaptureAction.START_SILENCE_TIMER,))
        return Transition(state)

    if event is CaptureEvent.SILENCE_ELAPSED and state is CaptureState.SILENT:
        return Transition(CaptureState.STOPPED, (CaptureAction.FINALIZE, CaptureAction.RELEASE))

    return Transition(state)
