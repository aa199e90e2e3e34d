"""
Hands-free voice call: continuous listening with turn-taking.

While a call is active the microphone is sampled continuously. Detected
speech starts a recorder; sustained silence stops it and hands the clip to
a ``TurnPipeline`` (upload, transcribe, chat, synthesize, play). While a
turn is processing, further speech is ignored, so there is never more than
one recorder or one transcription in flight.
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Protocol, Sequence, Tuple

from ..audio.devices import (
    AudioAnalyser,
    AudioDevice,
    AudioPlayer,
    ChunkRecorder,
    MediaStream,
    MicrophoneArbiter,
    stop_all_tracks,
)
from ..config import CaptureConfig, VoiceCallConfig
from ..errors import ClipValidationError, MicrophoneUnavailableError
from ..logging_config import get_logger
from .chat import ConversationOrchestrator
from .recorder import AudioClip, clip_file_name, validate_clip
from .scheduling import PeriodicCallback, Scheduler, TimerHandle
from .voice import VoiceService

logger = get_logger(__name__)


class CallPhase(str, Enum):
    INACTIVE = "inactive"
    LISTENING = "listening"
    RECORDING = "recording"
    PROCESSING = "processing"


class CallEvent(str, Enum):
    START_CALL = "start_call"
    SPEECH = "speech"
    QUIET = "quiet"
    SILENCE_ELAPSED = "silence_elapsed"
    TURN_FINISHED = "turn_finished"
    END_CALL = "end_call"


class CallAction(str, Enum):
    START_SAMPLER = "start_sampler"
    START_RECORDER = "start_recorder"
    START_SILENCE_TIMER = "start_silence_timer"
    CANCEL_SILENCE_TIMER = "cancel_silence_timer"
    PROCESS_TURN = "process_turn"
    RELEASE = "release"


@dataclass(frozen=True)
class CallTransition:
    phase: CallPhase
    actions: Tuple[CallAction, ...] = ()


def call_transition(phase: CallPhase, event: CallEvent) -> CallTransition:
    """Next phase and side effects for ``event``; unknown pairs are no-ops."""
    if event is CallEvent.START_CALL:
        if phase is CallPhase.INACTIVE:
            return CallTransition(CallPhase.LISTENING, (CallAction.START_SAMPLER,))
        return CallTransition(phase)

    if phase is CallPhase.INACTIVE:
        return CallTransition(phase)

    if event is CallEvent.END_CALL:
        return CallTransition(CallPhase.INACTIVE, (CallAction.CANCEL_SILENCE_TIMER, CallAction.RELEASE))

    if phase is CallPhase.LISTENING and event is CallEvent.SPEECH:
        return CallTransition(CallPhase.RECORDING, (CallAction.START_RECORDER,))

    if phase is CallPhase.RECORDING:
        if event is CallEvent.SPEECH:
            return CallTransition(phase, (CallAction.CANCEL_SILENCE_TIMER,))
        if event is CallEvent.QUIET:
            return CallTransition(phase, (CallAction.START_SILENCE_TIMER,))
        if event is CallEvent.SILENCE_ELAPSED:
            return CallTransition(CallPhase.PROCESSING, (CallAction.PROCESS_TURN,))

    if phase is CallPhase.PROCESSING and event is CallEvent.TURN_FINISHED:
        return CallTransition(CallPhase.LISTENING)

    return CallTransition(phase)


def average_bin_level(frequency_bins: Sequence[int]) -> float:
    if not frequency_bins:
        return 0.0
    return sum(frequency_bins) / len(frequency_bins)


@dataclass
class TurnResult:
    transcript: str
    reply: Optional[str] = None
    audio_url: Optional[str] = None
    played: bool = False


class TurnPipeline(Protocol):
    async def run_turn(self, clip: AudioClip, is_active: Callable[[], bool]) -> Optional[TurnResult]:
        ...


class VoiceTurnPipeline:
    """Upload, transcribe, chat, synthesize and play one spoken turn."""

    def __init__(
        self,
        voice_service: VoiceService,
        orchestrator: ConversationOrchestrator,
        player: AudioPlayer,
        user_id: str,
        conversation_id: int,
        *,
        speed: float = 1.0,
    ):
        self._voice = voice_service
        self._orchestrator = orchestrator
        self._player = player
        self._user_id = user_id
        self._conversation_id = conversation_id
        self._speed = speed

    async def run_turn(self, clip: AudioClip, is_active: Callable[[], bool]) -> Optional[TurnResult]:
        transcription = await self._voice.transcribe_clip(self._user_id, clip)
        text = transcription.text
        if not text.strip():
            logger.info("Empty transcript; skipping turn", conversation_id=self._conversation_id)
            return TurnResult(transcript=text)
        if not is_active():
            return TurnResult(transcript=text)

        chat = await self._orchestrator.send_message(self._user_id, self._conversation_id, text)
        result = TurnResult(transcript=text, reply=chat.content)
        if not is_active():
            return result

        speech = await self._voice.synthesize(self._user_id, chat.content)
        result.audio_url = speech.audio_url
        if not is_active():
            return result

        await self._player.play(speech.audio_url, self._speed)
        result.played = True
        return result


@dataclass
class CallSession:
    """Resources owned by one active call."""

    stream: MediaStream
    analyser: AudioAnalyser
    release_owner: Callable[[], None]
    sampler: Optional[PeriodicCallback] = None
    recorder: Optional[ChunkRecorder] = None
    chunks: List[bytes] = field(default_factory=list)
    silence_timer: Optional[TimerHandle] = None
    closed: bool = False

    def cancel_silence_timer(self) -> None:
        if self.silence_timer is not None:
            self.silence_timer.cancel()
            self.silence_timer = None

    def take_recording(self) -> bytes:
        recorder, self.recorder = self.recorder, None
        if recorder is not None:
            recorder.stop()
        data = b"".join(self.chunks)
        self.chunks = []
        return data

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        if self.sampler is not None:
            self.sampler.cancel()
        self.cancel_silence_timer()
        if self.recorder is not None:
            self.recorder.stop()
            self.recorder = None
        self.chunks = []
        stop_all_tracks(self.stream)
        self.analyser.close()
        self.release_owner()


class VoiceCallController:
    def __init__(
        self,
        device: AudioDevice,
        scheduler: Scheduler,
        pipeline: TurnPipeline,
        config: Optional[VoiceCallConfig] = None,
        *,
        capture_config: Optional[CaptureConfig] = None,
        arbiter: Optional[MicrophoneArbiter] = None,
        on_phase: Optional[Callable[[CallPhase], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
    ):
        self._device = device
        self._scheduler = scheduler
        self._pipeline = pipeline
        self._config = config or VoiceCallConfig()
        self._capture = capture_config or CaptureConfig()
        self._arbiter = arbiter or MicrophoneArbiter()
        self._on_phase = on_phase
        self._on_error = on_error
        self._phase = CallPhase.INACTIVE
        self._session: Optional[CallSession] = None
        self._turn_task: Optional["asyncio.Task[None]"] = None
        self._muted = False
        self.turns_started = 0
        self.last_result: Optional[TurnResult] = None

    @property
    def phase(self) -> CallPhase:
        return self._phase

    @property
    def is_active(self) -> bool:
        return self._phase is not CallPhase.INACTIVE

    @property
    def muted(self) -> bool:
        return self._muted

    @property
    def session(self) -> Optional[CallSession]:
        return self._session

    async def start_call(self) -> None:
        """
        Acquire the microphone and begin listening.

        Raises:
            ResourceBusyError: the single-shot recorder holds the microphone
            MicrophoneUnavailableError: permission denied or no device
        """
        if self.is_active:
            return
        self._arbiter.acquire(self)
        stream: Optional[MediaStream] = None
        try:
            stream = await self._device.open_stream()
            analyser = self._device.create_analyser(stream, self._capture.fft_size, self._capture.smoothing)
        except Exception as exc:
            stop_all_tracks(stream)
            self._arbiter.release(self)
            logger.warning("Voice call could not acquire microphone", error=str(exc))
            if isinstance(exc, MicrophoneUnavailableError):
                raise
            raise MicrophoneUnavailableError(f"Could not access microphone: {exc}") from exc

        self._session = CallSession(stream=stream, analyser=analyser, release_owner=lambda: self._arbiter.release(self))
        self._muted = False
        self._dispatch(CallEvent.START_CALL)
        logger.info("Voice call started", speech_level=self._config.speech_level)

    async def end_call(self) -> None:
        """Stop listening and release the microphone; an in-flight turn skips its remaining steps."""
        if not self.is_active:
            return
        self._dispatch(CallEvent.END_CALL)
        logger.info("Voice call ended", turns=self.turns_started)

    async def wait_for_turn(self) -> None:
        task = self._turn_task
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    def set_muted(self, muted: bool) -> None:
        self._muted = muted
        if self._session is None:
            return
        for track in self._session.stream.get_tracks():
            track.enabled = not muted

    def _set_phase(self, phase: CallPhase) -> None:
        if phase is self._phase:
            return
        self._phase = phase
        if self._on_phase:
            self._on_phase(phase)

    def fail(self, error: Exception) -> None:
        """End the call after a device error and report it through on_error."""
        if not self.is_active:
            return
        logger.error("Voice call aborted", error=str(error), phase=self._phase.value)
        self._dispatch(CallEvent.END_CALL)
        if self._on_error:
            self._on_error(error)

    def _sample(self, session: CallSession) -> None:
        if session is not self._session or session.closed:
            return
        try:
            level = average_bin_level(session.analyser.frequency_data())
            self._dispatch(CallEvent.SPEECH if level > self._config.speech_level else CallEvent.QUIET)
        except Exception as exc:
            self.fail(exc)

    def _on_silence_elapsed(self, session: CallSession) -> None:
        if session is not self._session:
            return
        session.silence_timer = None
        try:
            self._dispatch(CallEvent.SILENCE_ELAPSED)
        except Exception as exc:
            self.fail(exc)

    def _dispatch(self, event: CallEvent) -> None:
        result = call_transition(self._phase, event)
        session = self._session
        self._set_phase(result.phase)
        if session is None:
            return

        for action in result.actions:
            if action is CallAction.START_SAMPLER:
                session.sampler = PeriodicCallback(
                    self._scheduler,
                    self._config.poll_interval_ms / 1000.0,
                    lambda: self._sample(session),
                )
                session.sampler.start()
            elif action is CallAction.START_RECORDER:
                session.chunks = []
                session.recorder = self._device.create_recorder(session.stream, self._capture.mime_type)
                session.recorder.start(session.chunks.append)
                logger.debug("Speech detected; recording turn")
            elif action is CallAction.START_SILENCE_TIMER:
                if session.silence_timer is None:
                    session.silence_timer = self._scheduler.call_later(
                        self._config.silence_duration_ms / 1000.0,
                        lambda: self._on_silence_elapsed(session),
                    )
            elif action is CallAction.CANCEL_SILENCE_TIMER:
                session.cancel_silence_timer()
            elif action is CallAction.PROCESS_TURN:
                self._process(session, session.take_recording())
            elif action is CallAction.RELEASE:
                session.close()
                self._session = None

    def _process(self, session: CallSession, data: bytes) -> None:
        try:
            validate_clip(data, self._capture.min_clip_bytes, self._capture.max_clip_bytes)
        except ClipValidationError as exc:
            logger.info("Discarding turn", reason=type(exc).__name__, size=exc.size)
            self._dispatch(CallEvent.TURN_FINISHED)
            return

        clip = AudioClip(data=data, mime_type=self._capture.mime_type, file_name=clip_file_name(self._capture.mime_type))
        self.turns_started += 1
        self._turn_task = asyncio.ensure_future(self._run_turn(session, clip))

    async def _run_turn(self, session: CallSession, clip: AudioClip) -> None:
        def still_active() -> bool:
            return self._session is session and not session.closed

        try:
            self.last_result = await self._pipeline.run_turn(clip, still_active)
        except Exception as exc:
            logger.error("Voice call turn failed", error=str(exc), exc_info=True)
            if self._on_error:
                self._on_error(exc)
        finally:
            if still_active():
                self._dispatch(CallEvent.TURN_FINISHED)
