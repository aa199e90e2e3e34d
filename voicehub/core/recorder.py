"""
Audio Capture & VAD Engine.

Single-shot recording: start on user action, stop manually or after the
configured silence following speech. Everything a recording holds (stream,
analyser, chunk recorder, sampler, silence timer, microphone ownership)
lives in one ``CaptureSession`` whose ``close()`` is the only teardown
path and runs on every exit: auto-stop, manual stop and failure.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional, Union

from ..audio.devices import (
    AudioAnalyser,
    AudioDevice,
    ChunkRecorder,
    MediaStream,
    MicrophoneArbiter,
    stop_all_tracks,
)
from ..config import CaptureConfig
from ..errors import MicrophoneUnavailableError, TooLargeError, TooShortError
from ..logging_config import get_logger
from .scheduling import PeriodicCallback, Scheduler, TimerHandle
from .vad import (
    ACTIVE_STATES,
    CaptureAction,
    CaptureEvent,
    CaptureState,
    average_level,
    is_speech,
    speech_threshold,
    transition,
)

logger = get_logger(__name__)

_EXTENSIONS = {
    "audio/wav": "wav",
    "audio/webm": "webm",
    "audio/ogg": "ogg",
    "audio/mpeg": "mp3",
    "audio/mp4": "m4a",
}


@dataclass
class AudioClip:
    data: bytes
    mime_type: str
    file_name: str

    @property
    def size(self) -> int:
        return len(self.data)


def clip_file_name(mime_type: str, now: Optional[float] = None) -> str:
    ext = _EXTENSIONS.get(mime_type.split(";")[0].strip().lower(), "bin")
    return f"recording-{int((now if now is not None else time.time()) * 1000)}.{ext}"


def validate_clip(data: bytes, min_bytes: int, max_bytes: int) -> None:
    """
    Reject clips that are too short or too large to upload.

    Raises:
        TooShortError: fewer than min_bytes (roughly under half a second of audio)
        TooLargeError: more than max_bytes
    """
    size = len(data)
    if size < min_bytes:
        raise TooShortError(f"Recording too short ({size} bytes); please speak for at least half a second", size)
    if size > max_bytes:
        max_mb = max_bytes / (1024 * 1024)
        raise TooLargeError(f"Recording too large ({size} bytes); maximum is {max_mb:g} MB", size)


@dataclass
class CaptureSession:
    """Resources owned by one active recording."""

    stream: MediaStream
    analyser: AudioAnalyser
    recorder: ChunkRecorder
    release_owner: Callable[[], None]
    chunks: List[bytes] = field(default_factory=list)
    sampler: Optional[PeriodicCallback] = None
    silence_timer: Optional[TimerHandle] = None
    recorder_running: bool = False
    closed: bool = False

    def start_silence_timer(self, scheduler: Scheduler, delay: float, callback: Callable[[], None]) -> None:
        if self.silence_timer is None:
            self.silence_timer = scheduler.call_later(delay, callback)

    def cancel_silence_timer(self) -> None:
        if self.silence_timer is not None:
            self.silence_timer.cancel()
            self.silence_timer = None

    def stop_recorder(self) -> bytes:
        """Stop the chunk recorder (flushing buffered data) and return the concatenated clip."""
        if self.recorder_running:
            self.recorder_running = False
            self.recorder.stop()
        return b"".join(self.chunks)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        if self.sampler is not None:
            self.sampler.cancel()
        self.cancel_silence_timer()
        if self.recorder_running:
            self.recorder_running = False
            self.recorder.stop()
        stop_all_tracks(self.stream)
        self.analyser.close()
        self.release_owner()


ClipCallback = Callable[[AudioClip], Union[None, Awaitable[Any]]]
ErrorCallback = Callable[[Exception], None]


class AudioCaptureEngine:
    def __init__(
        self,
        device: AudioDevice,
        scheduler: Scheduler,
        config: CaptureConfig,
        *,
        arbiter: Optional[MicrophoneArbiter] = None,
        on_clip: Optional[ClipCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        on_level: Optional[Callable[[float], None]] = None,
    ):
        self._device = device
        self._scheduler = scheduler
        self._config = config
        self._arbiter = arbiter or MicrophoneArbiter()
        self._on_clip = on_clip
        self._on_error = on_error
        self._on_level = on_level
        self._state = CaptureState.IDLE
        self._session: Optional[CaptureSession] = None
        self._clip_task: Optional["asyncio.Future[Any]"] = None
        self._threshold = speech_threshold(config.vad_sensitivity)
        self.last_level = 0.0

    @property
    def state(self) -> CaptureState:
        return self._state

    @property
    def session(self) -> Optional[CaptureSession]:
        return self._session

    @property
    def is_recording(self) -> bool:
        return self._state in ACTIVE_STATES

    def configure(self, *, vad_sensitivity: Optional[int] = None, silence_threshold_ms: Optional[int] = None) -> None:
        """Apply user preferences; takes effect on the next sample / next silence timer."""
        if vad_sensitivity is not None:
            self._config = self._config.model_copy(update={"vad_sensitivity": vad_sensitivity})
            self._threshold = speech_threshold(vad_sensitivity)
        if silence_threshold_ms is not None:
            self._config = self._config.model_copy(update={"silence_threshold_ms": silence_threshold_ms})

    async def start(self) -> None:
        """
        Acquire the microphone and begin recording.

        Raises:
            ResourceBusyError: the microphone is owned by another component
            MicrophoneUnavailableError: permission denied or no device
        """
        if self.is_recording:
            return
        self._arbiter.acquire(self)
        stream: Optional[MediaStream] = None
        analyser: Optional[AudioAnalyser] = None
        try:
            stream = await self._device.open_stream()
            analyser = self._device.create_analyser(stream, self._config.fft_size, self._config.smoothing)
            recorder = self._device.create_recorder(stream, self._config.mime_type)
        except Exception as exc:
            if analyser is not None:
                analyser.close()
            stop_all_tracks(stream)
            self._arbiter.release(self)
            self._state = CaptureState.IDLE
            logger.warning("Microphone acquisition failed", error=str(exc))
            if isinstance(exc, MicrophoneUnavailableError):
                raise
            raise MicrophoneUnavailableError(f"Could not access microphone: {exc}") from exc

        session = CaptureSession(
            stream=stream,
            analyser=analyser,
            recorder=recorder,
            release_owner=lambda: self._arbiter.release(self),
        )
        self._session = session
        self._state = transition(self._state, CaptureEvent.START).state

        recorder.start(session.chunks.append)
        session.recorder_running = True
        session.sampler = PeriodicCallback(
            self._scheduler,
            self._config.frame_interval_ms / 1000.0,
            lambda: self._sample(session),
        )
        session.sampler.start()
        logger.info("Recording started", vad_sensitivity=self._config.vad_sensitivity)

    def stop(self) -> None:
        """Manual stop; finalizes whatever has been captured so far."""
        self._dispatch(CaptureEvent.STOP)

    def fail(self, error: Exception) -> None:
        """Abort the active recording after a device error; nothing is finalized."""
        if not self.is_recording:
            return
        logger.error("Recording aborted", error=str(error))
        self._dispatch(CaptureEvent.FAILURE)
        if self._on_error:
            self._on_error(error)

    def _sample(self, session: CaptureSession) -> None:
        if session is not self._session or session.closed:
            return
        try:
            level = average_level(session.analyser.frequency_data())
        except Exception as exc:
            self.fail(exc)
            return
        self.last_level = level
        if self._on_level:
            self._on_level(level)
        self._dispatch(CaptureEvent.SPEECH if is_speech(level, self._threshold) else CaptureEvent.QUIET)

    def _on_silence_elapsed(self, session: CaptureSession) -> None:
        if session is not self._session:
            return
        session.silence_timer = None
        logger.debug("Silence threshold reached; stopping", silence_threshold_ms=self._config.silence_threshold_ms)
        self._dispatch(CaptureEvent.SILENCE_ELAPSED)

    def _dispatch(self, event: CaptureEvent) -> None:
        result = transition(self._state, event)
        session = self._session
        self._state = result.state
        if session is None:
            return

        data: Optional[bytes] = None
        for action in result.actions:
            if action is CaptureAction.START_SILENCE_TIMER:
                session.start_silence_timer(
                    self._scheduler,
                    self._config.silence_threshold_ms / 1000.0,
                    lambda: self._on_silence_elapsed(session),
                )
            elif action is CaptureAction.CANCEL_SILENCE_TIMER:
                session.cancel_silence_timer()
            elif action is CaptureAction.FINALIZE:
                data = session.stop_recorder()
            elif action is CaptureAction.RELEASE:
                session.close()
                self._session = None

        if data is not None:
            self._deliver(data)

    def _deliver(self, data: bytes) -> None:
        try:
            validate_clip(data, self._config.min_clip_bytes, self._config.max_clip_bytes)
        except (TooShortError, TooLargeError) as exc:
            logger.info("Recording rejected", reason=type(exc).__name__, size=exc.size)
            if self._on_error:
                self._on_error(exc)
            return

        clip = AudioClip(data=data, mime_type=self._config.mime_type, file_name=clip_file_name(self._config.mime_type))
        logger.info("Recording finalized", size=clip.size)
        if self._on_clip is None:
            return
        try:
            outcome = self._on_clip(clip)
        except Exception as exc:
            self._report_clip_error(exc)
            return
        if asyncio.iscoroutine(outcome):
            self._clip_task = asyncio.ensure_future(outcome)
            self._clip_task.add_done_callback(self._on_clip_done)

    def _on_clip_done(self, task: "asyncio.Future[Any]") -> None:
        if task is self._clip_task:
            self._clip_task = None
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._report_clip_error(exc)

    def _report_clip_error(self, exc: BaseException) -> None:
        logger.error("Clip handler failed", error=str(exc), exc_info=exc)
        if self._on_error:
            self._on_error(exc)

    async def wait_for_clip(self) -> None:
        """Await the async on_clip handler started by the last recording, if any."""
        task = self._clip_task
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)
