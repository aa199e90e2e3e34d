"""
Audio device interfaces.

The capture engine and voice-call controller talk to the microphone only
through these protocols. ``sounddevice_backend`` provides the concrete
PortAudio implementation; tests provide fakes.

Frequency data follows the WebAudio AnalyserNode convention: one unsigned
byte per bin, linearly mapping [min_db, max_db] to [0, 255].
"""

from typing import Callable, List, Optional, Protocol, Sequence, Tuple

import numpy as np

from ..errors import ResourceBusyError
from ..logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_MIN_DB = -100.0
DEFAULT_MAX_DB = -30.0


class MediaTrack(Protocol):
    enabled: bool

    @property
    def live(self) -> bool:
        ...

    def stop(self) -> None:
        ...


class MediaStream(Protocol):
    def get_tracks(self) -> List[MediaTrack]:
        ...


class AudioAnalyser(Protocol):
    def frequency_data(self) -> Sequence[int]:
        ...

    def close(self) -> None:
        ...


class ChunkRecorder(Protocol):
    mime_type: str

    def start(self, on_chunk: Callable[[bytes], None]) -> None:
        ...

    def stop(self) -> None:
        """Stop recording; any buffered data is delivered through on_chunk before returning."""
        ...


class AudioDevice(Protocol):
    async def open_stream(self) -> MediaStream:
        """Acquire the microphone. Raises MicrophoneUnavailableError."""
        ...

    def create_analyser(self, stream: MediaStream, fft_size: int, smoothing: float) -> AudioAnalyser:
        ...

    def create_recorder(self, stream: MediaStream, mime_type: str) -> ChunkRecorder:
        ...


class AudioPlayer(Protocol):
    async def play(self, audio_url: str, speed: float = 1.0) -> None:
        """Play audio at the URL and return when playback has finished."""
        ...


def stop_all_tracks(stream: Optional[MediaStream]) -> None:
    if stream is None:
        return
    for track in stream.get_tracks():
        track.stop()


class MicrophoneArbiter:
    """
    Exclusive ownership of the microphone.

    The single-shot recorder and the voice-call controller share one
    arbiter; whichever holds it must release it before the other can
    acquire.
    """

    def __init__(self):
        self._owner: Optional[object] = None

    @property
    def owner(self) -> Optional[object]:
        return self._owner

    def acquire(self, owner: object) -> None:
        if self._owner is not None and self._owner is not owner:
            raise ResourceBusyError(f"Microphone is in use by {type(self._owner).__name__}")
        self._owner = owner

    def release(self, owner: object) -> None:
        if self._owner is owner:
            self._owner = None


def byte_frequency_data(
    samples: np.ndarray,
    previous_magnitudes: Optional[np.ndarray],
    *,
    smoothing: float = 0.8,
    min_db: float = DEFAULT_MIN_DB,
    max_db: float = DEFAULT_MAX_DB,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Compute byte-scaled frequency bins for one analysis window.

    Args:
        samples: float samples in [-1, 1], length == fft size
        previous_magnitudes: smoothed magnitudes from the previous call, or None
        smoothing: time-constant between 0 (none) and <1

    Returns:
        (bins as uint8 of length fft_size // 2, smoothed magnitudes to pass back next time)
    """
    fft_size = len(samples)
    window = np.blackman(fft_size)
    spectrum = np.fft.rfft(samples * window)[: fft_size // 2]
    magnitudes = np.abs(spectrum) / fft_size
    if previous_magnitudes is not None and len(previous_magnitudes) == len(magnitudes):
        magnitudes = smoothing * previous_magnitudes + (1.0 - smoothing) * magnitudes
    with np.errstate(divide="ignore"):
        decibels = 20.0 * np.log10(magnitudes)
    scaled = (decibels - min_db) * (255.0 / (max_db - min_db))
    bins = np.clip(np.nan_to_num(scaled, neginf=0.0), 0, 255).astype(np.uint8)
    return bins, magnitudes
