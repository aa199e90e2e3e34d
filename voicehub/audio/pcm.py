"""
PCM buffering, analysis and WAV chunking for live microphone input.

``PcmBuffer`` is fed int16 blocks from an audio thread. It keeps a float
history window for the analyser and fans blocks out to recorders.
"""

import threading
import wave
from io import BytesIO
from typing import Callable, List, Optional

import numpy as np

from .devices import byte_frequency_data

PcmListener = Callable[[np.ndarray], None]


class PcmBuffer:
    def __init__(self, sample_rate: int, history_samples: int):
        self.sample_rate = sample_rate
        self._lock = threading.Lock()
        self._history = np.zeros(history_samples, dtype=np.float32)
        self._listeners: List[PcmListener] = []

    def push(self, pcm: np.ndarray) -> None:
        floats = pcm.astype(np.float32) / 32768.0
        with self._lock:
            if len(floats) >= len(self._history):
                self._history[:] = floats[-len(self._history):]
            else:
                self._history = np.roll(self._history, -len(floats))
                self._history[-len(floats):] = floats
            listeners = list(self._listeners)
        for listener in listeners:
            listener(pcm)

    def latest_samples(self, count: int) -> np.ndarray:
        with self._lock:
            return self._history[-count:].copy()

    def add_listener(self, listener: PcmListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def remove_listener(self, listener: PcmListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)


class NumpyAnalyser:
    def __init__(self, buffer: PcmBuffer, fft_size: int, smoothing: float):
        self._buffer = buffer
        self._fft_size = fft_size
        self._smoothing = smoothing
        self._previous: Optional[np.ndarray] = None
        self._closed = False

    def frequency_data(self) -> List[int]:
        if self._closed:
            return []
        samples = self._buffer.latest_samples(self._fft_size)
        bins, self._previous = byte_frequency_data(samples, self._previous, smoothing=self._smoothing)
        return bins.tolist()

    def close(self) -> None:
        self._closed = True
        self._previous = None


class WavChunkRecorder:
    """Collects int16 blocks while started and emits one WAV chunk on stop."""

    mime_type = "audio/wav"

    def __init__(self, buffer: PcmBuffer):
        self._buffer = buffer
        self._frames: List[np.ndarray] = []
        self._lock = threading.Lock()
        self._on_chunk: Optional[Callable[[bytes], None]] = None

    def _append(self, pcm: np.ndarray) -> None:
        with self._lock:
            self._frames.append(pcm)

    def start(self, on_chunk: Callable[[bytes], None]) -> None:
        self._on_chunk = on_chunk
        self._buffer.add_listener(self._append)

    def stop(self) -> None:
        if self._on_chunk is None:
            return
        self._buffer.remove_listener(self._append)
        with self._lock:
            frames, self._frames = self._frames, []
        pcm = np.concatenate(frames) if frames else np.zeros(0, dtype=np.int16)
        on_chunk, self._on_chunk = self._on_chunk, None
        on_chunk(pcm16_to_wav(pcm.astype(np.int16).tobytes(), self._buffer.sample_rate))


def pcm16_to_wav(pcm: bytes, sample_rate: int) -> bytes:
    buf = BytesIO()
    with wave.open(buf, "wb") as wav:
        wav.setnchannels(1)
        wav.setsampwidth(2)
        wav.setframerate(sample_rate)
        wav.writeframes(pcm)
    return buf.getvalue()
