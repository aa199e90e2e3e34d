"""
PortAudio microphone backend built on ``sounddevice``.

The input stream callback runs on PortAudio's audio thread and pushes
int16 blocks into a ``PcmBuffer``. Opening the device blocks, so it runs
in the default executor.
"""

import asyncio
from typing import List

import numpy as np
import sounddevice as sd

from ..errors import MicrophoneUnavailableError
from ..logging_config import get_logger
from .pcm import NumpyAnalyser, PcmBuffer, WavChunkRecorder

logger = get_logger(__name__)


class SoundDeviceTrack:
    def __init__(self, stream: "SoundDeviceStream"):
        self._stream = stream
        self.enabled = True
        self._live = True

    @property
    def live(self) -> bool:
        return self._live

    def stop(self) -> None:
        if not self._live:
            return
        self._live = False
        self._stream.close()


class SoundDeviceStream:
    def __init__(self, sample_rate: int, history_samples: int):
        self.buffer = PcmBuffer(sample_rate, history_samples)
        self._track = SoundDeviceTrack(self)
        self._input = sd.InputStream(
            samplerate=sample_rate,
            channels=1,
            dtype="int16",
            callback=self._callback,
        )
        self._input.start()

    def get_tracks(self) -> List[SoundDeviceTrack]:
        return [self._track]

    def _callback(self, indata: np.ndarray, frames: int, _time, status) -> None:
        if status:
            logger.debug("Input stream status", status=str(status))
        pcm = indata[:, 0].copy() if indata.ndim > 1 else indata.copy()
        if not self._track.enabled:
            pcm[:] = 0
        self.buffer.push(pcm)

    def close(self) -> None:
        self._input.stop()
        self._input.close()


class SoundDeviceAudioDevice:
    """AudioDevice backed by the default PortAudio input device."""

    def __init__(self, sample_rate: int = 16000, history_samples: int = 2048):
        self._sample_rate = sample_rate
        self._history_samples = history_samples

    async def open_stream(self) -> SoundDeviceStream:
        loop = asyncio.get_running_loop()
        try:
            stream = await loop.run_in_executor(None, SoundDeviceStream, self._sample_rate, self._history_samples)
        except sd.PortAudioError as exc:
            logger.warning("Microphone open failed", error=str(exc))
            raise MicrophoneUnavailableError(f"Microphone unavailable: {exc}") from exc
        logger.info("Microphone stream opened", sample_rate=self._sample_rate)
        return stream

    def create_analyser(self, stream: SoundDeviceStream, fft_size: int, smoothing: float) -> NumpyAnalyser:
        return NumpyAnalyser(stream.buffer, fft_size, smoothing)

    def create_recorder(self, stream: SoundDeviceStream, mime_type: str) -> WavChunkRecorder:
        return WavChunkRecorder(stream.buffer)
