import heapq
import itertools
import json

import pytest

from voicehub.config import AppConfig
from voicehub.core.store import ChatStore


# Clock ---------------------------------------------------------------------------


class _ManualHandle:
    def __init__(self):
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class ManualScheduler:
    """Scheduler whose clock only moves when a test calls ``advance``."""

    def __init__(self):
        self._now = 0.0
        self._seq = itertools.count()
        self._queue = []

    def now(self):
        return self._now

    def call_later(self, delay, callback, *args):
        handle = _ManualHandle()
        heapq.heappush(self._queue, (self._now + max(0.0, delay), next(self._seq), handle, callback, args))
        return handle

    @property
    def pending(self):
        return sum(1 for entry in self._queue if not entry[2].cancelled)

    def advance(self, seconds):
        target = self._now + seconds
        while self._queue and self._queue[0][0] <= target + 1e-9:
            due, _, handle, callback, args = heapq.heappop(self._queue)
            self._now = max(self._now, due)
            if not handle.cancelled:
                callback(*args)
        self._now = target


@pytest.fixture
def scheduler():
    return ManualScheduler()


# Audio device --------------------------------------------------------------------


class FakeTrack:
    def __init__(self):
        self.enabled = True
        self.live = True

    def stop(self):
        self.live = False


class FakeStream:
    def __init__(self):
        self.tracks = [FakeTrack()]

    def get_tracks(self):
        return list(self.tracks)


class FakeAnalyser:
    def __init__(self):
        self.bins = [0] * 256
        self.closed = False
        self.reads = 0

    def set_level(self, value):
        self.bins = [value] * 256

    def frequency_data(self):
        self.reads += 1
        return list(self.bins)

    def close(self):
        self.closed = True


class FakeRecorder:
    mime_type = "audio/wav"

    def __init__(self, payload):
        self.payload = payload
        self.started = False
        self.stopped = False
        self._on_chunk = None

    def start(self, on_chunk):
        self.started = True
        self._on_chunk = on_chunk

    def stop(self):
        if self.stopped:
            return
        self.stopped = True
        if self._on_chunk is not None and self.payload:
            self._on_chunk(self.payload)


class FakeAudioDevice:
    def __init__(self, payload=b"\x01" * 8000, open_error=None):
        self.payload = payload
        self.open_error = open_error
        self.streams = []
        self.analysers = []
        self.recorders = []

    async def open_stream(self):
        if self.open_error is not None:
            raise self.open_error
        stream = FakeStream()
        self.streams.append(stream)
        return stream

    def create_analyser(self, stream, fft_size, smoothing):
        analyser = FakeAnalyser()
        self.analysers.append(analyser)
        return analyser

    def create_recorder(self, stream, mime_type):
        recorder = FakeRecorder(self.payload)
        self.recorders.append(recorder)
        return recorder

    @property
    def analyser(self):
        return self.analysers[-1]

    def live_tracks(self):
        return sum(1 for s in self.streams for t in s.tracks if t.live)


@pytest.fixture
def audio_device():
    return FakeAudioDevice()


@pytest.fixture
def make_audio_device():
    return FakeAudioDevice


# HTTP ----------------------------------------------------------------------------


class FakeResponse:
    def __init__(self, body, status=200):
        if isinstance(body, (dict, list)):
            body = json.dumps(body).encode("utf-8")
        elif isinstance(body, str):
            body = body.encode("utf-8")
        self._body = body
        self.status = status

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    async def read(self):
        return self._body


def _as_response(item):
    if isinstance(item, (FakeResponse, Exception)):
        return item
    if isinstance(item, tuple):
        return FakeResponse(*item)
    return FakeResponse(item)


class FakeSession:
    """
    Stand-in for aiohttp.ClientSession.

    Responses are served in order; the last one repeats once the queue is
    exhausted.
    """

    def __init__(self, *responses):
        self._responses = [_as_response(r) for r in responses] or [FakeResponse({})]
        self.requests = []
        self.closed = False

    def _next(self):
        if len(self._responses) > 1:
            return self._responses.pop(0)
        return self._responses[0]

    def _record(self, method, url, kwargs):
        self.requests.append({"method": method, "url": url, **kwargs})
        response = self._next()
        if isinstance(response, Exception):
            raise response
        return response

    def post(self, url, **kwargs):
        return self._record("POST", url, kwargs)

    def get(self, url, **kwargs):
        return self._record("GET", url, kwargs)

    async def close(self):
        self.closed = True

    @property
    def last(self):
        return self.requests[-1]


@pytest.fixture
def make_session():
    """Build a FakeSession from payloads, (payload, status) tuples or exceptions."""
    return FakeSession


# App -----------------------------------------------------------------------------


@pytest.fixture
def app_config(tmp_path):
    return AppConfig(
        database={"path": str(tmp_path / "voicehub.db")},
        storage={"base_dir": str(tmp_path / "objects")},
    )


@pytest.fixture
def store(app_config):
    return ChatStore(app_config.database.path)
