"""
Timer abstraction for the capture engine and the voice-call controller.

Both components drive their samplers and silence timers through a
``Scheduler`` so that tests can substitute a manually advanced clock.
Times are in seconds.
"""

import asyncio
from typing import Any, Callable, Optional, Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None:
        ...


class Scheduler(Protocol):
    def now(self) -> float:
        ...

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle:
        ...


class AsyncioScheduler:
    """Scheduler backed by the running event loop's ``call_later``."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now(self) -> float:
        return self.loop.time()

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle:
        return self.loop.call_later(max(0.0, delay), callback, *args)


class PeriodicCallback:
    """
    Re-arming timer that invokes ``callback`` every ``interval`` seconds.

    After ``cancel()`` returns no further invocation happens, including one
    whose timer had already been armed.
    """

    def __init__(self, scheduler: Scheduler, interval: float, callback: Callable[[], Any]):
        self._scheduler = scheduler
        self._interval = interval
        self._callback = callback
        self._handle: Optional[TimerHandle] = None
        self._active = False

    @property
    def active(self) -> bool:
        return self._active

    def start(self) -> None:
        if self._active:
            return
        self._active = True
        self._arm()

    def _arm(self) -> None:
        self._handle = self._scheduler.call_later(self._interval, self._fire)

    def _fire(self) -> None:
        self._handle = None
        if not self._active:
            return
        self._callback()
        # The callback may have cancelled us.
        if self._active:
            self._arm()

    def cancel(self) -> None:
        self._active = False
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
