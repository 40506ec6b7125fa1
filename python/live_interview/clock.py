"""
Injectable clock for timers.

All periodic sampling and timeouts in the orchestrator go through a Clock so
tests can step time deterministically instead of sleeping. Callbacks may be
plain functions or coroutine functions; awaitables they return are driven by
the clock.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from typing import Awaitable, Callable, Optional, Protocol


__all__ = ["AsyncioClock", "Clock", "TimerCallback", "TimerHandle"]


logger = logging.getLogger(__name__)

TimerCallback = Callable[[], Optional[Awaitable[None]]]


class TimerHandle(Protocol):
    """A scheduled one-shot or periodic timer."""

    def cancel(self) -> None: ...

    @property
    def cancelled(self) -> bool: ...


class Clock(Protocol):
    """Time source and timer factory."""

    def now(self) -> float:
        """Monotonic time in seconds."""
        ...

    def call_later(self, delay: float, callback: TimerCallback) -> TimerHandle:
        """Run callback once after delay seconds."""
        ...

    def call_every(self, interval: float, callback: TimerCallback) -> TimerHandle:
        """Run callback every interval seconds until cancelled."""
        ...


async def _run_callback(callback: TimerCallback) -> None:
    result = callback()
    if inspect.isawaitable(result):
        await result


def _log_failure(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Timer callback failed: %s", exc, exc_info=exc)


def _cancel_unless_current(task: Optional[asyncio.Task]) -> None:
    # A callback may cancel its own timer (e.g. a tick that terminates the
    # session); it must be allowed to finish.
    if task is None or task.done():
        return
    try:
        current = asyncio.current_task()
    except RuntimeError:
        current = None
    if task is not current:
        task.cancel()


class _DelayedCall:
    def __init__(self, delay: float, callback: TimerCallback) -> None:
        self._cancelled = False
        self._task = asyncio.get_running_loop().create_task(self._run(max(0.0, delay), callback))
        self._task.add_done_callback(_log_failure)

    async def _run(self, delay: float, callback: TimerCallback) -> None:
        await asyncio.sleep(delay)
        if not self._cancelled:
            await _run_callback(callback)

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True
        _cancel_unless_current(self._task)


class _PeriodicCall:
    def __init__(self, interval: float, callback: TimerCallback) -> None:
        self._interval = interval
        self._callback = callback
        self._cancelled = False
        self._in_flight: set[asyncio.Task] = set()
        self._loop_task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time()
        while not self._cancelled:
            deadline += self._interval
            await asyncio.sleep(max(0.0, deadline - loop.time()))
            if self._cancelled:
                break
            # Ticks do not wait for the previous callback to finish.
            task = loop.create_task(_run_callback(self._callback))
            self._in_flight.add(task)
            task.add_done_callback(self._in_flight.discard)
            task.add_done_callback(_log_failure)

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True
        _cancel_unless_current(self._loop_task)
        for task in list(self._in_flight):
            _cancel_unless_current(task)


class AsyncioClock:
    """
    Wall-clock implementation backed by the running asyncio event loop.

    Timers must be created from inside a running loop.
    """

    def now(self) -> float:
        return time.monotonic()

    def call_later(self, delay: float, callback: TimerCallback) -> TimerHandle:
        return _DelayedCall(delay, callback)

    def call_every(self, interval: float, callback: TimerCallback) -> TimerHandle:
        if interval <= 0:
            raise ValueError(f"interval must be positive. Got: {interval}")
        return _PeriodicCall(interval, callback)
