"""
Resource bag for session-owned handles.

The session registers every resource it starts (media, recorder, streaming
client, proctoring monitor) and every timer it schedules here, so all exit
paths share one idempotent disposal routine.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Awaitable, Callable, Optional

from .clock import TimerHandle


__all__ = ["ResourceBag", "cancel_and_wait"]


logger = logging.getLogger(__name__)

Closer = Callable[[], Optional[Awaitable[None]]]


async def cancel_and_wait(task: Optional[asyncio.Task]) -> None:
    """Cancel a task and wait for it to finish, swallowing its cancellation."""
    if task is None or task.done():
        return
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        current = asyncio.current_task()
        if current is not None and current.cancelling():
            raise
    except Exception as exc:
        logger.warning("Task %s failed while cancelling: %s", task.get_name(), exc)


class ResourceBag:
    """
    Owns closers and timers for one session.

    Closers run at most once. dispose_all() cancels every timer, then runs
    the remaining closers newest first; calling it again does nothing.
    """

    def __init__(self) -> None:
        self._closers: dict[str, Closer] = {}
        self._timers: dict[str, TimerHandle] = {}
        self._disposed = False

    @property
    def disposed(self) -> bool:
        return self._disposed

    def __contains__(self, name: str) -> bool:
        return name in self._closers or name in self._timers

    def add(self, name: str, closer: Closer) -> None:
        """Register a resource closer under a unique name."""
        if self._disposed:
            raise RuntimeError(f"Cannot register {name!r}: resources already disposed")
        if name in self._closers:
            raise ValueError(f"Resource {name!r} already registered")
        self._closers[name] = closer

    def set_timer(self, name: str, handle: TimerHandle) -> None:
        """Register a timer, cancelling any previous timer with the same name."""
        if self._disposed:
            handle.cancel()
            return
        previous = self._timers.pop(name, None)
        if previous is not None:
            previous.cancel()
        self._timers[name] = handle

    def cancel_timer(self, name: str) -> None:
        handle = self._timers.pop(name, None)
        if handle is not None:
            handle.cancel()

    def cancel_timers(self) -> None:
        for name in list(self._timers):
            self.cancel_timer(name)

    async def close(self, name: str) -> None:
        """Run and forget one resource's closer, if still registered."""
        closer = self._closers.pop(name, None)
        if closer is None:
            return
        try:
            result = closer()
            if inspect.isawaitable(result):
                await result
        except Exception as exc:
            logger.error("Failed to close %s: %s", name, exc, exc_info=True)
        else:
            logger.debug("Closed %s", name)

    async def dispose_all(self) -> None:
        """Cancel all timers and close all resources. Idempotent."""
        if self._disposed:
            return
        self._disposed = True
        self.cancel_timers()
        for name in reversed(list(self._closers)):
            await self.close(name)
