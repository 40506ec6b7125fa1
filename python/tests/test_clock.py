"""
Tests for the asyncio-backed clock and the resource bag.

These use real (short) sleeps; the rest of the suite steps a ManualClock.
"""

from __future__ import annotations

import asyncio

import pytest

from live_interview.clock import AsyncioClock
from live_interview.resources import ResourceBag, cancel_and_wait


class TestAsyncioClock:
    """Tests for AsyncioClock timers."""

    @pytest.mark.asyncio
    async def test_call_later_runs_once(self):
        clock = AsyncioClock()
        fired = []

        clock.call_later(0.01, lambda: fired.append(clock.now()))
        await asyncio.sleep(0.05)

        assert len(fired) == 1

    @pytest.mark.asyncio
    async def test_cancelled_call_later_never_runs(self):
        clock = AsyncioClock()
        fired = []

        handle = clock.call_later(0.02, lambda: fired.append(1))
        handle.cancel()
        await asyncio.sleep(0.05)

        assert fired == []
        assert handle.cancelled

    @pytest.mark.asyncio
    async def test_call_every_repeats_until_cancelled(self):
        clock = AsyncioClock()
        ticks = []

        handle = clock.call_every(0.01, lambda: ticks.append(1))
        await asyncio.sleep(0.065)
        handle.cancel()
        count = len(ticks)
        await asyncio.sleep(0.03)

        assert count >= 3
        assert len(ticks) == count

    @pytest.mark.asyncio
    async def test_coroutine_callback_may_cancel_its_own_timer(self):
        """A tick that cancels its own timer still runs to completion."""
        clock = AsyncioClock()
        finished = []
        handles = []

        async def tick() -> None:
            handles[0].cancel()
            await asyncio.sleep(0)
            finished.append(1)

        handles.append(clock.call_every(0.01, tick))
        await asyncio.sleep(0.05)

        assert finished == [1]

    @pytest.mark.asyncio
    async def test_rejects_non_positive_interval(self):
        with pytest.raises(ValueError):
            AsyncioClock().call_every(0, lambda: None)


class TestResourceBag:
    """Tests for ResourceBag disposal."""

    @pytest.mark.asyncio
    async def test_dispose_all_is_lifo_and_idempotent(self):
        bag = ResourceBag()
        order = []
        bag.add("first", lambda: order.append("first"))
        bag.add("second", lambda: order.append("second"))

        async def third() -> None:
            order.append("third")

        bag.add("third", third)

        await bag.dispose_all()
        await bag.dispose_all()

        assert order == ["third", "second", "first"]

    @pytest.mark.asyncio
    async def test_failing_cleanup_does_not_stop_the_rest(self):
        bag = ResourceBag()
        order = []
        bag.add("first", lambda: order.append("first"))

        def broken() -> None:
            raise RuntimeError("device gone")

        bag.add("broken", broken)

        await bag.dispose_all()

        assert order == ["first"]

    @pytest.mark.asyncio
    async def test_close_runs_one_resource_early(self):
        bag = ResourceBag()
        order = []
        bag.add("media", lambda: order.append("media"))
        bag.add("recorder", lambda: order.append("recorder"))

        await bag.close("media")
        await bag.dispose_all()

        assert order == ["media", "recorder"]

    @pytest.mark.asyncio
    async def test_timers_are_cancelled_on_dispose(self):
        clock = AsyncioClock()
        bag = ResourceBag()
        fired = []

        bag.set_timer("silence", clock.call_later(0.02, lambda: fired.append(1)))
        await bag.dispose_all()
        await asyncio.sleep(0.05)

        assert fired == []

    @pytest.mark.asyncio
    async def test_set_timer_replaces_previous(self):
        clock = AsyncioClock()
        bag = ResourceBag()
        fired = []

        bag.set_timer("dismiss", clock.call_later(0.01, lambda: fired.append("old")))
        bag.set_timer("dismiss", clock.call_later(0.02, lambda: fired.append("new")))
        await asyncio.sleep(0.05)

        assert fired == ["new"]


class TestCancelAndWait:
    """Tests for cancel_and_wait."""

    @pytest.mark.asyncio
    async def test_cancels_running_task(self):
        task = asyncio.create_task(asyncio.sleep(10))

        await cancel_and_wait(task)

        assert task.cancelled()

    @pytest.mark.asyncio
    async def test_finished_task_and_none_are_ignored(self):
        task = asyncio.create_task(asyncio.sleep(0))
        await task

        await cancel_and_wait(task)
        await cancel_and_wait(None)
