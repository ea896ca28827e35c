"""Tests for periodic asyncio tasks."""

import asyncio

import pytest

from listenlens.core.tasks import PeriodicTask


class TickSleep:
    """Sleep double that yields once per call and counts calls."""

    def __init__(self, limit=None):
        self.calls = 0
        self.limit = limit

    async def __call__(self, seconds):
        self.calls += 1
        if self.limit is not None and self.calls > self.limit:
            await asyncio.Event().wait()
        await asyncio.sleep(0)


async def spin(times=20):
    for _ in range(times):
        await asyncio.sleep(0)


@pytest.mark.anyio
async def test_runs_repeatedly_until_stopped():
    ticks = []

    async def callback():
        ticks.append(True)

    task = PeriodicTask("poll", callback, 300, sleep=TickSleep(limit=3))
    task.start()
    await spin()

    assert len(ticks) == 3
    assert task.running

    await task.stop()
    assert not task.running


@pytest.mark.anyio
async def test_run_immediately_ticks_before_first_sleep():
    ticks = []
    sleep = TickSleep(limit=0)

    async def callback():
        ticks.append(sleep.calls)

    task = PeriodicTask("refresh", callback, 300, run_immediately=True, sleep=sleep)
    task.start()
    await spin()
    await task.stop()

    assert ticks == [0]


@pytest.mark.anyio
async def test_returning_false_ends_loop():
    async def callback():
        return False

    task = PeriodicTask("once", callback, 300, run_immediately=True, sleep=TickSleep())
    task.start()
    await spin()

    assert not task.running


@pytest.mark.anyio
async def test_tick_errors_do_not_end_loop():
    ticks = []

    async def callback():
        ticks.append(True)
        raise RuntimeError("tick failed")

    task = PeriodicTask("flaky", callback, 300, sleep=TickSleep(limit=2))
    task.start()
    await spin()

    assert len(ticks) == 2
    assert task.running
    await task.stop()


@pytest.mark.anyio
async def test_start_is_idempotent_and_stop_is_safe_twice():
    async def callback():
        return None

    task = PeriodicTask("idle", callback, 300, sleep=TickSleep(limit=0))
    task.start()
    first = task._task
    task.start()

    assert task._task is first

    await task.stop()
    await task.stop()
    assert not task.running
