"""Tests for the delayed-task scheduler."""

import asyncio

import pytest

from autofilter.scheduler import DelayedTaskScheduler


def _recorder(log, label):
    async def callback():
        log.append(label)

    return callback


@pytest.mark.asyncio
async def test_tasks_run_only_when_due(scheduler, clock):
    log = []
    scheduler.schedule(10, _recorder(log, "a"))
    assert await scheduler.run_pending() == 0
    clock.advance(9.99)
    assert await scheduler.run_pending() == 0
    clock.advance(0.01)
    assert await scheduler.run_pending() == 1
    assert log == ["a"]


@pytest.mark.asyncio
async def test_due_order_and_fifo_ties(scheduler, clock):
    log = []
    scheduler.schedule(5, _recorder(log, "late"))
    scheduler.schedule(1, _recorder(log, "first"))
    scheduler.schedule(1, _recorder(log, "second"))
    clock.advance(10)
    await scheduler.run_pending()
    assert log == ["first", "second", "late"]


@pytest.mark.asyncio
async def test_each_task_runs_once(scheduler, clock):
    log = []
    scheduler.schedule(1, _recorder(log, "x"))
    clock.advance(1)
    await scheduler.run_pending()
    clock.advance(100)
    await scheduler.run_pending()
    assert log == ["x"]
    assert scheduler.pending == 0


@pytest.mark.asyncio
async def test_cancelled_task_never_runs(scheduler, clock):
    log = []
    handle = scheduler.schedule(1, _recorder(log, "x"))
    assert handle.cancel()
    assert not handle.cancel()
    clock.advance(2)
    assert await scheduler.run_pending() == 0
    assert log == []
    assert scheduler.next_due is None


@pytest.mark.asyncio
async def test_failing_task_does_not_stop_others(scheduler, clock):
    log = []

    async def boom():
        raise RuntimeError("boom")

    scheduler.schedule(1, boom, name="boom")
    scheduler.schedule(1, _recorder(log, "after"))
    clock.advance(1)
    assert await scheduler.run_pending() == 2
    assert log == ["after"]


@pytest.mark.asyncio
async def test_task_scheduled_by_task_runs_when_due(scheduler, clock):
    log = []

    async def parent():
        log.append("parent")
        scheduler.schedule(0, _recorder(log, "child"))
        scheduler.schedule(10, _recorder(log, "grandchild"))

    scheduler.schedule(1, parent)
    clock.advance(1)
    await scheduler.run_pending()
    assert log == ["parent", "child"]
    assert scheduler.next_due == clock.now() + 10


@pytest.mark.asyncio
async def test_run_loop_with_real_clock():
    scheduler = DelayedTaskScheduler()
    stop = asyncio.Event()
    log = []

    async def finish():
        log.append("done")
        stop.set()

    scheduler.schedule(0.01, finish)
    await asyncio.wait_for(scheduler.run(stop), timeout=5)
    assert log == ["done"]
