"""Tests for the sequential task queue."""

from __future__ import annotations

import asyncio

import pytest

from transferbench.task_queue import QueueState, TaskQueue


async def collect(queue: TaskQueue, on_error=None) -> list:
    return [value async for value in queue.drain(on_error=on_error)]


def make_task(value, log: list | None = None, delay: float = 0):
    async def task():
        if log is not None:
            log.append(("start", value))
        await asyncio.sleep(delay)
        if log is not None:
            log.append(("end", value))
        return value

    return task


def failing_task(message: str = "boom"):
    async def task():
        raise RuntimeError(message)

    return task


@pytest.mark.parametrize("count", [1, 2, 7, 25])
def test_drain_yields_every_result_in_enqueue_order(count):
    queue = TaskQueue()
    for i in range(count):
        queue.enqueue(make_task(i))

    assert len(queue) == count
    assert asyncio.run(collect(queue)) == list(range(count))
    assert len(queue) == 0


def test_tasks_never_overlap():
    queue = TaskQueue()
    log: list = []
    for i, delay in enumerate([0.02, 0, 0.01, 0]):
        queue.enqueue(make_task(i, log, delay))

    asyncio.run(collect(queue))

    assert log == [(kind, i) for i in range(4) for kind in ("start", "end")]


def test_failing_task_is_skipped_and_drain_continues():
    queue = TaskQueue()
    queue.enqueue(make_task("a"))
    queue.enqueue(failing_task())
    queue.enqueue(make_task("b"))

    assert asyncio.run(collect(queue)) == ["a", "b"]
    assert queue.state is QueueState.IDLE


def test_on_error_receives_each_exception():
    queue = TaskQueue()
    errors: list[Exception] = []
    queue.enqueue(failing_task("first"))
    queue.enqueue(make_task(1))
    queue.enqueue(failing_task("second"))

    results = asyncio.run(collect(queue, on_error=errors.append))

    assert results == [1]
    assert [str(e) for e in errors] == ["first", "second"]


def test_tasks_enqueued_during_drain_are_processed():
    queue = TaskQueue()

    async def spawning_task():
        queue.enqueue(make_task("late"))
        return "early"

    queue.enqueue(spawning_task)

    assert asyncio.run(collect(queue)) == ["early", "late"]


def test_state_is_draining_only_while_draining():
    queue = TaskQueue()
    seen: list[QueueState] = []

    async def observe():
        seen.append(queue.state)
        return queue.is_draining

    queue.enqueue(observe)
    assert queue.state is QueueState.IDLE

    assert asyncio.run(collect(queue)) == [True]
    assert seen == [QueueState.DRAINING]
    assert queue.state is QueueState.IDLE


def test_second_concurrent_drain_is_rejected():
    queue = TaskQueue()

    async def scenario():
        started = asyncio.Event()
        release = asyncio.Event()

        async def blocking():
            started.set()
            await release.wait()
            return "done"

        queue.enqueue(blocking)
        first = asyncio.ensure_future(collect(queue))
        await started.wait()
        with pytest.raises(RuntimeError, match="already draining"):
            await collect(queue)
        release.set()
        return await first

    assert asyncio.run(scenario()) == ["done"]


def test_empty_queue_drains_immediately():
    queue = TaskQueue()
    assert asyncio.run(collect(queue)) == []
    assert queue.state is QueueState.IDLE


def test_cancelled_drain_discards_pending_tasks():
    queue = TaskQueue()
    for i in range(5):
        queue.enqueue(make_task(i, delay=0.05))

    async def scenario():
        with pytest.raises(TimeoutError):
            await asyncio.wait_for(collect(queue), timeout=0.08)

    asyncio.run(scenario())

    assert len(queue) == 0
    assert queue.state is QueueState.IDLE
    queue.enqueue(make_task("next"))
    assert asyncio.run(collect(queue)) == ["next"]


def test_closing_drain_early_discards_pending_tasks():
    queue = TaskQueue()
    for i in range(3):
        queue.enqueue(make_task(i))

    async def take_first():
        results = queue.drain()
        first = await anext(results)
        await results.aclose()
        return first

    assert asyncio.run(take_first()) == 0
    assert len(queue) == 0
    assert queue.state is QueueState.IDLE
