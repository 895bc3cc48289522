import asyncio

import pytest

from ssg_zero.errors import EmptyQueueError
from ssg_zero.task_queue import TaskQueue


async def _one(_):
    return 1


def test_pull_from_empty_queue_raises():
    queue = TaskQueue(_one, 5)
    with pytest.raises(EmptyQueueError):
        asyncio.run(queue.pull())


def test_concurrency_must_be_positive():
    with pytest.raises(ValueError):
        TaskQueue(_one, 0)


def test_drain_waits_until_all_tasks_are_finished():
    collected = set()

    async def action(s):
        result = await asyncio.sleep(0, s.upper())
        collected.add(result)
        return result

    async def scenario():
        queue = TaskQueue(action, 2)
        for item in ["a", "b", "o", "c", "d"]:
            queue.push(item)
        assert queue.in_flight == 2
        assert queue.buffered == 3
        await queue.drain()
        assert len(queue) == 0

    asyncio.run(scenario())
    assert collected == {"A", "B", "O", "C", "D"}


def test_pull_returns_fastest_tasks_first():
    async def action(ms):
        await asyncio.sleep(ms / 100)
        return ms

    async def scenario():
        queue = TaskQueue(action, 10)
        queue.push(30)
        queue.push(20)
        queue.push(10)
        return [await queue.pull(), await queue.pull(), await queue.pull()]

    assert asyncio.run(scenario()) == [10, 20, 30]


def test_queue_can_be_iterated_over():
    async def scenario():
        queue = TaskQueue(_one, 10)
        for _ in range(5):
            queue.push(None)
        total = 0
        async for num in queue:
            total += num
        return total

    assert asyncio.run(scenario()) == 5


def test_never_exceeds_concurrency():
    running = 0
    peak = 0

    async def action(item):
        nonlocal running, peak
        running += 1
        peak = max(peak, running)
        await asyncio.sleep(0.01)
        running -= 1
        return item

    async def scenario():
        queue = TaskQueue(action, 2)
        for item in range(7):
            queue.push(item)
        return sorted([result async for result in queue])

    assert asyncio.run(scenario()) == list(range(7))
    assert peak == 2


def _start_order(lifo):
    started = []

    async def action(item):
        started.append(item)
        await asyncio.sleep(0)
        return item

    async def scenario():
        queue = TaskQueue(action, 1, lifo=lifo)
        for item in "abcd":
            queue.push(item)
        await queue.drain()

    asyncio.run(scenario())
    return started


def test_overflow_buffer_is_lifo_by_default():
    assert _start_order(lifo=True) == ["a", "d", "c", "b"]


def test_overflow_buffer_can_be_fifo():
    assert _start_order(lifo=False) == ["a", "b", "c", "d"]


def test_failed_action_surfaces_from_pull_and_queue_keeps_going():
    async def action(item):
        await asyncio.sleep(0)
        if item == "bad":
            raise ValueError(item)
        return item

    async def scenario():
        queue = TaskQueue(action, 1)
        queue.push("bad")
        queue.push("good")
        with pytest.raises(ValueError, match="bad"):
            await queue.pull()
        assert queue.in_flight == 1
        return await queue.pull()

    assert asyncio.run(scenario()) == "good"


def test_drain_raises_action_errors():
    async def action(item):
        raise RuntimeError("boom")

    async def scenario():
        queue = TaskQueue(action, 3)
        queue.push(1)
        await queue.drain()

    with pytest.raises(RuntimeError, match="boom"):
        asyncio.run(scenario())
