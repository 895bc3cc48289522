"""Bounded-concurrency task queue.

TaskQueue runs an async action over pushed inputs with at most ``concurrency``
actions in flight, and hands results back in completion order. It is used to
render pages in parallel during builds and dev rebuilds.

Inputs pushed while the queue is full wait in an overflow buffer. By default
the buffer is served last-in-first-out: when a slot frees up, the most
recently buffered input starts next. Pass ``lifo=False`` for first-in-first-out.

Everything runs on one event loop; the in-flight map and the buffer are only
touched between suspension points, so no locks are needed.
"""

from __future__ import annotations

import asyncio
import functools
from collections import deque
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Generic, TypeVar

from .errors import EmptyQueueError

InputT = TypeVar("InputT")
ResultT = TypeVar("ResultT")


class TaskQueue(Generic[InputT, ResultT]):
    """Run ``action`` over pushed inputs, ``concurrency`` at a time.

    Attributes:
        concurrency: Maximum number of actions in flight.
        lifo: Whether the overflow buffer is served newest first.
    """

    def __init__(
        self,
        action: Callable[[InputT], Awaitable[ResultT]],
        concurrency: int,
        lifo: bool = True,
    ):
        if concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got {concurrency}")
        self._action = action
        self.concurrency = concurrency
        self.lifo = lifo
        self._in_flight: dict[int, asyncio.Future[ResultT]] = {}
        self._buffer: deque[InputT] = deque()
        self._settled: asyncio.Queue[int] | None = None
        self._next_id = 0

    def __len__(self) -> int:
        return len(self._in_flight) + len(self._buffer)

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    @property
    def buffered(self) -> int:
        return len(self._buffer)

    def push(self, item: InputT) -> None:
        """Start ``action(item)`` now if a slot is free, otherwise buffer it.

        Must be called from a running event loop.
        """
        if len(self._in_flight) < self.concurrency:
            self._start(item)
        else:
            self._buffer.append(item)

    async def pull(self) -> ResultT:
        """Wait for the first in-flight action to settle and return its result.

        The freed slot is refilled from the overflow buffer before the result
        is returned. If the action raised, its exception is raised here.

        Raises:
            EmptyQueueError: If nothing is in flight or buffered.
        """
        if not self._in_flight:
            if not self._buffer:
                raise EmptyQueueError("Can't pull from an empty queue")
            self._start(self._next_buffered())

        task_id = await self._settled_ids().get()
        future = self._in_flight.pop(task_id)
        if self._buffer:
            self._start(self._next_buffered())
        return future.result()

    async def drain(self) -> None:
        """Pull until nothing is in flight or buffered, discarding results."""
        while self._in_flight or self._buffer:
            await self.pull()

    def __aiter__(self) -> AsyncIterator[ResultT]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[ResultT]:
        while self._in_flight or self._buffer:
            yield await self.pull()

    def _start(self, item: InputT) -> None:
        task_id = self._next_id
        self._next_id += 1
        future = asyncio.ensure_future(self._action(item))
        self._in_flight[task_id] = future
        future.add_done_callback(functools.partial(self._on_settled, task_id))

    def _on_settled(self, task_id: int, _future: asyncio.Future) -> None:
        self._settled_ids().put_nowait(task_id)

    def _settled_ids(self) -> asyncio.Queue[int]:
        if self._settled is None:
            self._settled = asyncio.Queue()
        return self._settled

    def _next_buffered(self) -> InputT:
        if self.lifo:
            return self._buffer.pop()
        return self._buffer.popleft()
