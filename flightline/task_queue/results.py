"""Completion channel fed by the scheduler on every settlement.

Each subscriber gets its own unbounded asyncio.Queue, so outcomes settled
while a consumer is busy are buffered rather than missed.
"""

import asyncio
from typing import Optional

from .schemas import TaskOutcome

_CLOSED = object()


class OutcomeStream:
    """Async iterator over TaskOutcome values for one subscriber."""

    def __init__(self, channel: "CompletionChannel", queue: asyncio.Queue):
        self._channel = channel
        self._queue = queue
        self._done = False

    def __aiter__(self) -> "OutcomeStream":
        return self

    async def __anext__(self) -> TaskOutcome:
        if self._done:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            self._finish()
            raise StopAsyncIteration
        return item

    def get_nowait(self) -> Optional[TaskOutcome]:
        """Return a buffered outcome without waiting, or None."""
        if self._done or self._queue.empty():
            return None
        item = self._queue.get_nowait()
        if item is _CLOSED:
            self._finish()
            return None
        return item

    async def aclose(self) -> None:
        self._finish()

    def _finish(self) -> None:
        if not self._done:
            self._done = True
            self._channel.unsubscribe(self._queue)


class CompletionChannel:
    """Fan-out of settled task outcomes to every subscriber."""

    def __init__(self) -> None:
        self._queues: list[asyncio.Queue] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self) -> OutcomeStream:
        queue: asyncio.Queue = asyncio.Queue()
        if self._closed:
            queue.put_nowait(_CLOSED)
        else:
            self._queues.append(queue)
        return OutcomeStream(self, queue)

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        if queue in self._queues:
            self._queues.remove(queue)

    def publish(self, outcome: TaskOutcome) -> None:
        for queue in self._queues:
            queue.put_nowait(outcome)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for queue in self._queues:
            queue.put_nowait(_CLOSED)
        self._queues.clear()
