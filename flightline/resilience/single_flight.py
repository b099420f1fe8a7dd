"""Deduplication of identical concurrent operations."""

import asyncio
import logging
from typing import Any, Awaitable, Callable, TypeVar

from flightline.events import EventEmitter

logger = logging.getLogger(__name__)

T = TypeVar("T")

FLIGHT_JOINED = "flight:joined"


class SingleFlight:
    """Runs at most one operation per key at a time.

    Callers that arrive while an operation for their key is in flight attach
    to its outcome instead of starting another. The entry is dropped as soon
    as the operation settles, so results are never reused across calls.

    Usage:
        flights = SingleFlight()
        key = request_key("GET", "/users", {"page": 2})
        users = await flights.do(key, lambda: client.get("/users", params={"page": 2}))
    """

    def __init__(self) -> None:
        self._in_flight: dict[str, asyncio.Task] = {}
        self.events = EventEmitter()

    @property
    def in_flight_count(self) -> int:
        return len(self._in_flight)

    def is_in_flight(self, key: str) -> bool:
        return key in self._in_flight

    async def do(self, key: str, operation: Callable[[], Awaitable[T]]) -> T:
        """Run operation, or join the one already running for key.

        Every attached caller receives the same result, or the same exception.
        Cancelling one caller does not cancel the shared operation.
        """
        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.get_running_loop().create_task(self._run(key, operation))
            task.add_done_callback(_consume_exception)
            self._in_flight[key] = task
            logger.debug(f"Started flight for {key}")
        else:
            logger.debug(f"Joined in-flight operation for {key}")
            self.events.emit(FLIGHT_JOINED, {"key": key})
        return await asyncio.shield(task)

    def forget(self, key: str) -> None:
        """Detach key so the next call starts fresh; current waiters are unaffected."""
        self._in_flight.pop(key, None)

    async def _run(self, key: str, operation: Callable[[], Awaitable[T]]) -> T:
        try:
            return await operation()
        finally:
            # Only drop our own entry; forget() may have let a newer flight in
            if self._in_flight.get(key) is asyncio.current_task():
                del self._in_flight[key]


def _consume_exception(task: "asyncio.Task[Any]") -> None:
    # Mark the exception retrieved even if every caller was cancelled
    if not task.cancelled():
        task.exception()
