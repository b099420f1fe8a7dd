"""Repeatedly run a task until a condition holds, a limit is hit, or it is stopped.

Usage:
    controller = poll(
        lambda: client.get_job(job_id),
        interval=2.0,
        stop_condition=lambda job: job["status"] in ("done", "failed"),
        backoff=PollingBackoff(factor=1.5, max_interval=20.0),
        timeout=300,
    )
    job = await controller.wait()
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar, Union

from flightline.errors import PollingAttemptsExhaustedError, PollingTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class PollingBackoff:
    """Multiplicative growth of the polling interval."""

    factor: float = 1.5
    max_interval: float = 30.0


class PollingController(Generic[T]):
    """Drives one polling loop.

    Task errors are logged and polling continues at the current interval.
    Backoff only grows the interval after successful polls.

    Args:
        task: No-argument coroutine function to poll
        interval: Seconds between polls
        timeout: Overall budget in seconds
        max_attempts: Maximum number of task invocations
        stop_condition: Predicate on a task result; True ends polling with that result
        backoff: True for PollingBackoff defaults, or a PollingBackoff
        clock: Monotonic time source used for the timeout
    """

    def __init__(
        self,
        task: Callable[[], Awaitable[T]],
        interval: float,
        *,
        timeout: Optional[float] = None,
        max_attempts: Optional[int] = None,
        stop_condition: Optional[Callable[[T], bool]] = None,
        backoff: Union[bool, PollingBackoff] = False,
        clock: Callable[[], float] = time.monotonic,
    ):
        if interval < 0:
            raise ValueError("interval must not be negative")
        self.task = task
        self.interval = interval
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.stop_condition = stop_condition
        if backoff is True:
            backoff = PollingBackoff()
        self.backoff: Optional[PollingBackoff] = backoff or None
        self._clock = clock

        self.attempts = 0
        self.current_interval = interval
        self._running = False
        self._stop_event = asyncio.Event()
        self._background: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> Optional[T]:
        """Poll until the stop condition holds (returns that result) or stop() is called (returns None).

        Raises:
            PollingAttemptsExhaustedError: max_attempts invocations without meeting the condition
            PollingTimeoutError: timeout elapsed without meeting the condition
        """
        self._running = True
        self._stop_event.clear()
        self.attempts = 0
        self.current_interval = self.interval
        started = self._clock()

        try:
            while self._running:
                if self.max_attempts is not None and self.attempts >= self.max_attempts:
                    raise PollingAttemptsExhaustedError(self.attempts)
                if self.timeout is not None and self._clock() - started > self.timeout:
                    raise PollingTimeoutError(self.timeout, self.attempts)

                self.attempts += 1
                try:
                    result = await self.task()
                except Exception as e:
                    logger.warning(f"Polling task error on attempt {self.attempts}: {e!r}")
                    await self._sleep(self.current_interval)
                    continue

                if self.stop_condition is not None and self._condition_met(result):
                    logger.debug(f"Polling stop condition met after {self.attempts} attempts")
                    return result

                if not self._running:
                    break

                await self._sleep(self.current_interval)
                if self.backoff is not None:
                    self.current_interval = min(
                        self.current_interval * self.backoff.factor, self.backoff.max_interval
                    )
            return None
        finally:
            self._running = False

    def stop(self) -> None:
        """Stop polling; a sleeping loop wakes immediately."""
        self._running = False
        self._stop_event.set()

    def start_background(self) -> "asyncio.Task[Optional[T]]":
        """Run start() as a task on the running loop."""
        if self._background is None or self._background.done():
            self._background = asyncio.get_running_loop().create_task(self.start())
        return self._background

    async def wait(self) -> Optional[T]:
        """Await the background loop started by start_background() or poll()."""
        if self._background is None:
            raise RuntimeError("Polling was not started in the background")
        return await self._background

    def _condition_met(self, result: Any) -> bool:
        try:
            return bool(self.stop_condition(result))
        except Exception:
            logger.exception("Polling stop_condition raised; continuing")
            return False

    async def _sleep(self, delay: float) -> None:
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass


def poll(task: Callable[[], Awaitable[T]], interval: float, **options: Any) -> PollingController[T]:
    """Start polling in the background and return its controller.

    Await ``controller.wait()`` for the result; call ``controller.stop()`` to cancel.
    """
    controller = PollingController(task, interval, **options)
    controller.start_background()
    return controller
