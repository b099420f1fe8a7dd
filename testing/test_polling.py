"""Tests for the polling helper and the token bucket rate limiter."""

import asyncio

import pytest

from flightline import (
    PollingBackoff,
    PollingController,
    RateLimiter,
    RateLimitExceededError,
    poll,
)
from flightline.errors import PollingAttemptsExhaustedError, PollingTimeoutError


class JobStatus:
    """Reports 'running' until the configured attempt, then 'done'."""

    def __init__(self, done_on: int, fail_on: tuple[int, ...] = ()):
        self.done_on = done_on
        self.fail_on = fail_on
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls in self.fail_on:
            raise ConnectionError("status endpoint hiccup")
        return {"status": "done" if self.calls >= self.done_on else "running"}


class TestPollingController:
    async def test_stops_when_condition_met(self):
        task = JobStatus(done_on=3)
        controller = PollingController(
            task, interval=0.001, stop_condition=lambda job: job["status"] == "done"
        )
        result = await controller.start()

        assert result == {"status": "done"}
        assert task.calls == 3
        assert not controller.running

    async def test_task_errors_are_logged_and_polling_continues(self):
        task = JobStatus(done_on=3, fail_on=(1, 2))
        controller = PollingController(
            task, interval=0.001, stop_condition=lambda job: job["status"] == "done"
        )
        assert await controller.start() == {"status": "done"}
        assert task.calls == 3

    async def test_max_attempts(self):
        task = JobStatus(done_on=100)
        controller = PollingController(
            task,
            interval=0.001,
            max_attempts=3,
            stop_condition=lambda job: job["status"] == "done",
        )
        with pytest.raises(PollingAttemptsExhaustedError) as exc_info:
            await controller.start()
        assert exc_info.value.attempts == 3
        assert task.calls == 3

    async def test_timeout(self, clock):
        task = JobStatus(done_on=100)

        async def slow_task():
            clock.advance(2)
            return await task()

        controller = PollingController(slow_task, interval=0.001, timeout=5, clock=clock)
        with pytest.raises(PollingTimeoutError) as exc_info:
            await controller.start()
        assert exc_info.value.attempts == 3

    async def test_backoff_grows_interval(self):
        task = JobStatus(done_on=4)
        controller = PollingController(
            task,
            interval=0.001,
            stop_condition=lambda job: job["status"] == "done",
            backoff=PollingBackoff(factor=2.0, max_interval=0.003),
        )
        await controller.start()
        assert controller.current_interval == pytest.approx(0.003)

    def test_backoff_true_uses_defaults(self):
        controller = PollingController(JobStatus(1), interval=1.0, backoff=True)
        assert controller.backoff == PollingBackoff(factor=1.5, max_interval=30.0)

    async def test_stop_interrupts_sleep(self):
        task = JobStatus(done_on=100)
        controller = poll(task, interval=60.0)
        while task.calls == 0:
            await asyncio.sleep(0)

        controller.stop()
        result = await asyncio.wait_for(controller.wait(), timeout=1.0)
        assert result is None
        assert task.calls == 1

    async def test_wait_requires_background_start(self):
        controller = PollingController(JobStatus(1), interval=0.001)
        with pytest.raises(RuntimeError):
            await controller.wait()


class TestRateLimiter:
    def test_burst_then_refill(self, clock):
        limiter = RateLimiter(limit=2, interval=1.0, clock=clock)

        assert limiter.try_acquire()
        assert limiter.try_acquire()
        assert not limiter.try_acquire()
        assert limiter.time_until_available() == pytest.approx(0.5)

        clock.advance(0.5)
        assert limiter.try_acquire()
        assert not limiter.try_acquire()

    def test_tokens_capped_at_limit(self, clock):
        limiter = RateLimiter(limit=3, interval=1.0, clock=clock)
        clock.advance(100)
        assert limiter.tokens == pytest.approx(3)

    def test_reset(self, clock):
        limiter = RateLimiter(limit=1, interval=10.0, clock=clock)
        assert limiter.try_acquire()
        limiter.reset()
        assert limiter.try_acquire()

    async def test_acquire_without_wait_raises(self, clock):
        limiter = RateLimiter(limit=1, interval=4.0, clock=clock)
        await limiter.acquire(wait=False)

        with pytest.raises(RateLimitExceededError) as exc_info:
            await limiter.acquire(wait=False)
        assert exc_info.value.retry_after == pytest.approx(4.0)

    async def test_acquire_waits_for_refill(self):
        limiter = RateLimiter(limit=1, interval=0.02)
        await limiter.acquire()
        loop = asyncio.get_running_loop()
        started = loop.time()
        await limiter.acquire()
        assert loop.time() - started >= 0.01

    def test_invalid_arguments(self):
        with pytest.raises(ValueError):
            RateLimiter(limit=0, interval=1.0)
        with pytest.raises(ValueError):
            RateLimiter(limit=1, interval=0)
