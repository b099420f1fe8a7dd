"""Tests for the retry executor and its helpers."""

import pytest

from flightline import (
    MaxAttemptsExceededError,
    RetryDeadlineExceededError,
    RetryExecutor,
    RetryPolicy,
    retryable,
    with_retry,
)
from flightline.resilience import compute_delay


class RecordingSleep:
    """Stands in for asyncio.sleep, advancing a fake clock instead of waiting."""

    def __init__(self, clock=None):
        self.delays: list[float] = []
        self.clock = clock

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        if self.clock is not None:
            self.clock.advance(delay)


class FailNTimes:
    def __init__(self, failures: int, error: type[Exception] = ConnectionError):
        self.failures = failures
        self.error = error
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error(f"failure {self.calls}")
        return "payload"


def policy(**overrides) -> RetryPolicy:
    values = dict(max_attempts=4, initial_delay=0.1, max_delay=30.0, backoff_factor=2.0, jitter=False)
    values.update(overrides)
    return RetryPolicy(**values)


class TestComputeDelay:
    def test_exponential_sequence(self):
        p = policy()
        assert [compute_delay(p, attempt) for attempt in (1, 2, 3, 4)] == pytest.approx(
            [0.1, 0.2, 0.4, 0.8]
        )

    def test_capped_at_max_delay(self):
        p = policy(max_delay=0.3)
        assert compute_delay(p, 5) == pytest.approx(0.3)

    def test_jitter_bounds(self):
        p = policy(jitter=True)
        assert compute_delay(p, 1, rng=lambda: 0.0) == pytest.approx(0.09)
        assert compute_delay(p, 1, rng=lambda: 1.0) == pytest.approx(0.11)
        assert compute_delay(p, 1, rng=lambda: 0.5) == pytest.approx(0.1)


class TestRetryExecutor:
    async def test_succeeds_after_failures(self, clock):
        sleep = RecordingSleep(clock)
        op = FailNTimes(2)

        outcome = await RetryExecutor(policy(), sleep=sleep, clock=clock).run(op)

        assert outcome.result == "payload"
        assert outcome.attempts == 3
        assert outcome.elapsed == pytest.approx(0.3)
        assert sleep.delays == pytest.approx([0.1, 0.2])

    async def test_exhaustion_carries_last_error(self, clock):
        sleep = RecordingSleep(clock)
        op = FailNTimes(10)

        with pytest.raises(MaxAttemptsExceededError) as exc_info:
            await RetryExecutor(policy(), sleep=sleep, clock=clock).run(op)

        error = exc_info.value
        assert op.calls == 4
        assert error.attempts == 4
        assert error.elapsed == pytest.approx(0.7)
        assert str(error.last_error) == "failure 4"
        assert error.__cause__ is error.last_error
        assert sleep.delays == pytest.approx([0.1, 0.2, 0.4])

    async def test_predicate_false_propagates_original(self):
        sleep = RecordingSleep()
        op = FailNTimes(5, error=PermissionError)
        p = policy(retry_if=lambda error, attempt: not isinstance(error, PermissionError))

        with pytest.raises(PermissionError):
            await RetryExecutor(p, sleep=sleep).run(op)
        assert op.calls == 1
        assert sleep.delays == []

    async def test_async_predicate_receives_attempt(self, clock):
        attempts_seen = []

        async def retry_if(error, attempt):
            attempts_seen.append(attempt)
            return attempt < 2

        op = FailNTimes(5)
        executor = RetryExecutor(policy(retry_if=retry_if), sleep=RecordingSleep(clock), clock=clock)
        with pytest.raises(ConnectionError) as exc_info:
            await executor.run(op)
        assert attempts_seen == [1, 2]
        assert op.calls == 2
        assert exc_info.value.attempts == 2
        assert exc_info.value.elapsed == pytest.approx(0.1)

    async def test_raising_predicate_stops_retrying(self):
        def retry_if(error, attempt):
            raise RuntimeError("predicate bug")

        op = FailNTimes(5)
        with pytest.raises(ConnectionError):
            await RetryExecutor(policy(retry_if=retry_if), sleep=RecordingSleep()).run(op)
        assert op.calls == 1

    async def test_unlisted_exception_not_retried(self):
        op = FailNTimes(5, error=KeyError)
        p = policy(retry_on=(ConnectionError,))
        with pytest.raises(KeyError):
            await RetryExecutor(p, sleep=RecordingSleep()).run(op)
        assert op.calls == 1

    async def test_on_retry_called_before_each_wait(self):
        calls = []
        p = policy(on_retry=lambda error, attempt, delay: calls.append((attempt, delay)))

        await RetryExecutor(p, sleep=RecordingSleep()).run(FailNTimes(2))
        assert [attempt for attempt, _ in calls] == [1, 2]
        assert [delay for _, delay in calls] == pytest.approx([0.1, 0.2])

    async def test_raising_on_retry_is_ignored(self):
        def on_retry(error, attempt, delay):
            raise RuntimeError("telemetry down")

        outcome = await RetryExecutor(policy(on_retry=on_retry), sleep=RecordingSleep()).run(
            FailNTimes(1)
        )
        assert outcome.result == "payload"

    async def test_deadline_stops_before_crossing(self, clock):
        sleep = RecordingSleep(clock)
        p = policy(max_attempts=10, deadline=0.5)

        with pytest.raises(RetryDeadlineExceededError) as exc_info:
            await RetryExecutor(p, sleep=sleep, clock=clock).run(FailNTimes(10))

        # 0.1 + 0.2 = 0.3 elapsed; the next 0.4 wait would cross 0.5
        assert sleep.delays == pytest.approx([0.1, 0.2])
        assert exc_info.value.attempts == 3
        assert isinstance(exc_info.value, MaxAttemptsExceededError)


class TestPolicy:
    def test_defaults_from_config(self, clean_config):
        clean_config.setenv("FLIGHTLINE_RETRY_MAX_ATTEMPTS", "6")
        clean_config.setenv("FLIGHTLINE_RETRY_JITTER", "false")

        p = RetryPolicy()
        assert p.max_attempts == 6
        assert p.jitter is False
        assert p.initial_delay == pytest.approx(0.1)
        assert p.backoff_factor == pytest.approx(2.0)

    def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError):
            policy(max_attempts=0)


class TestHelpers:
    async def test_with_retry_overrides(self):
        op = FailNTimes(1)
        outcome = await with_retry(op, policy(), initial_delay=0.0)
        assert outcome.result == "payload"
        assert outcome.attempts == 2

    async def test_retryable_decorator_returns_value(self):
        calls = []

        @retryable(policy(initial_delay=0.0))
        async def fetch(user_id):
            calls.append(user_id)
            if len(calls) < 3:
                raise ConnectionError("flaky")
            return {"id": user_id}

        assert await fetch(7) == {"id": 7}
        assert calls == [7, 7, 7]
        assert fetch.__name__ == "fetch"
