"""Retry async operations with exponential backoff and jitter."""

import asyncio
import inspect
import logging
import random
import time
from dataclasses import dataclass, field, replace
from functools import wraps
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar, Union

from flightline.config import get_config
from flightline.errors import MaxAttemptsExceededError, RetryDeadlineExceededError

logger = logging.getLogger(__name__)

T = TypeVar("T")

RetryPredicate = Callable[[Exception, int], Union[bool, Awaitable[bool]]]
RetryHook = Callable[[Exception, int, float], Any]


@dataclass
class RetryPolicy:
    """How often and how patiently to retry.

    Args:
        max_attempts: Total attempts including the first
        initial_delay: Seconds to wait after the first failure
        max_delay: Upper bound for any single wait
        backoff_factor: Multiplier applied per attempt
        jitter: Spread each wait by +/-10% so many clients don't retry in lockstep
        retry_on: Exception types that may be retried; others propagate at once
        retry_if: Predicate (error, attempt) -> bool, may be async. False stops retrying
        on_retry: Called with (error, attempt, delay) before each wait. Telemetry only
        deadline: Overall budget in seconds; a wait that would cross it is not taken
    """

    max_attempts: int = field(default_factory=lambda: get_config().retry_max_attempts)
    initial_delay: float = field(default_factory=lambda: get_config().retry_initial_delay)
    max_delay: float = field(default_factory=lambda: get_config().retry_max_delay)
    backoff_factor: float = field(default_factory=lambda: get_config().retry_backoff_factor)
    jitter: bool = field(default_factory=lambda: get_config().retry_jitter)
    retry_on: tuple[type[Exception], ...] = (Exception,)
    retry_if: Optional[RetryPredicate] = None
    on_retry: Optional[RetryHook] = None
    deadline: Optional[float] = None

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.initial_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must not be negative")
        if self.backoff_factor <= 0:
            raise ValueError("backoff_factor must be positive")


@dataclass
class RetryResult(Generic[T]):
    """Successful result plus how long it took to get."""

    result: T
    attempts: int
    elapsed: float


def compute_delay(
    policy: RetryPolicy,
    attempt: int,
    rng: Callable[[], float] = random.random,
) -> float:
    """Backoff before the retry that follows failed attempt number ``attempt``.

    min(initial_delay * backoff_factor ** (attempt - 1), max_delay), then
    +/-10% if jitter is on.
    """
    base = min(policy.initial_delay * policy.backoff_factor ** (attempt - 1), policy.max_delay)
    if not policy.jitter:
        return base
    spread = base * 0.1
    return base - spread + rng() * spread * 2


class RetryExecutor:
    """Runs an operation until it succeeds or the policy gives up.

    Sleep, clock and random source are injectable so tests can run without
    real waits.
    """

    def __init__(
        self,
        policy: Optional[RetryPolicy] = None,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        rng: Callable[[], float] = random.random,
    ):
        self.policy = policy or RetryPolicy()
        self._sleep = sleep
        self._clock = clock
        self._rng = rng

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        policy: Optional[RetryPolicy] = None,
    ) -> RetryResult[T]:
        """Execute operation with retries.

        Raises:
            MaxAttemptsExceededError: every attempt failed
            RetryDeadlineExceededError: the next wait would cross the deadline
            Exception: the operation's own error, when it isn't retryable
                (not in retry_on, or rejected by retry_if). Errors rejected by
                retry_if carry attempts and elapsed attributes
        """
        policy = policy or self.policy
        started = self._clock()
        attempt = 0

        while True:
            attempt += 1
            try:
                result = await operation()
            except policy.retry_on as error:
                elapsed = self._clock() - started

                if attempt >= policy.max_attempts:
                    logger.warning(f"Giving up after {attempt} attempts ({elapsed:.2f}s): {error!r}")
                    raise MaxAttemptsExceededError(error, attempt, elapsed) from error

                if not await self._should_retry(policy, error, attempt):
                    error.attempts = attempt
                    error.elapsed = elapsed
                    raise

                delay = compute_delay(policy, attempt, self._rng)
                if policy.deadline is not None and elapsed + delay > policy.deadline:
                    logger.warning(
                        f"Retry deadline of {policy.deadline}s reached after {attempt} attempts"
                    )
                    raise RetryDeadlineExceededError(error, attempt, elapsed) from error

                logger.debug(f"Attempt {attempt} failed ({error!r}); retrying in {delay:.3f}s")
                self._notify(policy, error, attempt, delay)
                await self._sleep(delay)
            else:
                return RetryResult(result=result, attempts=attempt, elapsed=self._clock() - started)

    async def _should_retry(self, policy: RetryPolicy, error: Exception, attempt: int) -> bool:
        if policy.retry_if is None:
            return True
        try:
            verdict = policy.retry_if(error, attempt)
            if inspect.isawaitable(verdict):
                verdict = await verdict
        except Exception:
            logger.exception("Retry predicate raised; treating error as not retryable")
            return False
        return bool(verdict)

    def _notify(self, policy: RetryPolicy, error: Exception, attempt: int, delay: float) -> None:
        if policy.on_retry is None:
            return
        try:
            policy.on_retry(error, attempt, delay)
        except Exception as e:
            logger.warning(f"on_retry hook raised; ignoring: {e!r}")


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: Optional[RetryPolicy] = None,
    **overrides: Any,
) -> RetryResult[T]:
    """Execute async function with exponential backoff retry.

    Args:
        operation: No-argument coroutine function
        policy: Base policy (default: from config)
        **overrides: RetryPolicy fields to override, e.g. max_attempts=5

    Returns:
        RetryResult with the value, attempt count and elapsed seconds
    """
    base = policy or RetryPolicy()
    if overrides:
        base = replace(base, **overrides)
    return await RetryExecutor(base).run(operation)


def retryable(policy: Optional[RetryPolicy] = None, **overrides: Any):
    """Decorator retrying an async function; the wrapper returns the bare value.

    Usage:
        @retryable(max_attempts=5, retry_on=(httpx.TransportError,))
        async def fetch_profile(user_id): ...
    """

    def decorator(fn: Callable[..., Awaitable[T]]):
        @wraps(fn)
        async def wrapper(*args, **kwargs) -> T:
            outcome = await with_retry(lambda: fn(*args, **kwargs), policy, **overrides)
            return outcome.result

        return wrapper

    return decorator
