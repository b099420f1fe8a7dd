"""Circuit breaker state machine.

CLOSED counts consecutive failures and opens at the threshold. OPEN rejects
calls without running them until reset_timeout has elapsed, then lets the next
call through as HALF_OPEN. HALF_OPEN admits at most success_threshold trial
calls at once, closes after enough successes and reopens on any failure.
"""

import inspect
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, TypeVar

from typing_extensions import TypedDict

from flightline.config import get_config
from flightline.errors import CircuitOpenError
from flightline.events import EventEmitter

logger = logging.getLogger(__name__)

T = TypeVar("T")

STATE_CHANGED = "circuit:state_changed"


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class StateChange(TypedDict):
    """Payload of the circuit:state_changed event."""

    name: str
    previous: CircuitState
    state: CircuitState


@dataclass(frozen=True)
class BreakerSnapshot:
    """Read-only view of a breaker's counters."""

    name: str
    state: CircuitState
    consecutive_failures: int
    half_open_successes: int
    next_attempt_at: Optional[float]


Fallback = Callable[[BaseException], Any]


class CircuitBreaker:
    """Wraps calls to one dependency and fails fast while it is unhealthy.

    Usage:
        breaker = CircuitBreaker("billing-api", failure_threshold=3, reset_timeout=30)
        invoice = await breaker.execute(lambda: client.get_invoice(invoice_id))

    Args:
        name: Label used in logs, events and errors
        failure_threshold: Consecutive failures that open the circuit
        reset_timeout: Seconds to stay OPEN before probing
        success_threshold: HALF_OPEN successes needed to close
        fallback: fallback(error) -> value, sync or async. When set, rejected
            and failed calls return its value instead of raising
        on_state_change: Called with the new CircuitState on each transition
        clock: Monotonic time source in seconds
    """

    def __init__(
        self,
        name: str = "default",
        failure_threshold: Optional[int] = None,
        reset_timeout: Optional[float] = None,
        success_threshold: Optional[int] = None,
        fallback: Optional[Fallback] = None,
        on_state_change: Optional[Callable[[CircuitState], Any]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        config = get_config()
        self.name = name
        self.failure_threshold = failure_threshold or config.breaker_failure_threshold
        self.reset_timeout = (
            reset_timeout if reset_timeout is not None else config.breaker_reset_timeout
        )
        self.success_threshold = success_threshold or config.breaker_success_threshold
        self.fallback = fallback
        self.on_state_change = on_state_change
        self.events = EventEmitter()
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._half_open_successes = 0
        self._next_attempt_at: Optional[float] = None
        self._trials_in_flight = 0

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    @property
    def half_open_successes(self) -> int:
        return self._half_open_successes

    @property
    def next_attempt_at(self) -> Optional[float]:
        return self._next_attempt_at

    def snapshot(self) -> BreakerSnapshot:
        return BreakerSnapshot(
            name=self.name,
            state=self._state,
            consecutive_failures=self._consecutive_failures,
            half_open_successes=self._half_open_successes,
            next_attempt_at=self._next_attempt_at,
        )

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run operation through the breaker.

        Raises:
            CircuitOpenError: circuit is OPEN and no fallback is configured
            Exception: the operation's own error, when no fallback is configured
        """
        if self._state is CircuitState.OPEN:
            now = self._clock()
            if now < self._next_attempt_at:
                error = CircuitOpenError(self.name, self._next_attempt_at - now)
                logger.debug(f"Circuit {self.name} rejected call; retry in {error.retry_after:.2f}s")
                return await self._fallback_or_raise(error)
            self._transition(CircuitState.HALF_OPEN)

        trial = self._state is CircuitState.HALF_OPEN
        if trial:
            if self._trials_in_flight >= self.success_threshold:
                error = CircuitOpenError(self.name, 0.0)
                logger.debug(f"Circuit {self.name} rejected call; trial calls already in flight")
                return await self._fallback_or_raise(error)
            self._trials_in_flight += 1

        try:
            result = await operation()
        except Exception as e:
            self._record_failure()
            return await self._fallback_or_raise(e)
        finally:
            if trial:
                self._trials_in_flight -= 1

        self._record_success()
        return result

    def reset(self) -> None:
        """Force the circuit CLOSED and clear counters."""
        self._transition(CircuitState.CLOSED)

    def _record_success(self) -> None:
        if self._state is CircuitState.HALF_OPEN:
            self._half_open_successes += 1
            if self._half_open_successes >= self.success_threshold:
                self._transition(CircuitState.CLOSED)
        else:
            self._consecutive_failures = 0

    def _record_failure(self) -> None:
        if self._state is CircuitState.CLOSED:
            self._consecutive_failures += 1
            if self._consecutive_failures >= self.failure_threshold:
                self._transition(CircuitState.OPEN)
        elif self._state is CircuitState.HALF_OPEN:
            self._transition(CircuitState.OPEN)

    def _transition(self, new_state: CircuitState) -> None:
        previous = self._state
        self._state = new_state

        # Counters start fresh in every state
        self._consecutive_failures = 0
        self._half_open_successes = 0
        if new_state is CircuitState.OPEN:
            self._next_attempt_at = self._clock() + self.reset_timeout
        else:
            self._next_attempt_at = None

        if previous is new_state:
            return

        logger.info(f"Circuit {self.name}: {previous.value} -> {new_state.value}")
        if self.on_state_change is not None:
            try:
                self.on_state_change(new_state)
            except Exception:
                logger.exception(f"on_state_change hook for circuit {self.name} raised")
        self.events.emit(
            STATE_CHANGED,
            StateChange(name=self.name, previous=previous, state=new_state),
        )

    async def _fallback_or_raise(self, error: Exception) -> Any:
        if self.fallback is None:
            raise error
        try:
            value = self.fallback(error)
            if inspect.isawaitable(value):
                value = await value
        except Exception:
            logger.exception(f"Fallback for circuit {self.name} raised")
            raise error
        return value
