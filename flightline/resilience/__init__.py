"""Resilience primitives: retry, circuit breaking, coalescing, polling and rate limiting."""

from .circuit_breaker import (
    STATE_CHANGED,
    BreakerSnapshot,
    CircuitBreaker,
    CircuitState,
    StateChange,
)
from .keys import hashed_key, request_key
from .polling import PollingBackoff, PollingController, poll
from .rate_limiter import RateLimiter
from .refresh import (
    REFRESH_FAILED,
    REFRESH_STARTED,
    REFRESH_SUCCEEDED,
    RefreshCoordinator,
    ReplayRequest,
)
from .retry import (
    RetryExecutor,
    RetryPolicy,
    RetryResult,
    compute_delay,
    retryable,
    with_retry,
)
from .single_flight import FLIGHT_JOINED, SingleFlight

__all__ = [
    # Circuit breaker
    "CircuitBreaker",
    "CircuitState",
    "BreakerSnapshot",
    "StateChange",
    "STATE_CHANGED",
    # Retry
    "RetryExecutor",
    "RetryPolicy",
    "RetryResult",
    "compute_delay",
    "with_retry",
    "retryable",
    # Coalescing
    "SingleFlight",
    "FLIGHT_JOINED",
    "RefreshCoordinator",
    "ReplayRequest",
    "REFRESH_STARTED",
    "REFRESH_SUCCEEDED",
    "REFRESH_FAILED",
    "request_key",
    "hashed_key",
    # Polling and rate limiting
    "PollingController",
    "PollingBackoff",
    "poll",
    "RateLimiter",
]
