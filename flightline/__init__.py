"""
Flightline: scheduling and resilience core for async clients.

- TaskScheduler: bounded-concurrency priority queue with dependencies
- CircuitBreaker, RetryExecutor: failure handling around single calls
- SingleFlight, RefreshCoordinator: coalescing of concurrent work
"""

from .errors import (
    CancellationError,
    CircuitOpenError,
    CoalescedFailureError,
    DependencyCycleError,
    DependencyFailedError,
    DuplicateTaskError,
    FlightlineError,
    MaxAttemptsExceededError,
    PollingAttemptsExhaustedError,
    PollingTimeoutError,
    RateLimitExceededError,
    RetryDeadlineExceededError,
)
from .events import EventEmitter
from .resilience import (
    CircuitBreaker,
    CircuitState,
    PollingBackoff,
    PollingController,
    RateLimiter,
    RefreshCoordinator,
    ReplayRequest,
    RetryExecutor,
    RetryPolicy,
    RetryResult,
    SingleFlight,
    hashed_key,
    poll,
    request_key,
    retryable,
    with_retry,
)
from .stores import KeyValueStore, MemoryStore
from .task_queue import (
    ConnectivityMonitor,
    DependencyFailurePolicy,
    HttpConnectivityMonitor,
    ManualConnectivity,
    QueueEvent,
    TaskMetadata,
    TaskOutcome,
    TaskScheduler,
    TaskState,
)

__all__ = [
    # Scheduling
    "TaskScheduler",
    "TaskState",
    "TaskMetadata",
    "TaskOutcome",
    "QueueEvent",
    "DependencyFailurePolicy",
    "ConnectivityMonitor",
    "ManualConnectivity",
    "HttpConnectivityMonitor",
    # Resilience
    "CircuitBreaker",
    "CircuitState",
    "RetryExecutor",
    "RetryPolicy",
    "RetryResult",
    "with_retry",
    "retryable",
    "SingleFlight",
    "RefreshCoordinator",
    "ReplayRequest",
    "request_key",
    "hashed_key",
    "PollingController",
    "PollingBackoff",
    "poll",
    "RateLimiter",
    # Plumbing
    "EventEmitter",
    "KeyValueStore",
    "MemoryStore",
    # Errors
    "FlightlineError",
    "DuplicateTaskError",
    "CancellationError",
    "DependencyCycleError",
    "DependencyFailedError",
    "MaxAttemptsExceededError",
    "RetryDeadlineExceededError",
    "CircuitOpenError",
    "CoalescedFailureError",
    "PollingTimeoutError",
    "PollingAttemptsExhaustedError",
    "RateLimitExceededError",
]
