"""Exception classes for the scheduling and resilience core."""


class FlightlineError(Exception):
    """Base flightline exception."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


# Task queue


class DuplicateTaskError(FlightlineError):
    """A task with the same id is already pending or running."""

    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Task with ID {task_id} is already in the queue or running")


class CancellationError(FlightlineError):
    """A pending task was cancelled, cleared, or discarded before it ran."""

    def __init__(self, task_id: str, reason: str = "cancelled"):
        self.task_id = task_id
        self.reason = reason
        super().__init__(f"Task {task_id} {reason} before it started")


class DependencyCycleError(FlightlineError):
    """Submitting the task would close a dependency cycle."""

    def __init__(self, task_id: str, cycle: list[str]):
        self.task_id = task_id
        self.cycle = cycle
        super().__init__(f"Task {task_id} would create a dependency cycle: {' -> '.join(cycle)}")


class DependencyFailedError(FlightlineError):
    """A dependency failed and the scheduler propagates dependency failures."""

    def __init__(self, task_id: str, dependency_id: str):
        self.task_id = task_id
        self.dependency_id = dependency_id
        super().__init__(f"Task {task_id} skipped: dependency {dependency_id} failed")


# Retry


class MaxAttemptsExceededError(FlightlineError):
    """Retries exhausted. Carries the last underlying error."""

    def __init__(self, last_error: BaseException, attempts: int, elapsed: float):
        self.last_error = last_error
        self.attempts = attempts
        self.elapsed = elapsed
        super().__init__(
            f"Operation failed after {attempts} attempts in {elapsed:.3f}s: {last_error}"
        )


class RetryDeadlineExceededError(MaxAttemptsExceededError):
    """The overall retry deadline would be crossed by the next wait."""

    pass


# Circuit breaker


class CircuitOpenError(FlightlineError):
    """Circuit is open and the call was rejected without running."""

    def __init__(self, name: str, retry_after: float):
        self.name = name
        self.retry_after = retry_after
        super().__init__(f"Circuit {name} is OPEN. Retry in {retry_after:.1f}s")


# Coalescing


class CoalescedFailureError(FlightlineError):
    """The shared operation a waiter was attached to failed.

    The original failure is available as ``cause`` (and ``__cause__``).
    """

    def __init__(self, cause: BaseException, key: str | None = None):
        self.cause = cause
        self.key = key
        label = f" for {key}" if key else ""
        super().__init__(f"Shared operation{label} failed: {cause}")


# Polling and rate limiting


class PollingTimeoutError(FlightlineError):
    """Polling did not reach its stop condition before the timeout."""

    def __init__(self, timeout: float, attempts: int):
        self.timeout = timeout
        self.attempts = attempts
        super().__init__(f"Polling timeout reached after {timeout}s ({attempts} attempts)")


class PollingAttemptsExhaustedError(FlightlineError):
    """Polling hit its maximum attempt count."""

    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(f"Max polling attempts reached ({attempts})")


class RateLimitExceededError(FlightlineError):
    """No token available and the caller asked not to wait."""

    def __init__(self, retry_after: float):
        self.retry_after = retry_after
        super().__init__(f"Rate limit exceeded. Retry in {retry_after:.3f}s")
