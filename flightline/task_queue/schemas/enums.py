"""Enum types and event names for the task queue."""

from enum import Enum


class TaskState(Enum):
    """Task lifecycle states."""

    PENDING = "pending"  # Queued, waiting for capacity or dependencies
    ACTIVE = "active"  # Operation running
    COMPLETED = "completed"  # Operation returned
    FAILED = "failed"  # Operation raised, or a dependency failed (PROPAGATE)
    CANCELLED = "cancelled"  # Removed before it ran


class DependencyFailurePolicy(Enum):
    """What happens to pending dependents when a task fails."""

    UNBLOCK = "unblock"  # Failed id counts as completed; dependents become eligible
    PROPAGATE = "propagate"  # Dependents fail with DependencyFailedError


class QueueEvent:
    """Notification names emitted by TaskScheduler."""

    TASK_ADMITTED = "task:admitted"
    TASK_STARTED = "task:started"
    TASK_COMPLETED = "task:completed"
    TASK_FAILED = "task:failed"
    TASK_CANCELLED = "task:cancelled"
    QUEUE_PAUSED = "queue:paused"
    QUEUE_RESUMED = "queue:resumed"
    QUEUE_CLEARED = "queue:cleared"
    QUEUE_DRAINED = "queue:drained"
    QUEUE_RESTORED = "queue:restored"
