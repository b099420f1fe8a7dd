"""
Task queue for deferred asynchronous operations.

Provides:
- Bounded concurrency with priority ordering and submission-order tie-break
- Dependencies between tasks, with priority inheritance and cycle rejection
- Pause/resume, cancel, clear, join, and a completion channel
- Best-effort persistence of pending-task metadata
- Connectivity-driven pause/resume
"""

from .connectivity import ConnectivityMonitor, HttpConnectivityMonitor, ManualConnectivity
from .persistence import QueuePersistence
from .priority import compute_effective_priorities, find_cycle
from .results import CompletionChannel, OutcomeStream
from .scheduler import TaskScheduler
from .schemas import (
    DependencyFailurePolicy,
    PersistedQueue,
    QueueEvent,
    Task,
    TaskCounts,
    TaskMetadata,
    TaskOutcome,
    TaskState,
)

__all__ = [
    # Schemas
    "TaskState",
    "DependencyFailurePolicy",
    "QueueEvent",
    "Task",
    "TaskOutcome",
    "TaskCounts",
    "TaskMetadata",
    "PersistedQueue",
    # Scheduling
    "TaskScheduler",
    "QueuePersistence",
    "CompletionChannel",
    "OutcomeStream",
    "compute_effective_priorities",
    "find_cycle",
    # Connectivity
    "ConnectivityMonitor",
    "ManualConnectivity",
    "HttpConnectivityMonitor",
]
