"""
Schemas for the task queue.

- Task: in-memory record holding the operation and its future
- TaskMetadata / PersistedQueue: pydantic models for what is persisted
- TaskOutcome: settled result delivered on the completion channel
"""

from .enums import DependencyFailurePolicy, QueueEvent, TaskState
from .tasks import Operation, PersistedQueue, Task, TaskCounts, TaskMetadata, TaskOutcome

__all__ = [
    # Enums
    "TaskState",
    "DependencyFailurePolicy",
    "QueueEvent",
    # Records
    "Operation",
    "Task",
    "TaskOutcome",
    "TaskCounts",
    # Persisted
    "TaskMetadata",
    "PersistedQueue",
]
