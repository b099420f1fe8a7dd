"""Task records for the scheduler.

Task is the in-memory record holding the operation and its future. Only
TaskMetadata (id, priority, dependencies) ever leaves the process.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from pydantic import BaseModel, Field

from .enums import TaskState

Operation = Callable[[], Awaitable[Any]]


@dataclass(eq=False)
class Task:
    """One deferred operation."""

    id: str
    operation: Operation
    future: asyncio.Future
    priority: int = 0
    dependencies: frozenset[str] = frozenset()
    sequence: int = 0  # Submission order, used as tie-break
    state: TaskState = TaskState.PENDING

    def metadata(self) -> "TaskMetadata":
        return TaskMetadata(
            id=self.id,
            priority=self.priority,
            dependencies=sorted(self.dependencies),
        )


@dataclass
class TaskOutcome:
    """Settled result of a task, as delivered on the completion channel."""

    task_id: str
    result: Any = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class TaskMetadata(BaseModel):
    """Serializable description of a pending task."""

    id: str
    priority: int = 0
    dependencies: list[str] = Field(default_factory=list)


class PersistedQueue(BaseModel):
    """Record written to the key-value store under the queue key."""

    version: str = "1.0"
    tasks: list[TaskMetadata] = Field(default_factory=list)
    last_updated: str  # ISO datetime
    expires_at: str  # ISO datetime; expired snapshots are not restored


@dataclass
class TaskCounts:
    """Point-in-time queue counters."""

    pending: int = 0
    active: int = 0
    completed: int = 0
    failed: int = 0
    paused: bool = False
