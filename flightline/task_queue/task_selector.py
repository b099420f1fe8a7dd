"""Selects the next runnable task by effective priority."""

from typing import Callable, Mapping, Optional

from .priority import compute_effective_priorities
from .schemas import Task


class TaskSelector:
    """Picks the pending task to dispatch next.

    Effective priorities are cached and recomputed only after invalidate()
    is called, i.e. when the pending set changes shape.
    """

    def __init__(self) -> None:
        self._effective: dict[str, int] = {}
        self._stale = True

    def invalidate(self) -> None:
        self._stale = True

    def effective_priorities(self, pending: Mapping[str, Task]) -> dict[str, int]:
        if self._stale:
            self._effective = compute_effective_priorities(pending.values())
            self._stale = False
        return self._effective

    def select(
        self,
        pending: Mapping[str, Task],
        is_runnable: Callable[[Task], bool],
    ) -> Optional[Task]:
        """Get the runnable task with the highest effective priority.

        Ties go to the earliest submission.

        Args:
            pending: Pending tasks by id
            is_runnable: Whether a task's dependencies are satisfied

        Returns:
            Task to start, or None if nothing is runnable
        """
        effective = self.effective_priorities(pending)
        best: Optional[Task] = None
        best_key: tuple[int, int] = (0, 0)

        for task in pending.values():
            if not is_runnable(task):
                continue
            key = (effective.get(task.id, task.priority), -task.sequence)
            if best is None or key > best_key:
                best = task
                best_key = key

        return best
