"""Priority inheritance and cycle detection over the pending dependency graph.

Effective priority is a task's own priority raised to the highest effective
priority of any pending task that (transitively) depends on it. It is
computed in one topological pass, walking from dependents to dependencies,
so deep chains cost O(nodes + edges) and never recurse.
"""

import logging
from collections import deque
from typing import Iterable, Mapping, Optional

from .schemas import Task

logger = logging.getLogger(__name__)


def compute_effective_priorities(tasks: Iterable[Task]) -> dict[str, int]:
    """Propagate priorities from dependents to their dependencies.

    Dependencies that are not in ``tasks`` (already completed, running, or
    not yet submitted) are ignored.

    Args:
        tasks: Pending tasks

    Returns:
        Mapping of task id to effective priority
    """
    by_id = {task.id: task for task in tasks}
    effective = {task_id: task.priority for task_id, task in by_id.items()}

    # Count pending dependents per task; a task is final once all of them are processed
    waiting_on = dict.fromkeys(by_id, 0)
    for task in by_id.values():
        for dep in task.dependencies:
            if dep in by_id:
                waiting_on[dep] += 1

    ready = deque(task_id for task_id, count in waiting_on.items() if count == 0)
    processed = 0

    while ready:
        task_id = ready.popleft()
        processed += 1
        boost = effective[task_id]
        for dep in by_id[task_id].dependencies:
            if dep not in by_id:
                continue
            if boost > effective[dep]:
                effective[dep] = boost
            waiting_on[dep] -= 1
            if waiting_on[dep] == 0:
                ready.append(dep)

    if processed < len(by_id):
        # Only reachable if a cycle slipped past submission checks
        stuck = sorted(task_id for task_id, count in waiting_on.items() if count > 0)
        logger.warning(f"Dependency cycle among pending tasks, priorities not propagated: {stuck}")

    return effective


def find_cycle(
    task_id: str,
    dependencies: Iterable[str],
    graph: Mapping[str, Iterable[str]],
) -> Optional[list[str]]:
    """Check whether adding task_id -> dependencies would close a cycle.

    Args:
        task_id: Id of the task being submitted
        dependencies: Ids the new task depends on
        graph: Existing task id -> dependency ids (pending and active tasks)

    Returns:
        The cycle as a list of ids starting and ending with task_id, or None
    """
    deps = sorted(set(dependencies))
    if task_id in deps:
        return [task_id, task_id]

    parents: dict[str, str] = {}
    stack: list[str] = []
    for dep in deps:
        parents[dep] = task_id
        stack.append(dep)

    while stack:
        node = stack.pop()
        for nxt in graph.get(node, ()):
            if nxt == task_id:
                chain = []
                current = node
                while current != task_id:
                    chain.append(current)
                    current = parents[current]
                return [task_id, *reversed(chain), task_id]
            if nxt not in parents:
                parents[nxt] = node
                stack.append(nxt)

    return None
