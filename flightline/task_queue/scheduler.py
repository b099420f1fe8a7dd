"""
Bounded-concurrency task scheduler with priorities and dependencies.

Provides:
- At most ``concurrency`` operations running at once
- Highest effective priority first, submission order on ties
- Dependencies: a task runs only after every dependency id has completed
- Priority inheritance from dependents to their dependencies
- Pause/resume, cancellation of pending tasks, clear
- Optional persistence of pending-task metadata to a key-value store
- Optional pause/resume driven by a ConnectivityMonitor

All state changes happen synchronously on the event loop thread, between
awaits, so no locks are needed.
"""

import asyncio
import inspect
import itertools
import logging
import uuid
from collections import deque
from typing import Any, Iterable, Optional

from flightline.config import get_config
from flightline.errors import (
    CancellationError,
    DependencyCycleError,
    DependencyFailedError,
    DuplicateTaskError,
)
from flightline.events import EventEmitter
from flightline.stores import KeyValueStore
from flightline.utils import AsyncContextManager

from .concurrency import ConcurrencyValidator
from .connectivity import ConnectivityMonitor
from .persistence import QueuePersistence
from .priority import find_cycle
from .results import CompletionChannel, OutcomeStream
from .schemas import (
    DependencyFailurePolicy,
    Operation,
    QueueEvent,
    Task,
    TaskCounts,
    TaskMetadata,
    TaskOutcome,
    TaskState,
)
from .task_selector import TaskSelector

logger = logging.getLogger(__name__)


class TaskScheduler(AsyncContextManager):
    """Runs submitted operations under a concurrency limit.

    Usage:
        async with TaskScheduler(concurrency=2) as scheduler:
            low = scheduler.submit(fetch_index, id="index", priority=1)
            high = scheduler.submit(fetch_page, id="page", priority=10, dependencies=["index"])
            await scheduler.join()
            print(high.result())
    """

    def __init__(
        self,
        concurrency: Optional[int] = None,
        *,
        auto_start: bool = True,
        store: Optional[KeyValueStore] = None,
        storage_key: Optional[str] = None,
        persist_ttl_hours: Optional[float] = None,
        connectivity: Optional[ConnectivityMonitor] = None,
        dependency_failure_policy: DependencyFailurePolicy = DependencyFailurePolicy.UNBLOCK,
    ):
        """Initialize the scheduler.

        Args:
            concurrency: Max simultaneously active tasks (default: FLIGHTLINE_CONCURRENCY)
            auto_start: Start admitting immediately; False starts paused
            store: Key-value store for pending-task metadata
            storage_key: Store key (default: FLIGHTLINE_QUEUE_KEY)
            persist_ttl_hours: Snapshot lifetime (default: FLIGHTLINE_PERSIST_TTL_HOURS)
            connectivity: Pause while offline, resume when back online
            dependency_failure_policy: Whether a failed task unblocks or fails its dependents
        """
        config = get_config()
        self.concurrency = concurrency if concurrency is not None else config.concurrency
        if self.concurrency < 1:
            raise ValueError("concurrency must be at least 1")

        self.dependency_failure_policy = dependency_failure_policy
        self.events = EventEmitter()

        self._pending: dict[str, Task] = {}
        self._active: dict[str, Task] = {}
        self._completed_ids: set[str] = set()
        self._failed_ids: set[str] = set()
        self._runners: set[asyncio.Task] = set()
        self._sequence = itertools.count()
        self._paused = not auto_start
        self._drained = asyncio.Event()
        self._drained.set()

        self._selector = TaskSelector()
        self._validator = ConcurrencyValidator()
        self._results = CompletionChannel()

        self.persistence: Optional[QueuePersistence] = None
        self.restore_task: Optional[asyncio.Task] = None
        if store is not None:
            self.persistence = QueuePersistence(
                store,
                storage_key or config.queue_storage_key,
                persist_ttl_hours if persist_ttl_hours is not None else config.persist_ttl_hours,
            )
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                logger.debug("No running event loop; call restore() to load persisted metadata")
            else:
                # Deferred so listeners attached right after construction see the event
                self.restore_task = loop.create_task(self.restore())

        self._connectivity_unsubscribe = None
        if connectivity is not None:
            self._connectivity_unsubscribe = connectivity.subscribe(self._on_connectivity_change)
            if not connectivity.online:
                logger.info("Starting paused: connectivity monitor reports offline")
                self._paused = True

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def size(self) -> int:
        """Number of pending tasks."""
        return len(self._pending)

    @property
    def active_count(self) -> int:
        return len(self._active)

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def completed_ids(self) -> frozenset[str]:
        return frozenset(self._completed_ids)

    def state_of(self, task_id: str) -> Optional[TaskState]:
        """State of a pending or active task, or None if neither."""
        task = self._pending.get(task_id) or self._active.get(task_id)
        return task.state if task else None

    def pending_metadata(self) -> list[TaskMetadata]:
        return [task.metadata() for task in self._pending.values()]

    def effective_priority(self, task_id: str) -> Optional[int]:
        """Effective priority of a pending task, or None if it isn't pending."""
        if task_id not in self._pending:
            return None
        return self._selector.effective_priorities(self._pending)[task_id]

    def stats(self) -> TaskCounts:
        return TaskCounts(
            pending=len(self._pending),
            active=len(self._active),
            completed=len(self._completed_ids - self._failed_ids),
            failed=len(self._failed_ids),
            paused=self._paused,
        )

    # ------------------------------------------------------------------
    # Submission and control
    # ------------------------------------------------------------------

    def submit(
        self,
        operation: Operation,
        *,
        id: Optional[str] = None,
        priority: int = 0,
        dependencies: Optional[Iterable[str]] = None,
    ) -> asyncio.Future:
        """Add an operation to the queue.

        Must be called from a running event loop.

        Args:
            operation: No-argument callable returning an awaitable (or a plain value)
            id: Task id (generated if omitted)
            priority: Higher runs first
            dependencies: Ids that must complete before this task runs

        Returns:
            Future resolving to the operation's result

        Raises:
            DuplicateTaskError: id is already pending or active
            DependencyCycleError: the dependencies would form a cycle
        """
        self._ensure_open()
        task_id = id or uuid.uuid4().hex

        if task_id in self._pending or task_id in self._active:
            raise DuplicateTaskError(task_id)

        deps = frozenset(dependencies or ())
        cycle = find_cycle(task_id, deps, self._dependency_graph())
        if cycle:
            raise DependencyCycleError(task_id, cycle)

        future = asyncio.get_running_loop().create_future()
        task = Task(
            id=task_id,
            operation=operation,
            future=future,
            priority=priority,
            dependencies=deps,
            sequence=next(self._sequence),
        )

        if self.dependency_failure_policy is DependencyFailurePolicy.PROPAGATE:
            failed_deps = sorted(deps & self._failed_ids)
            if failed_deps:
                self._fail(task, DependencyFailedError(task_id, failed_deps[0]))
                return future

        self._pending[task_id] = task
        self._drained.clear()
        self._selector.invalidate()
        self._save()
        logger.debug(f"Admitted task {task_id} (priority={priority}, deps={sorted(deps)})")
        self.events.emit(QueueEvent.TASK_ADMITTED, {"id": task_id, "priority": priority})

        self._dispatch()
        return future

    def cancel(self, task_id: str) -> bool:
        """Cancel a pending task.

        Its future fails with CancellationError. Active tasks cannot be
        cancelled.

        Returns:
            True if a pending task was removed, False otherwise
        """
        task = self._pending.pop(task_id, None)
        if task is None:
            if task_id in self._active:
                logger.debug(f"Cannot cancel task {task_id}: already running")
            return False

        self._discard(task, "cancelled")
        self._selector.invalidate()
        self._save()
        logger.debug(f"Cancelled task {task_id}")
        self.events.emit(QueueEvent.TASK_CANCELLED, {"id": task_id})
        self._dispatch()
        return True

    def pause(self) -> None:
        """Stop admitting tasks. Active tasks run to completion."""
        if self._paused:
            return
        self._paused = True
        logger.info("Queue paused")
        self.events.emit(QueueEvent.QUEUE_PAUSED)

    def resume(self) -> None:
        """Resume admitting tasks."""
        if not self._paused:
            return
        self._paused = False
        logger.info("Queue resumed")
        self.events.emit(QueueEvent.QUEUE_RESUMED)
        self._dispatch()

    def clear(self) -> int:
        """Discard every pending task without running it.

        Returns:
            Number of tasks discarded
        """
        tasks = list(self._pending.values())
        self._pending.clear()
        for task in tasks:
            self._discard(task, "cleared")

        self._selector.invalidate()
        self._save()
        logger.info(f"Cleared {len(tasks)} pending tasks")
        self.events.emit(QueueEvent.QUEUE_CLEARED, {"count": len(tasks)})
        self._dispatch()
        return len(tasks)

    def forget_completed(self) -> None:
        """Forget completed and failed ids; later dependents on them will wait."""
        self._completed_ids.clear()
        self._failed_ids.clear()

    async def join(self) -> None:
        """Wait until there are no pending and no active tasks."""
        await self._drained.wait()

    def results(self) -> OutcomeStream:
        """Subscribe to settled outcomes from now on.

        Usage:
            async for outcome in scheduler.results():
                print(outcome.task_id, outcome.ok)
        """
        return self._results.subscribe()

    async def restore(self) -> list[TaskMetadata]:
        """Load persisted pending-task metadata and emit queue:restored.

        Operations can't be persisted, so nothing is resubmitted here; the
        caller rebuilds work from the returned ids, priorities and
        dependencies.
        """
        if self.persistence is None:
            return []
        tasks = await self.persistence.load()
        if tasks:
            logger.info(f"Restored metadata for {len(tasks)} pending tasks")
            self.events.emit(QueueEvent.QUEUE_RESTORED, tasks)
        return tasks

    async def _close(self) -> None:
        """Discard pending tasks and clear persisted metadata.

        Active tasks are left to finish on their own.
        """
        if self._connectivity_unsubscribe is not None:
            self._connectivity_unsubscribe()
            self._connectivity_unsubscribe = None

        if self.restore_task is not None and not self.restore_task.done():
            self.restore_task.cancel()

        tasks = list(self._pending.values())
        self._pending.clear()
        for task in tasks:
            self._discard(task, "discarded")
        self._selector.invalidate()

        if self.persistence is not None:
            await self.persistence.clear()

        self._results.close()
        self._check_drained()
        logger.info(f"Scheduler closed ({len(tasks)} pending discarded, {len(self._active)} still active)")

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def _dispatch(self) -> None:
        """Start runnable tasks until capacity is used up or nothing is runnable."""
        while self._validator.can_start_new_task(len(self._active), self.concurrency, self._paused):
            task = self._selector.select(self._pending, self._is_runnable)
            if task is None:
                break
            self._start(task)
        self._check_drained()

    def _is_runnable(self, task: Task) -> bool:
        return all(dep in self._completed_ids for dep in task.dependencies)

    def _start(self, task: Task) -> None:
        del self._pending[task.id]
        task.state = TaskState.ACTIVE
        self._active[task.id] = task
        self._selector.invalidate()
        self._save()

        logger.debug(f"Starting task {task.id} ({len(self._active)}/{self.concurrency} active)")
        self.events.emit(QueueEvent.TASK_STARTED, {"id": task.id})

        runner = asyncio.get_running_loop().create_task(self._run(task), name=f"flightline-task-{task.id}")
        self._runners.add(runner)
        runner.add_done_callback(self._runners.discard)

    async def _run(self, task: Task) -> None:
        try:
            result = task.operation()
            if inspect.isawaitable(result):
                result = await result
        except asyncio.CancelledError:
            # Only reachable when the loop itself is shutting down
            self._settle(task, error=CancellationError(task.id, "interrupted"), dispatch=False)
            raise
        except Exception as e:
            self._settle(task, error=e)
        else:
            self._settle(task, result=result)

    def _settle(
        self,
        task: Task,
        result: Any = None,
        error: Optional[BaseException] = None,
        dispatch: bool = True,
    ) -> None:
        self._active.pop(task.id, None)

        if error is None:
            task.state = TaskState.COMPLETED
            self._completed_ids.add(task.id)
            self._failed_ids.discard(task.id)
            if not task.future.done():
                task.future.set_result(result)
            logger.debug(f"Task {task.id} completed")
            self.events.emit(QueueEvent.TASK_COMPLETED, {"id": task.id, "result": result})
            self._results.publish(TaskOutcome(task_id=task.id, result=result))
        else:
            logger.warning(f"Task {task.id} failed: {error!r}")
            if self.dependency_failure_policy is DependencyFailurePolicy.UNBLOCK:
                self._completed_ids.add(task.id)
            self._fail(task, error)
            if self.dependency_failure_policy is DependencyFailurePolicy.PROPAGATE:
                self._fail_dependents(task.id)

        if dispatch:
            self._dispatch()

    def _fail(self, task: Task, error: BaseException) -> None:
        task.state = TaskState.FAILED
        self._failed_ids.add(task.id)
        if not task.future.done():
            task.future.set_exception(error)
        self.events.emit(QueueEvent.TASK_FAILED, {"id": task.id, "error": error})
        self._results.publish(TaskOutcome(task_id=task.id, error=error))

    def _fail_dependents(self, failed_id: str) -> None:
        """Fail every pending task that transitively depends on failed_id."""
        frontier = deque([failed_id])
        removed = 0
        while frontier:
            current = frontier.popleft()
            for task in [t for t in self._pending.values() if current in t.dependencies]:
                del self._pending[task.id]
                removed += 1
                logger.info(f"Failing task {task.id}: dependency {current} failed")
                self._fail(task, DependencyFailedError(task.id, current))
                frontier.append(task.id)

        if removed:
            self._selector.invalidate()
            self._save()

    def _discard(self, task: Task, reason: str) -> None:
        task.state = TaskState.CANCELLED
        if not task.future.done():
            task.future.set_exception(CancellationError(task.id, reason))

    def _check_drained(self) -> None:
        if self._pending or self._active or self._drained.is_set():
            return
        self._drained.set()
        logger.debug("Queue drained")
        self.events.emit(QueueEvent.QUEUE_DRAINED)

    def _dependency_graph(self) -> dict[str, frozenset[str]]:
        graph = {task_id: task.dependencies for task_id, task in self._pending.items()}
        graph.update({task_id: task.dependencies for task_id, task in self._active.items()})
        return graph

    def _save(self) -> None:
        # Metadata is deleted on close and must stay deleted
        if self.persistence is not None and not self._closed:
            self.persistence.schedule_save(self.pending_metadata())

    def _on_connectivity_change(self, online: bool) -> None:
        if online:
            self.resume()
        else:
            self.pause()
