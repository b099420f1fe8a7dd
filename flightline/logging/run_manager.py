"""Runs and logger-name routing for the per-component log files.

A run is one logical unit of work (a test module, a sync batch, a service
start). Each log file rotates the first time it is written after start_run(),
so a run's logs never mix with the previous run's.

Usage:
    from flightline.logging import start_run, end_run

    start_run("sync-batch-42")
    try:
        ...
    finally:
        end_run()
"""

from contextvars import ContextVar
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Optional

# Logger-name prefix -> log file name. Longest prefix wins; unmapped loggers are "misc"
MODULE_TO_LOG = {
    "flightline": "flightline",
    "flightline.task_queue": "scheduler",
    "flightline.task_queue.persistence": "persistence",
    "flightline.task_queue.connectivity": "connectivity",
    "flightline.resilience": "resilience",
    "flightline.resilience.circuit_breaker": "circuit-breaker",
    "flightline.resilience.single_flight": "coalescing",
    "flightline.resilience.refresh": "coalescing",
    "flightline.stores": "stores",
    "flightline.events": "events",
    "flightline.config": "config",
    "flightline.logging": "logging-internal",
    "testing": "testing",
}


@dataclass
class _Run:
    run_id: str
    rotated: set[str] = field(default_factory=set)


# ContextVar so concurrent runs on one loop keep separate rotation state
_active_run: ContextVar[Optional[_Run]] = ContextVar("flightline_log_run", default=None)


def start_run(run_id: str) -> None:
    """Begin a run, replacing any current one."""
    _active_run.set(_Run(run_id))


def end_run() -> None:
    _active_run.set(None)


def get_current_run_id() -> Optional[str]:
    run = _active_run.get()
    return run.run_id if run else None


def should_rotate(log_name: str) -> bool:
    """True exactly once per log name per run; always False outside a run."""
    run = _active_run.get()
    if run is None or log_name in run.rotated:
        return False
    run.rotated.add(log_name)
    return True


@lru_cache(maxsize=1024)
def module_to_log_name(module_name: str) -> str:
    """Resolve a logger name, e.g. "flightline.resilience.retry" -> "resilience"."""
    return _compute_log_name(module_name)


def _compute_log_name(module_name: str) -> str:
    parts = module_name.split(".")
    # Walk from the full name up to its top-level package
    for end in range(len(parts), 0, -1):
        log_name = MODULE_TO_LOG.get(".".join(parts[:end]))
        if log_name is not None:
            return log_name
    return "misc"
