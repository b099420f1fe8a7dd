"""
Pytest configuration for flightline tests.

Usage:
    pytest testing/
    pytest testing/test_task_scheduler.py -k priority
"""

from collections.abc import Generator

import pytest

from flightline.config import reset_config
from flightline.logging import end_run, start_run
from flightline.stores import MemoryStore


@pytest.fixture(autouse=True)
def logging_run(request: pytest.FixtureRequest) -> Generator[None, None, None]:
    """Rotate logs at test module boundaries.

    Each test module gets its own logging run, which triggers log rotation
    on first write to each module's log file.

    When running with pytest-xdist, each worker uses a separate log directory
    to prevent file corruption from concurrent writes.
    """
    import os

    worker_id = os.environ.get("PYTEST_XDIST_WORKER")
    if worker_id:
        os.environ["FLIGHTLINE_LOG_DIR"] = f"logs/test-{worker_id}"

    # Use test module path as run identifier (e.g., "test-testing-test_retry")
    test_path = request.node.nodeid.split("::")[0]
    test_name = test_path.replace("/", "-").replace(".py", "")
    start_run(f"test-{test_name}")
    yield
    end_run()


@pytest.fixture
def clean_config(monkeypatch) -> Generator[pytest.MonkeyPatch, None, None]:
    """Fresh config that re-reads the (monkeypatched) environment."""
    reset_config()
    yield monkeypatch
    monkeypatch.undo()
    reset_config()


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line(
        "markers",
        "slow: marks tests as slow (run with --runslow)",
    )
    config.addinivalue_line(
        "markers",
        "network: test performs real network I/O",
    )
