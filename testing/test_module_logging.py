"""Tests for per-component log routing and run-based rotation."""

import logging
from pathlib import Path

import pytest

from flightline.logging import (
    MODULE_TO_LOG,
    ModuleDispatchHandler,
    ThirdPartyHandler,
    configure_logging,
    end_run,
    get_current_run_id,
    module_to_log_name,
    start_run,
)
from flightline.logging.run_manager import _compute_log_name, should_rotate


def make_record(logger_name: str, text: str) -> logging.LogRecord:
    return logging.makeLogRecord({"name": logger_name, "msg": text, "levelno": logging.INFO})


def plain(handler: logging.Handler) -> logging.Handler:
    handler.setFormatter(logging.Formatter("%(message)s"))
    return handler


class TestRouting:
    @pytest.mark.parametrize(
        "logger_name, expected",
        [
            ("flightline.task_queue", "scheduler"),
            ("flightline.task_queue.scheduler", "scheduler"),
            ("flightline.task_queue.persistence", "persistence"),
            ("flightline.task_queue.connectivity", "connectivity"),
            ("flightline.resilience.retry", "resilience"),
            ("flightline.resilience.circuit_breaker", "circuit-breaker"),
            ("flightline.resilience.single_flight", "coalescing"),
            ("flightline.resilience.refresh", "coalescing"),
            ("flightline.stores.memory", "stores"),
            ("flightline.utils.async_context", "flightline"),
            ("flightline_extras.plugin", "misc"),
            ("httpx", "misc"),
            ("__main__", "misc"),
        ],
    )
    def test_module_to_log_name(self, logger_name, expected):
        assert module_to_log_name(logger_name) == expected

    def test_every_prefix_maps_to_itself(self):
        for prefix, log_name in MODULE_TO_LOG.items():
            assert _compute_log_name(prefix) == log_name, prefix

    def test_lookups_are_cached(self):
        module_to_log_name.cache_clear()
        first = module_to_log_name("flightline.stores.test_module")
        second = module_to_log_name("flightline.stores.test_module")

        assert first == second == "stores"
        assert module_to_log_name.cache_info().hits == 1


class TestRuns:
    def test_run_id_lifecycle(self):
        end_run()
        assert get_current_run_id() is None

        start_run("batch-1")
        assert get_current_run_id() == "batch-1"
        start_run("batch-2")
        assert get_current_run_id() == "batch-2"

        end_run()
        assert get_current_run_id() is None

    def test_should_rotate_outside_run(self):
        end_run()
        assert should_rotate("scheduler") is False

    def test_should_rotate_once_per_name_per_run(self):
        start_run("run-1")
        assert [should_rotate("scheduler"), should_rotate("scheduler"), should_rotate("stores")] == [
            True,
            False,
            True,
        ]

        start_run("run-2")
        assert should_rotate("scheduler") is True
        end_run()


class TestModuleDispatchHandler:
    def test_records_land_in_component_files(self, tmp_path: Path):
        end_run()
        handler = plain(ModuleDispatchHandler(tmp_path))
        handler.emit(make_record("flightline.task_queue.scheduler", "dispatching"))
        handler.emit(make_record("flightline.resilience.circuit_breaker", "opened"))
        handler.close()

        assert (tmp_path / "scheduler.log").read_text() == "dispatching\n"
        assert (tmp_path / "circuit-breaker.log").read_text() == "opened\n"

    def test_new_run_moves_previous_aside(self, tmp_path: Path):
        handler = plain(ModuleDispatchHandler(tmp_path))

        start_run("run-1")
        handler.emit(make_record("flightline.stores", "first run"))
        start_run("run-2")
        handler.emit(make_record("flightline.stores", "second run"))
        start_run("run-3")
        handler.emit(make_record("flightline.stores", "third run"))
        end_run()
        handler.close()

        assert (tmp_path / "stores.log").read_text() == "third run\n"
        assert (tmp_path / "stores.previous.log").read_text() == "second run\n"
        assert sorted(p.name for p in tmp_path.iterdir()) == ["stores.log", "stores.previous.log"]

    def test_ignores_unmapped_loggers(self, tmp_path: Path):
        handler = ModuleDispatchHandler(tmp_path)
        assert handler.filter(make_record("httpx", "x")) is False
        assert handler.filter(make_record("flightline.events", "x"))
        handler.close()


class TestThirdPartyHandler:
    def test_collects_other_libraries(self, tmp_path: Path):
        end_run()
        handler = plain(ThirdPartyHandler(tmp_path))
        for library in ("httpx", "asyncio", "pydantic"):
            handler.emit(make_record(library, f"from {library}"))
        handler.close()

        assert (tmp_path / "run-3p.log").read_text().splitlines() == [
            "from httpx",
            "from asyncio",
            "from pydantic",
        ]

    def test_ignores_flightline_loggers(self, tmp_path: Path):
        handler = ThirdPartyHandler(tmp_path)
        assert handler.filter(make_record("flightline.task_queue", "x")) is False
        assert handler.filter(make_record("httpx", "x"))
        handler.close()


class TestConfigureLogging:
    def test_installs_handlers_once(self, tmp_path: Path):
        root = logging.getLogger()
        original_level = root.level
        try:
            configure_logging(tmp_path)
            configure_logging(tmp_path)

            ours = [
                h for h in root.handlers
                if isinstance(h, (ModuleDispatchHandler, ThirdPartyHandler))
            ]
            assert len(ours) == 2

            logging.getLogger("flightline.resilience.retry").info("routed")
            assert "routed" in (tmp_path / "resilience.log").read_text()
        finally:
            for handler in list(root.handlers):
                if isinstance(handler, (ModuleDispatchHandler, ThirdPartyHandler)):
                    root.removeHandler(handler)
                    handler.close()
            root.setLevel(original_level)
