"""Per-component log files for flightline.

scheduler.log, circuit-breaker.log, coalescing.log and friends receive
records from the matching flightline modules; everything else lands in
run-3p.log. Every file keeps one previous generation, rotated at the start
of each run.

    import logging
    from flightline.logging import configure_logging, start_run, end_run

    configure_logging("var/log/flightline")
    start_run("import-2024-06-01")
    logging.getLogger(__name__).info("...")
    end_run()
"""

from flightline.logging.configure import configure_logging
from flightline.logging.handlers import ModuleDispatchHandler, ThirdPartyHandler
from flightline.logging.run_manager import (
    MODULE_TO_LOG,
    end_run,
    get_current_run_id,
    module_to_log_name,
    start_run,
)

__all__ = [
    "configure_logging",
    "start_run",
    "end_run",
    "get_current_run_id",
    "module_to_log_name",
    "ModuleDispatchHandler",
    "ThirdPartyHandler",
    "MODULE_TO_LOG",
]
