"""Root logger setup for flightline's file handlers."""

import logging
from pathlib import Path

from flightline.config import get_config
from flightline.logging.handlers import ModuleDispatchHandler, ThirdPartyHandler

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(
    log_dir: str | Path | None = None,
    level: int = logging.INFO,
    fmt: str = DEFAULT_FORMAT,
) -> Path:
    """Install ModuleDispatchHandler and ThirdPartyHandler on the root logger.

    Idempotent: handlers installed by an earlier call are replaced, so calling
    this twice with different directories doesn't double-write records.

    Args:
        log_dir: Directory for log files (default: FLIGHTLINE_LOG_DIR)
        level: Root logger level
        fmt: Format string shared by both handlers

    Returns:
        The resolved log directory.
    """
    directory = Path(log_dir or get_config().log_dir)
    directory.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    for handler in list(root.handlers):
        if isinstance(handler, (ModuleDispatchHandler, ThirdPartyHandler)):
            root.removeHandler(handler)
            handler.close()

    formatter = logging.Formatter(fmt)
    for handler in (ModuleDispatchHandler(directory), ThirdPartyHandler(directory)):
        handler.setFormatter(formatter)
        root.addHandler(handler)

    root.setLevel(level)
    return directory
