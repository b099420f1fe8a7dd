"""Handlers writing flightline records to per-component files.

Both handlers share one _RotatingFileSet: a lazily opened stream per log
name, moved aside to <name>.previous.log the first time that name is written
within a new run.

Writes are synchronous and happen on the event loop thread. Put a
logging.handlers.QueueHandler in front if that latency matters.
"""

import logging
from pathlib import Path
from typing import TextIO

from flightline.logging.run_manager import module_to_log_name, should_rotate

THIRD_PARTY_LOG = "run-3p"
UNMAPPED = "misc"


class _RotatingFileSet:
    """Open streams keyed by log name, at most current + previous on disk per name."""

    def __init__(self, log_dir: Path):
        self.log_dir = Path(log_dir)
        self.streams: dict[str, TextIO] = {}

    def write(self, log_name: str, line: str) -> None:
        if should_rotate(log_name):
            self._rotate(log_name)
        stream = self.streams.get(log_name)
        if stream is None:
            stream = self._path(log_name).open("a", encoding="utf-8")
            self.streams[log_name] = stream
        stream.write(line + "\n")
        stream.flush()

    def _path(self, log_name: str, suffix: str = "") -> Path:
        return self.log_dir / f"{log_name}{suffix}.log"

    def _rotate(self, log_name: str) -> None:
        stream = self.streams.pop(log_name, None)
        if stream is not None:
            stream.close()

        current, previous = self._path(log_name), self._path(log_name, ".previous")
        previous.unlink(missing_ok=True)
        if current.exists():
            current.rename(previous)

    def close_all(self) -> None:
        for stream in self.streams.values():
            try:
                stream.close()
            except OSError:
                pass
        self.streams.clear()


class ModuleDispatchHandler(logging.Handler):
    """Routes each flightline record to the file MODULE_TO_LOG names for its logger.

    Records from unmapped loggers are left to ThirdPartyHandler.

    Usage:
        handler = ModuleDispatchHandler(Path("logs"))
        handler.setFormatter(logging.Formatter("%(asctime)s - %(message)s"))
        logging.getLogger().addHandler(handler)
    """

    def __init__(self, log_dir: Path):
        super().__init__()
        self.log_dir = Path(log_dir)
        self._files = _RotatingFileSet(self.log_dir)

    def filter(self, record: logging.LogRecord) -> bool:
        if module_to_log_name(record.name) == UNMAPPED:
            return False
        return super().filter(record)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self._files.write(module_to_log_name(record.name), self.format(record))
        except Exception:
            self.handleError(record)

    def close(self) -> None:
        self.acquire()
        try:
            self._files.close_all()
        finally:
            self.release()
        super().close()


class ThirdPartyHandler(logging.Handler):
    """Collects records from non-flightline loggers (httpx, asyncio, ...) into run-3p.log."""

    def __init__(self, log_dir: Path):
        super().__init__()
        self.log_dir = Path(log_dir)
        self._files = _RotatingFileSet(self.log_dir)

    def filter(self, record: logging.LogRecord) -> bool:
        if module_to_log_name(record.name) != UNMAPPED:
            return False
        return super().filter(record)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self._files.write(THIRD_PARTY_LOG, self.format(record))
        except Exception:
            self.handleError(record)

    def close(self) -> None:
        self.acquire()
        try:
            self._files.close_all()
        finally:
            self.release()
        super().close()
