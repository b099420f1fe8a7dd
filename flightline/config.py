"""Flightline configuration and environment setup.

Defaults for the scheduler, retry executor and circuit breaker come from
environment variables (optionally via a .env file). Components take explicit
constructor arguments; passing None falls back to these values.

Environment Variables:
    FLIGHTLINE_CONCURRENCY: Max simultaneously active tasks (default: 3)
    FLIGHTLINE_QUEUE_KEY: Storage key for persisted queue metadata (default: flightline-queue)
    FLIGHTLINE_PERSIST_TTL_HOURS: Hours a persisted snapshot stays restorable (default: 24)
    FLIGHTLINE_RETRY_MAX_ATTEMPTS: Total attempts including the first (default: 4)
    FLIGHTLINE_RETRY_INITIAL_DELAY: First backoff delay in seconds (default: 0.1)
    FLIGHTLINE_RETRY_MAX_DELAY: Backoff cap in seconds (default: 30)
    FLIGHTLINE_RETRY_BACKOFF: Backoff multiplier (default: 2.0)
    FLIGHTLINE_RETRY_JITTER: Apply +/-10% jitter to delays (default: true)
    FLIGHTLINE_BREAKER_FAILURES: Consecutive failures that open a circuit (default: 5)
    FLIGHTLINE_BREAKER_RESET_TIMEOUT: Seconds an open circuit waits before probing (default: 10)
    FLIGHTLINE_BREAKER_SUCCESSES: Half-open successes needed to close (default: 3)
    FLIGHTLINE_LOG_DIR: Directory for module log files (default: logs)
"""

import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).lower() in ("1", "true", "yes")


@dataclass
class FlightlineConfig:
    """Resolved configuration values."""

    concurrency: int = field(
        default_factory=lambda: int(os.environ.get("FLIGHTLINE_CONCURRENCY", "3"))
    )
    queue_storage_key: str = field(
        default_factory=lambda: os.environ.get("FLIGHTLINE_QUEUE_KEY", "flightline-queue")
    )
    persist_ttl_hours: float = field(
        default_factory=lambda: float(os.environ.get("FLIGHTLINE_PERSIST_TTL_HOURS", "24"))
    )

    # Retry
    retry_max_attempts: int = field(
        default_factory=lambda: int(os.environ.get("FLIGHTLINE_RETRY_MAX_ATTEMPTS", "4"))
    )
    retry_initial_delay: float = field(
        default_factory=lambda: float(os.environ.get("FLIGHTLINE_RETRY_INITIAL_DELAY", "0.1"))
    )
    retry_max_delay: float = field(
        default_factory=lambda: float(os.environ.get("FLIGHTLINE_RETRY_MAX_DELAY", "30"))
    )
    retry_backoff_factor: float = field(
        default_factory=lambda: float(os.environ.get("FLIGHTLINE_RETRY_BACKOFF", "2.0"))
    )
    retry_jitter: bool = field(
        default_factory=lambda: _env_bool("FLIGHTLINE_RETRY_JITTER", "true")
    )

    # Circuit breaker
    breaker_failure_threshold: int = field(
        default_factory=lambda: int(os.environ.get("FLIGHTLINE_BREAKER_FAILURES", "5"))
    )
    breaker_reset_timeout: float = field(
        default_factory=lambda: float(os.environ.get("FLIGHTLINE_BREAKER_RESET_TIMEOUT", "10"))
    )
    breaker_success_threshold: int = field(
        default_factory=lambda: int(os.environ.get("FLIGHTLINE_BREAKER_SUCCESSES", "3"))
    )

    log_dir: str = field(
        default_factory=lambda: os.environ.get("FLIGHTLINE_LOG_DIR", "logs")
    )


_config: FlightlineConfig | None = None


def get_config() -> FlightlineConfig:
    """Get global FlightlineConfig instance."""
    global _config
    if _config is None:
        _config = FlightlineConfig()
    return _config


def reset_config() -> None:
    """Drop the cached config so the next call re-reads the environment.

    Useful for testing.
    """
    global _config
    _config = None
