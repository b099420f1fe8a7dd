"""Token bucket rate limiter."""

import asyncio
import logging
import time
from typing import Callable

from flightline.errors import RateLimitExceededError

logger = logging.getLogger(__name__)


class RateLimiter:
    """Allows ``limit`` acquisitions per ``interval`` seconds, refilling continuously.

    The bucket starts full, so up to ``limit`` calls may burst immediately.

    Usage:
        limiter = RateLimiter(limit=10, interval=1.0)
        await limiter.acquire()
    """

    def __init__(self, limit: int, interval: float, clock: Callable[[], float] = time.monotonic):
        if limit < 1:
            raise ValueError("limit must be at least 1")
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.limit = limit
        self.interval = interval
        self._rate = limit / interval
        self._clock = clock
        self._tokens = float(limit)
        self._last_refill = clock()

    @property
    def tokens(self) -> float:
        self._refill()
        return self._tokens

    def _refill(self) -> None:
        now = self._clock()
        elapsed = now - self._last_refill
        if elapsed > 0:
            self._tokens = min(float(self.limit), self._tokens + elapsed * self._rate)
            self._last_refill = now

    def try_acquire(self) -> bool:
        """Take a token if one is available."""
        self._refill()
        if self._tokens >= 1:
            self._tokens -= 1
            return True
        return False

    def time_until_available(self) -> float:
        """Seconds until a token will be available (0 if one is now)."""
        self._refill()
        if self._tokens >= 1:
            return 0.0
        return (1 - self._tokens) / self._rate

    def reset(self) -> None:
        self._tokens = float(self.limit)
        self._last_refill = self._clock()

    async def acquire(self, wait: bool = True) -> None:
        """Take a token, sleeping until one refills.

        Raises:
            RateLimitExceededError: no token is available and wait is False
        """
        while not self.try_acquire():
            delay = self.time_until_available()
            if not wait:
                raise RateLimitExceededError(delay)
            logger.debug(f"Rate limited; waiting {delay:.3f}s")
            await asyncio.sleep(delay)
