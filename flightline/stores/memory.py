"""In-process key-value store backed by a cachetools TTL cache."""

import copy
import logging
import os
from typing import Any, Optional

from cachetools import TTLCache

logger = logging.getLogger(__name__)


class MemoryStore:
    """KeyValueStore kept in process memory.

    Entries expire after ``ttl`` seconds and the oldest entries are evicted
    once ``maxsize`` is reached. Values are deep-copied on the way in and
    out so callers can't mutate stored records by accident.

    Environment Variables:
        FLIGHTLINE_MEMORY_STORE_SIZE: Maximum entries (default: 100)
        FLIGHTLINE_MEMORY_STORE_TTL: Entry TTL in seconds (default: 86400)
    """

    def __init__(self, maxsize: int | None = None, ttl: float | None = None):
        self.maxsize = maxsize or int(os.getenv("FLIGHTLINE_MEMORY_STORE_SIZE", "100"))
        self.ttl = ttl or float(os.getenv("FLIGHTLINE_MEMORY_STORE_TTL", "86400"))
        self._cache: TTLCache = TTLCache(maxsize=self.maxsize, ttl=self.ttl)

    async def get(self, key: str) -> Optional[Any]:
        value = self._cache.get(key)
        return copy.deepcopy(value) if value is not None else None

    async def set(self, key: str, value: Any) -> None:
        self._cache[key] = copy.deepcopy(value)
        logger.debug(f"Stored {key} ({len(self._cache)}/{self.maxsize} entries)")

    async def delete(self, key: str) -> None:
        self._cache.pop(key, None)

    def __len__(self) -> int:
        return len(self._cache)

    def __contains__(self, key: str) -> bool:
        return key in self._cache
