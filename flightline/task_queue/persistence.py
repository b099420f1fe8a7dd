"""Best-effort persistence of pending-task metadata.

Writes never block dispatch: schedule_save() records the latest snapshot and
a single background writer pushes it to the store. Snapshots that arrive
while a write is in flight replace each other, so only the newest one is
written next.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from pydantic import ValidationError

from flightline.stores import KeyValueStore

from .schemas import PersistedQueue, TaskMetadata

logger = logging.getLogger(__name__)


class QueuePersistence:
    """Reads and writes the pending-task snapshot under one store key."""

    def __init__(self, store: KeyValueStore, key: str, ttl_hours: float = 24.0):
        """Initialize persistence handler.

        Args:
            store: Key-value store receiving the snapshot
            key: Store key for this queue
            ttl_hours: How long a written snapshot stays restorable
        """
        self.store = store
        self.key = key
        self.ttl_hours = ttl_hours
        self._next_snapshot: Optional[list[TaskMetadata]] = None
        self._writer: Optional[asyncio.Task] = None

    def schedule_save(self, tasks: list[TaskMetadata]) -> None:
        """Queue a snapshot for writing. Must be called from the event loop."""
        self._next_snapshot = tasks
        if self._writer is None or self._writer.done():
            self._writer = asyncio.get_running_loop().create_task(self._write_pending())

    async def _write_pending(self) -> None:
        while self._next_snapshot is not None:
            snapshot, self._next_snapshot = self._next_snapshot, None
            now = datetime.now(timezone.utc)
            record = PersistedQueue(
                tasks=snapshot,
                last_updated=now.isoformat(),
                expires_at=(now + timedelta(hours=self.ttl_hours)).isoformat(),
            )
            try:
                await self.store.set(self.key, record.model_dump(mode="json"))
            except Exception as e:
                logger.warning(f"Failed to persist queue metadata under '{self.key}': {e}")
            else:
                logger.debug(f"Persisted {len(snapshot)} pending tasks under '{self.key}'")

    async def flush(self) -> None:
        """Wait until every scheduled snapshot has been written."""
        while self._writer is not None and not self._writer.done():
            await asyncio.shield(self._writer)

    async def load(self) -> list[TaskMetadata]:
        """Read the persisted snapshot.

        Returns:
            Pending-task metadata, or an empty list if nothing usable was stored
        """
        try:
            raw = await self.store.get(self.key)
        except Exception as e:
            logger.warning(f"Failed to read queue metadata under '{self.key}': {e}")
            return []

        if raw is None:
            return []

        try:
            record = PersistedQueue.model_validate(raw)
        except ValidationError as e:
            logger.warning(f"Ignoring malformed queue snapshot under '{self.key}': {e}")
            return []

        expires_at = datetime.fromisoformat(record.expires_at)
        if expires_at <= datetime.now(timezone.utc):
            logger.info(f"Queue snapshot under '{self.key}' expired at {record.expires_at}")
            return []

        return record.tasks

    async def clear(self) -> None:
        """Drop unwritten snapshots and delete the stored record."""
        self._next_snapshot = None
        await self.flush()
        try:
            await self.store.delete(self.key)
        except Exception as e:
            logger.warning(f"Failed to delete queue metadata under '{self.key}': {e}")
