"""Storage backends for persisted scheduler metadata."""

from .base import KeyValueStore
from .memory import MemoryStore

__all__ = ["KeyValueStore", "MemoryStore"]
