"""Key-value store boundary used for queue persistence."""

from typing import Any, Optional, Protocol, runtime_checkable


@runtime_checkable
class KeyValueStore(Protocol):
    """Async key-value storage for JSON-serializable records.

    The scheduler only ever passes plain dicts/lists/strings/numbers, never
    callables, so any backend that can round-trip JSON is sufficient.
    """

    async def get(self, key: str) -> Optional[Any]:
        """Return the stored value, or None if absent."""
        ...

    async def set(self, key: str, value: Any) -> None:
        ...

    async def delete(self, key: str) -> None:
        """Remove key. Missing keys are not an error."""
        ...
