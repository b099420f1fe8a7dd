"""Base class for components released with ``await obj.close()``."""


class AsyncContextManager:
    """Async context manager base that closes at most once.

    Subclasses implement ``_close()``. ``close()`` is idempotent and
    ``_ensure_open()`` lets entry points reject use after close.
    """

    _closed: bool = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._close()

    async def _close(self) -> None:
        """Release resources. Override in subclass."""
        pass

    def _ensure_open(self) -> None:
        if self._closed:
            raise RuntimeError(f"{type(self).__name__} is closed")

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
