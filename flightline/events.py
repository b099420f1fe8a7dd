"""Observer lists for advisory notifications.

Each component owns its own EventEmitter; there is no global registry.
Listener failures are logged and never reach the code that emitted the event.
"""

import logging
from collections import defaultdict
from typing import Any, Callable

logger = logging.getLogger(__name__)

Listener = Callable[..., Any]


class EventEmitter:
    """Named-event observer lists.

    Usage:
        events = EventEmitter()
        unsubscribe = events.on("task:completed", lambda payload: print(payload))
        events.emit("task:completed", {"id": "a", "result": 1})
        unsubscribe()
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = defaultdict(list)

    def on(self, event: str, listener: Listener) -> Callable[[], None]:
        """Register a listener.

        Returns:
            A function that removes the listener when called.
        """
        self._listeners[event].append(listener)
        return lambda: self.off(event, listener)

    def off(self, event: str, listener: Listener) -> None:
        listeners = self._listeners.get(event)
        if not listeners:
            return
        try:
            listeners.remove(listener)
        except ValueError:
            pass

    def once(self, event: str, listener: Listener) -> Callable[[], None]:
        """Register a listener that removes itself after the first call."""

        def wrapper(*args: Any) -> None:
            self.off(event, wrapper)
            listener(*args)

        return self.on(event, wrapper)

    def emit(self, event: str, *args: Any) -> None:
        """Call every listener for event in registration order."""
        # Copy so listeners may unsubscribe while we iterate
        for listener in list(self._listeners.get(event, ())):
            try:
                listener(*args)
            except Exception:
                logger.exception(f"Listener for '{event}' raised; ignoring")

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, ()))

    def remove_all_listeners(self, event: str | None = None) -> None:
        if event is None:
            self._listeners.clear()
        else:
            self._listeners.pop(event, None)
