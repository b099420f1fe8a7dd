"""Connectivity signals for pausing and resuming a scheduler.

The scheduler only depends on the ConnectivityMonitor protocol. Two sources
are provided:

- ManualConnectivity: flipped by application code (or tests)
- HttpConnectivityMonitor: probes a URL with HEAD requests on an interval

Usage:
    monitor = HttpConnectivityMonitor(interval=15)
    monitor.start()
    scheduler = TaskScheduler(connectivity=monitor)
    ...
    await monitor.close()
"""

import asyncio
import logging
import os
from typing import Callable, Optional, Protocol, runtime_checkable

import httpx

from flightline.events import EventEmitter
from flightline.utils import AsyncContextManager

logger = logging.getLogger(__name__)

ConnectivityListener = Callable[[bool], None]

_CHANGED = "connectivity:changed"


@runtime_checkable
class ConnectivityMonitor(Protocol):
    """Source of online/offline transitions."""

    @property
    def online(self) -> bool:
        ...

    def subscribe(self, listener: ConnectivityListener) -> Callable[[], None]:
        """Call listener(online) on every transition. Returns an unsubscribe function."""
        ...


class ManualConnectivity:
    """Connectivity state set explicitly by the application."""

    def __init__(self, online: bool = True):
        self._online = online
        self._events = EventEmitter()

    @property
    def online(self) -> bool:
        return self._online

    def subscribe(self, listener: ConnectivityListener) -> Callable[[], None]:
        return self._events.on(_CHANGED, listener)

    def set_online(self, online: bool) -> None:
        """Publish a transition. Repeating the current state is a no-op."""
        if online == self._online:
            return
        self._online = online
        logger.info(f"Connectivity {'restored' if online else 'lost'}")
        self._events.emit(_CHANGED, online)


class HttpConnectivityMonitor(AsyncContextManager):
    """Polls a URL and publishes online/offline transitions.

    Any HTTP response counts as online, since reaching the server at all is
    what matters; transport errors and timeouts count as offline.

    Environment Variables:
        FLIGHTLINE_PING_URL: URL to probe (default: https://www.google.com)
    """

    def __init__(
        self,
        ping_url: Optional[str] = None,
        interval: float = 30.0,
        timeout: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
        online: bool = True,
    ):
        self.ping_url = ping_url or os.environ.get("FLIGHTLINE_PING_URL", "https://www.google.com")
        self.interval = interval
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None
        self._online = online
        self._events = EventEmitter()
        self._stop_event = asyncio.Event()
        self._poller: Optional[asyncio.Task] = None

    @property
    def online(self) -> bool:
        return self._online

    def subscribe(self, listener: ConnectivityListener) -> Callable[[], None]:
        return self._events.on(_CHANGED, listener)

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout)
            self._owns_client = True
        return self._client

    async def check(self) -> bool:
        """Probe once and publish a transition if the state changed.

        Returns:
            Current online state
        """
        client = await self._get_client()
        try:
            response = await client.head(
                self.ping_url,
                headers={"Cache-Control": "no-store"},
                timeout=self.timeout,
            )
            reachable = True
            logger.debug(f"Probe {self.ping_url} -> HTTP {response.status_code}")
        except httpx.HTTPError as e:
            reachable = False
            logger.debug(f"Probe {self.ping_url} failed: {e}")

        if reachable != self._online:
            self._online = reachable
            logger.info(f"Connectivity {'restored' if reachable else 'lost'} ({self.ping_url})")
            self._events.emit(_CHANGED, reachable)
        return self._online

    def start(self) -> None:
        """Start background probing. Must be called with a running loop."""
        self._ensure_open()
        if self._poller is not None and not self._poller.done():
            return
        self._stop_event.clear()
        self._poller = asyncio.get_running_loop().create_task(self._poll())

    async def _poll(self) -> None:
        while not self._stop_event.is_set():
            await self.check()
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                continue

    async def stop(self) -> None:
        """Stop background probing; wakes a sleeping poller immediately."""
        self._stop_event.set()
        if self._poller is not None:
            await self._poller
            self._poller = None

    async def _close(self) -> None:
        await self.stop()
        if self._owns_client and self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None
