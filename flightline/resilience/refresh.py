"""Coalesced credential refresh.

When a request fails because its credential went stale, the first such
failure starts one refresh. Requests failing the same way while the refresh is
outstanding wait in FIFO order. If the refresh succeeds each waiter is replayed
once with the new credential; if it fails every waiter is rejected and nothing
is replayed.

Usage:
    async def send(params, token):
        response = await client.get(params["url"], headers={"Authorization": f"Bearer {token}"})
        response.raise_for_status()
        return response.json()

    coordinator = RefreshCoordinator(
        refresh=auth.refresh_access_token,
        should_refresh=lambda e: isinstance(e, httpx.HTTPStatusError)
        and e.response.status_code == 401,
        credential=initial_token,
    )
    data = await coordinator.execute(send, {"url": "/me"})
"""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

from flightline.errors import CoalescedFailureError
from flightline.events import EventEmitter

logger = logging.getLogger(__name__)

C = TypeVar("C")
T = TypeVar("T")

REFRESH_STARTED = "refresh:started"
REFRESH_SUCCEEDED = "refresh:succeeded"
REFRESH_FAILED = "refresh:failed"

Sender = Callable[[Any, Any], Awaitable[T]]


@dataclass
class ReplayRequest:
    """Parameters needed to send a request again.

    ``retried`` is set once the request has been replayed after a refresh; a
    retried request that fails again is not refreshed a second time.
    """

    params: Any = None
    retried: bool = False


class RefreshCoordinator(Generic[C]):
    """Shares one credential refresh among all requests that need it.

    Args:
        refresh: Coroutine function returning a new credential
        should_refresh: Predicate deciding whether an error means the
            credential is stale
        credential: Credential to use before the first refresh
    """

    def __init__(
        self,
        refresh: Callable[[], Awaitable[C]],
        should_refresh: Callable[[BaseException], bool],
        credential: Optional[C] = None,
    ):
        self._refresh = refresh
        self._should_refresh = should_refresh
        self._credential = credential
        self._refresh_task: Optional[asyncio.Task] = None
        self._waiters: deque[tuple[asyncio.Future, ReplayRequest]] = deque()
        self.events = EventEmitter()

    @property
    def credential(self) -> Optional[C]:
        return self._credential

    @property
    def refreshing(self) -> bool:
        return self._refresh_task is not None

    @property
    def queued(self) -> int:
        """Requests waiting on the outstanding refresh."""
        return len(self._waiters)

    async def execute(self, send: Sender, request: Any = None) -> T:
        """Send a request with the current credential, recovering once if it is stale.

        Args:
            send: send(params, credential) coroutine function
            request: ReplayRequest, or bare params to wrap in one

        Raises:
            CoalescedFailureError: this request waited on a refresh that failed
            Exception: the request's own error if it is not refresh-worthy
                (or already retried), or the refresh error for the request
                that started the refresh
        """
        if not isinstance(request, ReplayRequest):
            request = ReplayRequest(request)
        try:
            return await send(request.params, self._credential)
        except Exception as e:
            return await self.recover(e, request, send)

    async def recover(self, error: Exception, request: ReplayRequest, send: Sender) -> T:
        """Handle a failed request: refresh (or wait for a refresh) and replay it.

        Re-raises error unchanged when it is not refresh-worthy or the request
        was already retried.
        """
        if request.retried or not self._is_refresh_worthy(error):
            raise error

        if self._refresh_task is not None:
            future = asyncio.get_running_loop().create_future()
            self._waiters.append((future, request))
            logger.debug(f"Queued request behind outstanding refresh ({len(self._waiters)} waiting)")
            credential = await future
        else:
            self._refresh_task = asyncio.get_running_loop().create_task(self._run_refresh())
            self._refresh_task.add_done_callback(_consume_exception)
            credential = await asyncio.shield(self._refresh_task)

        request.retried = True
        return await send(request.params, credential)

    def _is_refresh_worthy(self, error: Exception) -> bool:
        try:
            return bool(self._should_refresh(error))
        except Exception:
            logger.exception("should_refresh predicate raised; not refreshing")
            return False

    async def _run_refresh(self) -> C:
        logger.info("Refreshing credential")
        self.events.emit(REFRESH_STARTED, {"queued": len(self._waiters)})
        try:
            credential = await self._refresh()
        except asyncio.CancelledError:
            self._refresh_task = None
            while self._waiters:
                self._waiters.popleft()[0].cancel()
            raise
        except Exception as e:
            self._refresh_task = None
            rejected = self._settle_waiters(error=e)
            logger.warning(f"Credential refresh failed; rejected {rejected} queued requests: {e!r}")
            self.events.emit(REFRESH_FAILED, {"error": e, "rejected": rejected})
            raise

        self._credential = credential
        self._refresh_task = None
        replayed = self._settle_waiters(credential=credential)
        logger.info(f"Credential refreshed; replaying {replayed} queued requests")
        self.events.emit(REFRESH_SUCCEEDED, {"replayed": replayed})
        return credential

    def _settle_waiters(self, credential: Any = None, error: Optional[Exception] = None) -> int:
        count = 0
        while self._waiters:
            future, _request = self._waiters.popleft()
            if future.done():
                continue
            if error is not None:
                failure = CoalescedFailureError(error)
                failure.__cause__ = error
                future.set_exception(failure)
            else:
                future.set_result(credential)
            count += 1
        return count


def _consume_exception(task: "asyncio.Task[Any]") -> None:
    if not task.cancelled():
        task.exception()
