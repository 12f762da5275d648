"""Request correlation table: request id -> pending completion handle."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterator, Optional

from zelai.network.errors import RequestTimeoutError

LOGGER = logging.getLogger(__name__)


@dataclass
class PendingRequest:
    request_id: str
    frame: dict[str, Any]
    future: asyncio.Future[Any]
    timeout: float
    timer: Optional[asyncio.TimerHandle] = None

    def cancel_timer(self) -> None:
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None


class RequestTable:
    """Pending requests keyed by request id.

    Every entry leaves the table exactly once, through ``resolve``, ``reject``,
    ``discard`` or its own timer, and its timer is cancelled on the way out.
    Removing an id that is no longer present returns ``False``.
    """

    def __init__(self, *, on_expire: Optional[Callable[[str, Exception], None]] = None) -> None:
        self._pending: dict[str, PendingRequest] = {}
        self._on_expire = on_expire

    def __contains__(self, request_id: object) -> bool:
        return request_id in self._pending

    def __len__(self) -> int:
        return len(self._pending)

    def __iter__(self) -> Iterator[PendingRequest]:
        return iter(list(self._pending.values()))

    def register(self, request_id: str, frame: dict[str, Any], timeout: float) -> asyncio.Future[Any]:
        if request_id in self._pending:
            raise ValueError(f"Request id already pending: {request_id}")
        loop = asyncio.get_running_loop()
        pending = PendingRequest(
            request_id=request_id,
            frame=frame,
            future=loop.create_future(),
            timeout=timeout,
        )
        pending.timer = loop.call_later(timeout, self._expire, request_id)
        self._pending[request_id] = pending
        LOGGER.debug("Tracking request %s (timeout %.1fs)", request_id, timeout)
        return pending.future

    def resolve(self, request_id: str, value: Any) -> bool:
        pending = self._pop(request_id)
        if pending is None:
            return False
        if not pending.future.done():
            pending.future.set_result(value)
        return True

    def reject(self, request_id: str, exc: BaseException) -> bool:
        pending = self._pop(request_id)
        if pending is None:
            return False
        if not pending.future.done():
            pending.future.set_exception(exc)
        return True

    def discard(self, request_id: str, exc: Optional[BaseException] = None) -> bool:
        """Drop an entry; its future is failed with ``exc`` or cancelled."""

        pending = self._pop(request_id)
        if pending is None:
            return False
        if not pending.future.done():
            if exc is not None:
                pending.future.set_exception(exc)
            else:
                pending.future.cancel()
        return True

    def reject_all(self, exc_factory: Callable[[], BaseException]) -> dict[str, BaseException]:
        """Reject every entry with a fresh error; returns the error used per id."""

        rejected: dict[str, BaseException] = {}
        for request_id in list(self._pending):
            exc = exc_factory()
            if self.reject(request_id, exc):
                rejected[request_id] = exc
        return rejected

    def _pop(self, request_id: str) -> Optional[PendingRequest]:
        pending = self._pending.pop(request_id, None)
        if pending is not None:
            pending.cancel_timer()
        return pending

    def _expire(self, request_id: str) -> None:
        pending = self._pending.get(request_id)
        if pending is None:
            return
        exc = RequestTimeoutError(f"Request timeout after {pending.timeout:.3f}s")
        LOGGER.warning("Request %s timed out", request_id)
        self.reject(request_id, exc)
        if self._on_expire:
            self._on_expire(request_id, exc)
