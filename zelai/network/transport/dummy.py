"""In-memory transport for offline use and testing."""

from __future__ import annotations

import asyncio
import copy
import logging
from typing import Any, Callable, Optional

from .base import ABNORMAL_CLOSURE, NORMAL_CLOSURE, BaseTransport, TransportClosed

LOGGER = logging.getLogger(__name__)


class DummyTransport(BaseTransport):
    """Scripted transport: records outbound frames and replays injected inbound ones.

    With ``auto_auth`` enabled the transport answers the ``auth`` frame itself,
    either with ``auth_success`` or, when ``reject_auth`` is set, with an
    ``AUTH_ERROR`` error frame.
    """

    def __init__(
        self,
        settings=None,
        *,
        auto_auth: bool = True,
        reject_auth: bool = False,
        connect_error: Optional[Exception] = None,
    ) -> None:
        self._settings = settings
        self.auto_auth = auto_auth
        self.reject_auth = reject_auth
        self.connect_error = connect_error
        self.sent: list[dict[str, Any]] = []
        self.pings = 0
        self.closed_with: Optional[tuple[int, str]] = None
        self.on_send: Optional[Callable[[dict[str, Any]], None]] = None
        self.on_close: Optional[Callable[[int, str], None]] = None
        self._open = False
        self._inbound: asyncio.Queue[Any] = asyncio.Queue()

    @property
    def is_open(self) -> bool:
        return self._open

    async def connect(self) -> None:
        LOGGER.debug("Dummy transport connect()")
        if self.connect_error is not None:
            raise self.connect_error
        self._open = True

    async def send(self, message: dict[str, Any]) -> None:
        if not self._open:
            raise TransportClosed(ABNORMAL_CLOSURE, "dummy transport not open")
        LOGGER.debug("Dummy transport send(): %s", message.get("type"))
        self.sent.append(copy.deepcopy(message))
        if self.on_send:
            self.on_send(message)
        if self.auto_auth and message.get("type") == "auth":
            if self.reject_auth:
                self.feed({"type": "error", "data": {"code": "AUTH_ERROR", "message": "Invalid API key"}})
            else:
                self.feed({"type": "auth_success", "data": {}})

    async def receive(self) -> dict[str, Any]:
        item = await self._inbound.get()
        if isinstance(item, TransportClosed):
            self._open = False
            raise item
        return item

    async def ping(self) -> None:
        self.pings += 1

    async def close(self, code: int = NORMAL_CLOSURE, reason: str = "") -> None:
        LOGGER.debug("Dummy transport close(%s)", code)
        if self.on_close:
            self.on_close(code, reason)
        self.closed_with = (code, reason)
        self._open = False
        self._inbound.put_nowait(TransportClosed(code, reason))

    def feed(self, frame: dict[str, Any]) -> None:
        """Queue an inbound frame as if the server had sent it."""

        self._inbound.put_nowait(frame)

    def drop(self, code: int = ABNORMAL_CLOSURE, reason: str = "") -> None:
        """Simulate the server (or network) closing the socket."""

        self._open = False
        self._inbound.put_nowait(TransportClosed(code, reason))

    def sent_of_type(self, message_type: str) -> list[dict[str, Any]]:
        return [frame for frame in self.sent if frame.get("type") == message_type]
