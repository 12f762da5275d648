"""WebSocket transport implementation."""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from fastapi.encoders import jsonable_encoder
from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed
from websockets.protocol import State

from zelai.config import ClientSettings
from zelai.network.transport.base import (
    ABNORMAL_CLOSURE,
    NORMAL_CLOSURE,
    BaseTransport,
    FrameDecodeError,
    TransportClosed,
)

LOGGER = logging.getLogger(__name__)


def _closed(exc: ConnectionClosed) -> TransportClosed:
    frame = exc.rcvd
    if frame is None:
        return TransportClosed(ABNORMAL_CLOSURE, "no close frame received")
    return TransportClosed(frame.code, frame.reason)


class WebSocketTransport(BaseTransport):
    """``websockets``-based transport for the generation endpoint."""

    def __init__(self, settings: ClientSettings) -> None:
        self._settings = settings
        self._ws: Optional[ClientConnection] = None

    @property
    def is_open(self) -> bool:
        return self._ws is not None and self._ws.state is State.OPEN

    async def connect(self) -> None:
        url = self._settings.ws_url
        LOGGER.info("Connecting to WebSocket at %s", url)
        # Keepalive is driven by the session, not by the library.
        self._ws = await connect(url, ping_interval=None)

    async def send(self, message: dict[str, Any]) -> None:
        if not self._ws:
            raise TransportClosed(ABNORMAL_CLOSURE, "transport not connected")
        payload = json.dumps(jsonable_encoder(message))
        LOGGER.debug("WebSocket send: type=%s requestId=%s", message.get("type"), message.get("requestId"))
        try:
            await self._ws.send(payload)
        except ConnectionClosed as exc:
            raise _closed(exc) from exc

    async def receive(self) -> dict[str, Any]:
        if not self._ws:
            raise TransportClosed(ABNORMAL_CLOSURE, "transport not connected")
        try:
            raw = await self._ws.recv()
        except ConnectionClosed as exc:
            raise _closed(exc) from exc
        if isinstance(raw, bytes):
            try:
                raw = raw.decode("utf-8")
            except UnicodeDecodeError as exc:
                raise FrameDecodeError("Binary frame is not valid UTF-8") from exc
        try:
            message = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise FrameDecodeError(f"Invalid JSON frame: {raw[:200]}") from exc
        if not isinstance(message, dict):
            raise FrameDecodeError("Frame must be a JSON object")
        return message

    async def ping(self) -> None:
        if not self._ws:
            return
        try:
            await self._ws.ping()
        except ConnectionClosed as exc:
            raise _closed(exc) from exc

    async def close(self, code: int = NORMAL_CLOSURE, reason: str = "") -> None:
        if self._ws:
            LOGGER.info("Closing WebSocket transport code=%s", code)
            await self._ws.close(code=code, reason=reason)
            self._ws = None
