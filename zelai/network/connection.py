"""Connection wrapper that owns the underlying transport lifecycle."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any, Callable, Optional

from zelai.config import ClientSettings
from zelai.network.errors import NotConnectedError
from zelai.network.transport.base import (
    ABNORMAL_CLOSURE,
    INTERNAL_ERROR,
    NORMAL_CLOSURE,
    BaseTransport,
    FrameDecodeError,
    TransportClosed,
)

LOGGER = logging.getLogger(__name__)


class Connection:
    """Holds at most one live transport and turns its lifecycle into callbacks.

    ``on_message`` receives every decoded inbound frame. ``on_close`` is called
    once per socket that closes on its own (remote close or network loss);
    sockets shut down through ``close()`` do not report a close event.
    """

    def __init__(
        self,
        settings: ClientSettings,
        transport_factory: Callable[[ClientSettings], BaseTransport],
        *,
        on_message: Callable[[dict[str, Any]], None],
        on_close: Callable[[int, str], None],
        heartbeat_interval: float | None = None,
    ) -> None:
        self._settings = settings
        self._transport_factory = transport_factory
        self._on_message = on_message
        self._on_close = on_close
        self._heartbeat_interval = float(
            heartbeat_interval if heartbeat_interval is not None else settings.heartbeat_interval_ms / 1000.0
        )
        self._transport: Optional[BaseTransport] = None
        self._recv_task: Optional[asyncio.Task[None]] = None
        self._heartbeat_task: Optional[asyncio.Task[None]] = None
        self.sockets_opened = 0

    @property
    def is_open(self) -> bool:
        return self._transport is not None and self._transport.is_open

    async def open(self) -> None:
        """Create a transport, connect it and start the receive loop."""

        if self._transport is not None:
            raise RuntimeError("Connection already owns a live transport")
        transport = self._transport_factory(self._settings)
        self.sockets_opened += 1
        await transport.connect()
        self._transport = transport
        self._recv_task = asyncio.create_task(self._receive_loop(transport), name="ws-recv")

    async def send(self, message: dict[str, Any]) -> None:
        transport = self._transport
        if transport is None or not transport.is_open:
            raise NotConnectedError("WebSocket not connected")
        await transport.send(message)

    async def close(self, code: int = NORMAL_CLOSURE, reason: str = "") -> None:
        """Close the live transport, if any, without reporting a close event."""

        transport = self._transport
        if transport is None:
            return
        self._transport = None
        self.stop_heartbeat()
        recv_task = self._recv_task
        self._recv_task = None
        try:
            await transport.close(code, reason)
        except Exception:  # noqa: BLE001
            LOGGER.debug("Suppress transport close error", exc_info=True)
        if recv_task and recv_task is not asyncio.current_task():
            recv_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await recv_task

    def start_heartbeat(self) -> None:
        self.stop_heartbeat()
        if self._heartbeat_interval > 0:
            self._heartbeat_task = asyncio.create_task(self._heartbeat_loop(), name="ws-heartbeat")

    def stop_heartbeat(self) -> None:
        if self._heartbeat_task:
            self._heartbeat_task.cancel()
            self._heartbeat_task = None

    @property
    def heartbeat_running(self) -> bool:
        return self._heartbeat_task is not None and not self._heartbeat_task.done()

    async def _receive_loop(self, transport: BaseTransport) -> None:
        code, reason = ABNORMAL_CLOSURE, ""
        try:
            while True:
                try:
                    message = await transport.receive()
                except FrameDecodeError as exc:
                    LOGGER.warning("Failed to parse WebSocket message: %s", exc)
                    continue
                try:
                    self._on_message(message)
                except Exception:  # noqa: BLE001
                    LOGGER.exception("Failed to process inbound frame")
        except TransportClosed as exc:
            code, reason = exc.code, exc.reason
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning("Receive loop error, treating socket as lost: %s", exc)
            reason = "receive failed"
            # The socket may still be up; it must not outlive its replacement.
            with contextlib.suppress(Exception):
                await transport.close(INTERNAL_ERROR, reason)
        self._handle_closed(transport, code, reason)

    def _handle_closed(self, transport: BaseTransport, code: int, reason: str) -> None:
        if transport is not self._transport:
            LOGGER.debug("Ignoring close event from a replaced transport (%s)", code)
            return
        self._transport = None
        self._recv_task = None
        self.stop_heartbeat()
        self._on_close(code, reason)

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self._heartbeat_interval)
            transport = self._transport
            if transport is None or not transport.is_open:
                return
            try:
                await transport.ping()
                LOGGER.debug("Ping sent to server")
            except asyncio.CancelledError:
                raise
            except Exception as exc:  # noqa: BLE001
                LOGGER.warning("Heartbeat loop error: %s", exc)
