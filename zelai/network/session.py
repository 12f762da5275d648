"""Session layer for the ZelAI generation WebSocket.

This layer is responsible for:
- Transport lifecycle (via Connection)
- Authentication handshake and heartbeat
- Request/response correlation and timeouts
- Stream multiplexing by request id
- Reconnection with exponential backoff and replay of pending requests

It knows the frame envelope but not the individual generation payloads.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from pydantic import ValidationError

from zelai.config import ClientSettings
from zelai.models.frames import (
    AUTH_ERROR_CODE,
    CHUNK_FRAME_KINDS,
    TERMINAL_FRAME_TYPES,
    ErrorData,
    FrameType,
    ServerFrame,
    StreamKind,
)
from zelai.network.connection import Connection
from zelai.network.errors import (
    AuthenticationError,
    ClientClosedError,
    ConnectError,
    NotConnectedError,
    ReconnectFailedError,
    RemoteError,
    StreamAbortedError,
)
from zelai.network.pending import RequestTable
from zelai.network.session_state import SessionState, SessionTracker
from zelai.network.streams import (
    ChunkCallback,
    CompleteCallback,
    ErrorCallback,
    StreamController,
    StreamRegistry,
    StreamSubscription,
    chunk_arguments,
)
from zelai.network.transport.base import NORMAL_CLOSURE, BaseTransport, TransportClosed
from zelai.protocol import (
    build_auth_frame,
    build_cancel_frame,
    build_frame,
    new_request_id,
    parse_frame,
)
from zelai.protocol.frames import Payload

LOGGER = logging.getLogger(__name__)
CLOSE_REASON = "Client closed"


def _consume_exception(future: asyncio.Future[Any]) -> None:
    if not future.cancelled():
        future.exception()


@dataclass
class Session:
    """Client-side session for the generation WebSocket."""

    settings: ClientSettings
    transport_factory: Callable[[ClientSettings], BaseTransport]
    tracker: SessionTracker = field(default_factory=SessionTracker)

    _conn: Connection = field(init=False, repr=False)
    _requests: RequestTable = field(init=False, repr=False)
    _streams: StreamRegistry = field(default_factory=StreamRegistry, init=False, repr=False)
    _auth_waiter: Optional[asyncio.Future[None]] = field(default=None, init=False, repr=False)
    _connect_task: Optional[asyncio.Task[None]] = field(default=None, init=False, repr=False)
    _reconnect_task: Optional[asyncio.Task[None]] = field(default=None, init=False, repr=False)
    _closed: bool = field(default=False, init=False, repr=False)

    def __post_init__(self) -> None:
        self._conn = Connection(
            self.settings,
            self.transport_factory,
            on_message=self._on_message,
            on_close=self._on_transport_closed,
        )
        self._requests = RequestTable(on_expire=self._on_request_expired)

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    @property
    def state(self) -> SessionState:
        return self.tracker.state

    @property
    def connection(self) -> Connection:
        return self._conn

    @property
    def pending_count(self) -> int:
        return len(self._requests)

    @property
    def stream_count(self) -> int:
        return len(self._streams)

    def is_connected(self) -> bool:
        """True when the socket is open and the credential was accepted."""

        return self._conn.is_open and self.tracker.authenticated

    async def connect(self) -> None:
        """Open the socket and authenticate.

        Concurrent callers share a single attempt. Calling this on a ready
        session returns immediately; while a reconnection is running it is a
        no-op.
        """

        if self._closed:
            raise ClientClosedError(CLOSE_REASON)
        if self.tracker.state is SessionState.READY:
            return
        if self._reconnect_task and not self._reconnect_task.done():
            LOGGER.debug("connect() ignored while reconnection is in progress")
            return
        task = self._connect_task
        if task is None or task.done():
            task = asyncio.create_task(self._open_and_authenticate(initial=True), name="zelai-connect")
            self._connect_task = task
        await asyncio.shield(task)

    async def send_and_await(
        self,
        message_type: str,
        payload: Optional[Payload] = None,
        *,
        timeout_ms: Optional[int] = None,
    ) -> Any:
        """Send a request frame and wait for its terminal frame's ``data``."""

        self._ensure_ready()
        timeout = timeout_ms if timeout_ms is not None else self.settings.request_timeout_ms
        request_id = self._next_request_id()
        frame = build_frame(message_type, payload, request_id=request_id)
        future = self._requests.register(request_id, frame, timeout / 1000.0)
        try:
            await self._transmit(request_id, frame)
            return await future
        finally:
            self._requests.discard(request_id)

    async def start_stream(
        self,
        message_type: str,
        payload: Optional[Payload] = None,
        *,
        kind: StreamKind,
        on_chunk: ChunkCallback,
        on_complete: Optional[CompleteCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        timeout_ms: Optional[int] = None,
        parser: Optional[Callable[[Any], Any]] = None,
    ) -> StreamController:
        """Send a streaming request and route its chunks to ``on_chunk``.

        Returns once the frame is handed to the transport; the returned
        controller can be awaited for the terminal data or used to abort.
        """

        self._ensure_ready()
        timeout = timeout_ms if timeout_ms is not None else self.settings.stream_timeout_ms
        request_id = self._next_request_id()
        frame = build_frame(message_type, payload, request_id=request_id, stream=True)
        future = self._requests.register(request_id, frame, timeout / 1000.0)
        future.add_done_callback(_consume_exception)
        self._streams.add(
            StreamSubscription(
                request_id=request_id,
                kind=kind,
                on_chunk=on_chunk,
                on_complete=on_complete,
                on_error=on_error,
            )
        )
        try:
            await self._transmit(request_id, frame)
        except BaseException:
            self._streams.pop(request_id)
            self._requests.discard(request_id)
            raise
        return StreamController(self, request_id, future, parser=parser)

    async def abort(self, request_id: str) -> bool:
        """Drop a stream (or plain request) and ask the service to stop it.

        No callback fires for ``request_id`` afterwards. Returns ``False``
        when the id had already terminated.
        """

        subscription = self._streams.pop(request_id)
        removed = self._requests.discard(request_id, StreamAbortedError(f"Stream {request_id} aborted"))
        if subscription is None and not removed:
            LOGGER.debug("abort(%s) ignored: request already finished", request_id)
            return False
        if self._conn.is_open:
            try:
                await self._conn.send(build_cancel_frame(request_id))
            except Exception as exc:  # noqa: BLE001
                LOGGER.debug("Cancel frame for %s not delivered: %s", request_id, exc)
        return True

    async def close(self) -> None:
        """Reject everything pending, stop reconnecting and close the socket."""

        if self._closed:
            return
        self._closed = True
        self._fail_all(lambda: ClientClosedError(CLOSE_REASON))
        waiter = self._auth_waiter
        if waiter is not None and not waiter.done():
            self._auth_waiter = None
            waiter.set_exception(ClientClosedError(CLOSE_REASON))
        self.tracker.authenticated = False

        task = self._reconnect_task
        self._reconnect_task = None
        if task and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        await self._conn.close(NORMAL_CLOSURE, CLOSE_REASON)
        self._transition(SessionState.DISCONNECTED)
        LOGGER.info("Session closed")

    async def __aenter__(self) -> Session:
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # ------------------------------------------------------------------ #
    # Handshake / reconnection
    # ------------------------------------------------------------------ #
    async def _open_and_authenticate(self, *, initial: bool) -> None:
        if self._closed:
            raise ClientClosedError(CLOSE_REASON)
        self._transition(SessionState.CONNECTING)
        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._auth_waiter = waiter
        try:
            try:
                await self._conn.open()
            except Exception as exc:  # noqa: BLE001
                raise ConnectError(f"Failed to connect to {self.settings.ws_url}: {exc}") from exc
            if self._closed:
                raise ClientClosedError(CLOSE_REASON)
            self._transition(SessionState.AUTHENTICATING)
            try:
                await self._conn.send(build_auth_frame(self.settings.api_key or ""))
            except (TransportClosed, NotConnectedError) as exc:
                raise ConnectError("Connection closed before authentication") from exc
            auth_timeout = self.settings.auth_timeout_ms
            try:
                await asyncio.wait_for(
                    asyncio.shield(waiter),
                    auth_timeout / 1000.0 if auth_timeout else None,
                )
            except asyncio.TimeoutError as exc:
                raise AuthenticationError("Authentication timed out", code="auth_timeout") from exc
            if not initial:
                await self._replay_pending()
            if not self._conn.is_open:
                raise ConnectError("Connection lost before the session became ready")
        except BaseException:
            if self._auth_waiter is waiter:
                self._auth_waiter = None
            if not waiter.done():
                waiter.cancel()
            elif not waiter.cancelled():
                waiter.exception()
            await self._conn.close(NORMAL_CLOSURE, "Authentication failed")
            if initial and not self._closed:
                self._transition(SessionState.DISCONNECTED)
            raise

        self.tracker.reconnect_attempts = 0
        self._transition(SessionState.READY)
        self._conn.start_heartbeat()
        LOGGER.info("Session ready at %s", self.settings.ws_url)

    async def _replay_pending(self) -> None:
        replayed = 0
        for pending in self._requests:
            if pending.request_id not in self._requests:
                continue
            try:
                await self._conn.send(pending.frame)
            except (TransportClosed, NotConnectedError) as exc:
                LOGGER.warning("Replay interrupted after %s request(s): %s", replayed, exc)
                return
            replayed += 1
        if replayed:
            LOGGER.info("Replayed %s pending request(s) after reconnect", replayed)

    async def _reconnect_loop(self) -> None:
        base = self.settings.reconnect_base_delay_ms / 1000.0
        ceiling = self.settings.reconnect_max_delay_ms / 1000.0
        limit = self.settings.reconnect_max_attempts
        while not self._closed:
            attempts = self.tracker.reconnect_attempts
            if limit is not None and attempts >= limit:
                self._give_up(attempts)
                return
            delay = min(base * (2 ** attempts), ceiling)
            self.tracker.reconnect_attempts = attempts + 1
            LOGGER.info("Reconnecting in %.3fs (attempt %s)", delay, attempts + 1)
            await asyncio.sleep(delay)
            if self._closed:
                return
            try:
                await self._open_and_authenticate(initial=False)
            except asyncio.CancelledError:
                raise
            except Exception as exc:  # noqa: BLE001
                LOGGER.warning("Reconnect attempt %s failed: %s", attempts + 1, exc)
                self._transition(SessionState.RECONNECTING)
                continue
            if self.tracker.state is not SessionState.RECONNECTING:
                return

    def _give_up(self, attempts: int) -> None:
        LOGGER.error("Giving up after %s reconnect attempt(s)", attempts)
        self.tracker.reconnect_attempts = 0
        self._transition(SessionState.DISCONNECTED)
        self._fail_all(lambda: ReconnectFailedError(f"Reconnection failed after {attempts} attempts"))

    def _on_transport_closed(self, code: int, reason: str) -> None:
        self.tracker.authenticated = False
        waiter = self._auth_waiter
        if waiter is not None and not waiter.done():
            self._auth_waiter = None
            waiter.set_exception(ConnectError(f"Connection closed during authentication ({code} {reason})".strip()))
            return
        if self._closed:
            return
        if self.tracker.state in (SessionState.CONNECTING, SessionState.AUTHENTICATING):
            LOGGER.debug("Socket closed during handshake (%s %s)", code, reason)
            return
        if code == NORMAL_CLOSURE or not self.settings.auto_reconnect:
            LOGGER.info("WebSocket closed (%s %s)", code, reason)
            self._transition(SessionState.DISCONNECTED)
            return
        LOGGER.warning("WebSocket lost (%s %s); %s request(s) pending", code, reason, len(self._requests))
        self._transition(SessionState.RECONNECTING)
        if self._reconnect_task is None or self._reconnect_task.done():
            self._reconnect_task = asyncio.create_task(self._reconnect_loop(), name="zelai-reconnect")

    # ------------------------------------------------------------------ #
    # Inbound dispatch
    # ------------------------------------------------------------------ #
    def _on_message(self, raw: dict[str, Any]) -> None:
        try:
            frame = parse_frame(raw)
        except ValidationError as exc:
            LOGGER.warning("Dropping malformed frame: %s", exc)
            return
        kind = frame.kind
        if kind is FrameType.AUTH_SUCCESS:
            self._handle_auth_success()
        elif kind is FrameType.ERROR:
            self._handle_error(frame)
        elif kind in TERMINAL_FRAME_TYPES:
            self._handle_terminal(frame)
        elif kind in CHUNK_FRAME_KINDS:
            self._handle_chunk(frame, CHUNK_FRAME_KINDS[kind])
        elif kind is FrameType.PONG:
            return
        else:
            LOGGER.debug("Unhandled message type: %s", frame.type)

    def _handle_auth_success(self) -> None:
        waiter = self._auth_waiter
        if waiter is None or waiter.done():
            LOGGER.debug("Ignoring auth_success outside of a handshake")
            return
        self._auth_waiter = None
        self.tracker.authenticated = True
        waiter.set_result(None)

    def _handle_error(self, frame: ServerFrame) -> None:
        data = frame.data if isinstance(frame.data, dict) else {}
        error = ErrorData.model_validate(data)
        request_id = frame.request_id
        if request_id is None:
            waiter = self._auth_waiter
            if error.code == AUTH_ERROR_CODE and waiter is not None and not waiter.done():
                self._auth_waiter = None
                waiter.set_exception(AuthenticationError(error.message, details=data))
            else:
                LOGGER.warning("Server error without request id: %s (%s)", error.message, error.code)
            return
        exc = RemoteError(error.message, code=error.code, details=data)
        subscription = self._streams.pop(request_id)
        if not self._requests.reject(request_id, exc):
            LOGGER.debug("Dropping error frame for unknown request %s", request_id)
            return
        if subscription is not None:
            subscription.fail(exc)

    def _handle_terminal(self, frame: ServerFrame) -> None:
        request_id = frame.request_id
        if request_id is None:
            LOGGER.debug("Dropping %s frame without request id", frame.type)
            return
        subscription = self._streams.pop(request_id)
        if not self._requests.resolve(request_id, frame.data):
            LOGGER.debug("Dropping %s frame for unknown request %s", frame.type, request_id)
            return
        if subscription is not None:
            subscription.complete(frame.data)

    def _handle_chunk(self, frame: ServerFrame, kind: StreamKind) -> None:
        request_id = frame.request_id
        subscription = self._streams.get(request_id) if request_id else None
        if subscription is None:
            LOGGER.debug("Dropping orphan %s frame for %s", frame.type, request_id)
            return
        if subscription.kind is not kind:
            LOGGER.debug("Dropping %s frame for %s stream %s", frame.type, subscription.kind.value, request_id)
            return
        args = chunk_arguments(kind, frame.data)
        if args is not None:
            subscription.chunk(*args)

    def _on_request_expired(self, request_id: str, exc: Exception) -> None:
        subscription = self._streams.pop(request_id)
        if subscription is not None:
            subscription.fail(exc)

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #
    def _ensure_ready(self) -> None:
        if self._closed:
            raise ClientClosedError(CLOSE_REASON)
        if self.tracker.state is not SessionState.READY or not self._conn.is_open:
            raise NotConnectedError("WebSocket not connected")

    def _next_request_id(self) -> str:
        request_id = new_request_id()
        while request_id in self._requests or request_id in self._streams:
            request_id = new_request_id()
        return request_id

    async def _transmit(self, request_id: str, frame: dict[str, Any]) -> None:
        try:
            await self._conn.send(frame)
        except (TransportClosed, NotConnectedError) as exc:
            # Entry stays in the table and is replayed after reconnect.
            LOGGER.warning("Request %s not sent, awaiting reconnect: %s", request_id, exc)

    def _fail_all(self, exc_factory: Callable[[], Exception]) -> None:
        for request_id, exc in self._requests.reject_all(exc_factory).items():
            subscription = self._streams.pop(request_id)
            if subscription is not None:
                subscription.fail(exc)
        for subscription in self._streams.pop_all():
            subscription.fail(exc_factory())

    def _transition(self, next_state: SessionState) -> bool:
        if self.tracker.state is next_state:
            return True
        try:
            self.tracker.transition(next_state)
        except ValueError as exc:
            LOGGER.debug("Session transition skipped: %s", exc)
            return False
        LOGGER.debug("Session state -> %s", next_state.value)
        return True
