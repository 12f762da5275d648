"""Network stack (transport/connection/session) for the generation WebSocket."""

from zelai.network.connection import Connection
from zelai.network.errors import (
    AuthenticationError,
    ClientClosedError,
    ConnectError,
    NotConnectedError,
    ReconnectFailedError,
    RemoteError,
    RequestTimeoutError,
    StreamAbortedError,
    ZelAIError,
)
from zelai.network.session import Session
from zelai.network.session_state import SessionState, SessionTracker
from zelai.network.streams import StreamController
from zelai.network.transport.base import BaseTransport
from zelai.network.transport.dummy import DummyTransport
from zelai.network.transport.websocket import WebSocketTransport

__all__ = [
    "Session",
    "SessionState",
    "SessionTracker",
    "Connection",
    "StreamController",
    "BaseTransport",
    "WebSocketTransport",
    "DummyTransport",
    "ZelAIError",
    "NotConnectedError",
    "ConnectError",
    "AuthenticationError",
    "RemoteError",
    "RequestTimeoutError",
    "ClientClosedError",
    "StreamAbortedError",
    "ReconnectFailedError",
]
