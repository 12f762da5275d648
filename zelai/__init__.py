"""Python client for the ZelAI generation WebSocket API."""

from zelai.client import ZelAIClient
from zelai.config import ClientSettings, get_settings
from zelai.network import (
    AuthenticationError,
    ClientClosedError,
    ConnectError,
    NotConnectedError,
    ReconnectFailedError,
    RemoteError,
    RequestTimeoutError,
    Session,
    SessionState,
    StreamAbortedError,
    StreamController,
    ZelAIError,
)

__version__ = "1.10.0"

__all__ = [
    "ZelAIClient",
    "ClientSettings",
    "get_settings",
    "Session",
    "SessionState",
    "StreamController",
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
