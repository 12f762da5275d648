"""Transport implementations for the generation WebSocket."""

from .base import BaseTransport, FrameDecodeError, TransportClosed
from .dummy import DummyTransport
from .websocket import WebSocketTransport

__all__ = ["BaseTransport", "DummyTransport", "FrameDecodeError", "TransportClosed", "WebSocketTransport"]
