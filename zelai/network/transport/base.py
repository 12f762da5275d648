"""Transport abstractions for the generation WebSocket."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

NORMAL_CLOSURE = 1000
ABNORMAL_CLOSURE = 1006
INTERNAL_ERROR = 1011


class TransportClosed(Exception):
    """Raised by transports when the underlying socket has closed."""

    def __init__(self, code: int = ABNORMAL_CLOSURE, reason: str = "") -> None:
        super().__init__(f"socket closed ({code}) {reason}".strip())
        self.code = code
        self.reason = reason


class FrameDecodeError(ValueError):
    """Raised when an inbound text frame is not a JSON object."""


class BaseTransport(ABC):
    """Abstract WebSocket-like transport owned by a ``Connection``."""

    @property
    @abstractmethod
    def is_open(self) -> bool:
        ...

    @abstractmethod
    async def connect(self) -> None:
        ...

    @abstractmethod
    async def send(self, message: dict[str, Any]) -> None:
        ...

    @abstractmethod
    async def receive(self) -> dict[str, Any]:
        ...

    @abstractmethod
    async def ping(self) -> None:
        ...

    @abstractmethod
    async def close(self, code: int = NORMAL_CLOSURE, reason: str = "") -> None:
        ...
