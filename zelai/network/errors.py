"""Error taxonomy surfaced by the WebSocket session."""

from __future__ import annotations

from typing import Any, Optional


class ZelAIError(RuntimeError):
    """Base error carrying a machine-readable ``code`` and a human message."""

    code = "zelai_error"

    def __init__(self, message: str, *, code: Optional[str] = None, details: Any = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r})"


class NotConnectedError(ZelAIError):
    """Raised when an operation needs a ready session and there is none."""

    code = "not_connected"


class ConnectError(ZelAIError):
    """Raised when the socket cannot be opened or closes during the handshake."""

    code = "connect_failed"


class AuthenticationError(ZelAIError):
    """Raised when the service rejects the credential or never answers it."""

    code = "auth_failed"


class RemoteError(ZelAIError):
    """Error frame correlated to a single request."""

    code = "remote_error"


class RequestTimeoutError(ZelAIError):
    """No terminal frame arrived within the request's timeout."""

    code = "request_timeout"


class ClientClosedError(ZelAIError):
    """The session was closed by the caller."""

    code = "client_closed"


class StreamAbortedError(ZelAIError):
    """The stream was aborted before its terminal frame."""

    code = "stream_aborted"


class ReconnectFailedError(ZelAIError):
    """Reconnection gave up after the configured number of attempts."""

    code = "reconnect_exhausted"
