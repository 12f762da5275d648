"""Connection state machine for the generation WebSocket session."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone


class SessionState(enum.Enum):
    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    AUTHENTICATING = "AUTHENTICATING"
    READY = "READY"
    RECONNECTING = "RECONNECTING"


@dataclass
class SessionTracker:
    """In-memory session state and counters."""

    state: SessionState = SessionState.DISCONNECTED
    authenticated: bool = False
    reconnect_attempts: int = 0
    last_transition_at: datetime = field(default_factory=lambda: datetime.now(tz=timezone.utc))

    def transition(self, next_state: SessionState) -> None:
        """Move the session into a new state, validating allowed transitions."""

        if not self._is_valid_transition(self.state, next_state):
            raise ValueError(f"Invalid transition {self.state.value} → {next_state.value}")
        self.state = next_state
        self.last_transition_at = datetime.now(tz=timezone.utc)

    @staticmethod
    def _is_valid_transition(current: SessionState, nxt: SessionState) -> bool:
        allowed = {
            SessionState.DISCONNECTED: {SessionState.CONNECTING},
            SessionState.CONNECTING: {
                SessionState.AUTHENTICATING,
                SessionState.DISCONNECTED,
                SessionState.RECONNECTING,
            },
            SessionState.AUTHENTICATING: {
                SessionState.READY,
                SessionState.DISCONNECTED,
                SessionState.RECONNECTING,
            },
            SessionState.READY: {SessionState.DISCONNECTED, SessionState.RECONNECTING},
            SessionState.RECONNECTING: {SessionState.CONNECTING, SessionState.DISCONNECTED},
        }
        return nxt in allowed.get(current, set())
