"""Common enums used across schemas."""

from enum import Enum


class SessionState(str, Enum):
    """Relay session lifecycle states.

    State Transition Flow:

    IDLE → HANDSHAKING → STREAMING
             ↓              ↓
           ERROR ←──────────┘
    (any) ──stop()──→ IDLE

    State Descriptions:
    - IDLE: No command socket and no relay process. Set on startup and by stop().
    - HANDSHAKING: Command socket bound, handshake commands being sent. Set by start().
    - STREAMING: Relay process launched; the output URL may be played.
    - ERROR: A step of start() failed, the relay failed, or the socket faulted.
      Resources are already released; a fresh start() is the only recovery.
    """

    IDLE = "idle"
    HANDSHAKING = "handshaking"
    STREAMING = "streaming"
    ERROR = "error"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def active_states(cls) -> list["SessionState"]:
        """States in which a command socket or relay process may be held."""
        return [SessionState.HANDSHAKING, SessionState.STREAMING]


__all__ = ["SessionState"]
