"""Session state machine for managing relay state transitions."""

from tello_relay.schemas import SessionState


class SessionStateMachine:
    """State machine for managing relay session state transitions.

    State flow with triggers:
    - IDLE -> HANDSHAKING (start() called)
    - HANDSHAKING -> STREAMING (handshake sent and relay launched) | ERROR | IDLE
    - STREAMING -> ERROR (relay failed or socket fault) | IDLE
    - ERROR -> HANDSHAKING (fresh start()) | IDLE

    Detailed triggers:
    1. IDLE: Initial state; set by stop() from any state, or when the relay ends cleanly
    2. HANDSHAKING: Set when start() has been accepted and the command socket is being bound
    3. STREAMING: Set when the relay process has been launched after the handshake
    4. ERROR: Set on bind/send/launch failure, relay failure or asynchronous socket fault
    """

    TRANSITIONS: dict[SessionState, set[SessionState]] = {
        SessionState.IDLE: {SessionState.HANDSHAKING},
        SessionState.HANDSHAKING: {
            SessionState.STREAMING,
            SessionState.ERROR,
            SessionState.IDLE,
        },
        SessionState.STREAMING: {SessionState.ERROR, SessionState.IDLE},
        SessionState.ERROR: {SessionState.HANDSHAKING, SessionState.IDLE},
    }

    @classmethod
    def can_transition(cls, current: SessionState, new: SessionState) -> bool:
        """Check if state transition is valid.

        Args:
            current: Current session state
            new: Target state to transition to

        Returns:
            True if transition is valid, False otherwise
        """
        return new in cls.TRANSITIONS.get(current, set())

    @classmethod
    def can_start(cls, state: SessionState) -> bool:
        """Check whether start() may begin a new session from ``state``."""
        return cls.can_transition(state, SessionState.HANDSHAKING)

    @classmethod
    def get_valid_transitions(cls, state: SessionState) -> set[SessionState]:
        """Get all valid transitions from a given state."""
        return cls.TRANSITIONS.get(state, set())

    @classmethod
    def get_valid_sources(cls, target: SessionState) -> set[SessionState]:
        """Get all states that can transition to the target state."""
        return {state for state, targets in cls.TRANSITIONS.items() if target in targets}
