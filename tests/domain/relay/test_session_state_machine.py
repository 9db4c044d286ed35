"""Tests for SessionStateMachine."""

import pytest

from tello_relay.domain.relay.session_state_machine import SessionStateMachine
from tello_relay.schemas import SessionState


class TestSessionStateMachine:
    """Tests for SessionStateMachine transitions."""

    @pytest.mark.parametrize(
        "current,new",
        [
            (SessionState.IDLE, SessionState.HANDSHAKING),
            (SessionState.HANDSHAKING, SessionState.STREAMING),
            (SessionState.HANDSHAKING, SessionState.ERROR),
            (SessionState.HANDSHAKING, SessionState.IDLE),
            (SessionState.STREAMING, SessionState.ERROR),
            (SessionState.STREAMING, SessionState.IDLE),
            (SessionState.ERROR, SessionState.HANDSHAKING),
            (SessionState.ERROR, SessionState.IDLE),
        ],
    )
    def test_valid_transitions(self, current, new):
        """Test allowed transitions."""
        assert SessionStateMachine.can_transition(current, new) is True

    @pytest.mark.parametrize(
        "current,new",
        [
            (SessionState.IDLE, SessionState.STREAMING),
            (SessionState.IDLE, SessionState.ERROR),
            (SessionState.STREAMING, SessionState.HANDSHAKING),
            (SessionState.ERROR, SessionState.STREAMING),
        ],
    )
    def test_invalid_transitions(self, current, new):
        """Test rejected transitions."""
        assert SessionStateMachine.can_transition(current, new) is False

    def test_can_start(self):
        """Test start() is only accepted from IDLE or ERROR."""
        assert SessionStateMachine.can_start(SessionState.IDLE) is True
        assert SessionStateMachine.can_start(SessionState.ERROR) is True
        assert SessionStateMachine.can_start(SessionState.HANDSHAKING) is False
        assert SessionStateMachine.can_start(SessionState.STREAMING) is False

    def test_every_state_can_reach_idle_except_idle(self):
        """Test stop() has a path to IDLE from every other state."""
        assert SessionStateMachine.get_valid_sources(SessionState.IDLE) == {
            SessionState.HANDSHAKING,
            SessionState.STREAMING,
            SessionState.ERROR,
        }

    def test_get_valid_transitions(self):
        assert SessionStateMachine.get_valid_transitions(SessionState.STREAMING) == {
            SessionState.ERROR,
            SessionState.IDLE,
        }

    def test_state_str(self):
        assert str(SessionState.STREAMING) == "streaming"
        assert SessionState.active_states() == [SessionState.HANDSHAKING, SessionState.STREAMING]
