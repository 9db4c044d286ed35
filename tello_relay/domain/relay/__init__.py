"""Relay session domain: command channel, relay supervisor and lifecycle controller."""

from .command_channel import CommandChannel
from .controller import HANDSHAKE_COMMANDS, RelaySessionController, RelayTopology
from .relay_supervisor import (
    InvocationSpec,
    RelayCompletion,
    RelayOutcome,
    RelaySupervisor,
    build_invocation,
)
from .session_state_machine import SessionStateMachine
from .state_cell import ValueCell, ValueView

__all__ = [
    "HANDSHAKE_COMMANDS",
    "CommandChannel",
    "InvocationSpec",
    "RelayCompletion",
    "RelayOutcome",
    "RelaySessionController",
    "RelaySupervisor",
    "RelayTopology",
    "SessionStateMachine",
    "ValueCell",
    "ValueView",
    "build_invocation",
]
