"""Pydantic schemas shared by the domain and API layers."""

from .relay import Endpoint, SessionStatus
from .session_state import SessionState

__all__ = [
    "Endpoint",
    "SessionState",
    "SessionStatus",
]
