from typing import Literal

from pydantic import BaseModel, Field

from tello_relay.schemas import SessionState, SessionStatus


class SessionStatusOut(BaseModel):
    state: SessionState
    error_message: str | None = None
    stream_url: str | None = None
    relay_session_id: int | None = None
    is_playable: bool = False

    @classmethod
    def from_status(cls, status: SessionStatus) -> "SessionStatusOut":
        return cls(
            state=status.state,
            error_message=status.error_message,
            stream_url=status.stream_url,
            relay_session_id=status.relay_session_id,
            is_playable=status.is_playable,
        )


class PlaybackEventIn(BaseModel):
    event: Literal["loaded", "error"]
    message: str | None = Field(default=None, max_length=2000)
