from pydantic import BaseModel, ConfigDict

from .session_state import SessionState


class Endpoint(BaseModel):
    """A (host, port) pair. Immutable for the life of a session."""

    model_config = ConfigDict(frozen=True)

    host: str
    port: int

    @property
    def address(self) -> tuple[str, int]:
        return (self.host, self.port)

    def url(self, scheme: str) -> str:
        return f"{scheme}://{self.host}:{self.port}"

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


class SessionStatus(BaseModel):
    """Read-only snapshot of the relay session, as observed by the presentation layer."""

    model_config = ConfigDict(frozen=True)

    state: SessionState = SessionState.IDLE
    error_message: str | None = None
    # Set only while STREAMING; the player must not be pointed anywhere otherwise
    stream_url: str | None = None
    relay_session_id: int | None = None

    @property
    def is_playable(self) -> bool:
        return self.state == SessionState.STREAMING and self.stream_url is not None
