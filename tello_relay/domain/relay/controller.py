"""Session lifecycle controller for the Tello video relay.

Owns the command channel and the relay session, sequences the handshake, and
publishes a ``SessionStatus`` through an observable cell. All work happens on
one event loop; ordering races are handled with two monotonically increasing
counters:

- attempt ids: every start() takes a new one, and stop() or any failure
  invalidates it. After each suspension point start() checks whether it has
  been superseded and, if so, releases what it acquired and returns.
- relay session ids: a completion whose id does not match the tracked relay
  is stale and ignored.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from loguru import logger

from tello_relay.app_config import AppEnvironConfig, get_app_environ_config
from tello_relay.schemas import Endpoint, SessionState, SessionStatus
from tello_relay.utils.app_errors import (
    BindError,
    CancelError,
    LaunchError,
    RelayFailure,
    SendError,
    SocketFault,
)

from .command_channel import CommandChannel
from .relay_supervisor import (
    InvocationSpec,
    RelayCompletion,
    RelayOutcome,
    RelaySupervisor,
    build_invocation,
)
from .session_state_machine import SessionStateMachine
from .state_cell import ValueCell, ValueView

# Enter SDK mode, then enable the video stream
HANDSHAKE_COMMANDS = ("command", "streamon")

ChannelOpener = Callable[[int], Awaitable[CommandChannel]]
Sleeper = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RelayTopology:
    """Fixed endpoints and timings of one relay deployment."""

    command_endpoint: Endpoint
    video_input_endpoint: Endpoint
    output_endpoint: Endpoint
    local_command_port: int
    handshake_delay: float

    @classmethod
    def from_config(cls, cfg: AppEnvironConfig) -> RelayTopology:
        return cls(
            command_endpoint=Endpoint(host=cfg.TELLO_IP, port=cfg.TELLO_COMMAND_PORT),
            video_input_endpoint=Endpoint(host=cfg.VIDEO_INPUT_HOST, port=cfg.TELLO_VIDEO_PORT),
            output_endpoint=Endpoint(host=cfg.RELAY_HTTP_HOST, port=cfg.RELAY_HTTP_PORT),
            local_command_port=cfg.LOCAL_COMMAND_PORT,
            handshake_delay=cfg.HANDSHAKE_DELAY_MS / 1000.0,
        )

    @property
    def stream_url(self) -> str:
        return self.output_endpoint.url("http")


class RelaySessionController:
    """Single owner of the command channel, the relay session and the session status."""

    def __init__(
        self,
        cfg: AppEnvironConfig | None = None,
        *,
        supervisor: RelaySupervisor | None = None,
        channel_opener: ChannelOpener | None = None,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        cfg = cfg or get_app_environ_config()
        self.topology = RelayTopology.from_config(cfg)
        self.invocation: InvocationSpec = build_invocation(
            self.topology.video_input_endpoint,
            self.topology.output_endpoint,
            binary=cfg.FFMPEG_BINARY,
            probe_size=cfg.RELAY_PROBE_SIZE,
            analyze_duration_us=cfg.RELAY_ANALYZE_DURATION_US,
            input_timeout_us=cfg.RELAY_INPUT_TIMEOUT_US,
        )
        self._supervisor = supervisor or RelaySupervisor(stop_timeout=cfg.RELAY_STOP_TIMEOUT_SECONDS)
        self._open_channel = channel_opener or CommandChannel.open
        self._sleep = sleep

        self._status = ValueCell(SessionStatus())
        self._channel: CommandChannel | None = None
        self._relay_id: int | None = None
        self._attempt = 0
        self._tasks: set[asyncio.Task] = set()

    # ---------- observation ----------

    @property
    def status(self) -> SessionStatus:
        return self._status.value

    @property
    def state(self) -> SessionState:
        return self._status.value.state

    @property
    def status_view(self) -> ValueView[SessionStatus]:
        return self._status.view()

    @property
    def has_channel(self) -> bool:
        return self._channel is not None

    @property
    def relay_session_id(self) -> int | None:
        return self._relay_id

    # ---------- lifecycle ----------

    async def start(self) -> SessionStatus:
        """Bind the command socket, run the handshake and launch the relay.

        Never raises for bind/send/launch failures: they end in ERROR with a
        message and every acquired resource released. A no-op while a session
        is already handshaking or streaming.
        """
        if not SessionStateMachine.can_start(self.state):
            logger.info(f"Already streaming or attempting to start (state={self.state})")
            return self.status

        if self.state == SessionState.ERROR:
            await self._teardown()

        if self._channel is not None or self._relay_id is not None:
            logger.info("Already streaming or attempting to start (resources held)")
            return self.status

        self._attempt += 1
        attempt = self._attempt
        self._set_status(SessionState.HANDSHAKING)

        port = self.topology.local_command_port
        logger.info(f"Creating UDP command socket on port {port}")
        try:
            channel = await self._open_channel(port)
        except BindError as e:
            await self._abort(attempt, str(e))
            return self.status

        if self._superseded(attempt):
            logger.info("Start superseded while binding, closing new command socket")
            channel.close()
            return self.status

        self._channel = channel
        channel.on_message(self._on_device_message)
        channel.on_error(lambda fault: self._on_socket_fault(attempt, fault))

        try:
            for command in HANDSHAKE_COMMANDS:
                await channel.send(command, self.topology.command_endpoint)
                await self._sleep(self.topology.handshake_delay)
                if self._superseded(attempt):
                    logger.info(f"Start superseded during handshake after {command!r}")
                    return self.status
        except SendError as e:
            await self._abort(attempt, f"Failed to send command: {e}")
            return self.status

        logger.info("Drone commands sent. Starting relay...")
        try:
            relay_id = await self._supervisor.start(self.invocation, self._on_relay_completed)
        except LaunchError as e:
            await self._abort(attempt, str(e))
            return self.status

        if self._superseded(attempt):
            logger.info(f"Start superseded while launching relay session {relay_id}, cancelling it")
            await self._cancel_relay(relay_id)
            return self.status

        self._relay_id = relay_id
        self._set_status(SessionState.STREAMING)
        logger.info(f"Streaming: relay session {relay_id} serving {self.topology.stream_url}")
        return self.status

    async def stop(self) -> SessionStatus:
        """Cancel the relay, close the socket and return to IDLE. Always succeeds."""
        logger.info("Cleaning up...")
        self._attempt += 1
        await self._teardown()
        self._set_status(SessionState.IDLE)
        return self.status

    async def close(self) -> None:
        """Stop the session and wait for outstanding callbacks; used on shutdown."""
        await self.stop()
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        await self._supervisor.shutdown()

    # ---------- playback reports ----------

    def report_playback_error(self, message: str) -> SessionStatus:
        """Record a player-side error while streaming; ignored in any other state."""
        current = self.status
        if current.state != SessionState.STREAMING:
            logger.warning(f"Ignoring video player error in state {current.state}: {message}")
            return current

        logger.error(f"Video player error: {message}")
        self._status.set(current.model_copy(update={"error_message": f"Video Player Error: {message}"}))
        return self.status

    def report_playback_loaded(self) -> SessionStatus:
        """Clear a player-side error once the player has loaded the stream."""
        logger.info("Video player loaded stream successfully")
        current = self.status
        if current.state == SessionState.STREAMING and current.error_message:
            self._status.set(current.model_copy(update={"error_message": None}))
        return self.status

    # ---------- internals ----------

    def _superseded(self, attempt: int) -> bool:
        return attempt != self._attempt

    def _set_status(self, state: SessionState, error_message: str | None = None) -> None:
        current = self.status
        if state != current.state and not SessionStateMachine.can_transition(current.state, state):
            logger.error(f"Invalid state transition from {current.state} to {state}")
            return

        streaming = state == SessionState.STREAMING
        changed = self._status.set(
            SessionStatus(
                state=state,
                error_message=error_message,
                stream_url=self.topology.stream_url if streaming else None,
                relay_session_id=self._relay_id if streaming else None,
            )
        )
        if changed and state != current.state:
            logger.info(f"Session state {current.state} -> {state}")

    async def _abort(self, attempt: int, message: str) -> None:
        if self._superseded(attempt):
            logger.info(f"Ignoring failure of superseded attempt: {message}")
            return
        await self._fail(message)

    async def _fail(self, message: str) -> None:
        logger.error(f"Relay session failed: {message}")
        self._attempt += 1
        await self._teardown()
        self._set_status(SessionState.ERROR, message)

    async def _teardown(self) -> None:
        # Detach handles first so re-entrant callers see nothing to release
        relay_id, self._relay_id = self._relay_id, None
        channel, self._channel = self._channel, None

        if relay_id is not None:
            await self._cancel_relay(relay_id)

        if channel is not None:
            logger.info("Closing UDP socket")
            try:
                channel.close()
            except Exception as e:
                logger.error(f"Error closing socket: {e}")

    async def _cancel_relay(self, relay_id: int) -> None:
        logger.info(f"Cancelling relay session: {relay_id}")
        try:
            await self._supervisor.cancel(relay_id)
        except CancelError as e:
            logger.error(f"Error cancelling relay session {relay_id}: {e}")

    def _on_device_message(self, payload: bytes, sender: Endpoint) -> None:
        text = payload.decode("utf-8", errors="replace").strip()
        logger.info(f"Drone response: {text} from {sender}")

    def _on_socket_fault(self, attempt: int, fault: SocketFault) -> None:
        if self._superseded(attempt):
            logger.debug(f"Ignoring fault from superseded command socket: {fault}")
            return
        # Supersession is checked again when the task runs
        self._spawn(self._abort(attempt, str(fault)))

    async def _on_relay_completed(self, completion: RelayCompletion) -> None:
        if completion.session_id != self._relay_id:
            logger.debug(
                f"Ignoring completion of relay session {completion.session_id} "
                f"(tracked: {self._relay_id})"
            )
            return

        self._relay_id = None
        if completion.outcome == RelayOutcome.CANCELLED:
            logger.info("Relay process cancelled")
        elif completion.outcome == RelayOutcome.SUCCESS:
            logger.warning("Relay process finished successfully while streaming was active")
            await self.stop()
        else:
            failure = RelayFailure(completion.return_code, completion.log)
            logger.error("Relay process failed!")
            logger.error("------ Relay Logs Start ------")
            logger.error(completion.log or "No logs captured.")
            logger.error("------ Relay Logs End --------")
            await self._fail(failure.errmesg)

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
