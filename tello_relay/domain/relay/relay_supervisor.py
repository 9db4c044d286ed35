"""Supervisor for the external ffmpeg relay process.

The relay consumes the device's raw H.264 elementary stream from UDP and
republishes it, without re-encoding, as MPEG-TS over a single-listen HTTP
sink. Each launch gets a monotonically increasing session id; the completion
callback receives that id so callers can discard notifications for sessions
they have already superseded.
"""

from __future__ import annotations

import asyncio
import inspect
import itertools
import re
import shlex
import subprocess
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum

from loguru import logger

from tello_relay.schemas import Endpoint
from tello_relay.utils.app_errors import CancelError, LaunchError

DEFAULT_STOP_TIMEOUT_SECONDS = 5.0

# ffmpeg ends progress lines with \r and regular lines with \n
_LINE_BREAK = re.compile(rb"[\r\n]")
_READ_CHUNK_SIZE = 4096
_MAX_LINE_BYTES = 64 * 1024


class RelayOutcome(str, Enum):
    SUCCESS = "success"
    CANCELLED = "cancelled"
    FAILED = "failed"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class InvocationSpec:
    """Program and arguments for one relay process."""

    binary: str
    args: tuple[str, ...]
    input_url: str
    output_url: str

    @property
    def argv(self) -> list[str]:
        return [self.binary, *self.args]

    @property
    def command_line(self) -> str:
        return shlex.join(self.argv)


@dataclass(frozen=True)
class RelayCompletion:
    session_id: int
    outcome: RelayOutcome
    return_code: int | None
    # Full stderr of the process, never truncated
    log: str = ""


CompletionCallback = Callable[[RelayCompletion], Awaitable[None] | None]


def build_invocation(
    input_endpoint: Endpoint,
    output_endpoint: Endpoint,
    *,
    binary: str = "ffmpeg",
    probe_size: int = 1_000_000,
    analyze_duration_us: int = 1_000_000,
    input_timeout_us: int = 5_000_000,
) -> InvocationSpec:
    """Build the ffmpeg argument set bridging a raw UDP H.264 feed to HTTP MPEG-TS.

    Input side: bounded probe/analysis window, corrupt-frame discard, no
    input buffering and low-delay decoding flags, and a bounded wait for the
    first packet (``timeout`` on the udp:// URL, in microseconds).

    Output side: stream copy of the video track into MPEG-TS, served by
    ffmpeg's own HTTP server accepting exactly one client (``-listen 1``).
    """
    input_url = f"{input_endpoint.url('udp')}?timeout={input_timeout_us}"
    output_url = output_endpoint.url("http")

    args = (
        "-hide_banner",
        "-nostdin",
        "-f", "h264",
        "-analyzeduration", str(analyze_duration_us),
        "-probesize", str(probe_size),
        "-fflags", "+discardcorrupt+nobuffer",
        "-flags", "low_delay",
        "-avioflags", "direct",
        "-i", input_url,
        "-c:v", "copy",
        "-f", "mpegts",
        "-listen", "1",
        output_url,
    )
    return InvocationSpec(binary=binary, args=args, input_url=input_url, output_url=output_url)


@dataclass
class _RelayProcess:
    session_id: int
    process: asyncio.subprocess.Process
    log_lines: list[str] = field(default_factory=list)
    cancel_requested: bool = False
    watcher: asyncio.Task | None = None


class RelaySupervisor:
    """Launches relay processes and reports their terminal outcome asynchronously."""

    def __init__(self, *, stop_timeout: float = DEFAULT_STOP_TIMEOUT_SECONDS) -> None:
        self.stop_timeout = stop_timeout
        self._ids = itertools.count(1)
        self._sessions: dict[int, _RelayProcess] = {}

    @property
    def active_session_ids(self) -> list[int]:
        return list(self._sessions)

    def is_active(self, session_id: int) -> bool:
        return session_id in self._sessions

    async def start(self, spec: InvocationSpec, on_completion: CompletionCallback) -> int:
        """Launch the relay described by ``spec`` without waiting for it to finish.

        Any relay still running is cancelled (and awaited) first. ``on_completion``
        fires exactly once, from a task on the running loop, when the process ends.

        Returns:
            The session id of the new relay

        Raises:
            LaunchError: If the process could not be spawned
        """
        for old_session_id in self.active_session_ids:
            logger.warning(f"Relay session {old_session_id} already exists, cancelling previous one")
            await self.cancel(old_session_id)

        logger.info(f"Starting relay with command: {spec.command_line}")
        try:
            process = await asyncio.create_subprocess_exec(
                *spec.argv,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
            )
        except (OSError, ValueError) as e:
            raise LaunchError(f"Failed to start relay process {spec.binary!r}: {e}") from e

        session_id = next(self._ids)
        relay = _RelayProcess(session_id=session_id, process=process)
        self._sessions[session_id] = relay
        # No awaits between here and return: the caller records the id before the watcher runs
        relay.watcher = asyncio.create_task(
            self._watch(relay, on_completion), name=f"relay-watch:{session_id}"
        )
        logger.info(f"Relay session {session_id} starting (PID={process.pid})")
        return session_id

    async def cancel(self, session_id: int) -> None:
        """Terminate the relay ``session_id``; unknown or finished sessions are ignored.

        Raises:
            CancelError: If the process could not be signalled
        """
        relay = self._sessions.get(session_id)
        if relay is None or relay.process.returncode is not None:
            logger.debug(f"Relay session {session_id} is not running, nothing to cancel")
            return

        logger.info(f"Cancelling relay session {session_id}")
        relay.cancel_requested = True
        process = relay.process
        try:
            process.terminate()
        except ProcessLookupError:
            return
        except OSError as e:
            raise CancelError(f"Failed to terminate relay session {session_id}: {e}") from e

        try:
            await asyncio.wait_for(process.wait(), timeout=self.stop_timeout)
            logger.debug(f"Relay session {session_id} terminated gracefully")
        except asyncio.TimeoutError:
            logger.warning(f"Relay session {session_id} did not stop in {self.stop_timeout}s, killing")
            try:
                process.kill()
            except ProcessLookupError:
                return
            await process.wait()

    async def shutdown(self) -> None:
        """Cancel every tracked relay and wait for their completion callbacks."""
        # Watchers drop their session on exit, so collect them before cancelling
        watchers = [relay.watcher for relay in self._sessions.values() if relay.watcher]

        for session_id in self.active_session_ids:
            try:
                await self.cancel(session_id)
            except CancelError as e:
                logger.warning(f"Error cancelling relay session {session_id}: {e}")

        if watchers:
            await asyncio.gather(*watchers, return_exceptions=True)

    async def _watch(self, relay: _RelayProcess, on_completion: CompletionCallback) -> None:
        process = relay.process
        try:
            try:
                await self._forward_log(relay)
            except Exception:
                logger.exception(f"Reading output of relay session {relay.session_id} failed")
            return_code = await process.wait()
        finally:
            self._sessions.pop(relay.session_id, None)

        if relay.cancel_requested:
            outcome = RelayOutcome.CANCELLED
        elif return_code == 0:
            outcome = RelayOutcome.SUCCESS
        else:
            outcome = RelayOutcome.FAILED

        completion = RelayCompletion(
            session_id=relay.session_id,
            outcome=outcome,
            return_code=return_code,
            log="\n".join(relay.log_lines),
        )
        logger.info(f"Relay session {relay.session_id} completed: {outcome} (code {return_code})")

        try:
            result = on_completion(completion)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception(f"Relay completion handler failed for session {relay.session_id}")

    async def _forward_log(self, relay: _RelayProcess) -> None:
        stream = relay.process.stderr
        if stream is None:
            return

        pending = b""
        while True:
            chunk = await stream.read(_READ_CHUNK_SIZE)
            if not chunk:
                break

            *lines, pending = _LINE_BREAK.split(pending + chunk)
            for line in lines:
                self._record_line(relay, line)
            if len(pending) > _MAX_LINE_BYTES:
                self._record_line(relay, pending)
                pending = b""

        if pending:
            self._record_line(relay, pending)

    def _record_line(self, relay: _RelayProcess, line: bytes) -> None:
        message = line.decode(errors="replace").rstrip()
        if not message:
            return
        relay.log_lines.append(message)

        lowered = message.lower()
        if "error" in lowered or "fatal" in lowered:
            logger.warning(f"ffmpeg [{relay.session_id}]: {message}")
        else:
            logger.debug(f"ffmpeg [{relay.session_id}]: {message}")
