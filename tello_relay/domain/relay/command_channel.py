"""UDP command channel to the device.

Commands are fire-and-forget ASCII datagrams. Replies arrive out of band
and are handed to ``on_message`` subscribers; transport faults (for example
ICMP port-unreachable surfacing as ``ConnectionRefusedError``) are handed to
``on_error`` subscribers as ``SocketFault``.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable

from loguru import logger

from tello_relay.schemas import Endpoint
from tello_relay.utils.app_errors import BindError, SendError, SocketFault

MessageCallback = Callable[[bytes, Endpoint], None]
ErrorCallback = Callable[[SocketFault], None]


class _CommandProtocol(asyncio.DatagramProtocol):
    def __init__(self, channel: CommandChannel) -> None:
        self._channel = channel

    def datagram_received(self, data: bytes, addr) -> None:
        self._channel._dispatch_message(data, Endpoint(host=addr[0], port=addr[1]))

    def error_received(self, exc: Exception) -> None:
        self._channel._dispatch_error(SocketFault(f"UDP socket error: {exc}"))

    def connection_lost(self, exc: Exception | None) -> None:
        if exc is not None:
            self._channel._dispatch_error(SocketFault(f"UDP socket lost: {exc}"))


class CommandChannel:
    """Exclusively-owned UDP socket bound to a local port."""

    def __init__(self, local_port: int) -> None:
        self.local_port = local_port
        self._transport: asyncio.DatagramTransport | None = None
        self._closed = False
        self._message_callbacks: list[MessageCallback] = []
        self._error_callbacks: list[ErrorCallback] = []

    @classmethod
    async def open(cls, local_port: int, *, host: str = "0.0.0.0") -> CommandChannel:
        """Bind a new channel to ``host:local_port``.

        Raises:
            BindError: If the port is in use or the network stack rejects the bind
        """
        channel = cls(local_port)
        loop = asyncio.get_running_loop()
        try:
            transport, _ = await loop.create_datagram_endpoint(
                lambda: _CommandProtocol(channel),
                local_addr=(host, local_port),
            )
        except OSError as e:
            raise BindError(f"Failed to bind command socket to port {local_port}: {e}") from e

        channel._transport = transport
        sockname = transport.get_extra_info("sockname")
        if sockname:
            channel.local_port = sockname[1]
        logger.info(f"Command socket bound to {host}:{channel.local_port}")
        return channel

    @property
    def closed(self) -> bool:
        return self._closed or self._transport is None

    def on_message(self, callback: MessageCallback) -> None:
        self._message_callbacks.append(callback)

    def on_error(self, callback: ErrorCallback) -> None:
        self._error_callbacks.append(callback)

    async def send(self, command: str, remote: Endpoint) -> None:
        """Send ``command`` as a single datagram to ``remote``.

        Raises:
            SendError: If the channel is closed, the command is not ASCII,
                or the OS rejects the datagram
        """
        if self.closed:
            raise SendError(f"Cannot send {command!r}: command socket is closed")

        try:
            payload = command.encode("ascii")
        except UnicodeEncodeError as e:
            raise SendError(f"Command {command!r} is not ASCII") from e

        logger.info(f"Sending command: {command} -> {remote}")
        try:
            self._transport.sendto(payload, remote.address)
        except OSError as e:
            raise SendError(f"Failed to send command {command!r} to {remote}: {e}") from e
        logger.debug(f"Command {command} sent")

    def close(self) -> None:
        """Release the socket. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        transport, self._transport = self._transport, None
        if transport is not None:
            transport.close()
            logger.info(f"Command socket on port {self.local_port} closed")

    def _dispatch_message(self, payload: bytes, sender: Endpoint) -> None:
        for callback in list(self._message_callbacks):
            callback(payload, sender)

    def _dispatch_error(self, fault: SocketFault) -> None:
        if self._closed:
            return
        for callback in list(self._error_callbacks):
            callback(fault)
