from __future__ import annotations

import socket
from dataclasses import dataclass
from typing import TYPE_CHECKING

from static_host_core.operations import Accept, Close, Read, Write
from static_host_loop._utils import _execute
from static_host_loop.log import get_logger
from static_host_loop.lowlevel import checkpoint
from static_host_loop.streams.exceptions import BrokenResourceError, EndOfStreamError

if TYPE_CHECKING:
    from static_host_loop.typedefs import Coro

logger = get_logger(__name__)


def create_server(host: str, port: int, backlog: int = 128) -> Coro[Server]:
    """Creates a listening TCP socket bound to host and port.

    Binding happens synchronously, so address errors surface as OSError right
    away instead of after the first accept.
    """
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    sock = socket.create_server(
        (host, port), family=family, backlog=backlog, reuse_port=False
    )
    bound_port = sock.getsockname()[1]
    server = Server(fd=sock.detach(), host=host, port=bound_port)
    logger.debug("Listening", host=host, port=bound_port, fd=server.fd)

    yield from checkpoint()
    return server


@dataclass(slots=True, kw_only=True)
class Server:
    """Used to accept new connections."""

    """The listening socket's file descriptor"""
    fd: int

    host: str

    """The bound port. Differs from the requested one when binding to port 0"""
    port: int

    def accept(self) -> Coro[Connection]:
        """Waits until there's a connection to accept."""
        result = yield from _execute(Accept(fd=self.fd))
        return Connection(fd=result.fd)

    def close(self) -> Coro[None]:
        """Close socket."""
        yield from _execute(Close(fd=self.fd))


@dataclass(slots=True, kw_only=True)
class Connection:
    """Corresponds to a socket connection, accepted by a Server or detached."""

    fd: int

    def receive(self, max_bytes: int = 65536) -> Coro[bytes]:
        """Reads data from socket.

        Raises:
            EndOfStreamError: when the peer has closed its end
            BrokenResourceError: when the connection was reset
        """
        try:
            result = yield from _execute(Read(fd=self.fd, size=max_bytes))
        except ConnectionError as e:
            raise BrokenResourceError(str(e)) from e
        if not result.content:
            raise EndOfStreamError
        return result.content

    def send(self, data: bytes, /) -> Coro[None]:
        """Sends all of data to socket.

        Raises:
            BrokenResourceError: when the peer has gone away
        """
        view = memoryview(data)
        while view:
            try:
                result = yield from _execute(Write(fd=self.fd, data=bytes(view)))
            except ConnectionError as e:
                raise BrokenResourceError(str(e)) from e
            view = view[result.size :]

    def close(self) -> Coro[None]:
        """Close socket."""
        yield from _execute(Close(fd=self.fd))
