from __future__ import annotations

from collections.abc import Generator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from static_host.log import get_logger
from static_host.middleware import MiddlewareStack
from static_host.request import MalformedRequestError, Request
from static_host.response import Response
from static_host.status import HTTPStatus
from static_host_loop import CancelScope, TaskGroup
from static_host_loop.cancellation import fail_after, move_on_after
from static_host_loop.exceptions import Cancelled
from static_host_loop.socketio import create_server
from static_host_loop.streams.buffered import BufferedByteStream
from static_host_loop.streams.exceptions import (
    BrokenResourceError,
    DelimiterNotFoundError,
    EndOfStreamError,
)

if TYPE_CHECKING:
    from static_host.router import Router
    from static_host_loop.socketio import Connection, Server
    from static_host_loop.streams.protocols import Resource
    from static_host_loop.typedefs import Coro

logger = get_logger()

"""Upper bound for closing a socket or file during cleanup"""
CLOSE_TIMEOUT = 3


@dataclass(slots=True, kw_only=True)
class _ServerState:
    """Mutable part of a running server."""

    """Cancelled to stop accepting connections"""
    accept_scope: CancelScope = field(default_factory=CancelScope)

    """Set while waiting for connections to finish during shutdown"""
    drain_scope: CancelScope | None = None

    shutting_down: bool = False
    forced: bool = False

    """The port actually bound, once listening"""
    port: int | None = None


@dataclass(frozen=True, slots=True, kw_only=True)
class HTTPServer:
    """A simple HTTP/1.1 server built on static_host_loop.

    Every connection is handled by its own task, serving requests until the
    client or the server asks to close it.
    """

    """Routes method and path to a handler"""
    router: Router

    """The host for the server to run on"""
    host: str

    """The port for the server to run on. 0 picks a free one"""
    port: int

    """Stack of middleware"""
    middleware: MiddlewareStack = field(default_factory=MiddlewareStack)

    """Value of the server header for responses that don't set one"""
    server_name: str | None = None

    """Seconds a client gets to send a complete request head"""
    request_timeout: float = 5

    """Seconds open connections get to finish after shutdown is requested"""
    shutdown_timeout: float = 600

    _state: _ServerState = field(default_factory=_ServerState, init=False)

    @property
    def bound_port(self) -> int | None:
        """The port the server listens on, None before it is listening."""
        return self._state.port

    def shutdown(self, *, force: bool = False) -> None:
        """Stops accepting connections.

        Open connections get shutdown_timeout seconds to finish, unless force is
        set, which cancels them right away.
        """
        logger.info("Shutting down", force=force)
        self._state.shutting_down = True
        self._state.accept_scope.cancel()
        if force:
            self._state.forced = True
            if self._state.drain_scope is not None:
                self._state.drain_scope.cancel()

    def serve(self) -> Coro[None]:
        """Starts the server. Returns after shutdown() once connections are done.

        Raises:
            OSError: if binding or accepting fails
        """
        server = yield from create_server(self.host, self.port)
        self._state.port = server.port
        logger.info("Listening", host=self.host, port=server.port)

        tg = TaskGroup()
        tg.enter()
        try:
            try:
                with self._state.accept_scope:
                    yield from self._accept_loop(server, tg)
            except Cancelled:
                if not self._state.accept_scope.cancelled:
                    raise
            finally:
                yield from _close_quietly(server)

            yield from self._drain(tg)
        finally:
            yield from tg.exit()

        logger.info("Server stopped")

    def _accept_loop(self, server: Server, tg: TaskGroup) -> Coro[None]:
        while True:
            conn = yield from server.accept()
            logger.debug("Accepted connection", fd=conn.fd)
            tg.create_task(self._handle_connection(conn))

    def _drain(self, tg: TaskGroup) -> Coro[None]:
        """Waits for open connections, at most shutdown_timeout seconds."""
        if self._state.forced:
            return

        logger.info(
            "Waiting for open connections to finish", timeout=self.shutdown_timeout
        )
        with move_on_after(self.shutdown_timeout) as drain_scope:
            self._state.drain_scope = drain_scope
            yield from tg.wait()

        if drain_scope.cancelled:
            logger.warning("Cancelling connections that didn't finish in time")

    def _handle_connection(self, conn: Connection) -> Coro[None]:
        """Handles an incoming connection. Never raises, besides Cancelled."""
        stream = BufferedByteStream(receive_stream=conn, send_stream=conn)
        try:
            keep_alive = True
            while keep_alive:
                keep_alive = yield from self._handle_request(stream)
        except (BrokenResourceError, EndOfStreamError) as e:
            logger.debug("Connection broken", fd=conn.fd, error=str(e))
        except Exception:
            logger.exception("Unexpected error while handling connection")
        finally:
            yield from _close_quietly(stream)

    def _handle_request(self, stream: BufferedByteStream) -> Coro[bool]:
        """Reads a request and sends the response.

        Returns:
            whether the connection may be used for another request
        """
        try:
            with fail_after(self.request_timeout):
                request = yield from Request.parse(stream)
        except TimeoutError:
            logger.debug("Timed out waiting for a request")
            return False
        except EndOfStreamError:
            # Client closed the connection between requests.
            return False
        except (MalformedRequestError, DelimiterNotFoundError) as e:
            logger.info("Malformed request", error=str(e))
            yield from self._send_response(
                stream,
                Response(
                    status_code=HTTPStatus.BAD_REQUEST,
                    headers={
                        "content-type": "text/plain; charset=utf-8",
                        "connection": "close",
                    },
                    body=HTTPStatus.BAD_REQUEST.phrase.encode(),
                ),
            )
            return False

        handler = self.middleware.wrap(
            self.router.resolve(request.method, request.path)
        )
        result = handler(request)
        if isinstance(result, Generator):
            response = yield from result
        else:
            response = result

        keep_alive = (
            request.keep_alive
            and response.is_framed
            and response.headers.get("connection") != "close"
            and not self._state.shutting_down
        )
        response.headers["connection"] = "keep-alive" if keep_alive else "close"

        yield from self._send_response(stream, response)
        return keep_alive and not self._state.shutting_down

    def _send_response(
        self, stream: BufferedByteStream, response: Response
    ) -> Coro[None]:
        """Writes the response, streaming its body chunk by chunk.

        A streamed body is closed whether or not sending succeeded.
        """
        body = response.stream
        try:
            if body is None:
                yield from stream.send(response.serialize(server=self.server_name))
                return

            yield from stream.send(response.serialize_head(server=self.server_name))
            while True:
                try:
                    chunk = yield from body.receive()
                except EndOfStreamError:
                    break
                except BrokenResourceError as e:
                    # The head promised more bytes than the body has.
                    logger.error("Body ended early", error=str(e))
                    raise
                yield from stream.send(chunk)
        finally:
            if body is not None:
                yield from _close_quietly(body)


def _close_quietly(resource: Resource) -> Coro[None]:
    """Closes a resource, shielded from cancellation and bounded in time."""
    with move_on_after(CLOSE_TIMEOUT, shield=True):
        try:
            yield from resource.close()
        except OSError as e:
            logger.warning("Failed to close resource", error=str(e))
