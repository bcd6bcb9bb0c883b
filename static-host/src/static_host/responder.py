from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from static_host.log import get_logger
from static_host.response import Response
from static_host_loop.cancellation import move_on_after
from static_host_loop.fileio import open_file
from static_host_loop.streams.exceptions import (
    BrokenResourceError,
    ClosedResourceError,
    EndOfStreamError,
)

if TYPE_CHECKING:
    from pathlib import Path

    from static_host.context import ServerContext
    from static_host.status import HTTPStatus
    from static_host_loop.fileio import File
    from static_host_loop.typedefs import Coro

logger = get_logger()

CHUNK_SIZE = 64 * 1024

CONTENT_TYPES: dict[str, str] = {
    "html": "text/html",
    "js": "text/javascript",
    "css": "text/css",
}

DEGRADED_BODY = b"Internal server error"


def content_type(path: Path) -> str:
    """Content type by exact, case sensitive, extension. text/plain otherwise."""
    return CONTENT_TYPES.get(path.suffix.removeprefix("."), "text/plain")


@dataclass(slots=True, kw_only=True)
class FileBody:
    """Reads a file chunk by chunk as the connection drains it.

    Owns the file: it is closed by close(), which the server calls on every
    exit path. Not restartable.
    """

    file: File

    """Bytes left to send. Never more than the size the file had when opened"""
    remaining: int

    chunk_size: int = CHUNK_SIZE

    _closed: bool = field(default=False, init=False, repr=False)

    def receive(self) -> Coro[bytes]:
        """Reads the next chunk.

        Raises:
            EndOfStreamError: once all bytes have been sent
            BrokenResourceError: if the file shrank after it was opened
        """
        if self._closed:
            raise ClosedResourceError("File body already closed")
        if self.remaining <= 0:
            raise EndOfStreamError

        chunk = yield from self.file.read(min(self.chunk_size, self.remaining))
        if not chunk:
            msg = f"{self.file.path} shrank by {self.remaining} bytes while sending"
            raise BrokenResourceError(msg)

        self.remaining -= len(chunk)
        return chunk

    def close(self) -> Coro[None]:
        """Closes the file. Idempotent."""
        if not self._closed:
            self._closed = True
            yield from self.file.close()


def stream(
    context: ServerContext, status_code: HTTPStatus, path: Path
) -> Coro[Response]:
    """Builds a response streaming the file at path.

    Never raises for I/O errors: a file that can't be opened or inspected gets
    a degraded response, keeping status_code.
    """
    try:
        file = yield from open_file(path)
    except OSError as e:
        logger.error(
            "Failed to open file",
            path=str(path),
            status_code=int(status_code),
            error=str(e),
        )
        return degraded(context, status_code)

    try:
        size = file.stat().st_size
    except OSError as e:
        logger.error(
            "Failed to get file metadata",
            path=str(path),
            status_code=int(status_code),
            error=str(e),
        )
        yield from _close_quietly(file)
        return degraded(context, status_code)

    logger.debug("Streaming file", path=str(path), size=size)
    return Response(
        status_code=status_code,
        headers={
            "content-type": content_type(path),
            "content-length": str(size),
            "server": context.server,
        },
        stream=FileBody(file=file, remaining=size),
    )


def degraded(context: ServerContext, status_code: HTTPStatus) -> Response:
    """The response sent in place of a file that couldn't be read."""
    return Response(
        status_code=status_code,
        headers={"server": context.server},
        body=DEGRADED_BODY,
    )


def _close_quietly(file: File) -> Coro[None]:
    with move_on_after(3, shield=True):
        try:
            yield from file.close()
        except OSError as e:
            logger.warning("Failed to close file", path=str(file.path), error=str(e))
