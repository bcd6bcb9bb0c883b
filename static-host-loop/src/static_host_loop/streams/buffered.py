from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, override

from static_host_loop.streams.exceptions import (
    ClosedResourceError,
    DelimiterNotFoundError,
    EndOfStreamError,
)

if TYPE_CHECKING:
    from static_host_loop.streams.protocols import ReceiveStream, SendStream
    from static_host_loop.typedefs import Coro


@dataclass(slots=True, kw_only=True)
class BufferedByteReceiveStream:
    """Wraps any bytes-based receive stream to expose buffered reads."""

    """Wrapped receive stream"""
    receive_stream: ReceiveStream[bytes]

    """Received but not yet consumed bytes"""
    _buffer: bytearray = field(default_factory=bytearray, init=False, repr=False)

    """Marker for closed resource"""
    _closed: bool = field(default=False, init=False, repr=False)

    def close(self) -> Coro[None]:
        """Closes the resource."""
        self._closed = True
        yield from self.receive_stream.close()

    def receive(self, max_bytes: int = 65536) -> Coro[bytes]:
        """Reads at most max_bytes, serving buffered data before reading more."""
        if self._closed:
            raise ClosedResourceError("Cannot receive from closed resource")

        if not self._buffer:
            self._buffer.extend((yield from self.receive_stream.receive()))

        data = bytes(self._buffer[:max_bytes])
        del self._buffer[:max_bytes]
        return data

    def receive_exactly(self, nbytes: int) -> Coro[bytes]:
        """Reads exactly the given amount of bytes from the resource."""
        try:
            while len(self._buffer) < nbytes:
                content = yield from self.receive_stream.receive()
                self._buffer.extend(content)
        except EndOfStreamError as e:
            raise EndOfStreamError("Stream closed before receiving enough data") from e

        data = bytes(self._buffer[:nbytes])
        del self._buffer[:nbytes]
        return data

    def receive_until(self, *, delimiter: bytes, max_bytes: int) -> Coro[bytes]:
        """Reads until delimiter, which is consumed but not returned.

        Raises:
            DelimiterNotFoundError: if max_bytes were buffered without a delimiter
            EndOfStreamError: if the stream ends first
        """
        try:
            while len(self._buffer) < max_bytes and delimiter not in self._buffer:
                content = yield from self.receive_stream.receive()
                self._buffer.extend(content)
        except EndOfStreamError as e:
            raise EndOfStreamError("Stream closed before delimiter found") from e

        index = self._buffer.find(delimiter)
        if index == -1 or index > max_bytes:
            msg = f"Delimiter {delimiter!r} was not found within {max_bytes} bytes"
            raise DelimiterNotFoundError(msg)

        data = bytes(self._buffer[:index])
        del self._buffer[: index + len(delimiter)]
        return data

    @property
    def buffer(self) -> bytes:
        """Returns the contents of the internal buffer."""
        return bytes(self._buffer)


@dataclass(slots=True, kw_only=True)
class BufferedByteStream(BufferedByteReceiveStream):
    """Full-duplex variant of buffered receive stream."""

    """Thinly wrapped send stream"""
    send_stream: SendStream[bytes]

    @override
    def close(self) -> Coro[None]:
        self._closed = True
        yield from self.receive_stream.close()
        if self.send_stream is not self.receive_stream:
            yield from self.send_stream.close()

    def send(self, data: bytes) -> Coro[None]:
        """Sends data via send stream."""
        yield from self.send_stream.send(data)
