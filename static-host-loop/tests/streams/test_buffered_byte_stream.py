from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from static_host_loop.streams.buffered import (
    BufferedByteReceiveStream,
    BufferedByteStream,
)
from static_host_loop.streams.exceptions import (
    ClosedResourceError,
    DelimiterNotFoundError,
    EndOfStreamError,
)

if TYPE_CHECKING:
    from static_host_loop.typedefs import Coro


class TestBufferedByteReceiveStream:
    def test_receive_exactly(self, drive_coro, fake_stream) -> None:
        buffered = BufferedByteReceiveStream(
            receive_stream=fake_stream(b"hel", b"lo, ", b"wo", b"rld!")
        )

        assert drive_coro(buffered.receive_exactly(8)) == b"hello, w"
        assert buffered.buffer == b"o"

    def test_receive_serves_buffer_first(self, drive_coro, fake_stream) -> None:
        buffered = BufferedByteReceiveStream(
            receive_stream=fake_stream(b"hello, ", b"world!")
        )

        assert drive_coro(buffered.receive_exactly(2)) == b"he"
        assert drive_coro(buffered.receive()) == b"llo, "
        assert drive_coro(buffered.receive()) == b"world!"

    def test_receive_respects_max_bytes(self, drive_coro, fake_stream) -> None:
        buffered = BufferedByteReceiveStream(receive_stream=fake_stream(b"abcdef"))

        assert drive_coro(buffered.receive(4)) == b"abcd"
        assert drive_coro(buffered.receive(4)) == b"ef"

    def test_receive_until(self, drive_coro, fake_stream) -> None:
        buffered = BufferedByteReceiveStream(
            receive_stream=fake_stream(b"hel", b"lo, ", b"wo", b"rld!")
        )

        result = drive_coro(buffered.receive_until(delimiter=b"w", max_bytes=10))

        assert result == b"hello, "
        assert buffered.buffer.startswith(b"o")

    def test_receive_until_consumes_delimiter(self, drive_coro, fake_stream) -> None:
        buffered = BufferedByteReceiveStream(
            receive_stream=fake_stream(b"a\r\nb\r\n")
        )

        first = drive_coro(buffered.receive_until(delimiter=b"\r\n", max_bytes=10))
        second = drive_coro(buffered.receive_until(delimiter=b"\r\n", max_bytes=10))

        assert (first, second) == (b"a", b"b")
        assert buffered.buffer == b""

    def test_receive_until_no_delimiter_raises(self, drive_coro, fake_stream) -> None:
        buffered = BufferedByteReceiveStream(
            receive_stream=fake_stream(b"hel", b"lo, ", b"wo", b"rld!")
        )

        with pytest.raises(DelimiterNotFoundError):
            drive_coro(buffered.receive_until(delimiter=b"x", max_bytes=10))

    def test_receive_until_stream_ends_raises(self, drive_coro, fake_stream) -> None:
        buffered = BufferedByteReceiveStream(receive_stream=fake_stream(b"partial"))

        with pytest.raises(EndOfStreamError):
            drive_coro(buffered.receive_until(delimiter=b"\n", max_bytes=100))

    def test_receive_exactly_stream_ends_raises(self, drive_coro, fake_stream) -> None:
        buffered = BufferedByteReceiveStream(receive_stream=fake_stream(b"abc"))

        with pytest.raises(EndOfStreamError):
            drive_coro(buffered.receive_exactly(4))

    def test_closed_stream_raises(self, drive_coro, fake_stream) -> None:
        inner = fake_stream(b"data")
        buffered = BufferedByteReceiveStream(receive_stream=inner)

        drive_coro(buffered.close())

        assert inner.closed
        with pytest.raises(ClosedResourceError):
            drive_coro(buffered.receive())


class TestBufferedByteStream:
    def test_send_goes_to_send_stream(self, drive_coro, fake_stream) -> None:
        receive_stream, send_stream = fake_stream(), fake_stream()
        buffered = BufferedByteStream(
            receive_stream=receive_stream, send_stream=send_stream
        )

        def entry() -> Coro[None]:
            yield from buffered.send(b"hello")
            yield from buffered.send(b", world")

        drive_coro(entry())

        assert bytes(send_stream.sent) == b"hello, world"
        assert receive_stream.sent == b""

    def test_close_closes_both_streams(self, drive_coro, fake_stream) -> None:
        receive_stream, send_stream = fake_stream(), fake_stream()
        buffered = BufferedByteStream(
            receive_stream=receive_stream, send_stream=send_stream
        )

        drive_coro(buffered.close())

        assert receive_stream.closed
        assert send_stream.closed
