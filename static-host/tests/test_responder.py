"""Tests for turning a resolved file into a streamed response."""

from __future__ import annotations

import os
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

import pytest
from structlog.testing import capture_logs

from static_host.responder import (
    DEGRADED_BODY,
    FileBody,
    content_type,
    degraded,
    stream,
)
from static_host.status import HTTPStatus
from static_host_loop.operations import Checkpoint
from static_host_loop.streams.exceptions import (
    BrokenResourceError,
    ClosedResourceError,
    EndOfStreamError,
)

if TYPE_CHECKING:
    from static_host.context import ServerContext
    from static_host.response import Response
    from static_host_loop.typedefs import Coro


@dataclass(slots=True, kw_only=True)
class FakeFile:
    """Stands in for an open file, serving reads from a list of chunks."""

    path: Path = Path("/fake/file.html")
    reads: deque[bytes] = field(default_factory=deque)
    requested: list[int] = field(default_factory=list)
    close_calls: int = 0

    def read(self, size: int = 65536) -> Coro[bytes]:
        yield Checkpoint()
        self.requested.append(size)
        return self.reads.popleft() if self.reads else b""

    def close(self) -> Coro[None]:
        yield Checkpoint()
        self.close_calls += 1


def drain(body: FileBody) -> Coro[bytes]:
    data = bytearray()
    while True:
        try:
            data.extend((yield from body.receive()))
        except EndOfStreamError:
            return bytes(data)


class TestContentType:
    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            ("index.html", "text/html"),
            ("app.js", "text/javascript"),
            ("style.css", "text/css"),
            ("notes.txt", "text/plain"),
            ("README", "text/plain"),
            ("archive.tar.html", "text/html"),
            ("PAGE.HTML", "text/plain"),
            (".html", "text/plain"),
        ],
    )
    def test_by_extension(self, name: str, expected: str) -> None:
        assert content_type(Path("/site") / name) == expected


class TestFileBody:
    def test_reads_up_to_remaining_in_chunks(self, drive_coro) -> None:
        file = FakeFile(reads=deque([b"abcd", b"efgh", b"ij"]))
        body = FileBody(file=file, remaining=10, chunk_size=4)

        assert drive_coro(drain(body)) == b"abcdefghij"
        assert file.requested == [4, 4, 2]

    def test_never_reads_past_size_at_open(self, drive_coro) -> None:
        # The file grew after it was opened.
        file = FakeFile(reads=deque([b"abc", b"def"]))
        body = FileBody(file=file, remaining=3, chunk_size=3)

        assert drive_coro(drain(body)) == b"abc"
        assert file.reads == deque([b"def"])

    def test_file_shrinking_while_streaming_raises(self, drive_coro) -> None:
        file = FakeFile(reads=deque([b"abc"]))
        body = FileBody(file=file, remaining=10)

        assert drive_coro(body.receive()) == b"abc"
        with pytest.raises(BrokenResourceError, match="shrank"):
            drive_coro(body.receive())

    def test_empty_file(self, drive_coro) -> None:
        file = FakeFile()
        body = FileBody(file=file, remaining=0)

        assert drive_coro(drain(body)) == b""
        assert file.requested == []

    def test_close_is_idempotent(self, drive_coro) -> None:
        file = FakeFile(reads=deque([b"abc"]))
        body = FileBody(file=file, remaining=3)

        drive_coro(body.close())
        drive_coro(body.close())

        assert file.close_calls == 1
        with pytest.raises(ClosedResourceError):
            drive_coro(body.receive())


class TestDegraded:
    def test_keeps_status_and_omits_content_headers(
        self, context: ServerContext
    ) -> None:
        response = degraded(context, HTTPStatus.NOT_FOUND)

        assert response.status_code == HTTPStatus.NOT_FOUND
        assert response.headers == {"server": context.server}
        assert response.body == DEGRADED_BODY
        assert response.stream is None


@pytest.mark.io
class TestStream:
    def test_streams_file_with_headers(
        self, run_coro, context: ServerContext
    ) -> None:
        path = context.site / "style.css"

        def entry() -> Coro[tuple[Response, bytes]]:
            response = yield from stream(context, HTTPStatus.OK, path)
            assert isinstance(response.stream, FileBody)
            try:
                return response, (yield from drain(response.stream))
            finally:
                yield from response.stream.close()

        response, data = run_coro(entry())

        assert response.status_code == HTTPStatus.OK
        assert response.headers == {
            "content-type": "text/css",
            "content-length": str(len(b"body { color: red; }")),
            "server": context.server,
        }
        assert data == b"body { color: red; }"

    def test_unopenable_file_gives_degraded_response(
        self, run_coro, context: ServerContext
    ) -> None:
        path = context.site / "vanished.html"

        with capture_logs() as logs:
            response = run_coro(stream(context, HTTPStatus.NOT_FOUND, path))

        assert response.status_code == HTTPStatus.NOT_FOUND
        assert response.body == DEGRADED_BODY
        assert "content-type" not in response.headers
        assert "content-length" not in response.headers
        assert any(
            log["event"] == "Failed to open file"
            and log["log_level"] == "error"
            and log["status_code"] == 404
            for log in logs
        )

    def test_failing_stat_closes_file_and_degrades(
        self, run_coro, context: ServerContext, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        seen: list[int] = []

        def failing_fstat(fd: int) -> os.stat_result:
            seen.append(fd)
            raise OSError("fstat failed")

        monkeypatch.setattr(os, "fstat", failing_fstat)

        with capture_logs() as logs:
            response = run_coro(
                stream(context, HTTPStatus.OK, context.site / "app.js")
            )

        assert response.status_code == HTTPStatus.OK
        assert response.body == DEGRADED_BODY
        assert any(log["event"] == "Failed to get file metadata" for log in logs)
        assert not Path(f"/proc/self/fd/{seen[0]}").exists()
