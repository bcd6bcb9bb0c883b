"""Root conftest, pre-imports workspace packages and holds shared fixtures.

Without this, pytest's directory traversal registers package directories
as namespace packages before test collection, which shadows the real packages
from <member>/src/. Importing them here (while pythonpath is already in
effect) caches the correct module in sys.modules.
"""

from __future__ import annotations

import socket
import time
from collections import deque
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import pytest

import static_host  # noqa: F401
import static_host_core  # noqa: F401
import static_host_loop  # noqa: F401
from static_host_loop.loop import run
from static_host_loop.operations import Checkpoint
from static_host_loop.streams.exceptions import EndOfStreamError

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from static_host_loop.typedefs import Coro


@pytest.fixture
def tmp_file_path(tmp_path: Path) -> Path:
    """Provide a temporary file path for file I/O tests.

    Uses pytest's built-in "tmp_path" fixture.
    """
    return tmp_path / "test_file.txt"


@dataclass(slots=True, kw_only=True)
class TimingContext:
    """Captures elapsed time and provides tolerance-aware assertions."""

    _start: float = field(default=0, repr=False)
    _end: float = field(default=0, repr=False)

    def start(self) -> None:
        """Record the start time."""
        self._start = time.monotonic()

    def stop(self) -> None:
        """Record the end time."""
        self._end = time.monotonic()

    @property
    def elapsed(self) -> float:
        """Return elapsed seconds since start."""
        if self._end == 0.0:
            return time.monotonic() - self._start
        return self._end - self._start

    def assert_elapsed_between(
        self, lower: float, upper: float, *, msg: str = ""
    ) -> None:
        """Assert elapsed time is within [lower, upper] seconds."""
        elapsed = self.elapsed
        context = f" ({msg})" if msg else ""
        assert lower <= elapsed <= upper, (  # noqa: S101
            f"Expected elapsed time in [{lower}, {upper}]s, got {elapsed:.3f}s{context}"
        )


@pytest.fixture
def run_coro() -> Callable[[Coro], object]:
    """Run a generator coroutine on the event loop."""

    def _run(coro: Coro) -> object:
        return run(coro)

    return _run


@pytest.fixture
def drive_coro() -> Callable[[Coro], object]:
    """Run a coroutine that never needs the ring, without an event loop.

    Checkpoints are stepped over, any other operation fails the test.
    """

    def _drive(coro: Coro) -> object:
        try:
            op = coro.send(None)
            while True:
                if not isinstance(op, Checkpoint):
                    pytest.fail(f"Unexpected operation {op!r}")
                op = coro.send(None)
        except StopIteration as e:
            return e.value

    return _drive


@dataclass(slots=True, kw_only=True)
class FakeStream:
    """In-memory byte stream. Receives from a list of chunks, records sends."""

    chunks: deque[bytes] = field(default_factory=deque)
    sent: bytearray = field(default_factory=bytearray)
    closed: bool = False

    """Raised from send, to simulate a peer that went away"""
    send_error: Exception | None = None

    """Bytes accepted before sends start failing with send_error"""
    send_error_after: int = 0

    def receive(self) -> Coro[bytes]:
        """Returns the next chunk, or raises EndOfStreamError."""
        yield Checkpoint()
        if not self.chunks:
            raise EndOfStreamError
        return self.chunks.popleft()

    def send(self, data: bytes, /) -> Coro[None]:
        """Records data."""
        yield Checkpoint()
        if self.send_error is not None and len(self.sent) >= self.send_error_after:
            raise self.send_error
        self.sent.extend(data)

    def close(self) -> Coro[None]:
        """Marks the stream closed."""
        yield Checkpoint()
        self.closed = True


@pytest.fixture
def fake_stream() -> Callable[..., FakeStream]:
    """Factory for in-memory streams fed with the given chunks."""

    def _make(
        *chunks: bytes,
        send_error: Exception | None = None,
        send_error_after: int = 0,
    ) -> FakeStream:
        return FakeStream(
            chunks=deque(chunks),
            send_error=send_error,
            send_error_after=send_error_after,
        )

    return _make


@pytest.fixture
def unused_tcp_port() -> int:
    """Find an unused TCP port on localhost."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("", 0))
        s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        return s.getsockname()[1]


@pytest.fixture
def timing() -> TimingContext:
    """Provide a timing context for measuring elapsed time in tests."""
    return TimingContext()
