"""Shared test fixtures for static-host."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import pytest

from static_host.context import Config, ServerContext
from static_host.request import Request
from static_host_loop import TaskGroup, run
from static_host_loop.timerio import sleep

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from static_host.server import HTTPServer
    from static_host.typedef import HTTPMethod
    from static_host_loop.typedefs import Coro

NOT_FOUND_PAGE = b"<html>nothing here</html>"


@pytest.fixture
def make_request() -> Callable[..., Request]:
    """Factory for minimal requests."""

    def _make(
        method: HTTPMethod = "GET",
        target: str = "/",
        headers: dict[str, str] | None = None,
    ) -> Request:
        return Request(
            method=method,
            target=target,
            http_version="HTTP/1.1",
            headers=headers or {},
            body=b"",
        )

    return _make


@pytest.fixture
def not_found_page() -> bytes:
    """Contents of the site fixture's not-found page."""
    return NOT_FOUND_PAGE


@pytest.fixture
def site(tmp_path: Path) -> Path:
    """A small site, next to a file the site must never expose."""
    root = tmp_path / "www"
    (root / "about").mkdir(parents=True)
    (root / "index.html").write_bytes(b"<html>home</html>")
    (root / "about" / "index.html").write_bytes(b"<html>about</html>")
    (root / "style.css").write_bytes(b"body { color: red; }")
    (root / "app.js").write_bytes(b"console.log(1);")
    (root / "notes.txt").write_bytes(b"plain notes")
    (root / "not_found.html").write_bytes(NOT_FOUND_PAGE)
    (tmp_path / "secret.txt").write_bytes(b"top secret")
    return root


@pytest.fixture
def context(site: Path) -> ServerContext:
    """Server context for the site fixture."""
    config = Config(site=site, not_found_file=site / "not_found.html")
    return ServerContext.from_config("static-website-host", "0.1.0", config)


@dataclass(slots=True, kw_only=True)
class _ClientOutcome[T]:
    done: threading.Event = field(default_factory=threading.Event)
    value: T | None = None
    error: BaseException | None = None


def _wait_for(predicate: Callable[[], bool]) -> Coro[None]:
    while not predicate():
        yield from sleep(0.01)


@pytest.fixture
def serve_with_client() -> Callable[..., object]:
    """Runs an HTTPServer on the loop while a blocking client runs in a thread.

    The client gets the bound port. Once it returns, the server is shut down
    and whatever the client returned (or raised) is passed on.
    """

    def _serve[T](server: HTTPServer, client: Callable[[int], T]) -> T:
        outcome: _ClientOutcome[T] = _ClientOutcome()

        def client_thread(port: int) -> None:
            try:
                outcome.value = client(port)
            except BaseException as e:  # noqa: BLE001
                outcome.error = e
            finally:
                outcome.done.set()

        def entry() -> Coro[None]:
            tg = TaskGroup()
            tg.enter()
            try:
                tg.create_task(server.serve())
                yield from _wait_for(lambda: server.bound_port is not None)

                thread = threading.Thread(
                    target=client_thread, args=(server.bound_port,), daemon=True
                )
                thread.start()
                yield from _wait_for(outcome.done.is_set)
                thread.join()

                server.shutdown()
            finally:
                yield from tg.exit()

        run(entry())

        if outcome.error is not None:
            raise outcome.error
        return outcome.value  # type: ignore[return-value]

    return _serve
