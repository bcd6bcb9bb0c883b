"""Command line entry point.

Loads the server context, starts the HTTP server and shuts it down gracefully
on SIGINT or SIGTERM. A second signal cancels the connections still open.
"""

from __future__ import annotations

import argparse
import signal
from typing import TYPE_CHECKING

from static_host import NAME, __version__
from static_host.context import ContextError, ServerContext
from static_host.handler import site_router
from static_host.log import configure_logging, get_logger
from static_host.middleware import (
    MiddlewareStack,
    exception_middleware,
    logging_middleware,
)
from static_host.server import HTTPServer
from static_host_loop import TaskGroup, run
from static_host_loop.signalio import open_signal_receiver

if TYPE_CHECKING:
    from collections.abc import Sequence

    from static_host_loop.typedefs import Coro

logger = get_logger()

DEFAULT_ADDRESS = "127.0.0.1:42080"
DEFAULT_CONFIG = "./config.yml"
DEFAULT_SHUTDOWN_TIMEOUT = 600.0


def parse_address(value: str) -> tuple[str, int]:
    """Parses HOST:PORT. IPv6 hosts are written in brackets, e.g. [::1]:42080."""
    host, sep, port = value.rpartition(":")
    if not sep or not host:
        msg = f"Expected HOST:PORT, got '{value}'"
        raise argparse.ArgumentTypeError(msg)

    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    elif ":" in host:
        msg = f"IPv6 addresses must be written in brackets, got '{value}'"
        raise argparse.ArgumentTypeError(msg)

    if not port.isdigit() or not 0 <= int(port) <= 65535:  # noqa: PLR2004
        msg = f"Invalid port '{port}'"
        raise argparse.ArgumentTypeError(msg)

    return host, int(port)


def build_parser() -> argparse.ArgumentParser:
    """Builds the argument parser."""
    parser = argparse.ArgumentParser(
        prog=NAME, description="Serves a static website from a directory."
    )
    parser.add_argument(
        "--trace",
        action="store_true",
        help="Enables debug logging, including where each event was logged",
    )
    parser.add_argument(
        "-a",
        "--address",
        type=parse_address,
        default=DEFAULT_ADDRESS,
        help=f"Address to listen on (default: {DEFAULT_ADDRESS})",
    )
    parser.add_argument(
        "-c",
        "--config",
        dest="config_path",
        default=DEFAULT_CONFIG,
        help=f"Config file, generated if missing (default: {DEFAULT_CONFIG})",
    )
    parser.add_argument(
        "--shutdown-timeout",
        type=float,
        default=DEFAULT_SHUTDOWN_TIMEOUT,
        help="Seconds open connections get to finish after a shutdown signal "
        f"(default: {DEFAULT_SHUTDOWN_TIMEOUT:g})",
    )
    return parser


def watch_signals(server: HTTPServer) -> Coro[None]:
    """Shuts the server down on the first signal, forcefully on the second."""
    with open_signal_receiver(signal.SIGINT, signal.SIGTERM) as receiver:
        signum = yield from receiver.receive()
        logger.info("Received signal; shutting down gracefully", signal=signum.name)
        server.shutdown()

        signum = yield from receiver.receive()
        logger.warning(
            "Received second signal; forcing shutdown", signal=signum.name
        )
        server.shutdown(force=True)


def serve(server: HTTPServer) -> Coro[None]:
    """Runs the server until it has shut down."""
    tg = TaskGroup()
    tg.enter()
    try:
        tg.create_task(watch_signals(server))
        yield from server.serve()
    finally:
        yield from tg.exit()


def main(argv: Sequence[str] | None = None) -> int:
    """Runs the server. Returns the process exit code."""
    args = build_parser().parse_args(argv)
    configure_logging(trace=args.trace)
    logger.info("Starting", name=NAME, version=__version__)

    try:
        context = ServerContext.from_config_file(NAME, __version__, args.config_path)
    except ContextError as e:
        logger.error(
            "Failed to load server context", error=str(e), cause=str(e.__cause__)
        )
        return 1

    host, port = args.address
    middleware = MiddlewareStack()
    middleware.register(logging_middleware)
    middleware.register(exception_middleware)
    server = HTTPServer(
        router=site_router(context),
        host=host,
        port=port,
        middleware=middleware,
        server_name=context.server,
        shutdown_timeout=args.shutdown_timeout,
    )

    try:
        run(serve(server))
    except OSError as e:
        logger.error("Server failed", host=host, port=port, error=str(e))
        return 1

    logger.info("Done")
    return 0
