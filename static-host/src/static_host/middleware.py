from __future__ import annotations

import functools
import time
from collections.abc import Generator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from static_host.log import get_logger
from static_host.response import Response
from static_host.status import HTTPStatus

if TYPE_CHECKING:
    from collections.abc import Iterator

    from static_host.request import Request
    from static_host.typedef import HTTPHandler, HTTPMiddleware
    from static_host_loop.typedefs import Coro

logger = get_logger()


@dataclass(frozen=True, slots=True, kw_only=True)
class MiddlewareStack:
    """Simple wrapper for registering and storing middleware.

    The first registered middleware is the outermost one.
    """

    _middleware: list[HTTPMiddleware] = field(default_factory=list, init=False)

    def register(self, func: HTTPMiddleware) -> HTTPMiddleware:
        """Registers a middleware function."""
        self._middleware.append(func)

        return func

    def __iter__(self) -> Iterator[HTTPMiddleware]:
        """Returns iterator of middlewares in reversed order, for wrapping."""
        return reversed(self._middleware)

    def wrap(self, handler: HTTPHandler) -> HTTPHandler:
        """Applies all middleware to a handler."""
        for middleware in self:
            handler = middleware(handler)

        return handler


def _call(handler: HTTPHandler, request: Request) -> Coro[Response]:
    """Calls a handler, which may or may not be a coroutine."""
    result = handler(request)
    if isinstance(result, Generator):
        return (yield from result)
    return result


def exception_middleware(handler: HTTPHandler) -> HTTPHandler:
    """Turns exceptions escaping the handler into a bare 500."""

    @functools.wraps(handler)
    def wrapper(request: Request) -> Coro[Response]:
        try:
            response = yield from _call(handler, request)
        except Exception:
            logger.exception("Unhandled exception in handler", path=request.path)
            response = Response(
                status_code=HTTPStatus.INTERNAL_SERVER_ERROR,
                headers={"connection": "close"},
            )

        return response

    return wrapper


def logging_middleware(handler: HTTPHandler) -> HTTPHandler:
    """Logs incoming requests after parsing, and the status sent back."""

    @functools.wraps(handler)
    def wrapper(request: Request) -> Coro[Response]:
        logger.info("Incoming request", path=request.path, method=request.method)
        start_time = time.monotonic()
        response = yield from _call(handler, request)
        logger.info(
            "Sending response",
            path=request.path,
            method=request.method,
            status_code=int(response.status_code),
            elapsed_time=time.monotonic() - start_time,
        )
        return response

    return wrapper
