from __future__ import annotations

from typing import TYPE_CHECKING
from urllib.parse import unquote

from static_host.log import get_logger
from static_host.request import target_path
from static_host.resolver import Allowed, Denied, resolve
from static_host.responder import stream
from static_host.router import Router
from static_host.status import HTTPStatus

if TYPE_CHECKING:
    from static_host.context import ServerContext
    from static_host.request import Request
    from static_host.response import Response
    from static_host.typedef import HTTPHandler
    from static_host_loop.typedefs import Coro

logger = get_logger()


def request_path(target: str) -> str:
    """Percent-decoded path of a request target, without query or fragment.

    An unparseable target gives the empty path, which resolves to the root.
    """
    try:
        path = target_path(target)
    except ValueError:
        return ""
    return unquote(path)


def site_handler(context: ServerContext) -> HTTPHandler:
    """Returns a handler serving files from the context's site directory."""

    def handler(request: Request) -> Coro[Response]:
        path = request_path(request.target)
        match resolve(context.site, context.not_found_file, path):
            case Allowed(path=target):
                logger.debug("Serving file", path=path, target=str(target))
                return (yield from stream(context, HTTPStatus.OK, target))
            case Denied(not_found_file=not_found_file, reason=reason):
                logger.debug("Serving not found page", path=path, reason=reason)
                return (
                    yield from stream(context, HTTPStatus.NOT_FOUND, not_found_file)
                )

    return handler


def not_found_handler(context: ServerContext) -> HTTPHandler:
    """Returns a handler answering every request with the not-found page."""

    def handler(_: Request) -> Coro[Response]:
        return (
            yield from stream(context, HTTPStatus.NOT_FOUND, context.not_found_file)
        )

    return handler


def site_router(context: ServerContext) -> Router:
    """Routes GET for every path to the site handler.

    Targets no route matches get the not-found page.
    """
    router = Router()
    handler = site_handler(context)
    router.add("GET", "/", handler)
    router.add("GET", "/*", handler)
    router.set_fallback(not_found_handler(context))
    return router
