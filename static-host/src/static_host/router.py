from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from static_host.response import Response
from static_host.status import HTTPStatus

if TYPE_CHECKING:
    from collections.abc import Callable

    from static_host.request import Request
    from static_host.typedef import HTTPHandler, HTTPMethod


def page_not_found(_: Request) -> Response:
    """Default handler for 404."""
    return Response.text("Not found", HTTPStatus.NOT_FOUND)


def method_not_allowed(_: Request) -> Response:
    """Handler for a path that is routed, but not for the request's method."""
    return Response.text("Method not allowed", HTTPStatus.METHOD_NOT_ALLOWED)


@dataclass(slots=True, kw_only=True)
class Router:
    """Routes HTTP requests to handlers.

    A path ending in "/*" matches every path starting with what comes before
    the star. Exact routes win over prefix routes, longer prefixes over shorter.
    """

    _registry: dict[tuple[HTTPMethod, str], HTTPHandler] = field(
        default_factory=dict, init=False
    )

    _prefixes: dict[tuple[HTTPMethod, str], HTTPHandler] = field(
        default_factory=dict, init=False
    )

    _fallback: HTTPHandler = field(default=page_not_found, init=False)

    def add(self, method: HTTPMethod, path: str, handler: HTTPHandler) -> None:
        """Registers a path."""
        if path.endswith("/*"):
            self._prefixes[(method, path.removesuffix("*"))] = handler
        else:
            self._registry[(method, path)] = handler

    def resolve(self, method: HTTPMethod, path: str) -> HTTPHandler:
        """Returns the handler for a method and path."""
        handler = self._match(method, path)
        if handler is not None:
            return handler

        if any(self._match(other, path) for other in self._methods() - {method}):
            return method_not_allowed
        return self._fallback

    def set_fallback(self, handler: HTTPHandler) -> None:
        """Sets fallback."""
        self._fallback = handler

    def _match(self, method: HTTPMethod, path: str) -> HTTPHandler | None:
        if (handler := self._registry.get((method, path))) is not None:
            return handler

        matches = [
            (prefix, handler)
            for (prefix_method, prefix), handler in self._prefixes.items()
            if prefix_method == method and path.startswith(prefix)
        ]
        if not matches:
            return None
        return max(matches, key=lambda match: len(match[0]))[1]

    def _methods(self) -> set[HTTPMethod]:
        return {method for method, _ in self._registry} | {
            method for method, _ in self._prefixes
        }

    def register(
        self, method: HTTPMethod, path: str
    ) -> Callable[[HTTPHandler], HTTPHandler]:
        """Decorator to register HTTP endpoints."""

        def wrapper(func: HTTPHandler) -> HTTPHandler:
            self.add(method, path, func)

            return func

        return wrapper

    def get(self, path: str) -> Callable[[HTTPHandler], HTTPHandler]:
        """Utility wrapper for GET method registration."""
        return self.register("GET", path)
