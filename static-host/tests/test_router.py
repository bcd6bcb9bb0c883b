"""Tests for HTTP router."""

from __future__ import annotations

from typing import TYPE_CHECKING

from static_host.response import Response
from static_host.router import Router, method_not_allowed, page_not_found
from static_host.status import HTTPStatus

if TYPE_CHECKING:
    from static_host.request import Request


def _ok(_: Request) -> Response:
    return Response(status_code=HTTPStatus.OK)


def _other(_: Request) -> Response:
    return Response(status_code=HTTPStatus.OK, body=b"other")


def _bad(_: Request) -> Response:
    return Response(status_code=HTTPStatus.BAD_REQUEST)


class TestRouter:
    def test_add_and_resolve(self) -> None:
        router = Router()
        router.add("GET", "/hello", _ok)
        assert router.resolve("GET", "/hello") is _ok

    def test_resolve_unregistered_returns_fallback(self, make_request) -> None:
        router = Router()
        handler = router.resolve("GET", "/missing")
        assert handler is page_not_found

        result = handler(make_request())
        assert isinstance(result, Response)
        assert result.status_code == 404

    def test_resolve_wrong_method_is_not_allowed(self, make_request) -> None:
        router = Router()
        router.add("GET", "/hello", _ok)

        handler = router.resolve("POST", "/hello")
        assert handler is method_not_allowed
        assert handler(make_request()).status_code == 405

    def test_set_fallback(self) -> None:
        router = Router()
        router.set_fallback(_bad)
        assert router.resolve("GET", "/anything") is _bad

    def test_overwrite_route(self) -> None:
        router = Router()
        router.add("GET", "/x", _ok)
        router.add("GET", "/x", _other)
        assert router.resolve("GET", "/x") is _other

    def test_decorator_registration(self) -> None:
        router = Router()

        @router.get("/decorated")
        def handler(_: Request) -> Response:
            return Response(status_code=HTTPStatus.OK)

        assert router.resolve("GET", "/decorated") is handler


class TestPrefixRoutes:
    def test_prefix_matches_below(self) -> None:
        router = Router()
        router.add("GET", "/static/*", _ok)
        assert router.resolve("GET", "/static/css/site.css") is _ok
        assert router.resolve("GET", "/static/") is _ok

    def test_prefix_does_not_match_sibling(self) -> None:
        router = Router()
        router.add("GET", "/static/*", _ok)
        assert router.resolve("GET", "/staticfiles") is page_not_found

    def test_exact_route_wins_over_prefix(self) -> None:
        router = Router()
        router.add("GET", "/*", _ok)
        router.add("GET", "/special", _other)
        assert router.resolve("GET", "/special") is _other
        assert router.resolve("GET", "/special/x") is _ok

    def test_longest_prefix_wins(self) -> None:
        router = Router()
        router.add("GET", "/*", _ok)
        router.add("GET", "/docs/*", _other)
        assert router.resolve("GET", "/docs/a.html") is _other
        assert router.resolve("GET", "/blog/a.html") is _ok

    def test_prefix_route_wrong_method_is_not_allowed(self) -> None:
        router = Router()
        router.add("GET", "/*", _ok)
        assert router.resolve("DELETE", "/anything") is method_not_allowed
