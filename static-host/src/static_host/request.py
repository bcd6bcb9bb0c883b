from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Self, TypeGuard
from urllib.parse import urlsplit

from static_host.log import get_logger

if TYPE_CHECKING:
    from static_host.typedef import HTTPHeaders, HTTPMethod
    from static_host_loop.streams.buffered import BufferedByteReceiveStream
    from static_host_loop.typedefs import Coro


logger = get_logger()

# Must match typedef.HTTPMethod
ALLOWED_HTTP_METHODS: set[HTTPMethod] = {
    "GET",
    "POST",
    "PUT",
    "PATCH",
    "DELETE",
    "OPTIONS",
    "HEAD",
}

MAX_LINE_BYTES = 8192
MAX_HEADERS = 100
MAX_BODY_BYTES = 1024 * 1024


class MalformedRequestError(ValueError):
    """Raised when the request head can't be parsed."""


@dataclass(frozen=True, slots=True, kw_only=True)
class Request:
    """Represents a parsed HTTP/1.x request."""

    """The HTTP method"""
    method: HTTPMethod

    """The request target as sent, including any query string"""
    target: str

    """HTTP version, e.g. HTTP/1.1"""
    http_version: str

    """HTTP headers, names lowercased"""
    headers: HTTPHeaders

    """HTTP body"""
    body: bytes

    @property
    def path(self) -> str:
        """The path part of the target, still percent-encoded."""
        try:
            return target_path(self.target)
        except ValueError:
            return ""

    @property
    def keep_alive(self) -> bool:
        """Whether the client wants the connection kept open after the response."""
        tokens = {
            token.strip().lower()
            for token in self.headers.get("connection", "").split(",")
        }
        if "close" in tokens:
            return False
        if self.http_version == "HTTP/1.0":
            return "keep-alive" in tokens
        return True

    @classmethod
    def parse(cls, buffered_stream: BufferedByteReceiveStream) -> Coro[Self]:
        """Parses data from a buffered receive stream and provides a Request object.

        Raises:
            MalformedRequestError: if the head is not valid HTTP/1.x
            DelimiterNotFoundError: if a line exceeds the length limit
            EndOfStreamError: if the client closed the connection
        """
        # 1. Get tokens from first line
        first_line = yield from buffered_stream.receive_until(
            delimiter=b"\r\n", max_bytes=MAX_LINE_BYTES
        )
        tokens = first_line.decode("latin-1").split(" ")
        if len(tokens) != 3:  # noqa: PLR2004
            msg = f"Invalid request line {first_line!r}"
            raise MalformedRequestError(msg)

        method, target, version = tokens
        if not cls.verify_http_method(method):
            msg = f"Unsupported HTTP method {method!r}"
            raise MalformedRequestError(msg)
        if not _is_valid_target(target):
            msg = f"Unsupported request target {target!r}"
            raise MalformedRequestError(msg)
        if version not in {"HTTP/1.0", "HTTP/1.1"}:
            msg = f"Unsupported HTTP version {version!r}"
            raise MalformedRequestError(msg)

        # 2. Get headers, until reaching empty line
        headers: HTTPHeaders = {}
        line = yield from buffered_stream.receive_until(
            delimiter=b"\r\n", max_bytes=MAX_LINE_BYTES
        )
        while line:
            if len(headers) >= MAX_HEADERS:
                raise MalformedRequestError("Too many headers")

            header_name, sep, header_val = line.decode("latin-1").partition(":")
            header_name = header_name.lower()
            if not sep or not header_name or any(c.isspace() for c in header_name):
                msg = f"Invalid header line {line!r}"
                raise MalformedRequestError(msg)

            header_val = header_val.strip()
            if header_name in headers:
                header_val = headers[header_name] + ", " + header_val

            headers[header_name] = header_val
            line = yield from buffered_stream.receive_until(
                delimiter=b"\r\n", max_bytes=MAX_LINE_BYTES
            )

        # 3. Get body, if we have "content-length"
        if "transfer-encoding" in headers:
            raise MalformedRequestError("Transfer encodings are not supported")

        body = b""
        if "content-length" in headers:
            content_length = headers["content-length"]
            if not content_length.isdigit():
                msg = f"Invalid content-length {content_length!r}"
                raise MalformedRequestError(msg)
            if int(content_length) > MAX_BODY_BYTES:
                msg = f"Body of {content_length} bytes is too large"
                raise MalformedRequestError(msg)
            body = yield from buffered_stream.receive_exactly(int(content_length))

        logger.debug("Parsed request", method=method, target=target, version=version)
        return cls(
            method=method,
            target=target,
            http_version=version,
            headers=headers,
            body=body,
        )

    @staticmethod
    def verify_http_method(method: str) -> TypeGuard[HTTPMethod]:
        """Verifies that HTTP method is valid."""
        return method in ALLOWED_HTTP_METHODS


def target_path(target: str) -> str:
    """Path part of a request target, still percent-encoded.

    An origin-form target ("/a/b?q") is cut at the query and fragment, so that a
    leading "//" stays part of the path. Absolute-form targets are parsed as URLs.

    Raises:
        ValueError: if an absolute-form target is not a valid URL
    """
    if target.startswith("/"):
        return target.partition("?")[0].partition("#")[0]
    return urlsplit(target).path or "/"


def _is_valid_target(target: str) -> bool:
    """Accepts origin-form and http(s) absolute-form targets."""
    if target.startswith("/"):
        return True
    if not target.lower().startswith(("http://", "https://")):
        return False
    try:
        urlsplit(target)
    except ValueError:
        return False
    return True
