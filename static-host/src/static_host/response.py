from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Self

from static_host.status import HTTPStatus

if TYPE_CHECKING:
    from static_host.typedef import HTTPHeaders
    from static_host_loop.streams.protocols import ReceiveStream


@dataclass(frozen=True, slots=True, kw_only=True)
class Response:
    """A HTTP/1.1 response to be serialized.

    The body is either held in memory, or produced chunk by chunk from a stream
    owned by the response. The server closes the stream once the response has
    been sent, or failed to be sent.
    """

    """HTTP status code of the response"""
    status_code: HTTPStatus

    """HTTP headers for the response"""
    headers: HTTPHeaders = field(default_factory=dict)

    """HTTP body for the response, ignored if stream is set"""
    body: bytes = field(default=b"")

    """Streamed HTTP body"""
    stream: ReceiveStream[bytes] | None = field(default=None, repr=False)

    def serialize_head(self, *, server: str | None = None) -> bytes:
        """Serializes the status line and headers, including the empty line.

        Args:
            server: value for the server header, unless the response sets one
        """
        # 1. Add first line
        head = f"HTTP/1.1 {self.status_code} {self.status_code.phrase}\r\n"

        # 2. Add headers. Streamed bodies are framed by their own content-length.
        if self.stream is None and "content-length" not in self.headers:
            head += f"content-length: {len(self.body)}\r\n"

        head += f"date: {self.formatdate()}\r\n"
        if server is not None and "server" not in self.headers:
            head += f"server: {server}\r\n"

        for header_name, header_val in self.headers.items():
            head += f"{header_name}: {header_val}\r\n"

        # 3. Add delimiter
        head += "\r\n"
        return head.encode("latin-1")

    def serialize(self, *, server: str | None = None) -> bytes:
        """Serializes a response with an in-memory body."""
        if self.stream is not None:
            raise RuntimeError("Streamed responses must be sent chunk by chunk")

        return self.serialize_head(server=server) + self.body

    @property
    def is_framed(self) -> bool:
        """Whether the client can tell where the body ends without a close."""
        return self.stream is None or "content-length" in self.headers

    @staticmethod
    def formatdate() -> str:
        """Formats current date and time for HTTP date format."""
        return datetime.now(UTC).strftime("%a, %d %b %Y %H:%M:%S GMT")

    @classmethod
    def text(cls, body: str, status_code: HTTPStatus = HTTPStatus.OK) -> Self:
        """Utility function for text based response."""
        return cls(
            status_code=status_code,
            headers={"content-type": "text/plain; charset=utf-8"},
            body=body.encode(),
        )
