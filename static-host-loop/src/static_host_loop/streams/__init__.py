from static_host_loop.streams.buffered import (
    BufferedByteReceiveStream,
    BufferedByteStream,
)
from static_host_loop.streams.exceptions import (
    BrokenResourceError,
    ClosedResourceError,
    DelimiterNotFoundError,
    EndOfStreamError,
)

__all__ = [
    "BrokenResourceError",
    "BufferedByteReceiveStream",
    "BufferedByteStream",
    "ClosedResourceError",
    "DelimiterNotFoundError",
    "EndOfStreamError",
]
