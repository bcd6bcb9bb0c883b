from __future__ import annotations

from liburing import (  # Automatically set to typing.Any by config.
    iovec,
)


class BaseIOVec:
    """Wrapper around liburing's iovec.

    The wrapped buffer must stay referenced until the operation using it has
    completed, so operations keep their IOVec as an attribute.
    """

    _iov: iovec

    @property
    def iov_base(self) -> bytes:
        """The underlying buffer."""
        return self._iov.iov_base

    @property
    def iov_len(self) -> int:
        """Length of the underlying buffer."""
        return self._iov.iov_len


class IOVec(BaseIOVec):
    """IOVec for data handed to the kernel (writes)."""

    def __init__(self, data: bytes) -> None:
        self._iov = iovec(data)  # pyrefly: ignore


class MutableIOVec(BaseIOVec):
    """IOVec for buffers filled by the kernel (reads)."""

    def __init__(self, data: bytearray) -> None:
        self._iov = iovec(data)  # pyrefly: ignore
