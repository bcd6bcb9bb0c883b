from __future__ import annotations

import errno
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Self

from liburing import (  # Automatically set to typing.Any by config.
    io_uring,
    io_uring_cqe,
    io_uring_cqe_seen,
    io_uring_get_sqe,
    io_uring_peek_cqe,
    io_uring_prep_accept,
    io_uring_prep_cancel64,
    io_uring_prep_close,
    io_uring_prep_openat,
    io_uring_prep_read,
    io_uring_prep_timeout,
    io_uring_prep_write,
    io_uring_queue_exit,
    io_uring_queue_init,
    io_uring_sqe_set_data64,
    io_uring_submit,
    io_uring_wait_cqe,
)

from static_host_core.log import get_logger

if TYPE_CHECKING:
    from types import TracebackType

    from static_host_core.buffers import IOVec, MutableIOVec
    from static_host_core.typedefs import WorkerOperationID

logger = get_logger(__name__)


class SubmissionQueueEntry:
    """Wrapper around liburing's SQE, tagged with the operation id."""

    def __init__(self, sqe: Any, user_data: WorkerOperationID) -> None:  # noqa: ANN401
        self._sqe = sqe
        self.user_data: WorkerOperationID = user_data
        io_uring_sqe_set_data64(self._sqe, user_data)

    def prep_openat(self, path: bytes, flags: int, mode: int, dir_fd: int) -> None:
        """Preps SQE for opening a file."""
        io_uring_prep_openat(self._sqe, path, flags, mode, dir_fd)

    def prep_read(self, fd: int, iov: MutableIOVec, offset: int) -> None:
        """Preps SQE for reading from a file or socket."""
        io_uring_prep_read(self._sqe, fd, iov.iov_base, iov.iov_len, offset)

    def prep_write(self, fd: int, iov: IOVec, offset: int) -> None:
        """Preps SQE for writing to a file or socket."""
        io_uring_prep_write(self._sqe, fd, iov.iov_base, iov.iov_len, offset)

    def prep_close(self, fd: int) -> None:
        """Preps SQE for closing a file descriptor."""
        io_uring_prep_close(self._sqe, fd)

    def prep_accept(self, fd: int) -> None:
        """Preps SQE for accepting a connection on a listening socket."""
        io_uring_prep_accept(self._sqe, fd)

    def prep_timeout(
        self,
        ts: Any,  # noqa: ANN401
        count: int = 0,
        flags: int = 0,
    ) -> None:
        """Preps SQE for a timeout (used for sleeping)."""
        io_uring_prep_timeout(self._sqe, ts, count, flags)

    def prep_cancel(self, target: WorkerOperationID, flags: int = 0) -> None:
        """Preps SQE for cancelling an in-flight operation."""
        io_uring_prep_cancel64(self._sqe, target, flags)


@dataclass(frozen=True, slots=True)
class CompletionEvent:
    """Plain copy of a CQE, detached from the ring."""

    user_data: WorkerOperationID
    res: int
    flags: int


@dataclass
class Ring:
    """Owns an io_uring instance for the duration of a with-block."""

    depth: int = field(default=256)
    _ring: Any = field(default_factory=io_uring, init=False, repr=False)
    _cqe: Any = field(default_factory=io_uring_cqe, init=False, repr=False)

    def __enter__(self) -> Self:
        """Initializes the queues."""
        io_uring_queue_init(self.depth, self._ring, 0)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Tears the queues down."""
        io_uring_queue_exit(self._ring)

    def submit(self) -> int:
        """Submits the SQ to the kernel."""
        return io_uring_submit(self._ring)

    def get_sqe(self, user_data: WorkerOperationID) -> SubmissionQueueEntry:
        """Returns a SQE from the SQ, with set user_data."""
        if not user_data:
            raise ValueError("user_data cannot be 0")

        sqe = io_uring_get_sqe(self._ring)
        if sqe is None:
            # SQ is full, flush it to the kernel and try again.
            self.submit()
            sqe = io_uring_get_sqe(self._ring)
        return SubmissionQueueEntry(sqe, user_data)

    def peek(self) -> CompletionEvent | None:
        """Non-blocking check for a completion event."""
        try:
            ret = io_uring_peek_cqe(self._ring, self._cqe)
        except BlockingIOError:
            return None
        if ret == 0:
            return self._consume_cqe()
        return None

    def wait(self) -> CompletionEvent | None:
        """Blocks until a completion event is available.

        Returns None if the wait was interrupted by a signal, so that the
        caller gets a chance to react to it.
        """
        try:
            ret = io_uring_wait_cqe(self._ring, self._cqe)
        except InterruptedError:
            logger.debug("Wait for completion interrupted by signal")
            return None
        if isinstance(ret, int) and ret == -errno.EINTR:
            return None
        return self._consume_cqe()

    def _consume_cqe(self) -> CompletionEvent:
        """Copies the current CQE and marks it as seen."""
        try:
            return CompletionEvent(
                user_data=self._cqe.user_data,
                res=self._cqe.res,
                flags=self._cqe.flags,
            )
        finally:
            io_uring_cqe_seen(self._ring, self._cqe)
