"""Operations that can be submitted to the ring.

Each operation knows how to prepare its SQE and how to turn the matching
completion event into a typed result.
"""

from __future__ import annotations

import errno
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, override

from liburing import (  # Automatically set to typing.Any by config.
    AT_FDCWD,
    timespec,
)

from static_host_core.buffers import IOVec, MutableIOVec
from static_host_core.results import (
    AcceptResult,
    CancelResult,
    CloseResult,
    FileOpenResult,
    ReadResult,
    SleepResult,
    WriteResult,
)

if TYPE_CHECKING:
    from static_host_core._ring import CompletionEvent, SubmissionQueueEntry
    from static_host_core.results import IOResult


class IOOperation[T: IOResult](ABC):
    """Base class for all IO operations."""

    result_type: type[T]

    @abstractmethod
    def prep(self, sqe: SubmissionQueueEntry) -> None:
        """Prepares a submission queue entry for the SQ."""

    @abstractmethod
    def extract(self, completion_event: CompletionEvent) -> T:
        """Extract fields from a completion queue event and wrap in correct type."""

    def is_error(self, completion_event: CompletionEvent) -> bool:
        """Determines if the completion event is an error."""
        return completion_event.res < 0


@dataclass
class FileOpen(IOOperation[FileOpenResult]):
    """Opens a file relative to the working directory."""

    result_type = FileOpenResult

    """Path of the file to open"""
    path: str | bytes

    """Combination of r, w, c (create) and a (append)"""
    mode: str = "r"

    """Permission bits used when the file is created"""
    permissions: int = 0o660

    @override
    def prep(self, sqe: SubmissionQueueEntry) -> None:
        sqe.prep_openat(
            os.fsencode(self.path), self.flags, self.permissions, AT_FDCWD
        )

    @override
    def extract(self, completion_event: CompletionEvent) -> FileOpenResult:
        return FileOpenResult(fd=completion_event.res)

    @property
    def flags(self) -> int:
        """Translates the mode string to open(2) flags."""
        if "r" in self.mode and "w" in self.mode:
            flags = os.O_RDWR
        elif "w" in self.mode:
            flags = os.O_WRONLY
        else:
            flags = os.O_RDONLY

        if "c" in self.mode:
            flags |= os.O_CREAT
        if "a" in self.mode:
            flags |= os.O_APPEND

        return flags | os.O_CLOEXEC


@dataclass
class Read(IOOperation[ReadResult]):
    """Reads up to size bytes from a file descriptor."""

    result_type = ReadResult
    fd: int

    """Maximum number of bytes to read"""
    size: int

    """Offset for regular files. Ignored for sockets"""
    offset: int = 0

    """Buffer filled by the kernel"""
    _vector_buffer: MutableIOVec = field(init=False, repr=False)

    @override
    def prep(self, sqe: SubmissionQueueEntry) -> None:
        self._vector_buffer = MutableIOVec(bytearray(self.size))
        sqe.prep_read(self.fd, self._vector_buffer, self.offset)

    @override
    def extract(self, completion_event: CompletionEvent) -> ReadResult:
        size = completion_event.res
        return ReadResult(
            content=bytes(self._vector_buffer.iov_base[:size]),
            size=size,
        )


@dataclass
class Write(IOOperation[WriteResult]):
    """Writes data to a file descriptor. May write less than requested."""

    result_type = WriteResult
    fd: int

    """Data to write"""
    data: bytes

    """Offset for regular files. Ignored for sockets"""
    offset: int = 0

    _vector_buffer: IOVec = field(init=False, repr=False)

    @override
    def prep(self, sqe: SubmissionQueueEntry) -> None:
        self._vector_buffer = IOVec(self.data)
        sqe.prep_write(self.fd, self._vector_buffer, self.offset)

    @override
    def extract(self, completion_event: CompletionEvent) -> WriteResult:
        return WriteResult(size=completion_event.res)


@dataclass
class Close(IOOperation[CloseResult]):
    """Closes a file descriptor (file or socket)."""

    result_type = CloseResult
    fd: int

    @override
    def prep(self, sqe: SubmissionQueueEntry) -> None:
        sqe.prep_close(self.fd)

    @override
    def extract(self, completion_event: CompletionEvent) -> CloseResult:
        return CloseResult()


@dataclass
class Accept(IOOperation[AcceptResult]):
    """Accepts a connection on a listening socket."""

    result_type = AcceptResult

    """The listening socket"""
    fd: int

    @override
    def prep(self, sqe: SubmissionQueueEntry) -> None:
        sqe.prep_accept(self.fd)

    @override
    def extract(self, completion_event: CompletionEvent) -> AcceptResult:
        return AcceptResult(fd=completion_event.res)


@dataclass
class Sleep(IOOperation[SleepResult]):
    """Completes after the given amount of seconds."""

    result_type = SleepResult
    time: float
    _timespec: Any = field(init=False, repr=False)

    @override
    def prep(self, sqe: SubmissionQueueEntry) -> None:
        self._timespec = timespec(self.time)
        sqe.prep_timeout(self._timespec)

    @override
    def extract(self, completion_event: CompletionEvent) -> SleepResult:
        return SleepResult()

    @override
    def is_error(self, completion_event: CompletionEvent) -> bool:
        """Override since timeout returns -ETIME on success."""
        return completion_event.res != -errno.ETIME


@dataclass
class Cancel(IOOperation[CancelResult]):
    """Cancels an in-flight operation."""

    result_type = CancelResult

    """The id of the in-flight operation"""
    target: int

    flags: int = 0

    @override
    def prep(self, sqe: SubmissionQueueEntry) -> None:
        sqe.prep_cancel(self.target, self.flags)

    @override
    def extract(self, completion_event: CompletionEvent) -> CancelResult:
        return CancelResult()

    @override
    def is_error(self, completion_event: CompletionEvent) -> bool:
        return completion_event.res < 0 and completion_event.res not in {
            -errno.ENOENT,  # target not found, already completed
            -errno.EALREADY,  # target already completing
        }
