from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from static_host_core.typedefs import WorkerOperationID


@dataclass(frozen=True, slots=True)
class IOCompletion[T: IOResult]:
    """Outcome of a single submitted operation."""

    user_data: WorkerOperationID
    result: T | OSError

    def unwrap(self) -> T:
        """Rust style unwrapping of results."""
        if isinstance(self.result, OSError):
            raise self.result

        return self.result


@dataclass(frozen=True, slots=True)
class IOResult:
    """Base class for all IO operation results."""


@dataclass(frozen=True, slots=True)
class FileOpenResult(IOResult):
    """Result of a file open operation."""

    fd: int


@dataclass(frozen=True, slots=True)
class ReadResult(IOResult):
    """Result of a read from a file or socket."""

    content: bytes
    size: int


@dataclass(frozen=True, slots=True)
class WriteResult(IOResult):
    """Result of a write to a file or socket."""

    size: int


@dataclass(frozen=True, slots=True)
class CloseResult(IOResult):
    """Result of closing a file descriptor."""


@dataclass(frozen=True, slots=True)
class AcceptResult(IOResult):
    """Result of accepting a connection."""

    fd: int


@dataclass(frozen=True, slots=True)
class SleepResult(IOResult):
    """Result of an expired timeout."""


@dataclass(frozen=True, slots=True)
class CancelResult(IOResult):
    """Result of a cancellation request."""
