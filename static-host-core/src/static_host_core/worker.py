from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Self

from static_host_core._ring import Ring
from static_host_core.log import get_logger
from static_host_core.results import IOCompletion

if TYPE_CHECKING:
    from types import TracebackType

    from static_host_core._ring import CompletionEvent
    from static_host_core.operations import IOOperation
    from static_host_core.results import IOResult
    from static_host_core.typedefs import WorkerOperationID

logger = get_logger(__name__)


@dataclass(slots=True, kw_only=True)
class IOWorker:
    """Submits operations to the ring and hands back typed completions."""

    """Depth of the submission queue"""
    depth: int = 256

    _ring: Ring = field(init=False, repr=False)

    """Maps operation id to the submitted, not yet completed, operation"""
    _in_flight: dict[WorkerOperationID, IOOperation] = field(
        default_factory=dict, init=False, repr=False
    )

    def __enter__(self) -> Self:
        """Sets up the ring."""
        self._ring = Ring(depth=self.depth).__enter__()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Tears the ring down. In-flight operations are abandoned."""
        if self._in_flight:
            logger.debug(
                "Closing ring with in-flight operations", count=len(self._in_flight)
            )
        self._in_flight.clear()
        self._ring.__exit__(exc_type, exc_val, exc_tb)

    def register(self, operation: IOOperation, identifier: WorkerOperationID) -> None:
        """Prepares an SQE for the operation. Call submit() to send it off."""
        if identifier in self._in_flight:
            msg = f"Operation id {identifier} is already in flight"
            raise ValueError(msg)

        sqe = self._ring.get_sqe(identifier)
        operation.prep(sqe)
        self._in_flight[identifier] = operation

    def submit(self) -> None:
        """Submits all registered operations to the kernel."""
        self._ring.submit()

    def wait(self) -> IOCompletion[IOResult] | None:
        """Blocks until an operation completes. None if interrupted."""
        event = self._ring.wait()
        if event is None:
            return None
        return self._complete(event)

    def peek(self) -> IOCompletion[IOResult] | None:
        """Returns a completed operation if one is available."""
        event = self._ring.peek()
        if event is None:
            return None
        return self._complete(event)

    @property
    def in_flight(self) -> int:
        """Number of operations the kernel still owes a completion for."""
        return len(self._in_flight)

    def _complete(self, event: CompletionEvent) -> IOCompletion[IOResult]:
        """Matches a completion event with its operation and builds the result."""
        operation = self._in_flight.pop(event.user_data)
        if operation.is_error(event):
            err = -event.res
            return IOCompletion(
                user_data=event.user_data, result=OSError(err, os.strerror(err))
            )

        return IOCompletion(user_data=event.user_data, result=operation.extract(event))
