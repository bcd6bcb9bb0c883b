from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, cast

if TYPE_CHECKING:
    from static_host_core.operations import IOOperation
    from static_host_core.results import IOResult
    from static_host_loop.loop import Loop
    from static_host_loop.typedefs import Coro, TaskID


def _get_new_operation_id() -> TaskID:
    """Gets an unused ID for a task or an operation submitted to the worker."""
    ret = _local.free_operation_id
    _local.free_operation_id += 1

    return ret


def _execute[T: IOResult](op: IOOperation[T]) -> Coro[T]:
    """Yields an operation to the loop and unwraps the completion it sends back."""
    expected = op.result_type
    completion = yield cast("IOOperation[IOResult]", op)
    if completion is None:
        raise RuntimeError("Low level coroutine was sent None")
    if isinstance(result := completion.unwrap(), expected):
        return result

    msg = f"Expected {expected.__name__}, got {type(result).__name__}"
    raise TypeError(msg)


@dataclass(kw_only=True)
class _Local(threading.local):
    """Wrapper around threading.local for proper type annotations."""

    loop: Loop | None = None
    free_operation_id: int = 1

    """Tasks whose cancel scope has been cancelled since the last loop iteration"""
    cancel_queue: deque[TaskID] = field(default_factory=deque)

    def cleanup(self) -> None:
        """Resets all attributes."""
        self.loop = None
        self.free_operation_id = 1
        self.cancel_queue = deque()


_local = _Local()

__all__ = [
    "_execute",
    "_get_new_operation_id",
    "_local",
]
