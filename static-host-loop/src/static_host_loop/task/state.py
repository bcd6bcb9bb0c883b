from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from static_host_loop.typedefs import EventLoopOperation


@dataclass(slots=True, kw_only=True)
class Created:
    """Task exists but hasn't been started."""


@dataclass(slots=True, kw_only=True)
class Ready:
    """Task has been driven and produced an operation."""

    operation: EventLoopOperation


@dataclass(slots=True, kw_only=True)
class Submitted:
    """Loop has processed the operation. Task is blocked until woken."""

    operation: EventLoopOperation

    """Only set for operations submitted to the kernel"""
    op_id: int | None = None

    """Set once a cancellation of the in-flight operation has been submitted"""
    cancel_requested: bool = False


@dataclass(slots=True, kw_only=True)
class Done[T]:
    """Task has finished."""

    result: T | BaseException


type TaskState[T] = Created | Ready | Submitted | Done[T]
