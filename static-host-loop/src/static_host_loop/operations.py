"""Operations understood by the event loop on top of static_host_core's."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from static_host_loop.typedefs import TaskID


@dataclass(frozen=True, slots=True)
class WaitsOn:
    """Suspends the yielding task until one of the given tasks is done."""

    task_ids: tuple[TaskID, ...]

    """Whether cancellation of the waiting task interrupts the wait"""
    cancellable: bool = True


@dataclass(frozen=True, slots=True)
class Checkpoint:
    """Yields control back to the event loop for one iteration."""
