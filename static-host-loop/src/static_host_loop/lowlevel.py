from __future__ import annotations

from typing import TYPE_CHECKING

from static_host_loop._utils import _local
from static_host_loop.operations import Checkpoint

if TYPE_CHECKING:
    from static_host_loop.loop import Loop
    from static_host_loop.task import Task
    from static_host_loop.typedefs import Coro


def get_running_loop() -> Loop:
    """Gets the event loop running in this thread."""
    if _local.loop is None:
        raise RuntimeError("No event loop running")

    return _local.loop


def get_current_task() -> Task:
    """Gets the currently executing task from the loop."""
    return get_running_loop().current_task


def checkpoint() -> Coro[None]:
    """Nop that yields control back to event loop."""
    yield Checkpoint()
