from __future__ import annotations

from typing import TYPE_CHECKING

from static_host_core.operations import Sleep
from static_host_loop._utils import _execute
from static_host_loop.lowlevel import checkpoint

if TYPE_CHECKING:
    from static_host_loop.typedefs import Coro


def sleep(time: float) -> Coro[None]:
    """Sleep coroutine. Zero only yields to the loop."""
    if time <= 0:
        yield from checkpoint()
    else:
        yield from _execute(Sleep(time=time))
