from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from static_host_loop.exceptions import Cancelled
from static_host_loop.log import get_logger
from static_host_loop.task import CancelScope, Task, _create_standalone_task
from static_host_loop.timerio import sleep

if TYPE_CHECKING:
    from collections.abc import Generator

    from static_host_loop.typedefs import Coro

logger = get_logger(__name__)


@dataclass(slots=True, kw_only=True)
class _Timeout:
    """Cancels a cancel scope after a delay, unless stopped first."""

    """The delay for the timeout, in seconds"""
    delay: float

    """The scope cancelled when the delay runs out"""
    cancel_scope: CancelScope

    """Background task sleeping for the delay"""
    _timer: Task[None] | None = field(default=None, init=False, repr=False)

    def _cancellation_task(self) -> Coro[None]:
        yield from sleep(self.delay)
        logger.debug("Timeout expired", delay=self.delay)
        self.cancel_scope.cancel()

    def start(self) -> None:
        """Starts the background task which cancels the scope."""
        self._timer = _create_standalone_task(self._cancellation_task(), None, None)

    def stop(self) -> None:
        """Cancels the background task if it is still sleeping."""
        if self._timer is not None and not self._timer.is_done:
            self._timer.cancel_scopes[0].cancel()


@contextmanager
def fail_after(delay: float, *, shield: bool = False) -> Generator[CancelScope]:
    """Raises TimeoutError if the block doesn't finish within delay seconds.

    Args:
        delay: seconds before the block is cancelled
        shield: whether the block is shielded from cancellation of outer scopes
    """
    cancel_scope = CancelScope(shielded=shield)
    timeout = _Timeout(delay=delay, cancel_scope=cancel_scope)
    timeout.start()
    try:
        with cancel_scope:
            yield cancel_scope
    except Cancelled as e:
        if cancel_scope.cancelled:
            msg = f"Block did not finish within {delay} seconds"
            raise TimeoutError(msg) from e
        raise
    finally:
        timeout.stop()


@contextmanager
def move_on_after(delay: float, *, shield: bool = False) -> Generator[CancelScope]:
    """Silently leaves the block if it doesn't finish within delay seconds.

    Check cancel_scope.cancelled on the yielded scope to see if it timed out.
    """
    cancel_scope = CancelScope(shielded=shield)
    timeout = _Timeout(delay=delay, cancel_scope=cancel_scope)
    timeout.start()
    try:
        with cancel_scope:
            yield cancel_scope
    except Cancelled:
        # Cancellation of an outer scope is redelivered at the next yield.
        if not cancel_scope.cancelled:
            raise
    finally:
        timeout.stop()
