"""Receiving process signals as events on the loop.

The Python level handlers only exist so that the default action doesn't run.
The signal numbers are delivered through a wakeup pipe, which the loop reads
like any other file descriptor. This way a signal arriving while the loop is
blocked in the kernel still wakes it up.
"""

from __future__ import annotations

import os
import signal
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Self

from static_host_core.operations import Read
from static_host_loop._utils import _execute
from static_host_loop.log import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from types import FrameType

    from static_host_loop.typedefs import Coro

logger = get_logger(__name__)


def _ignore(signum: int, frame: FrameType | None) -> None:
    pass


@dataclass(slots=True, kw_only=True)
class SignalReceiver:
    """Delivers the given signals to a task. Only usable from the main thread."""

    signals: tuple[signal.Signals, ...]

    _read_fd: int = field(init=False, repr=False)
    _write_fd: int = field(init=False, repr=False)
    _previous_wakeup_fd: int = field(default=-1, init=False, repr=False)
    _previous_handlers: dict[signal.Signals, Callable | int | None] = field(
        default_factory=dict, init=False, repr=False
    )
    _pending: list[signal.Signals] = field(
        default_factory=list, init=False, repr=False
    )

    def __enter__(self) -> Self:
        """Installs the handlers and the wakeup pipe."""
        self._read_fd, self._write_fd = os.pipe2(os.O_CLOEXEC)
        # The interpreter requires a non-blocking write end, the ring reads the
        # other end.
        os.set_blocking(self._write_fd, False)
        self._previous_wakeup_fd = signal.set_wakeup_fd(
            self._write_fd, warn_on_full_buffer=False
        )
        for signum in self.signals:
            self._previous_handlers[signum] = signal.signal(signum, _ignore)
        return self

    def __exit__(self, *exc_info: object) -> None:
        """Restores the previous handlers and wakeup fd."""
        for signum, handler in self._previous_handlers.items():
            signal.signal(signum, handler)
        signal.set_wakeup_fd(self._previous_wakeup_fd)
        os.close(self._read_fd)
        os.close(self._write_fd)

    def receive(self) -> Coro[signal.Signals]:
        """Waits for the next of the watched signals."""
        while not self._pending:
            result = yield from _execute(Read(fd=self._read_fd, size=64))
            self._pending.extend(_decode(result.content, self.signals))

        signum = self._pending.pop(0)
        logger.debug("Received signal", signal=signum.name)
        return signum


def _decode(
    content: bytes, watched: Iterable[signal.Signals]
) -> list[signal.Signals]:
    """Maps the bytes written by the interpreter back to watched signals."""
    watched = set(watched)
    return [signal.Signals(b) for b in content if b in watched]


def open_signal_receiver(*signals: signal.Signals) -> SignalReceiver:
    """Creates a receiver for the given signals. Use it as a context manager."""
    if not signals:
        raise ValueError("At least one signal must be given")
    return SignalReceiver(signals=signals)
