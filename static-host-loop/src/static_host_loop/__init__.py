"""Structured concurrency event loop built on static_host_core."""

__version__ = "0.1.0"

from static_host_loop.loop import run
from static_host_loop.task import CancelScope, Task, TaskGroup

__all__ = [
    "CancelScope",
    "Task",
    "TaskGroup",
    "run",
]
