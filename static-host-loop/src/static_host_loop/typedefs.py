from __future__ import annotations

from collections.abc import Generator

from static_host_core.operations import IOOperation
from static_host_core.results import IOCompletion, IOResult
from static_host_core.typedefs import WorkerOperationID
from static_host_loop.operations import Checkpoint, WaitsOn

type TaskID = WorkerOperationID

type EventLoopOperation = IOOperation | WaitsOn | Checkpoint

type Coro[T] = Generator[EventLoopOperation, IOCompletion[IOResult] | None, T]
