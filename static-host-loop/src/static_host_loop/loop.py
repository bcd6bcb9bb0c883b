from __future__ import annotations

import errno
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from static_host_core.operations import Cancel, IOOperation
from static_host_core.worker import IOWorker
from static_host_loop._utils import _get_new_operation_id, _local
from static_host_loop.exceptions import Cancelled
from static_host_loop.log import get_logger
from static_host_loop.operations import Checkpoint, WaitsOn
from static_host_loop.task.state import Submitted

if TYPE_CHECKING:
    from collections.abc import Generator, Iterator

    from static_host_core.results import IOCompletion, IOResult
    from static_host_loop.task import Task
    from static_host_loop.typedefs import Coro, TaskID

logger = get_logger(__name__)


@dataclass(slots=True, kw_only=True)
class Loop:
    """Single threaded event loop driving tasks on top of an IOWorker."""

    """The tasks currently running"""
    tasks: dict[TaskID, Task] = field(default_factory=dict, init=False)

    """Maps a task to the tasks waiting for it to finish"""
    task_dependencies: defaultdict[TaskID, set[TaskID]] = field(
        default_factory=lambda: defaultdict(set), init=False
    )

    """Maps operation id to task id for in-flight operations"""
    operation_to_task: dict[int, TaskID] = field(default_factory=dict, init=False)

    """The task which is currently executing synchronously"""
    _current_task: Task | None = field(default=None, init=False)

    def run_until_complete(self) -> None:
        """Runs the event loop until all tasks are complete."""
        with IOWorker() as worker:
            while self.tasks:
                self._start_tasks()
                registered = self._handle_ready_tasks(worker)
                registered |= self._handle_cancellations(worker)
                if registered:
                    worker.submit()
                self._drive_checkpointed_tasks()
                self._drive_completed_tasks(worker)
                self._remove_done_tasks()

    def _start_tasks(self) -> None:
        """Starts unstarted tasks."""
        unstarted_tasks = [t for t in self.tasks.values() if not t.is_started]
        for task in unstarted_tasks:
            with self.set_current_task(task):
                task.start()

    def _handle_ready_tasks(self, worker: IOWorker) -> bool:
        """Processes the operations yielded since the last iteration.

        Returns:
            True if anything was registered with the worker
        """
        registered = False
        for task in [t for t in self.tasks.values() if t.is_ready]:
            registered |= self._handle_ready_task(task, worker)

        return registered

    def _handle_ready_task(self, task: Task, worker: IOWorker) -> bool:
        registered = False
        while task.is_ready:
            operation = task.operation
            if task.should_cancel() and not (
                isinstance(operation, WaitsOn) and not operation.cancellable
            ):
                with self.set_current_task(task):
                    task.throw(Cancelled(f"Task {task.task_id} was cancelled"))
                continue

            match operation:
                case IOOperation():
                    op_id = _get_new_operation_id()
                    worker.register(operation, op_id)
                    self.operation_to_task[op_id] = task.task_id
                    task.submit(op_id)
                    registered = True
                case WaitsOn(task_ids=task_ids):
                    if any(self._is_finished(task_id) for task_id in task_ids):
                        with self.set_current_task(task):
                            task.drive(None)
                        continue
                    for task_id in task_ids:
                        self.task_dependencies[task_id].add(task.task_id)
                    task.submit()
                case Checkpoint():
                    pass
            break

        return registered

    def _handle_cancellations(self, worker: IOWorker) -> bool:
        """Drains the cancellation queue.

        Tasks blocked on other tasks get Cancelled thrown in directly. Tasks blocked
        on the kernel get a cancellation submitted for their operation, and receive
        Cancelled once the kernel reports it.
        """
        registered = False
        while _local.cancel_queue:
            task = self.tasks.get(_local.cancel_queue.popleft())
            if task is None or not task.is_submitted or not task.should_cancel():
                continue

            state = task.state
            if not isinstance(state, Submitted):
                continue

            match state.operation:
                case WaitsOn(task_ids=task_ids, cancellable=True):
                    for task_id in task_ids:
                        self.task_dependencies[task_id].discard(task.task_id)
                    with self.set_current_task(task):
                        task.throw(Cancelled(f"Task {task.task_id} was cancelled"))
                    registered |= self._handle_ready_task(task, worker)
                case IOOperation() if state.op_id is not None:
                    if state.cancel_requested:
                        continue
                    worker.register(
                        Cancel(target=state.op_id), _get_new_operation_id()
                    )
                    state.cancel_requested = True
                    registered = True

        return registered

    def _drive_checkpointed_tasks(self) -> None:
        """Drives tasks that have been checkpointed."""
        checkpointed_tasks = [t for t in self.tasks.values() if t.is_checkpointed]
        for task in checkpointed_tasks:
            with self.set_current_task(task):
                task.drive(None)

    def _drive_completed_tasks(self, worker: IOWorker) -> None:
        for completion in self._get_completions(worker):
            task_id = self.operation_to_task.pop(completion.user_data, None)
            if task_id is None:
                # Completion of a Cancel operation.
                continue
            task = self.tasks.get(task_id)
            if task is None or task.is_done:
                continue

            with self.set_current_task(task):
                if (
                    isinstance(oserror := completion.result, OSError)
                    and oserror.errno == errno.ECANCELED
                ):
                    task.throw(Cancelled(f"Task {task.task_id} was cancelled"))
                else:
                    task.drive(completion)

    def _get_completions(self, worker: IOWorker) -> list[IOCompletion[IOResult]]:
        """Collects completions, blocking only when no task can make progress."""
        if _local.cancel_queue or any(
            task.is_ready or task.is_done or not task.is_started
            for task in self.tasks.values()
        ):
            return list(self._peek_all(worker))

        if worker.in_flight == 0:
            logger.error("Raising deadlock error", tasks=list(self.tasks))
            raise RuntimeError(
                "Deadlock: all tasks waiting on dependencies, no pending I/O"
            )

        completion = worker.wait()
        if completion is None:
            # Interrupted by a signal.
            return []

        return [completion, *self._peek_all(worker)]

    @staticmethod
    def _peek_all(worker: IOWorker) -> Iterator[IOCompletion[IOResult]]:
        while (completion := worker.peek()) is not None:
            yield completion

    def _remove_done_tasks(self) -> None:
        done_tasks = [t for t in self.tasks.values() if t.is_done]
        for done_task in done_tasks:
            for cancel_scope in done_task.cancel_scopes:
                cancel_scope.remove_task(done_task.task_id)
            del self.tasks[done_task.task_id]

        # Now drive tasks that were waiting on the done tasks.
        for done_task in done_tasks:
            for waiting_task_id in self.task_dependencies.pop(done_task.task_id, ()):
                waiting_task = self.tasks.get(waiting_task_id)
                if waiting_task is None or not waiting_task.is_waiting_on:
                    # Already driven forward, by another task it waited on.
                    continue

                operation = waiting_task.operation
                if isinstance(operation, WaitsOn):
                    for task_id in operation.task_ids:
                        self.task_dependencies[task_id].discard(waiting_task_id)
                with self.set_current_task(waiting_task):
                    waiting_task.drive(None)

    def _is_finished(self, task_id: TaskID) -> bool:
        task = self.tasks.get(task_id)
        return task is None or task.is_done

    @property
    def current_task(self) -> Task:
        """Gets currently executing task."""
        if self._current_task is None:
            raise RuntimeError("No task currently executing")

        return self._current_task

    @contextmanager
    def set_current_task(self, task: Task) -> Generator[None]:
        """Utility wrapper for setting and removing currently executing task."""
        self._current_task = task
        try:
            yield
        finally:
            self._current_task = None

    def add_task(self, task: Task) -> None:
        """Adds a task to be run by the event loop."""
        self.tasks[task.task_id] = task


def run[T](gen: Coro[T]) -> T:
    """Entry point for running the event loop.

    Creates a Task from the generator on the event loop, and runs the loop until
    every task has finished.

    Args:
        gen: the entry coroutine

    Returns:
        The return value of the entry coroutine
    """
    from static_host_loop.task import _create_standalone_task  # noqa: PLC0415

    if _local.loop is not None:
        raise RuntimeError("Event loop is already running in this thread")

    _local.loop = Loop()
    try:
        root = _create_standalone_task(gen, None, None)
        _local.loop.run_until_complete()
    finally:
        _local.cleanup()

    return root.result
