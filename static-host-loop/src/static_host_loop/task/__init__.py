from __future__ import annotations

from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Self

from static_host_loop._utils import _get_new_operation_id, _local
from static_host_loop.exceptions import Cancelled
from static_host_loop.log import get_logger
from static_host_loop.lowlevel import get_current_task, get_running_loop
from static_host_loop.operations import Checkpoint, WaitsOn
from static_host_loop.task.state import Created, Done, Ready, Submitted, TaskState

if TYPE_CHECKING:
    from collections.abc import Generator
    from types import TracebackType

    from static_host_core.results import IOCompletion
    from static_host_loop.typedefs import Coro, EventLoopOperation, TaskID

logger = get_logger(__name__)


@dataclass(slots=True, kw_only=True, eq=False)
class CancelScope:
    """Cancel scope, inspired by Trio."""

    """If the scope is shielded from cancellation of outer scopes"""
    shielded: bool = field(default=False)

    """Whether the cancel scope is cancelled or not"""
    cancelled: bool = field(default=False, init=False)

    """IDs of the tasks within the cancel scope"""
    task_ids: set[TaskID] = field(default_factory=set, init=False)

    def cancel(self) -> None:
        """Cancels every task in the scope. Idempotent."""
        if self.cancelled:
            return
        self.cancelled = True
        _local.cancel_queue.extend(self.task_ids)

    def __enter__(self) -> Self:
        """Adds the current task to the scope."""
        get_current_task().enter_cancel_scope(self)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Removes the current task from the scope."""
        get_current_task().exit_cancel_scope()

    def add_task(self, task_id: TaskID) -> None:
        """Adds a task to the cancel scope."""
        self.task_ids.add(task_id)

    def remove_task(self, task_id: TaskID) -> None:
        """Removes a task from the cancel scope."""
        self.task_ids.discard(task_id)


@dataclass(slots=True, kw_only=True)
class Task[TResult]:
    """Drives a generator coroutine forwards."""

    """The generator coroutine wrapped by the task"""
    gen: Coro[TResult] = field(repr=False)

    """The ID of the task"""
    task_id: TaskID

    """Cancel scope stack for the task, outermost first"""
    cancel_scopes: deque[CancelScope] = field(repr=False)

    """The task group owning the task. None for standalone tasks"""
    task_group: TaskGroup | None = field(repr=False)

    """Where the task is in its lifecycle"""
    state: TaskState[TResult] = field(default_factory=Created)

    def start(self) -> None:
        """Starts the task."""
        if not isinstance(self.state, Created):
            msg = f"Task with task_id {self.task_id} has already been started"
            raise RuntimeError(msg)  # noqa: TRY004

        self.drive(None)

    def drive(self, value: IOCompletion | None) -> None:
        """Sends a value into the generator, running it to its next operation."""
        with self._handle_drive_exc():
            op = self.gen.send(value)
            self.state = Ready(operation=op)

    def throw(self, exc: BaseException) -> None:
        """Throws an exception into the task's generator."""
        with self._handle_drive_exc():
            op = self.gen.throw(exc)
            self.state = Ready(operation=op)

    def submit(self, op_id: int | None = None) -> None:
        """Marks the pending operation as handed over to the loop or kernel."""
        self.state = Submitted(operation=self.operation, op_id=op_id)

    @property
    def operation(self) -> EventLoopOperation:
        """The operation the task is blocked on."""
        if not isinstance(self.state, Ready | Submitted):
            msg = f"Task {self.task_id} has no pending operation"
            raise RuntimeError(msg)  # noqa: TRY004
        return self.state.operation

    @property
    def is_started(self) -> bool:
        """Checks if a task has been started."""
        return not isinstance(self.state, Created)

    @property
    def is_ready(self) -> bool:
        """If the task produced an operation the loop hasn't processed yet."""
        return isinstance(self.state, Ready)

    @property
    def is_checkpointed(self) -> bool:
        """Checks if a task is currently checkpointed."""
        return isinstance(self.state, Ready) and isinstance(
            self.state.operation, Checkpoint
        )

    @property
    def is_submitted(self) -> bool:
        """If a task has had its operation submitted."""
        return isinstance(self.state, Submitted)

    @property
    def is_waiting_on(self) -> bool:
        """If the task is currently waiting on other tasks."""
        return isinstance(self.state, Submitted) and isinstance(
            self.state.operation, WaitsOn
        )

    @property
    def is_done(self) -> bool:
        """If a task has finished."""
        return isinstance(self.state, Done)

    @property
    def result(self) -> TResult:
        """Gets the result of a finished task, raising its exception if it failed."""
        if not isinstance(self.state, Done):
            msg = "Task result access before task was finished"
            raise RuntimeError(msg)  # noqa: TRY004
        if isinstance(self.state.result, BaseException):
            raise self.state.result

        return self.state.result

    def wait(self) -> Coro[TResult]:
        """Waits on a Task, so that another Task can yield from it."""
        yield from wait_on(self)
        return self.result

    def enter_cancel_scope(self, cancel_scope: CancelScope) -> None:
        """Enters a cancel scope by appending it to the cancel scope stack."""
        self.cancel_scopes.append(cancel_scope)
        cancel_scope.add_task(self.task_id)

    def exit_cancel_scope(self) -> CancelScope:
        """Exits a cancel scope by popping it from the cancel scope stack."""
        cancel_scope = self.cancel_scopes.pop()
        cancel_scope.remove_task(self.task_id)
        return cancel_scope

    def current_cancel_scope(self) -> CancelScope:
        """Gets the innermost cancel scope."""
        if not self.cancel_scopes:
            raise RuntimeError("Task created without cancel scope")

        return self.cancel_scopes[-1]

    def should_cancel(self) -> bool:
        """Determines if a task should be cancelled from its cancel scopes."""
        for cancel_scope in reversed(self.cancel_scopes):
            if cancel_scope.cancelled:
                return True
            if cancel_scope.shielded:
                return False

        return False

    @contextmanager
    def _handle_drive_exc(self) -> Generator[None]:
        try:
            yield
        except StopIteration as e:
            self.state = Done(result=e.value)
        except Cancelled as e:
            self.state = Done(result=e)
        except BaseException as e:
            self.state = Done(result=e)
            if self.task_group is None:
                raise
            self.task_group.set_error(e)


@dataclass(slots=True, kw_only=True)
class TaskGroup:
    """Trio style nursery.

    Not a context manager, since leaving the group has to yield to the loop:
    call enter() before creating tasks and "yield from exit()" in a finally.
    """

    """Children that were still running when last checked"""
    tasks: list[Task] = field(default_factory=list, init=False)

    """Common cancel scope for all tasks in the group"""
    cancel_scope: CancelScope = field(default_factory=CancelScope, init=False)

    """Errors raised by children"""
    _errors: list[BaseException] = field(default_factory=list, init=False)

    def create_task[T](self, gen: Coro[T]) -> Task[T]:
        """Creates a task managed by the task group.

        The child inherits the cancel scopes of the current task up to and
        including the group's own scope, but not scopes entered afterwards.
        """
        scopes = list(get_current_task().cancel_scopes)
        for index, cancel_scope in enumerate(scopes):
            if cancel_scope is self.cancel_scope:
                break
        else:
            raise RuntimeError("TaskGroup must be entered before creating tasks")

        task = _create_standalone_task(gen, scopes[: index + 1], self)
        for cancel_scope in task.cancel_scopes:
            cancel_scope.add_task(task.task_id)

        self.tasks = [t for t in self.tasks if not t.is_done]
        self.tasks.append(task)
        return task

    def enter(self) -> None:
        """Enters the group's cancel scope in the current task."""
        get_current_task().enter_cancel_scope(self.cancel_scope)

    def exit(self) -> Coro[None]:
        """Cancels the remaining children, waits for them and raises their errors."""
        cancel_scope = get_current_task().exit_cancel_scope()
        if cancel_scope is not self.cancel_scope:
            raise RuntimeError("TaskGroup exited while an inner cancel scope is open")

        if not all(task.is_done for task in self.tasks):
            cancel_scope.cancel()
        yield from wait_on(*self.tasks, cancellable=False)

        if self._errors:
            raise BaseExceptionGroup(
                "unhandled errors in TaskGroup", self._errors
            ) from None

    def wait(self) -> Coro[None]:
        """Waits for all children to finish."""
        yield from wait_on(*self.tasks)

    def cancel(self) -> None:
        """Cancels all children."""
        self.cancel_scope.cancel()

    def set_error(self, exc: BaseException) -> None:
        """Records a failed child and cancels its siblings."""
        # A cancelled child is not an error, the cancellation came from a scope.
        if isinstance(exc, Cancelled):
            return

        self._errors.append(exc)
        self.cancel_scope.cancel()


def wait_on(*tasks: Task, cancellable: bool = True) -> Coro[None]:
    """Yield until all given tasks are done.

    Args:
        tasks: the tasks to wait for
        cancellable: whether cancellation of the waiting task interrupts the wait
    """
    while not all(task.is_done for task in tasks):
        unfinished = tuple(task.task_id for task in tasks if not task.is_done)
        yield WaitsOn(task_ids=unfinished, cancellable=cancellable)


def _create_standalone_task[T](
    gen: Coro[T],
    cancel_scopes: list[CancelScope] | None,
    task_group: TaskGroup | None,
) -> Task[T]:
    """Creates a task and adds it to the event loop.

    Args:
        gen: the coroutine for the Task to wrap
        cancel_scopes: the cancel scopes relevant to the task. None gives the
            task a fresh scope of its own
        task_group: the task group to which the task belongs to
    """
    task_id = _get_new_operation_id()
    if cancel_scopes is None:
        own_scope = CancelScope()
        own_scope.add_task(task_id)
        _cancel_scopes = deque([own_scope])
    else:
        _cancel_scopes = deque(cancel_scopes)

    task: Task[T] = Task(
        gen=gen, task_id=task_id, cancel_scopes=_cancel_scopes, task_group=task_group
    )
    get_running_loop().add_task(task)
    return task
