from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from yield_loop.exceptions import InvalidStateError
from yield_loop.log import get_logger
from yield_loop.syscalls import join
from yield_loop.task.state import Created, Done, Suspended, TaskState

if TYPE_CHECKING:
    from collections.abc import Callable, Generator

    from yield_loop.typedefs import Coro, TaskID

logger = get_logger(__name__)


@dataclass(slots=True, kw_only=True, eq=False)
class Task[TResult]:
    """Drives a generator coroutine forwards, one step per resume."""

    """The ID of the task. Assigned by the scheduler, never reused."""
    task_id: TaskID

    """The generator coroutine wrapped by the task."""
    gen: Coro[TResult] = field(repr=False)

    """Union encompassing the current state of the task"""
    state: TaskState[TResult] = field(default_factory=Created)

    """Value to inject at the next resume point."""
    pending_value: Any = field(default=None, init=False, repr=False)

    """Observers to notify once the task is done."""
    _callbacks: list[Callable[[Task[TResult]], None]] = field(
        default_factory=list, init=False, repr=False
    )

    """Whether anything has looked at, or will look at, the outcome."""
    observed: bool = field(default=False, init=False, repr=False)

    def resume(self, value: Any = None) -> Any:
        """Runs the coroutine until its next suspension point.

        The first resume starts the coroutine and ignores ``value``. Later resumes
        send ``value`` in as the result of the last ``yield``. An exception escaping
        the coroutine finishes the task and is kept as its outcome.

        Returns:
            Whatever the coroutine yielded, or None if it finished.
        """
        if isinstance(self.state, Done):
            msg = f"Task {self.task_id} has already finished"
            raise InvalidStateError(msg)

        to_send = None if isinstance(self.state, Created) else value
        with self._handle_resume_exc():
            yielded = self.gen.send(to_send)
            self.state = Suspended()
            return yielded

        return None

    def set_pending_value(self, value: Any) -> None:
        """Stores a value for the next resume. Only the latest one is kept."""
        self.pending_value = value

    def pop_pending_value(self) -> Any:
        """Takes the pending value, clearing it."""
        value, self.pending_value = self.pending_value, None
        return value

    @property
    def is_finished(self) -> bool:
        """If the coroutine has no more steps to run."""
        return isinstance(self.state, Done)

    @property
    def failed(self) -> bool:
        """If the task finished by raising."""
        return isinstance(self.state, Done) and self.state.error is not None

    def result(self) -> TResult:
        """Gets the result of a finished task, re-raising its error if it failed."""
        if not isinstance(self.state, Done):
            msg = f"Result of task {self.task_id} accessed before it finished"
            raise InvalidStateError(msg)
        self.observed = True
        if self.state.error is not None:
            raise self.state.error

        return self.state.result  # type: ignore[return-value]

    @property
    def outcome(self) -> TResult | BaseException:
        """The result of a finished task, or the exception it failed with."""
        if not isinstance(self.state, Done):
            msg = f"Outcome of task {self.task_id} accessed before it finished"
            raise InvalidStateError(msg)
        self.observed = True
        if self.state.error is not None:
            return self.state.error

        return self.state.result  # type: ignore[return-value]

    def on_result(self, callback: Callable[[Task[TResult]], None]) -> None:
        """Calls ``callback`` with this task once it is done.

        Runs the callback immediately if the task is already done.
        """
        self.observed = True
        if self.is_finished:
            callback(self)
            return

        self._callbacks.append(callback)

    def wait(self) -> Coro[TResult]:
        """Waits on a Task, so that another Task can yield from it."""
        yield from join(self)
        return self.result()

    def _finish(self, state: Done[TResult]) -> None:
        """Moves the task to Done and notifies observers."""
        self.state = state
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback(self)

    @contextmanager
    def _handle_resume_exc(self) -> Generator[None]:
        try:
            yield
        except StopIteration as e:
            self._finish(Done(result=e.value))
        except BaseException as e:
            self._finish(Done(error=e))
            logger.debug("Task failed", task_id=self.task_id, error=repr(e))
            if not isinstance(e, Exception):
                raise
