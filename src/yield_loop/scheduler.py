from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, assert_never

from yield_loop.exceptions import (
    AlreadyScheduledError,
    IntegrityError,
    StrandedTasksError,
)
from yield_loop.log import get_logger
from yield_loop.multiplexer import Multiplexer, WaitingSet, WaitKind
from yield_loop.syscalls import (
    SpawnTask,
    SystemCall,
    WaitForAllTasks,
    WaitForRead,
    WaitForWrite,
    is_system_call,
)
from yield_loop.task import Task

if TYPE_CHECKING:
    from collections.abc import Sequence

    from yield_loop.typedefs import Coro, Pollable, TaskID

logger = get_logger(__name__)


@dataclass(slots=True, kw_only=True)
class Scheduler:
    """Single-threaded cooperative scheduler driven by socket readiness."""

    """Polls for socket readiness when tasks are blocked on I/O."""
    multiplexer: Multiplexer = field(default_factory=Multiplexer)

    """Raise instead of warn on unfinished tasks or unhandled errors after a run."""
    strict: bool = False

    """Every task created and not yet finished."""
    tasks: dict[TaskID, Task] = field(default_factory=dict, init=False)

    """Tasks eligible to run, in FIFO order."""
    ready: deque[Task] = field(default_factory=deque, init=False)

    """Tasks blocked on socket readiness."""
    waiting: WaitingSet = field(default_factory=WaitingSet, init=False)

    """IDs of the tasks currently in the ready queue."""
    _queued: set[TaskID] = field(default_factory=set, init=False, repr=False)

    """Tasks that finished by raising, checked for observers once the run drains."""
    _failed: list[Task] = field(default_factory=list, init=False, repr=False)

    _max_task_id: int = field(default=0, init=False, repr=False)

    def new_task[T](self, coro: Coro[T]) -> Task[T]:
        """Wraps ``coro`` in a new task and queues it to run."""
        self._max_task_id += 1
        task: Task[T] = Task(task_id=self._max_task_id, gen=coro)
        self.tasks[task.task_id] = task
        logger.debug("Created task", task_id=task.task_id)

        self.schedule(task)
        return task

    def schedule(self, task: Task) -> None:
        """Appends ``task`` to the ready queue."""
        if task.is_finished:
            msg = f"Task {task.task_id} has already finished"
            raise AlreadyScheduledError(msg)
        if task.task_id in self._queued:
            msg = f"Task {task.task_id} is already in the ready queue"
            raise AlreadyScheduledError(msg)
        if task.task_id in self.waiting:
            msg = f"Task {task.task_id} is waiting on a socket"
            raise AlreadyScheduledError(msg)

        logger.debug("Scheduled task", task_id=task.task_id)
        self._queued.add(task.task_id)
        self.ready.append(task)

    def run(self) -> None:
        """Runs until no task is ready and no task is waiting on a socket."""
        while self.ready or self.waiting:
            if self.ready:
                task = self.ready.popleft()
                self._queued.discard(task.task_id)
                self.run_task(task)
            if self.waiting:
                # Only block in select when there is nothing else to run.
                self._io_poll(0 if self.ready else None)

        self._check_unhandled()
        self._check_stranded()

    def run_task(self, task: Task) -> None:
        """Resumes ``task`` with its pending value and acts on what it yields."""
        logger.debug("Running task", task_id=task.task_id)
        try:
            yielded = task.resume(task.pop_pending_value())
        finally:
            if task.is_finished:
                self.tasks.pop(task.task_id, None)

        if task.failed:
            self._failed.append(task)

        if is_system_call(yielded):
            self._dispatch(yielded, task)
        elif not task.is_finished:
            self.schedule(task)

    def wait_for_read(self, sock: Pollable, task: Task) -> None:
        """Blocks ``task`` until ``sock`` is readable."""
        self.waiting.add(WaitKind.READ, sock, task)

    def wait_for_write(self, sock: Pollable, task: Task) -> None:
        """Blocks ``task`` until ``sock`` is writable."""
        self.waiting.add(WaitKind.WRITE, sock, task)

    def _dispatch(self, syscall: SystemCall, task: Task) -> None:
        logger.debug(
            "Dispatching system call",
            task_id=task.task_id,
            syscall=type(syscall).__name__,
        )
        match syscall:
            case SpawnTask(coro=coro):
                child = self.new_task(coro)
                task.set_pending_value(child)
                self.schedule(task)
            case WaitForRead(socket=sock):
                self.wait_for_read(sock, task)
            case WaitForWrite(socket=sock):
                self.wait_for_write(sock, task)
            case WaitForAllTasks(tasks=tasks):
                self._wait_for_all(task, tasks)
            case _:
                assert_never(syscall)

    def _wait_for_all(self, waiter: Task, tasks: Sequence[Task]) -> None:
        """Resumes ``waiter`` with every task's outcome once all are done."""
        if not tasks:
            logger.error("Join on empty task list", task_id=waiter.task_id)
            msg = f"Task {waiter.task_id} joined an empty task list, it would never wake"
            raise IntegrityError(msg)

        unique = {task.task_id: task for task in tasks}
        results: dict[TaskID, Any] = {}

        def _collect(done: Task) -> None:
            results[done.task_id] = done.outcome
            if len(results) == len(unique):
                logger.debug("Join complete", task_id=waiter.task_id)
                waiter.set_pending_value(results)
                self.schedule(waiter)

        for task in unique.values():
            task.on_result(_collect)

    def _io_poll(self, timeout: float | None) -> None:
        for task in self.multiplexer.poll(self.waiting, timeout):
            self.schedule(task)

    def _check_unhandled(self) -> None:
        """Reports failures nobody joined, waited on or read the result of."""
        unhandled = [task for task in self._failed if not task.observed]
        self._failed = []
        if not unhandled:
            return

        errors = [task.outcome for task in unhandled]
        if self.strict:
            raise ExceptionGroup("unhandled errors in tasks", errors)
        for task, error in zip(unhandled, errors, strict=True):
            logger.warning(
                "Unhandled error in task", task_id=task.task_id, error=repr(error)
            )

    def _check_stranded(self) -> None:
        """Reports tasks that can never run again once the run has drained."""
        stranded = [task for task in self.tasks.values() if not task.is_finished]
        if not stranded:
            return

        task_ids = [task.task_id for task in stranded]
        if self.strict:
            msg = f"Run drained with unfinished tasks: {task_ids}"
            raise StrandedTasksError(msg)
        logger.warning("Run drained with unfinished tasks", task_ids=task_ids)


def run[T](coro: Coro[T], *, strict: bool = False) -> T:
    """Entry point for running the scheduler.

    Creates a Task from the generator on a fresh scheduler, and runs it to drain.

    Args:
        coro: the entry coroutine
        strict: raise if the run drains with unfinished tasks or unhandled errors

    Returns:
        The entry coroutine's return value.
    """
    scheduler = Scheduler(strict=strict)
    task = scheduler.new_task(coro)
    # The caller sees the entry task's error through result().
    task.observed = True
    scheduler.run()
    return task.result()
