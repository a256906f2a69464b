"""System calls: control requests a task yields to the scheduler.

A task asks the scheduler for a service by yielding one of the dataclasses below.
The scheduler intercepts it, acts on it, and decides when the task runs again.
Task code normally uses the generator helpers at the bottom with ``yield from``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from yield_loop.task import Task
    from yield_loop.typedefs import Coro, Pollable, TaskID


@dataclass(frozen=True, slots=True)
class SpawnTask:
    """Creates a new task. The spawner is resumed with the new Task."""

    coro: Coro


@dataclass(frozen=True, slots=True)
class WaitForRead:
    """Blocks the task until the socket is readable."""

    socket: Pollable


@dataclass(frozen=True, slots=True)
class WaitForWrite:
    """Blocks the task until the socket is writable."""

    socket: Pollable


@dataclass(frozen=True, slots=True)
class WaitForAllTasks:
    """Blocks the task until every listed task is done.

    The task is resumed with a mapping from task ID to that task's outcome. The
    list must not be empty.
    """

    tasks: tuple[Task, ...]


type SystemCall = SpawnTask | WaitForRead | WaitForWrite | WaitForAllTasks

SYSTEM_CALL_TYPES = (SpawnTask, WaitForRead, WaitForWrite, WaitForAllTasks)


def is_system_call(value: object) -> bool:
    """Whether a yielded value is a request for the scheduler."""
    return isinstance(value, SYSTEM_CALL_TYPES)


def spawn[T](coro: Coro[T]) -> Coro[Task[T]]:
    """Starts ``coro`` as a new task and returns its handle."""
    task = yield SpawnTask(coro)
    return task


def wait_readable(sock: Pollable) -> Coro[None]:
    """Suspends until ``sock`` is readable."""
    yield WaitForRead(sock)


def wait_writable(sock: Pollable) -> Coro[None]:
    """Suspends until ``sock`` is writable."""
    yield WaitForWrite(sock)


def join(*tasks: Task) -> Coro[dict[TaskID, Any]]:
    """Waits for all ``tasks`` and collects their outcomes by task ID.

    A task that failed contributes its exception instance. Joining nothing is an
    integrity error, the join could never complete.
    """
    results = yield WaitForAllTasks(tasks=tasks)
    return results


def gather(*tasks: Task) -> Coro[tuple[Any, ...]]:
    """Wrapper to await multiple tasks.

    Returns:
        Task results in argument order. Re-raises the first failure found.
    """
    if not tasks:
        return ()

    yield from join(*tasks)
    return tuple(task.result() for task in tasks)
