"""Readiness multiplexing over select(2).

The waiting-set records which tasks are blocked on which socket for which kind of
readiness. The multiplexer polls the readiness primitive and releases every task
waiting on a socket that became ready.
"""

from __future__ import annotations

import select
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from yield_loop.exceptions import IntegrityError
from yield_loop.log import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from yield_loop.task import Task
    from yield_loop.typedefs import Pollable, SocketID, TaskID

    type SelectFn = Callable[
        [Sequence[Pollable], Sequence[Pollable], Sequence[Pollable], float | None],
        tuple[list[Pollable], list[Pollable], list[Pollable]],
    ]

logger = get_logger(__name__)


class WaitKind(Enum):
    """Kind of readiness a task waits for."""

    READ = 1
    WRITE = 2


def socket_identity(sock: Pollable) -> SocketID:
    """Stable key for a socket in the waiting-set.

    Handles that expose a ``handle_id`` keep it after close. Plain sockets are
    keyed by their file descriptor.
    """
    handle_id = getattr(sock, "handle_id", None)
    if handle_id is None:
        return sock.fileno()
    return handle_id


@dataclass(slots=True)
class WaitingSet:
    """Tasks blocked on sockets, per readiness kind.

    A socket is present in a kind's bucket exactly while at least one task waits
    on that (socket, kind) pair.
    """

    """Blocked tasks per (kind, socket), in registration order."""
    tasks: defaultdict[tuple[WaitKind, SocketID], list[Task]] = field(
        default_factory=lambda: defaultdict(list)
    )

    """Socket handles to poll, per kind."""
    sockets: dict[WaitKind, dict[SocketID, Pollable]] = field(
        default_factory=lambda: {kind: {} for kind in WaitKind}
    )

    """IDs of every blocked task."""
    _task_ids: set[TaskID] = field(default_factory=set, repr=False)

    def add(self, kind: WaitKind, sock: Pollable, task: Task) -> None:
        """Blocks ``task`` on ``sock`` until it is ready for ``kind``."""
        key = socket_identity(sock)
        self.tasks[kind, key].append(task)
        self._task_ids.add(task.task_id)
        self.sockets[kind][key] = sock

    def release(self, kind: WaitKind, key: SocketID) -> list[Task]:
        """Removes and returns every task waiting on the (socket, kind) pair."""
        self.sockets[kind].pop(key, None)
        tasks = self.tasks.pop((kind, key), [])
        self._task_ids.difference_update(task.task_id for task in tasks)
        return tasks

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._task_ids

    def __len__(self) -> int:
        return len(self._task_ids)

    def __bool__(self) -> bool:
        return bool(self.tasks)


@dataclass(slots=True, kw_only=True)
class Multiplexer:
    """Polls the readiness primitive on behalf of the scheduler."""

    """The readiness primitive. Same signature as select.select."""
    select_fn: SelectFn = select.select

    def poll(self, waiting: WaitingSet, timeout: float | None) -> list[Task]:
        """Waits for readiness and releases the tasks blocked on ready sockets.

        Args:
            waiting: the waiting-set to poll and update
            timeout: None blocks until a socket is ready, 0 returns immediately

        Returns:
            Released tasks. Read waiters come before write waiters, and each
            socket's waiters keep their registration order.
        """
        read_socks = list(waiting.sockets[WaitKind.READ].values())
        write_socks = list(waiting.sockets[WaitKind.WRITE].values())

        # A closed handle can't be polled. Its waiters wake and find it closed.
        closed = [
            (kind, key)
            for kind in WaitKind
            for key, sock in waiting.sockets[kind].items()
            if sock.fileno() < 0
        ]
        if closed:
            logger.debug("Waking waiters of closed sockets", sockets=closed)
            released: list[Task] = []
            for kind, key in closed:
                released.extend(waiting.release(kind, key))
            return released

        logger.debug(
            "Polling sockets",
            read=len(read_socks),
            write=len(write_socks),
            timeout=timeout,
        )
        readable, writable, exceptional = self.select_fn(
            read_socks, write_socks, [], timeout
        )

        if exceptional:
            logger.error("Exceptional condition reported", sockets=exceptional)
            msg = f"Readiness primitive reported exceptional sockets: {exceptional}"
            raise IntegrityError(msg)

        return self._release(waiting, readable, writable)

    def _release(
        self,
        waiting: WaitingSet,
        readable: Sequence[Pollable],
        writable: Sequence[Pollable],
    ) -> list[Task]:
        released: list[Task] = []
        for kind, ready in ((WaitKind.READ, readable), (WaitKind.WRITE, writable)):
            for sock in ready:
                tasks = waiting.release(kind, socket_identity(sock))
                logger.debug(
                    "Socket ready",
                    kind=kind.name,
                    fd=socket_identity(sock),
                    task_ids=[task.task_id for task in tasks],
                )
                released.extend(tasks)

        return released
