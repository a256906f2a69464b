from __future__ import annotations

from collections.abc import Generator
from typing import Any, Protocol

type TaskID = int

"""Stable identity of a socket handle, used as the waiting-set key."""
type SocketID = int

type Coro[T] = Generator[Any, Any, T]


class Pollable(Protocol):
    """Anything the readiness primitive accepts: a socket or a socket handle.

    Handles may also expose a ``handle_id`` that outlives their file descriptor.
    """

    def fileno(self) -> int:
        """The underlying file descriptor."""
        ...
