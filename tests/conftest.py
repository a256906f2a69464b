"""Shared test fixtures for yield-loop."""

from __future__ import annotations

import socket
from typing import TYPE_CHECKING

import pytest

from yield_loop.scheduler import Scheduler, run

if TYPE_CHECKING:
    from collections.abc import Callable

    from yield_loop.typedefs import Coro


@pytest.fixture
def run_coro() -> Callable[[Coro], object]:
    """Run a generator coroutine on a fresh scheduler, returning its result."""

    def _run(coro: Coro) -> object:
        return run(coro, strict=True)

    return _run


@pytest.fixture
def scheduler() -> Scheduler:
    """A strict scheduler, so stranded tasks fail the test."""
    return Scheduler(strict=True)


@pytest.fixture
def unused_tcp_port() -> int:
    """Find an unused TCP port on localhost."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("", 0))
        s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        return s.getsockname()[1]


@pytest.fixture
def socket_pair():
    """A connected pair of non-blocking sockets, closed after the test."""
    left, right = socket.socketpair()
    left.setblocking(False)
    right.setblocking(False)
    try:
        yield left, right
    finally:
        left.close()
        right.close()
