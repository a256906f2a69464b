"""This example shows a simple echo server.

Every accepted client gets its own task, spawned from the accept loop.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from yield_loop import Scheduler, spawn
from yield_loop.exceptions import EndOfStreamError
from yield_loop.log import configure_logging
from yield_loop.socketio import Connection, create_server

if TYPE_CHECKING:
    from yield_loop.typedefs import Coro


def echo_handler(conn: Connection) -> Coro[None]:
    """Gets data sent from a client and echoes it."""
    try:
        while True:
            data = yield from conn.receive(1024)
            yield from conn.send_all(b"Server echoes: " + data)
    except EndOfStreamError:
        pass
    finally:
        conn.close()


def echo_server(host: str, port: int) -> Coro[None]:
    """Echo server entrypoint."""
    server = create_server(host, port)
    try:
        while True:
            conn = yield from server.accept()
            yield from spawn(echo_handler(conn))
    finally:
        server.close()


if __name__ == "__main__":
    configure_logging("DEBUG")
    scheduler = Scheduler()
    scheduler.new_task(echo_server("0.0.0.0", 9999))
    scheduler.run()
