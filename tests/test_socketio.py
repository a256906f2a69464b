from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from yield_loop.exceptions import ClosedResourceError, EndOfStreamError
from yield_loop.lowlevel import checkpoint
from yield_loop.log import get_logger
from yield_loop.multiplexer import socket_identity
from yield_loop.socketio import Connection, Server, connect, create_server
from yield_loop.syscalls import gather, join, spawn

if TYPE_CHECKING:
    from yield_loop.typedefs import Coro

logger = get_logger(__name__)

PAYLOAD = b"8 bytes!"
HOST = "127.0.0.1"


def read_until_closed(conn: Connection) -> Coro[bytes]:
    chunks = []
    try:
        while True:
            chunks.append((yield from conn.receive(1024)))
    except EndOfStreamError:
        return b"".join(chunks)


class TestSocketIO:
    @pytest.mark.io
    def test_echo_round_trip(self, run_coro, unused_tcp_port: int) -> None:
        def echo_once(server: Server) -> Coro[None]:
            try:
                conn = yield from server.accept()
                logger.info("A client connected!", fd=conn.fd)
                data = b""
                while len(data) < len(PAYLOAD):
                    data += yield from conn.receive(len(PAYLOAD) - len(data))
                yield from conn.send_all(data)
                conn.close()
            finally:
                server.close()

        def client() -> Coro[bytes]:
            conn = yield from connect(HOST, unused_tcp_port)
            try:
                yield from conn.send_all(PAYLOAD)
                return (yield from read_until_closed(conn))
            finally:
                conn.close()

        def entry() -> Coro[bytes]:
            server = create_server(HOST, unused_tcp_port)
            server_task = yield from spawn(echo_once(server))
            client_task = yield from spawn(client())
            _, received = yield from gather(server_task, client_task)
            return received

        assert run_coro(entry()) == PAYLOAD

    @pytest.mark.io
    def test_large_payload_is_sent_in_full(
        self, run_coro, unused_tcp_port: int
    ) -> None:
        payload = bytes(range(256)) * 16384

        def sink(server: Server) -> Coro[bytes]:
            try:
                conn = yield from server.accept()
                try:
                    return (yield from read_until_closed(conn))
                finally:
                    conn.close()
            finally:
                server.close()

        def source() -> Coro[None]:
            conn = yield from connect(HOST, unused_tcp_port)
            try:
                yield from conn.send_all(payload)
            finally:
                conn.close()

        def entry() -> Coro[bytes]:
            server = create_server(HOST, unused_tcp_port)
            sink_task = yield from spawn(sink(server))
            source_task = yield from spawn(source())
            results = yield from join(sink_task, source_task)
            return results[sink_task.task_id]

        assert run_coro(entry()) == payload

    @pytest.mark.io
    def test_refused_connection_fails_in_calling_task(
        self, run_coro, unused_tcp_port: int
    ) -> None:
        def entry() -> Coro[str]:
            try:
                yield from connect(HOST, unused_tcp_port)
            except ConnectionRefusedError:
                return "refused"
            return "connected"

        assert run_coro(entry()) == "refused"

    @pytest.mark.io
    def test_closed_handle_raises(self, run_coro, unused_tcp_port: int) -> None:
        def entry() -> Coro[None]:
            server = create_server(HOST, unused_tcp_port)
            server.close()
            server.close()
            assert server.closed
            with pytest.raises(ClosedResourceError):
                yield from server.accept()

        run_coro(entry())

    def test_close_wakes_pending_receive(self, run_coro, socket_pair) -> None:
        _, right = socket_pair
        conn = Connection(sock=right)
        fd = conn.fd

        def receiver() -> Coro[str]:
            try:
                yield from conn.receive()
            except ClosedResourceError:
                return "closed"
            return "received"

        def entry() -> Coro[str]:
            task = yield from spawn(receiver())
            yield from checkpoint()
            conn.close()
            return (yield from task.wait())

        assert run_coro(entry()) == "closed"
        assert conn.fileno() == -1
        assert socket_identity(conn) == fd
