"""Non-blocking TCP sockets whose blocking points are scheduler waits.

Every operation that could block first yields a readiness wait, so it suspends
the calling task instead of the thread. Connection failures surface as OSError
inside the task that made the call.
"""

from __future__ import annotations

import errno
import os
import socket
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from yield_loop.exceptions import ClosedResourceError, EndOfStreamError
from yield_loop.log import get_logger
from yield_loop.syscalls import wait_readable, wait_writable

if TYPE_CHECKING:
    from yield_loop.typedefs import Coro

logger = get_logger(__name__)

_CONNECT_IN_PROGRESS = {errno.EINPROGRESS, errno.EWOULDBLOCK, errno.EALREADY}


def _create() -> socket.socket:
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.setblocking(False)
    return sock


def create_server(host: str, port: int, *, backlog: int = 128) -> Server:
    """Creates a socket, sets options, binds it and wraps it in a Server."""
    sock = _create()
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))
        sock.listen(backlog)
    except OSError:
        sock.close()
        raise

    server = Server(sock=sock)
    logger.debug("Listening", host=host, port=port, fd=server.fd)
    return server


def connect(host: str, port: int) -> Coro[Connection]:
    """Connects to a listening socket.

    Raises:
        OSError: if the connection could not be established
    """
    sock = _create()
    try:
        err = sock.connect_ex((host, port))
        if err in _CONNECT_IN_PROGRESS:
            yield from wait_writable(sock)
            err = sock.getsockopt(socket.SOL_SOCKET, socket.SO_ERROR)
        if err != 0:
            raise OSError(err, os.strerror(err), f"{host}:{port}")
    except BaseException:
        sock.close()
        raise

    connection = Connection(sock=sock)
    logger.debug("Connected", host=host, port=port, fd=connection.fd)
    return connection


@dataclass(slots=True, kw_only=True, eq=False)
class _Handle:
    """A socket owned by one task at a time."""

    """The non-blocking socket."""
    sock: socket.socket = field(repr=False)

    """File descriptor at creation. Stays the handle's identity after close."""
    fd: int = field(init=False)

    _closed: bool = field(default=False, init=False, repr=False)

    def __post_init__(self) -> None:
        """Captures the file descriptor."""
        self.fd = self.sock.fileno()

    def fileno(self) -> int:
        """The file descriptor, for the readiness primitive."""
        return self.sock.fileno()

    @property
    def handle_id(self) -> int:
        """Waiting-set key. Unlike fileno(), unchanged by close."""
        return self.fd

    @property
    def closed(self) -> bool:
        """Whether the handle has been closed."""
        return self._closed

    def close(self) -> None:
        """Closes the socket. Closing twice is a no-op."""
        if self._closed:
            return

        self._closed = True
        self.sock.close()
        logger.debug("Closed socket", fd=self.fd)

    def _check_open(self) -> None:
        if self._closed:
            msg = f"Socket {self.fd} is closed"
            raise ClosedResourceError(msg)


@dataclass(slots=True, kw_only=True, eq=False)
class Server(_Handle):
    """Used to accept new connections."""

    def accept(self) -> Coro[Connection]:
        """Waits until there's a connection to accept.

        Returns:
            the accepted connection, already non-blocking
        """
        while True:
            self._check_open()
            yield from wait_readable(self)
            self._check_open()
            try:
                client, _ = self.sock.accept()
            except BlockingIOError:
                continue

            client.setblocking(False)
            connection = Connection(sock=client)
            logger.debug("Accepted connection", server_fd=self.fd, fd=connection.fd)
            return connection


@dataclass(slots=True, kw_only=True, eq=False)
class Connection(_Handle):
    """A socket connection. Either accepted by a server, or a client."""

    def receive(self, max_bytes: int = 65536) -> Coro[bytes]:
        """Reads up to ``max_bytes`` once the socket is readable.

        Raises:
            EndOfStreamError: if the peer closed the connection
        """
        while True:
            self._check_open()
            yield from wait_readable(self)
            self._check_open()
            try:
                data = self.sock.recv(max_bytes)
            except BlockingIOError:
                continue

            if not data:
                raise EndOfStreamError
            return data

    def send(self, data: bytes, /) -> Coro[int]:
        """Writes as much of ``data`` as the socket accepts.

        Returns:
            number of bytes written
        """
        while True:
            self._check_open()
            yield from wait_writable(self)
            self._check_open()
            try:
                return self.sock.send(data)
            except BlockingIOError:
                continue

    def send_all(self, data: bytes, /) -> Coro[None]:
        """Writes all of ``data``, suspending as often as needed."""
        view = memoryview(data)
        while view:
            sent = yield from self.send(view)
            view = view[sent:]
