"""Thin socket helpers that log and raise on failure."""

from __future__ import annotations

import socket
from typing import Tuple

from pasvftp.inet_address import InetAddress
from pasvftp.logger import LogLevel, server_log


class SocketError(OSError):
    """A socket operation failed."""


def _fail(level: LogLevel, message: str, exc: OSError) -> SocketError:
    server_log(level, message)
    return SocketError(exc.errno, f"{message} ({exc.strerror or exc})")


def create_nonblocking_or_die() -> socket.socket:
    """Create a non-blocking, non-inheritable TCP socket."""
    try:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM, socket.IPPROTO_TCP)
    except OSError as exc:
        raise _fail(LogLevel.FATAL, "SocketOps: Create sockfd failed!", exc) from exc
    set_nonblock_and_close_on_exec(sock)
    return sock


def bind_or_die(sock: socket.socket, addr: InetAddress) -> None:
    try:
        sock.bind(addr.sockaddr())
    except OSError as exc:
        raise _fail(LogLevel.FATAL, "SocketOps: Bind failed!", exc) from exc


def listen_or_die(sock: socket.socket) -> None:
    try:
        sock.listen(socket.SOMAXCONN)
    except OSError as exc:
        raise _fail(LogLevel.FATAL, "SocketOps: Listen falied!", exc) from exc


def accept(sock: socket.socket) -> Tuple[socket.socket, InetAddress]:
    """Accept a connection; the new socket is non-blocking."""
    try:
        conn, peer = sock.accept()
    except OSError as exc:
        raise _fail(LogLevel.FATAL, "SocketOps: Accept failed!", exc) from exc
    set_nonblock_and_close_on_exec(conn)
    return conn, InetAddress.from_sockaddr(peer)


def close(sock: socket.socket) -> None:
    try:
        sock.close()
    except OSError as exc:
        raise _fail(LogLevel.FATAL, "SocketOps: Close failed!", exc) from exc


def connect(sock: socket.socket, addr: InetAddress) -> None:
    """Connect ``sock`` to ``addr``; errors propagate as ``OSError``."""
    sock.connect(addr.sockaddr())


def set_nonblock_and_close_on_exec(sock: socket.socket) -> None:
    sock.setblocking(False)
    sock.set_inheritable(False)


def get_local_addr(sock: socket.socket) -> InetAddress:
    try:
        return InetAddress.from_sockaddr(sock.getsockname())
    except OSError as exc:
        raise _fail(LogLevel.FATAL, "SocketOps: Get sock name failed!", exc) from exc


def get_peer_addr(sock: socket.socket) -> InetAddress:
    try:
        return InetAddress.from_sockaddr(sock.getpeername())
    except OSError as exc:
        raise _fail(LogLevel.FATAL, "SocketOps: Get sock name failed!", exc) from exc


def shutdown_write(sock: socket.socket) -> None:
    try:
        sock.shutdown(socket.SHUT_WR)
    except OSError as exc:
        raise _fail(LogLevel.ERROR, "SocketOps: ShutdownWrite Error", exc) from exc


def is_self_connect(sock: socket.socket) -> bool:
    """True when the socket is connected to its own local address."""
    return get_local_addr(sock) == get_peer_addr(sock)


class Socket:
    """Owns a socket and closes it when done."""

    def __init__(self, sock: socket.socket) -> None:
        self._sock = sock

    @property
    def sock(self) -> socket.socket:
        return self._sock

    def fileno(self) -> int:
        return self._sock.fileno()

    def bind(self, local_addr: InetAddress) -> None:
        bind_or_die(self._sock, local_addr)

    def listen(self) -> None:
        listen_or_die(self._sock)

    def accept(self) -> Tuple[socket.socket, InetAddress]:
        """Accept a connection and return it with the peer address."""
        return accept(self._sock)

    def set_reuse_addr(self, on: bool) -> None:
        self._sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1 if on else 0)

    def shutdown_write(self) -> None:
        shutdown_write(self._sock)

    def close(self) -> None:
        if self._sock.fileno() != -1:
            close(self._sock)

    def __enter__(self) -> Socket:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()