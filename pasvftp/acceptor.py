"""Listening socket that accepts connections from inside an event loop."""

from __future__ import annotations

import socket
from typing import Callable, Optional

from pasvftp import socket_ops
from pasvftp.channel import Channel
from pasvftp.event_loop import EventLoop
from pasvftp.inet_address import InetAddress
from pasvftp.logger import LogLevel, server_log
from pasvftp.socket_ops import Socket, SocketError

NewConnectionCallback = Callable[[socket.socket, InetAddress], None]


class Acceptor:
    """Accepts connections on a listening socket and hands them on.

    Each accepted socket goes to ``new_connection_callback`` with the
    peer address; with no callback set it is closed at once.
    """

    def __init__(self, loop: EventLoop, listen_addr: InetAddress) -> None:
        self._loop = loop
        self._socket = Socket(socket_ops.create_nonblocking_or_die())
        try:
            self._socket.set_reuse_addr(True)
            self._socket.bind(listen_addr)
        except OSError:
            self._socket.close()
            raise
        self._channel = Channel(loop, self._socket.fileno())
        self._channel.read_callback = lambda _time: self._handle_read()
        self.new_connection_callback: Optional[NewConnectionCallback] = None
        self._listening = False
        self._closed = False

    @property
    def listening(self) -> bool:
        return self._listening

    @property
    def local_address(self) -> InetAddress:
        return socket_ops.get_local_addr(self._socket.sock)

    def listen(self) -> None:
        """Start listening and watching for incoming connections."""
        self._loop.assert_in_loop_thread()
        self._listening = True
        self._socket.listen()
        server_log(LogLevel.INFO, "Listening ...")
        self._channel.enable_reading()

    def _handle_read(self) -> None:
        self._loop.assert_in_loop_thread()
        try:
            conn, peer_addr = self._socket.accept()
        except SocketError:
            return
        if self.new_connection_callback is not None:
            self.new_connection_callback(conn, peer_addr)
        else:
            socket_ops.close(conn)

    def close(self) -> None:
        """Stop watching and close the listening socket."""
        if self._closed:
            return
        self._closed = True
        if self._listening:
            self._channel.disable_all()
            self._loop.remove_channel(self._channel)
        self._listening = False
        self._socket.close()