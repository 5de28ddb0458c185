"""TCP server that accepts connections and spreads them over loop threads."""

from __future__ import annotations

import socket
from typing import Dict, Optional

from pasvftp import socket_ops
from pasvftp.acceptor import Acceptor
from pasvftp.event_loop import EventLoop
from pasvftp.event_loop_thread import EventLoopThreadPool
from pasvftp.inet_address import InetAddress
from pasvftp.logger import LogLevel, server_log
from pasvftp.tcp_connection import (
    ConnectionCallback,
    MessageCallback,
    TcpConnection,
    WriteCompleteCallback,
)


class TcpServer:
    """Listens on an address and manages the connections it accepts.

    New connections are handed to the loops of a thread pool in turn, or
    kept on the base loop when the pool has no threads. The callbacks set
    on the server are given to every new connection.
    """

    def __init__(self, loop: EventLoop, listen_addr: InetAddress) -> None:
        self._loop = loop
        self._name = listen_addr.to_ip_port()
        self._acceptor = Acceptor(loop, listen_addr)
        self._pool = EventLoopThreadPool(loop)
        self.connection_callback: Optional[ConnectionCallback] = None
        self.message_callback: Optional[MessageCallback] = None
        self.write_complete_callback: Optional[WriteCompleteCallback] = None
        self._started = False
        self._next_conn_id = 1
        self._connections: Dict[str, TcpConnection] = {}
        self._acceptor.new_connection_callback = self._new_connection

    @property
    def name(self) -> str:
        return self._name

    @property
    def loop(self) -> EventLoop:
        return self._loop

    @property
    def local_address(self) -> InetAddress:
        """The address the listening socket is bound to."""
        return self._acceptor.local_address

    @property
    def connections(self) -> Dict[str, TcpConnection]:
        """A snapshot of the live connections by name."""
        return dict(self._connections)

    def set_thread_num(self, num_threads: int) -> None:
        """Set how many loop threads serve connections; 0 uses the base loop."""
        self._pool.set_thread_num(num_threads)

    def start(self) -> None:
        """Start the loop threads and begin listening."""
        if not self._started:
            self._started = True
            self._pool.start()
        if not self._acceptor.listening:
            self._loop.run_in_loop(self._acceptor.listen)

    def _new_connection(self, sock: socket.socket, peer_addr: InetAddress) -> None:
        server_log(LogLevel.INFO, "A client is going to connect to the server...")
        self._loop.assert_in_loop_thread()
        conn_name = f"{self._name}#{self._next_conn_id}"
        self._next_conn_id += 1
        sub_loop = self._pool.get_next_loop()
        local_addr = socket_ops.get_local_addr(sock)
        conn = TcpConnection(sub_loop, conn_name, sock, local_addr, peer_addr)
        self._connections[conn_name] = conn
        conn.connection_callback = self.connection_callback
        conn.message_callback = self.message_callback
        conn.write_complete_callback = self.write_complete_callback
        conn.close_callback = self._remove_connection
        sub_loop.run_in_loop(conn.connect_established)

    def _remove_connection(self, conn: TcpConnection) -> None:
        self._loop.run_in_loop(lambda: self._remove_connection_in_loop(conn))

    def _remove_connection_in_loop(self, conn: TcpConnection) -> None:
        self._loop.assert_in_loop_thread()
        if self._connections.pop(conn.name, None) is None:
            return
        conn.loop.queue_in_loop(conn.connect_destroyed)

    def stop(self) -> None:
        """Stop listening, drop every connection and stop the loop threads."""
        self._loop.assert_in_loop_thread()
        self._acceptor.close()
        connections = list(self._connections.values())
        self._connections.clear()
        for conn in connections:
            conn.loop.run_in_loop(conn.connect_destroyed)
        self._pool.stop()