"""One established TCP connection driven by an event loop."""

from __future__ import annotations

import enum
import errno
import os
import socket
from typing import Callable, Optional, Union

from pasvftp.buffer import Buffer
from pasvftp.channel import Channel
from pasvftp.event_loop import EventLoop
from pasvftp.inet_address import InetAddress
from pasvftp.logger import CONNECT_OFF, CONNECT_ON, LogLevel, client_log, server_log
from pasvftp.socket_ops import Socket, SocketError
from pasvftp.timestamp import Timestamp

ConnectionCallback = Callable[["TcpConnection"], None]
MessageCallback = Callable[["TcpConnection", Buffer, Timestamp], None]
WriteCompleteCallback = Callable[["TcpConnection"], None]
CloseCallback = Callable[["TcpConnection"], None]


class ConnectionState(enum.Enum):
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTING = "disconnecting"
    DISCONNECTED = "disconnected"


class TcpConnection:
    """A connected socket with input and output buffers.

    Incoming data is collected in a buffer handed to ``message_callback``.
    Outgoing data that the socket cannot take at once is kept and written
    when the socket becomes writable.
    """

    def __init__(
        self,
        loop: EventLoop,
        name: str,
        sock: socket.socket,
        local_addr: InetAddress,
        peer_addr: InetAddress,
    ) -> None:
        self._loop = loop
        self._name = name
        self._state = ConnectionState.CONNECTING
        self._sock = sock
        self._socket = Socket(sock)
        self._channel = Channel(loop, sock.fileno())
        self._local_addr = local_addr
        self._peer_addr = peer_addr
        self._input = Buffer()
        self._output = Buffer()
        self._closing = False

        self.connection_callback: Optional[ConnectionCallback] = None
        self.message_callback: Optional[MessageCallback] = None
        self.write_complete_callback: Optional[WriteCompleteCallback] = None
        self.close_callback: Optional[CloseCallback] = None

        client_log(LogLevel.INFO, peer_addr.to_ip_port(), CONNECT_ON)
        self._channel.read_callback = self._handle_read
        self._channel.write_callback = self._handle_write
        self._channel.close_callback = self._handle_close
        self._channel.error_callback = self._handle_error

    @property
    def loop(self) -> EventLoop:
        return self._loop

    @property
    def name(self) -> str:
        return self._name

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def local_address(self) -> InetAddress:
        return self._local_addr

    @property
    def peer_address(self) -> InetAddress:
        return self._peer_addr

    def connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    def disconnected(self) -> bool:
        return self._state is ConnectionState.DISCONNECTED

    def fileno(self) -> int:
        return self._channel.fd

    def _handle_read(self, receive_time: Timestamp) -> None:
        try:
            count = self._input.read_from(self._sock)
        except BlockingIOError:
            return
        except OSError as exc:
            self._handle_error(exc.errno or 0)
            return
        if count > 0:
            if self.message_callback is not None:
                self.message_callback(self, self._input, receive_time)
            else:
                self._input.retrieve_all()
        else:
            self._handle_close()

    def _handle_close(self) -> None:
        if self._closing:
            return
        self._closing = True
        client_log(LogLevel.INFO, self._peer_addr.to_ip_port(), CONNECT_OFF)
        self._loop.assert_in_loop_thread()
        self._channel.disable_all()
        if self.close_callback is not None:
            self.close_callback(self)

    def _handle_write(self) -> None:
        self._loop.assert_in_loop_thread()
        if not self._channel.is_writing():
            return
        try:
            count = self._sock.send(self._output.peek())
        except BlockingIOError:
            return
        except OSError as exc:
            self._handle_error(exc.errno or 0)
            return
        if count > 0:
            self._output.retrieve(count)
            if self._output.readable_bytes() == 0:
                self._channel.disable_writing()
                self._queue_write_complete()
                if self._state is ConnectionState.DISCONNECTING:
                    self._shutdown_in_loop()

    def _handle_error(self, err: Optional[int] = None) -> None:
        if err is None:
            try:
                err = self._sock.getsockopt(socket.SOL_SOCKET, socket.SO_ERROR)
            except OSError as exc:
                err = exc.errno or 0
        if not err:
            return
        message = os.strerror(err)
        if err == errno.ECONNRESET:
            server_log(LogLevel.WARNING, message)
        else:
            server_log(LogLevel.ERROR, message)

    def _queue_write_complete(self) -> None:
        callback = self.write_complete_callback
        if callback is not None:
            self._loop.queue_in_loop(lambda: callback(self))

    def send(self, data: Union[bytes, bytearray, memoryview, str]) -> None:
        """Send data (text as UTF-8); ignored unless connected."""
        if isinstance(data, str):
            data = data.encode("utf-8")
        payload = bytes(data)
        if self._state is not ConnectionState.CONNECTED:
            return
        if self._loop.is_in_loop_thread():
            self._send_in_loop(payload)
        else:
            self._loop.run_in_loop(lambda: self._send_in_loop(payload))

    def _send_in_loop(self, data: bytes) -> None:
        self._loop.assert_in_loop_thread()
        written = 0
        if not self._channel.is_writing() and self._output.readable_bytes() == 0:
            try:
                written = self._sock.send(data)
            except BlockingIOError:
                written = 0
            except OSError as exc:
                if not data:
                    return
                written = 0
                server_log(
                    LogLevel.FATAL, "sendInLoop: send failed!" + (exc.strerror or str(exc))
                )
            else:
                if written < len(data):
                    server_log(LogLevel.WARNING, "data pending")
                else:
                    self._queue_write_complete()
        if written < len(data):
            self._output.append(memoryview(data)[written:])
            if not self._channel.is_writing():
                self._channel.enable_writing()

    def shutdown(self) -> None:
        """Close the writing side once pending output has been sent."""
        if self._state is ConnectionState.CONNECTED:
            self._state = ConnectionState.DISCONNECTING
            self._loop.run_in_loop(self._shutdown_in_loop)

    def _shutdown_in_loop(self) -> None:
        self._loop.assert_in_loop_thread()
        if self._channel.is_writing():
            return
        try:
            self._socket.shutdown_write()
        except SocketError:
            pass

    def connect_established(self) -> None:
        """Start reading; called once, in the loop thread."""
        self._loop.assert_in_loop_thread()
        if self._state is not ConnectionState.CONNECTING:
            raise RuntimeError(f"connection {self._name} is {self._state.value}, not connecting")
        self._state = ConnectionState.CONNECTED
        self._channel.enable_reading()
        if self.connection_callback is not None:
            self.connection_callback(self)

    def connect_destroyed(self) -> None:
        """Detach from the loop and close the socket."""
        self._loop.assert_in_loop_thread()
        if self._state in (ConnectionState.CONNECTED, ConnectionState.DISCONNECTING):
            self._state = ConnectionState.DISCONNECTED
            self._channel.disable_all()
            if self.connection_callback is not None:
                self.connection_callback(self)
        self._loop.remove_channel(self._channel)
        self._socket.close()

    def __repr__(self) -> str:
        return f"TcpConnection({self._name!r}, {self._state.value})"