"""File server: control requests over framed messages, data over passive sockets."""

from __future__ import annotations

import argparse
import errno
import random
import socket
import threading
from pathlib import Path
from typing import Dict, List, Optional, Union

from pasvftp.buffer import Buffer
from pasvftp.event_loop import EventLoop
from pasvftp.inet_address import ANY_ADDRESS, InetAddress
from pasvftp.logger import LogLevel, server_log
from pasvftp.message import FileInfo, MessageError, encode_frame, iter_frames
from pasvftp.tcp_connection import TcpConnection
from pasvftp.tcp_server import TcpServer
from pasvftp.timestamp import Timestamp

DEFAULT_PORT = 6060
DEFAULT_ROOT = "../root"
DEFAULT_THREADS = 4
CHUNK_SIZE = 1024
DATA_ACCEPT_TIMEOUT = 60.0

_PORT_MIN = 1024
_PORT_MAX = 65535
_RETRY_ERRNOS = {errno.EADDRINUSE, errno.EACCES}


def bind_usable(sock: socket.socket) -> int:
    """Bind ``sock`` to a random free port from 1024 to 65535 and return it."""
    rng = random.Random()
    while True:
        port = rng.randint(_PORT_MIN, _PORT_MAX)
        try:
            sock.bind((ANY_ADDRESS, port))
        except OSError as exc:
            if exc.errno in _RETRY_ERRNOS:
                continue
            raise
        return port


class FtpServer:
    """Serves uploads and downloads below a root directory.

    The server must be run in the thread that created it; ``stop`` may be
    called from any thread.
    """

    def __init__(
        self,
        root: Union[str, Path] = DEFAULT_ROOT,
        port: int = DEFAULT_PORT,
        thread_num: int = DEFAULT_THREADS,
    ) -> None:
        self.root = Path(root)
        self._loop = EventLoop()
        try:
            self._server = TcpServer(self._loop, InetAddress(port=port))
            self._server.message_callback = self._on_message
            self._server.set_thread_num(thread_num)
        except BaseException:
            self._loop.close()
            raise
        self._data_socks: Dict[str, socket.socket] = {}
        self._lock = threading.Lock()
        self.started = threading.Event()
        self.root.mkdir(parents=True, exist_ok=True)

    @property
    def address(self) -> InetAddress:
        """The address the control socket listens on."""
        return self._server.local_address

    def run(self) -> None:
        """Serve until ``stop`` is called, then release everything."""
        try:
            self._server.start()
            self.started.set()
            server_log(LogLevel.INFO, f"FtpServer started on port {self.address.port}")
            self._loop.loop()
        finally:
            self._server.stop()
            self._close_data_socks()
            self._loop.close()

    def stop(self) -> None:
        """Ask the running server to stop; safe from any thread."""
        self._loop.queue_in_loop(self._loop.quit)

    def _close_data_socks(self) -> None:
        with self._lock:
            socks: List[socket.socket] = list(self._data_socks.values())
            self._data_socks.clear()
        for sock in socks:
            sock.close()

    def _on_message(self, conn: TcpConnection, buffer: Buffer, _time: Timestamp) -> None:
        try:
            for payload in iter_frames(buffer):
                server_log(LogLevel.INFO, f"{len(payload)} bytes was forwarded by the server!")
                self._parse_message(payload, conn)
        except MessageError as exc:
            server_log(LogLevel.ERROR, str(exc))
            conn.shutdown()

    def _parse_message(self, payload: bytes, conn: TcpConnection) -> None:
        try:
            info = FileInfo.from_bytes(payload)
        except MessageError:
            server_log(LogLevel.ERROR, "Failed to parse message from client")
            return
        if info.action == "UPLOAD":
            self._handle_upload(info.file_name, info.user_dir, conn)
        elif info.action == "DOWNLOAD":
            self._handle_download(info.file_name, info.user_dir, conn)
        elif info.action == "CONNECT":
            self._new_data_fd(conn)
        else:
            server_log(LogLevel.ERROR, "Unknown action: " + info.action)
            self._send_response("ERROR: Unknown action", conn)

    def _send_response(self, message: Union[bytes, str], conn: TcpConnection) -> None:
        conn.send(encode_frame(message))

    def _take_data_sock(self, conn: TcpConnection) -> Optional[socket.socket]:
        with self._lock:
            return self._data_socks.pop(conn.name, None)

    def _handle_upload(self, file_name: str, user_dir: str, conn: TcpConnection) -> None:
        server_log(
            LogLevel.INFO,
            f"Received upload request for file: {file_name} in directory: {user_dir}",
        )
        data_sock = self._take_data_sock(conn)
        if data_sock is None:
            server_log(LogLevel.ERROR, "No data connection for " + conn.name)
            self._send_response("ERROR: No data connection", conn)
            return
        threading.Thread(
            target=self._on_receive, args=(user_dir, file_name, data_sock), daemon=True
        ).start()

    def _handle_download(self, file_name: str, user_dir: str, conn: TcpConnection) -> None:
        server_log(
            LogLevel.INFO,
            f"Received download request for file: {file_name} in directory: {user_dir}",
        )
        file_path = self.root / user_dir / file_name
        if not file_path.exists():
            server_log(LogLevel.ERROR, f"File does not exist: {file_path}")
            self._send_response("ERROR: File does not exist", conn)
            return
        data_sock = self._take_data_sock(conn)
        if data_sock is None:
            server_log(LogLevel.ERROR, "No data connection for " + conn.name)
            self._send_response("ERROR: No data connection", conn)
            return
        threading.Thread(
            target=self._on_send, args=(user_dir, file_name, data_sock), daemon=True
        ).start()

    def _on_receive(self, directory: str, file_name: str, data_sock: socket.socket) -> None:
        target_dir = self.root / directory
        try:
            target_dir.mkdir(parents=True, exist_ok=True)
            server_log(LogLevel.INFO, "Receiving file " + file_name)
            with data_sock, open(target_dir / file_name, "wb") as fh:
                while chunk := data_sock.recv(CHUNK_SIZE):
                    fh.write(chunk)
        except OSError as exc:
            server_log(LogLevel.ERROR, f"read: {exc}")
        finally:
            data_sock.close()

    def _on_send(self, directory: str, file_name: str, data_sock: socket.socket) -> None:
        file_path = self.root / directory / file_name
        try:
            if not file_path.exists():
                server_log(LogLevel.ERROR, f"File does not exist: {file_path}")
                return
            try:
                fh = open(file_path, "rb")
            except OSError:
                server_log(LogLevel.ERROR, f"Failed to open file: {file_path}")
                return
            server_log(LogLevel.INFO, "Sending file " + file_name)
            with fh:
                for chunk in iter(lambda: fh.read(CHUNK_SIZE), b""):
                    data_sock.sendall(chunk)
        except OSError as exc:
            server_log(LogLevel.ERROR, f"send: {exc}")
        finally:
            data_sock.close()

    def _new_data_fd(self, conn: TcpConnection) -> None:
        try:
            with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as listener:
                port = bind_usable(listener)
                listener.listen()
                listener.settimeout(DATA_ACCEPT_TIMEOUT)
                self._send_response(FileInfo(action="OK", port=port).to_bytes(), conn)
                data_sock, _peer = listener.accept()
        except OSError as exc:
            server_log(LogLevel.ERROR, f"data connection failed: {exc}")
            return
        data_sock.setblocking(True)
        with self._lock:
            previous = self._data_socks.pop(conn.name, None)
            self._data_socks[conn.name] = data_sock
        if previous is not None:
            previous.close()
        server_log(
            LogLevel.INFO_SUCCESS,
            "The Client has connected to the data transport port\ntransport begin!",
        )


def main(argv: Optional[List[str]] = None) -> int:
    """Run the file server until interrupted."""
    parser = argparse.ArgumentParser(prog="pasvftp-server", description="Run the file server.")
    parser.add_argument("--root", default=DEFAULT_ROOT, help="directory files are stored in")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT, help="control port")
    parser.add_argument("--threads", type=int, default=DEFAULT_THREADS, help="I/O threads")
    args = parser.parse_args(argv)
    server = FtpServer(root=args.root, port=args.port, thread_num=args.threads)
    try:
        server.run()
    except KeyboardInterrupt:
        pass
    return 0