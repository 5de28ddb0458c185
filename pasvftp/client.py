"""Interactive client for the file server."""

from __future__ import annotations

import argparse
import socket
import struct
import sys
from pathlib import Path
from typing import IO, List, Optional, Tuple, Union

from pasvftp.message import FileInfo, MessageError

DEFAULT_HOST = "localhost"
DEFAULT_PORT = 6060
CHUNK_SIZE = 1024

PROMPT_CONNECTED = "\033[32mFtp\033[0m"
PROMPT_DISCONNECTED = "Ftp"

_HEADER = struct.Struct("!I")


def split(text: str, sep: str = " ") -> List[str]:
    """Split ``text`` on ``sep``, dropping empty pieces."""
    return [piece for piece in text.split(sep) if piece]


def help_text() -> str:
    """The command summary shown by ``help``."""
    return (
        "Type pasv to open a data connection\n"
        "Type upload <file path> <remote dir> <file name> to upload a file\n"
        "Type download <local dir> <remote dir> <file name> to download a file\n"
        "Type exit to quit\n"
    )


class FtpClient:
    """Talks to the server over a control connection plus one data connection per transfer."""

    def __init__(self, host: str = DEFAULT_HOST, port: int = DEFAULT_PORT) -> None:
        self.host = host
        self.port = port
        self._control: Optional[socket.socket] = None
        self._data: Optional[socket.socket] = None

    @property
    def connected(self) -> bool:
        """True while a data connection is open and unused."""
        return self._data is not None

    def connect(self) -> None:
        """Open the control connection."""
        self._control = socket.create_connection((self.host, self.port))

    def _require_control(self) -> socket.socket:
        if self._control is None:
            raise ConnectionError("not connected to the server")
        return self._control

    def _take_data(self) -> socket.socket:
        if self._data is None:
            raise ConnectionError("no data connection; run pasv first")
        data, self._data = self._data, None
        return data

    def _recv_exact(self, size: int) -> bytes:
        sock = self._require_control()
        chunks = bytearray()
        while len(chunks) < size:
            chunk = sock.recv(size - len(chunks))
            if not chunk:
                raise ConnectionError("server closed the control connection")
            chunks += chunk
        return bytes(chunks)

    def send_message(self, message: Union[bytes, str]) -> None:
        """Send one length-prefixed message on the control connection."""
        if isinstance(message, str):
            message = message.encode("utf-8")
        self._require_control().sendall(_HEADER.pack(len(message)) + message)

    def recv_message(self) -> bytes:
        """Receive one length-prefixed message from the control connection."""
        (length,) = _HEADER.unpack(self._recv_exact(_HEADER.size))
        return self._recv_exact(length)

    def open_data_connection(self) -> int:
        """Ask the server for a data port, connect to it and return the port."""
        self.send_message(FileInfo(action="CONNECT").to_bytes())
        reply = FileInfo.from_bytes(self.recv_message())
        data = socket.create_connection((self.host, reply.port))
        if self._data is not None:
            self._data.close()
        self._data = data
        return reply.port

    def upload_file(self, file_path: Union[str, Path], remote_dir: str, filename: str) -> None:
        """Send a local file to ``remote_dir/filename`` on the server."""
        with self._take_data() as data, open(file_path, "rb") as fh:
            request = FileInfo(action="UPLOAD", file_name=filename, user_dir=remote_dir)
            self.send_message(request.to_bytes())
            for chunk in iter(lambda: fh.read(CHUNK_SIZE), b""):
                data.sendall(chunk)

    def download_file(self, local_dir: Union[str, Path], remote_dir: str, filename: str) -> Path:
        """Fetch ``remote_dir/filename`` into ``local_dir`` and return the local path."""
        file_path = Path(local_dir) / filename
        with self._take_data() as data, open(file_path, "wb") as fh:
            request = FileInfo(action="DOWNLOAD", file_name=filename, user_dir=remote_dir)
            self.send_message(request.to_bytes())
            while chunk := data.recv(CHUNK_SIZE):
                fh.write(chunk)
        return file_path

    def _prompt(self) -> str:
        return PROMPT_CONNECTED if self.connected else PROMPT_DISCONNECTED

    def controller(self, stdin: Optional[IO[str]] = None, stdout: Optional[IO[str]] = None) -> None:
        """Read commands until ``exit`` or end of input."""
        stdin = stdin if stdin is not None else sys.stdin
        out = stdout if stdout is not None else sys.stdout
        out.write("Type help for help\n")
        while True:
            out.write(f"{self._prompt()}: ")
            out.flush()
            line = stdin.readline()
            if not line:
                break
            words = split(line.rstrip("\r\n"), " ")
            if not words:
                continue
            command = words[0]
            try:
                if command == "help":
                    out.write(help_text())
                elif command == "pasv":
                    self.open_data_connection()
                elif command == "upload" and len(words) >= 4:
                    self.upload_file(words[1], words[2], words[3])
                elif command == "download" and len(words) >= 4:
                    self.download_file(words[1], words[2], words[3])
                elif command == "exit":
                    break
            except (OSError, MessageError) as exc:
                out.write(f"error: {exc}\n")

    def close(self) -> None:
        """Close the data and control connections."""
        for sock in (self._data, self._control):
            if sock is not None:
                sock.close()
        self._data = None
        self._control = None

    def __enter__(self) -> FtpClient:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


def _parse_args(argv: Optional[List[str]]) -> Tuple[str, int]:
    parser = argparse.ArgumentParser(prog="pasvftp-client", description="File server client.")
    parser.add_argument("--host", default=DEFAULT_HOST)
    parser.add_argument("--port", type=int, default=DEFAULT_PORT)
    args = parser.parse_args(argv)
    return args.host, args.port


def main(argv: Optional[List[str]] = None) -> int:
    """Connect to the server and run the interactive prompt."""
    host, port = _parse_args(argv)
    with FtpClient(host, port) as client:
        client.connect()
        client.controller()
    return 0