"""Growable byte buffer with separate read and write positions."""

from __future__ import annotations

import socket
from typing import Union

_EXTRA_READ_SIZE = 65535


class Buffer:
    """A byte buffer that is appended to at the back and consumed at the front."""

    CHEAP_PREPEND = 0
    INITIAL_SIZE = 1024

    def __init__(self) -> None:
        self._buffer = bytearray(self.CHEAP_PREPEND + self.INITIAL_SIZE)
        self._read = self.CHEAP_PREPEND
        self._write = self.CHEAP_PREPEND

    def __len__(self) -> int:
        return self.readable_bytes()

    def readable_bytes(self) -> int:
        return self._write - self._read

    def writable_bytes(self) -> int:
        return len(self._buffer) - self._write

    def prependable_bytes(self) -> int:
        return self._read

    def peek(self) -> bytes:
        """Return the readable bytes without consuming them."""
        return bytes(self._buffer[self._read:self._write])

    def swap(self, other: Buffer) -> None:
        """Exchange contents with another buffer."""
        self._buffer, other._buffer = other._buffer, self._buffer
        self._read, other._read = other._read, self._read
        self._write, other._write = other._write, self._write

    def retrieve(self, length: int) -> None:
        """Consume ``length`` readable bytes."""
        if length < 0 or length > self.readable_bytes():
            raise ValueError(
                f"cannot retrieve {length} bytes, {self.readable_bytes()} readable"
            )
        self._read += length

    def retrieve_all(self) -> None:
        self._read = self.CHEAP_PREPEND
        self._write = self.CHEAP_PREPEND

    def retrieve_as_bytes(self) -> bytes:
        """Consume and return everything readable."""
        data = self.peek()
        self.retrieve_all()
        return data

    def append(self, data: Union[bytes, bytearray, memoryview, str]) -> None:
        """Append bytes (text is encoded as UTF-8)."""
        if isinstance(data, str):
            data = data.encode("utf-8")
        length = len(data)
        self.ensure_writable_bytes(length)
        self._buffer[self._write:self._write + length] = data
        self.has_written(length)

    def prepend(self, data: Union[bytes, bytearray, memoryview]) -> None:
        """Put bytes in front of the readable region."""
        length = len(data)
        if length > self.prependable_bytes():
            raise ValueError(
                f"cannot prepend {length} bytes, {self.prependable_bytes()} prependable"
            )
        self._read -= length
        self._buffer[self._read:self._read + length] = data

    def ensure_writable_bytes(self, length: int) -> None:
        if self.writable_bytes() < length:
            self._make_space(length)

    def has_written(self, length: int) -> None:
        """Mark ``length`` bytes past the write position as filled."""
        if length < 0 or length > self.writable_bytes():
            raise ValueError(
                f"cannot mark {length} bytes written, {self.writable_bytes()} writable"
            )
        self._write += length

    def _make_space(self, length: int) -> None:
        if self.writable_bytes() + self.prependable_bytes() < length + self.CHEAP_PREPEND:
            self._buffer.extend(bytes(self._write + length - len(self._buffer)))
        else:
            readable = self.readable_bytes()
            start = self.CHEAP_PREPEND
            self._buffer[start:start + readable] = self._buffer[self._read:self._write]
            self._read = start
            self._write = start + readable

    def read_from(self, sock: socket.socket) -> int:
        """Read once from ``sock`` into the buffer and return the byte count.

        Data that does not fit in the writable space is read into a side
        buffer and appended, so one call can take up to 64 KiB extra.
        Socket errors propagate as ``OSError``.
        """
        writable = self.writable_bytes()
        extra = bytearray(_EXTRA_READ_SIZE)
        with memoryview(self._buffer) as whole:
            target = whole[self._write:]
            try:
                buffers = [target, extra] if writable < _EXTRA_READ_SIZE else [target]
                count = sock.recvmsg_into(buffers)[0]
            finally:
                target.release()
        if count <= writable:
            self._write += count
        else:
            self._write = len(self._buffer)
            self.append(extra[:count - writable])
        return count