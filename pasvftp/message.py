"""Control-channel messages and their length-prefixed framing."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Dict, Iterator, Tuple, Union

from pasvftp.buffer import Buffer

HEADER_LEN = 4
MAX_MESSAGE_SIZE = 10 * 1024 * 1024

_HEADER = struct.Struct("!I")

# Field numbers of the message on the wire (protobuf encoding).
_STRING_FIELDS: Dict[int, str] = {1: "action", 2: "file_name", 3: "user_dir"}
_PORT_FIELD = 4

_WIRE_VARINT = 0
_WIRE_FIXED64 = 1
_WIRE_LENGTH = 2
_WIRE_FIXED32 = 5


class MessageError(ValueError):
    """A frame or message could not be encoded or decoded."""


def _encode_varint(value: int) -> bytes:
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def _read_varint(data: bytes, pos: int) -> Tuple[int, int]:
    result = 0
    for shift in range(0, 70, 7):
        if pos >= len(data):
            raise MessageError("truncated varint")
        byte = data[pos]
        pos += 1
        result |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return result, pos
    raise MessageError("varint too long")


@dataclass
class FileInfo:
    """A request or reply on the control connection."""

    action: str = ""
    file_name: str = ""
    user_dir: str = ""
    port: int = 0

    def to_bytes(self) -> bytes:
        """Serialize; fields holding their default value are omitted."""
        parts = []
        for number, name in _STRING_FIELDS.items():
            value: str = getattr(self, name)
            if value:
                raw = value.encode("utf-8")
                parts += [_encode_varint(number << 3 | _WIRE_LENGTH), _encode_varint(len(raw)), raw]
        if self.port:
            if not 0 <= self.port <= 0xFFFFFFFF:
                raise MessageError(f"port out of range: {self.port}")
            parts += [_encode_varint(_PORT_FIELD << 3 | _WIRE_VARINT), _encode_varint(self.port)]
        return b"".join(parts)

    @classmethod
    def from_bytes(cls, data: Union[bytes, bytearray, memoryview]) -> FileInfo:
        """Parse a serialized message; unknown fields are skipped."""
        data = bytes(data)
        values: Dict[str, Union[str, int]] = {}
        pos = 0
        while pos < len(data):
            key, pos = _read_varint(data, pos)
            number, wire = key >> 3, key & 7
            if number == 0:
                raise MessageError("invalid field number 0")
            if wire == _WIRE_VARINT:
                value, pos = _read_varint(data, pos)
                if number == _PORT_FIELD:
                    values["port"] = value & 0xFFFFFFFF
            elif wire == _WIRE_LENGTH:
                length, pos = _read_varint(data, pos)
                end = pos + length
                if end > len(data):
                    raise MessageError("truncated field")
                chunk = data[pos:end]
                pos = end
                if number in _STRING_FIELDS:
                    try:
                        values[_STRING_FIELDS[number]] = chunk.decode("utf-8")
                    except UnicodeDecodeError as exc:
                        raise MessageError("invalid UTF-8 in string field") from exc
            elif wire in (_WIRE_FIXED64, _WIRE_FIXED32):
                pos += 8 if wire == _WIRE_FIXED64 else 4
                if pos > len(data):
                    raise MessageError("truncated fixed-width field")
            else:
                raise MessageError(f"unsupported wire type {wire}")
        return cls(**values)  # type: ignore[arg-type]


def encode_frame(payload: Union[bytes, bytearray, str]) -> bytes:
    """Prefix ``payload`` (text as UTF-8) with its 4-byte big-endian length."""
    if isinstance(payload, str):
        payload = payload.encode("utf-8")
    return _HEADER.pack(len(payload)) + bytes(payload)


def iter_frames(buffer: Buffer) -> Iterator[bytes]:
    """Yield complete frame payloads from ``buffer``, consuming them.

    Stops when only a partial frame is left. A header announcing an empty
    or oversized frame is consumed and raises ``MessageError``.
    """
    while buffer.readable_bytes() >= HEADER_LEN:
        (length,) = _HEADER.unpack(buffer.peek()[:HEADER_LEN])
        if length == 0 or length > MAX_MESSAGE_SIZE:
            buffer.retrieve(HEADER_LEN)
            raise MessageError(f"Invalid headLen: {length}")
        if buffer.readable_bytes() < HEADER_LEN + length:
            return
        buffer.retrieve(HEADER_LEN)
        payload = buffer.peek()[:length]
        buffer.retrieve(length)
        yield payload