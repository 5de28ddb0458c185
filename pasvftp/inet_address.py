"""IPv4 socket addresses."""

from __future__ import annotations

import ipaddress
import socket
from typing import Tuple

ANY_ADDRESS = "0.0.0.0"


def _resolve(host: str) -> str:
    try:
        return str(ipaddress.IPv4Address(host))
    except ValueError:
        pass
    try:
        return socket.gethostbyname(host)
    except (socket.gaierror, UnicodeError) as exc:
        raise ValueError(f"cannot resolve IPv4 address {host!r}") from exc


class InetAddress:
    """An IPv4 address and port."""

    __slots__ = ("_ip", "_port")

    def __init__(self, ip: str = ANY_ADDRESS, port: int = 0) -> None:
        if not 0 <= port <= 0xFFFF:
            raise ValueError(f"port out of range: {port}")
        self._ip = _resolve(ip)
        self._port = port

    @classmethod
    def from_sockaddr(cls, addr: Tuple[str, int]) -> InetAddress:
        """Build from an ``(ip, port)`` pair as returned by sockets."""
        host, port = addr[0], addr[1]
        return cls(host, port)

    @property
    def port(self) -> int:
        return self._port

    def to_ip(self) -> str:
        return self._ip

    def to_ip_port(self) -> str:
        return f"{self._ip}:{self._port}"

    def sockaddr(self) -> Tuple[str, int]:
        """The ``(ip, port)`` pair accepted by socket calls."""
        return (self._ip, self._port)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, InetAddress):
            return NotImplemented
        return self._ip == other._ip and self._port == other._port

    def __hash__(self) -> int:
        return hash((self._ip, self._port))

    def __repr__(self) -> str:
        return f"InetAddress({self._ip!r}, {self._port})"

    def __str__(self) -> str:
        return self.to_ip_port()