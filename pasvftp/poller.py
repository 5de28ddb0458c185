"""I/O multiplexing over epoll, or poll where epoll is not available."""

from __future__ import annotations

import select
from typing import Any, Dict, List, Tuple

from pasvftp.channel import INDEX_NEW, Channel
from pasvftp.logger import LogLevel, server_log
from pasvftp.timestamp import Timestamp

INDEX_ADDED = 1
INDEX_DELETED = 2


class Poller:
    """Watches the descriptors of registered channels for readiness."""

    def __init__(self, loop: Any) -> None:
        self.owner_loop = loop
        self._channels: Dict[int, Channel] = {}
        self._is_epoll = hasattr(select, "epoll")
        self._impl = select.epoll() if self._is_epoll else select.poll()

    def _wait(self, timeout_ms: int) -> List[Tuple[int, int]]:
        if self._is_epoll:
            return self._impl.poll(timeout_ms / 1000 if timeout_ms >= 0 else -1)
        return self._impl.poll(timeout_ms if timeout_ms >= 0 else None)

    def poll(self, timeout_ms: int = -1) -> Tuple[Timestamp, List[Channel]]:
        """Wait for events and return the time and the active channels.

        A negative timeout waits indefinitely.
        """
        try:
            ready = self._wait(timeout_ms)
        except OSError:
            server_log(LogLevel.WARNING, "epoll ret val < 0")
            return Timestamp.now(), []
        now = Timestamp.now()
        active: List[Channel] = []
        if ready:
            for fd, revents in ready:
                channel = self._channels.get(fd)
                if channel is None:
                    continue
                channel.revents = revents
                active.append(channel)
        else:
            server_log(LogLevel.INFO, "epoll: nothing happend!")
        return now, active

    def update_channel(self, channel: Channel) -> None:
        """Register, modify or suspend a channel according to its events."""
        if channel.index in (INDEX_NEW, INDEX_DELETED):
            if channel.index == INDEX_NEW:
                self._channels[channel.fd] = channel
            channel.index = INDEX_ADDED
            self._control("add", channel)
        elif channel.is_none_event():
            self._control("delete", channel)
            channel.index = INDEX_DELETED
        else:
            self._control("modify", channel)

    def remove_channel(self, channel: Channel) -> None:
        """Forget a channel entirely."""
        self._channels.pop(channel.fd, None)
        if channel.index == INDEX_ADDED:
            self._control("delete", channel)
        channel.index = INDEX_NEW

    def has_channel(self, channel: Channel) -> bool:
        return self._channels.get(channel.fd) is channel

    def _control(self, operation: str, channel: Channel) -> None:
        try:
            if operation == "add":
                self._impl.register(channel.fd, channel.events)
            elif operation == "modify":
                self._impl.modify(channel.fd, channel.events)
            else:
                self._impl.unregister(channel.fd)
        except (OSError, KeyError, ValueError):
            if operation == "delete":
                server_log(LogLevel.ERROR, "epoll : delete error")
            else:
                server_log(LogLevel.ERROR, "opoll : add / mod error")

    def close(self) -> None:
        """Release the underlying epoll descriptor, if any."""
        if self._is_epoll:
            self._impl.close()

    def __enter__(self) -> Poller:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()