"""Binds a file descriptor to the callbacks that handle its I/O events."""

from __future__ import annotations

import enum
from typing import Any, Callable, Optional

from pasvftp.logger import LogLevel, server_log
from pasvftp.timestamp import Timestamp


class Event(enum.IntFlag):
    """Readiness bits, with the values used by poll(2) and epoll(7)."""

    NONE = 0
    IN = 0x001
    PRI = 0x002
    OUT = 0x004
    ERR = 0x008
    HUP = 0x010
    NVAL = 0x020
    RDHUP = 0x2000


NONE_EVENT = 0
READ_EVENT = int(Event.IN | Event.PRI)
WRITE_EVENT = int(Event.OUT)

# State of a channel as seen by the poller; a new channel is not yet known.
INDEX_NEW = -1

ReadCallback = Callable[[Timestamp], None]
EventCallback = Callable[[], None]


class Channel:
    """Dispatches the events reported for one file descriptor.

    The channel does not own the descriptor. Changing the events of
    interest asks the owning loop to update its poller.
    """

    def __init__(self, loop: Any, fd: Any) -> None:
        self.loop = loop
        self.fd: int = fd if isinstance(fd, int) else fd.fileno()
        self.events: int = NONE_EVENT
        self.revents: int = NONE_EVENT
        self.index: int = INDEX_NEW
        self.read_callback: Optional[ReadCallback] = None
        self.write_callback: Optional[EventCallback] = None
        self.error_callback: Optional[EventCallback] = None
        self.close_callback: Optional[EventCallback] = None

    def _update(self) -> None:
        self.loop.update_channel(self)

    def handle_event(self, receive_time: Timestamp) -> None:
        """Run the callbacks that match the reported events."""
        revents = self.revents
        if revents & Event.NVAL:
            server_log(LogLevel.WARNING, "Chanenl::handle_event() POLLNVAL")

        if (revents & Event.HUP) and not (revents & Event.IN):
            if self.close_callback:
                self.close_callback()

        if revents & (Event.ERR | Event.NVAL):
            if self.error_callback:
                self.error_callback()

        if revents & (Event.IN | Event.PRI | Event.RDHUP):
            if self.read_callback:
                self.read_callback(receive_time)

        if revents & Event.OUT:
            if self.write_callback:
                self.write_callback()

    def enable_reading(self) -> None:
        self.events |= READ_EVENT
        self._update()

    def enable_writing(self) -> None:
        self.events |= WRITE_EVENT
        self._update()

    def disable_writing(self) -> None:
        self.events &= ~WRITE_EVENT
        self._update()

    def disable_all(self) -> None:
        self.events = NONE_EVENT
        self._update()

    def is_none_event(self) -> bool:
        return self.events == NONE_EVENT

    def is_writing(self) -> bool:
        return bool(self.events & WRITE_EVENT)

    def __repr__(self) -> str:
        return f"Channel(fd={self.fd}, events={self.events:#x})"