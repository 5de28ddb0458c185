"""Callbacks scheduled for a point in time, optionally repeating."""

from __future__ import annotations

import itertools
import threading
from dataclasses import dataclass
from typing import Callable

from pasvftp.timestamp import Timestamp

TimerCallback = Callable[[], None]

_sequence = itertools.count(1)
_sequence_lock = threading.Lock()


def _next_sequence() -> int:
    with _sequence_lock:
        return next(_sequence)


class Timer:
    """A callback due at ``expiration``; repeats when ``interval`` > 0."""

    def __init__(self, callback: TimerCallback, when: Timestamp, interval: float) -> None:
        self.callback = callback
        self.expiration = when
        self.interval = interval
        self.repeat = interval > 0
        self.sequence = _next_sequence()

    def run(self) -> None:
        self.callback()

    def restart(self, now: Timestamp) -> None:
        """Reschedule one interval after ``now``, or invalidate a one-shot timer."""
        if self.repeat:
            self.expiration = now.add_time(self.interval)
        else:
            self.expiration = Timestamp(-1)

    def __repr__(self) -> str:
        return (
            f"Timer(seq={self.sequence}, expiration={self.expiration}, "
            f"interval={self.interval})"
        )


@dataclass(frozen=True)
class TimerId:
    """Handle used to cancel a scheduled timer."""

    timer: Timer
    sequence: int