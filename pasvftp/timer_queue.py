"""Ordered set of pending timers owned by an event loop."""

from __future__ import annotations

import bisect
from typing import Any, Dict, List, Optional, Set, Tuple

from pasvftp.timer import Timer, TimerCallback, TimerId
from pasvftp.timestamp import Timestamp

_MIN_DELAY_MICROS = 100

_Entry = Tuple[Timestamp, int, Timer]


def how_much_time_from_now(when: Timestamp) -> float:
    """Seconds until ``when``, never less than 100 microseconds."""
    micros = when.micro_seconds_since_epoch - Timestamp.now().micro_seconds_since_epoch
    micros = max(micros, _MIN_DELAY_MICROS)
    return micros / 1_000_000


class TimerQueue:
    """Keeps timers ordered by expiration and runs those that are due.

    Changes are routed through ``loop.run_in_loop`` so they happen in
    the loop's thread; with no loop they apply immediately.
    """

    def __init__(self, loop: Any) -> None:
        self.loop = loop
        self._timers: List[_Entry] = []
        self._active: Dict[int, Timer] = {}
        self._canceling: Set[int] = set()
        self._calling_expired = False

    def _in_loop(self, func: TimerCallback) -> None:
        if self.loop is None:
            func()
        else:
            self.loop.run_in_loop(func)

    def add_timer(self, callback: TimerCallback, when: Timestamp, interval: float) -> TimerId:
        """Schedule ``callback`` at ``when``, every ``interval`` seconds if > 0."""
        timer = Timer(callback, when, interval)
        self._in_loop(lambda: self._insert(timer))
        return TimerId(timer, timer.sequence)

    def cancel(self, timer_id: TimerId) -> None:
        """Cancel a timer; cancelling a fired or unknown timer does nothing."""
        self._in_loop(lambda: self._cancel_in_loop(timer_id))

    def _cancel_in_loop(self, timer_id: TimerId) -> None:
        timer = self._active.get(timer_id.sequence)
        if timer is not None and timer is timer_id.timer:
            index = bisect.bisect_left(self._timers, (timer.expiration, timer.sequence))
            del self._timers[index]
            del self._active[timer.sequence]
        elif self._calling_expired:
            self._canceling.add(timer_id.sequence)

    def _insert(self, timer: Timer) -> bool:
        """Add a timer; return True when it became the earliest."""
        earliest_changed = not self._timers or timer.expiration < self._timers[0][0]
        bisect.insort(self._timers, (timer.expiration, timer.sequence, timer))
        self._active[timer.sequence] = timer
        return earliest_changed

    def next_expiration(self) -> Optional[Timestamp]:
        """Expiration of the earliest pending timer, or None."""
        return self._timers[0][0] if self._timers else None

    def __len__(self) -> int:
        return len(self._timers)

    def _take_expired(self, now: Timestamp) -> List[Timer]:
        cut = bisect.bisect_right(self._timers, (now, float("inf")))
        expired = [entry[2] for entry in self._timers[:cut]]
        del self._timers[:cut]
        for timer in expired:
            del self._active[timer.sequence]
        return expired

    def process_expired(self, now: Timestamp) -> int:
        """Run every timer due at or before ``now``; return how many ran."""
        expired = self._take_expired(now)
        self._calling_expired = True
        self._canceling.clear()
        try:
            for timer in expired:
                timer.run()
        finally:
            self._calling_expired = False
            for timer in expired:
                if timer.repeat and timer.sequence not in self._canceling:
                    timer.restart(now)
                    self._insert(timer)
        return len(expired)