"""Microsecond-resolution wall-clock timestamps."""

from __future__ import annotations

import time
from dataclasses import dataclass

MICROS_PER_SECOND = 1_000_000


def _trunc_div(value: int, divisor: int) -> int:
    """Integer division that truncates toward zero."""
    quotient = abs(value) // divisor
    return quotient if value >= 0 else -quotient


@dataclass(frozen=True, order=True)
class Timestamp:
    """A point in time expressed as microseconds since the Unix epoch."""

    micro_seconds_since_epoch: int = 0

    @classmethod
    def now(cls) -> Timestamp:
        """Return the current wall-clock time."""
        return cls(time.time_ns() // 1000)

    def seconds_since_epoch(self) -> int:
        """Whole seconds since the epoch, truncated toward zero."""
        return _trunc_div(self.micro_seconds_since_epoch, MICROS_PER_SECOND)

    def valid(self) -> bool:
        """A timestamp is valid when it lies after the epoch."""
        return self.micro_seconds_since_epoch > 0

    @staticmethod
    def time_difference(high: Timestamp, low: Timestamp) -> float:
        """Difference ``high - low`` in whole seconds."""
        diff = high.micro_seconds_since_epoch - low.micro_seconds_since_epoch
        return float(_trunc_div(diff, MICROS_PER_SECOND))

    def add_time(self, seconds: float) -> Timestamp:
        """Return a new timestamp ``seconds`` later than this one."""
        return Timestamp(int(self.micro_seconds_since_epoch + seconds * MICROS_PER_SECOND))