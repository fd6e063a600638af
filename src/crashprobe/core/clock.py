"""Boot-relative uptime helpers."""

from __future__ import annotations

import time


def uptime_seconds() -> float:
    """Seconds since boot (including suspend where the platform tracks it)."""
    clock = getattr(time, "CLOCK_BOOTTIME", None)
    if clock is not None:
        return time.clock_gettime(clock)
    return time.monotonic()


def format_uptime(seconds: float) -> tuple[str, int]:
    """Return (``HHHH:MM:SS``, whole hours) for a number of seconds."""
    total = int(seconds)
    hours, rem = divmod(total, 3600)
    minutes, secs = divmod(rem, 60)
    return f"{hours:04d}:{minutes:02d}:{secs:02d}", hours


def uptime_string() -> tuple[str, int]:
    return format_uptime(uptime_seconds())


class UptimeMilestones:
    """Fire once every ``event_hours`` of uptime."""

    def __init__(self, event_hours: int) -> None:
        if event_hours < 1:
            raise ValueError("event_hours must be >= 1")
        self.event_hours = event_hours
        self._next = 1

    def reached(self, hours: int) -> bool:
        """True the first time ``hours`` crosses a new milestone."""
        step = hours // self.event_hours
        if step < self._next:
            return False
        self._next = step + 1
        return True
