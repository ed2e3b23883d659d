"""
scribe_engine/clock.py -- Injectable clock for entity and marker timestamps.

All "now" reads in the engine go through one of these so tests can supply
fixed timestamps and check created_at / last_modified / modified_at
semantics deterministically.  Timestamps are integer epoch seconds.
"""

from __future__ import annotations

import time


class SystemClock:
    """Wall-clock time in whole epoch seconds."""

    def now(self) -> int:
        return int(time.time())


class FixedClock:
    """A clock that only moves when told to.

    Parameters
    ----------
    start : int
        The initial timestamp.
    step : int, optional
        Seconds to advance automatically after every ``now()`` call
        (default 0, i.e. frozen).
    """

    def __init__(self, start: int = 0, step: int = 0):
        self._current = int(start)
        self._step = int(step)

    def now(self) -> int:
        value = self._current
        self._current += self._step
        return value

    def advance(self, seconds: int = 1) -> int:
        """Move the clock forward and return the new time."""
        self._current += int(seconds)
        return self._current

    def set(self, timestamp: int) -> None:
        self._current = int(timestamp)
