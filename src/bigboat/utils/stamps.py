"""Reconciliation stamps.

A stamp marks every record touched by one reconciliation pass. Stamps only
need to be distinct and increasing, so any integer clock will do; wall clock
nanoseconds are used by default and bumped past the previous stamp so that a
clock step backwards never produces a repeat.
"""

import threading
import time
from collections.abc import Callable


class StampSource:
    """Strictly increasing integer stamps.

    Args:
        clock: Integer clock to read, ``time.time_ns`` by default. Tests and
            deployments that distrust wall clocks can pass a counter.
    """

    def __init__(self, clock: Callable[[], int] | None = None) -> None:
        self._clock = clock or time.time_ns
        self._last = 0
        self._lock = threading.Lock()

    def next(self) -> int:
        """Return a stamp greater than every stamp returned before."""
        with self._lock:
            stamp = max(int(self._clock()), self._last + 1)
            self._last = stamp
            return stamp

    @property
    def last(self) -> int:
        """Most recently issued stamp, 0 if none."""
        return self._last


def counter_clock(start: int = 0) -> Callable[[], int]:
    """Logical clock returning start+1, start+2, ... on each call."""
    value = start

    def tick() -> int:
        nonlocal value
        value += 1
        return value

    return tick
