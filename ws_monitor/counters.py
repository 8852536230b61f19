"""
Shared outcome counters written by the prober and read by the exporter.
"""

import threading
from enum import Enum
from typing import Tuple


class ProbeOutcome(Enum):
    """Result of a single connect-probe-disconnect cycle."""

    SUCCESS = "success"
    FAILURE = "failure"


class MonotonicCounter:
    """
    Increment-only integer counter with its own lock.
    """

    def __init__(self):
        self._value = 0
        self._lock = threading.Lock()

    def inc(self) -> None:
        with self._lock:
            self._value += 1

    @property
    def value(self) -> int:
        with self._lock:
            return self._value


class CounterPair:
    """
    Success and failure tallies for the monitored endpoint.

    The prober is the only writer. Readers take a snapshot that reads each
    counter on its own, so a snapshot taken during an increment may see the
    new success value next to the old failure value (or the reverse).
    """

    def __init__(self):
        self.success = MonotonicCounter()
        self.failure = MonotonicCounter()

    def record(self, outcome: ProbeOutcome) -> None:
        """
        Count one completed probe.

        Args:
            outcome: Classification of the finished probe
        """
        if outcome is ProbeOutcome.SUCCESS:
            self.success.inc()
        elif outcome is ProbeOutcome.FAILURE:
            self.failure.inc()
        else:
            raise ValueError(f"Unknown probe outcome: {outcome!r}")

    def snapshot(self) -> Tuple[int, int]:
        """
        Read both counters.

        Returns:
            Tuple[int, int]: (success count, failure count)
        """
        return self.success.value, self.failure.value

    @property
    def total(self) -> int:
        success, failure = self.snapshot()
        return success + failure

    def __repr__(self):
        success, failure = self.snapshot()
        return f"CounterPair(success={success}, failure={failure})"
