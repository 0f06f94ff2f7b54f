"""Per-second rates from cumulative counters."""

import math
from dataclasses import dataclass


def compute_rate(current: float, previous: float, delta_seconds: float) -> float:
    """
    Convert two readings of a cumulative counter into a per-second rate.

    A non-positive interval yields 0.0, and so does a counter that went
    backwards (interface reset or wraparound).
    """
    if not delta_seconds > 0:
        return 0.0
    rate = (current - previous) / delta_seconds
    if not math.isfinite(rate):
        return 0.0
    return max(0.0, rate)


@dataclass(slots=True, frozen=True)
class RateState:
    """Previous reading of one counter. One instance per counter."""

    previous_value: float | None = None
    previous_timestamp: float | None = None

    @property
    def is_seeded(self) -> bool:
        return self.previous_value is not None and self.previous_timestamp is not None

    def advance(self, value: float, timestamp: float) -> tuple[float, "RateState"]:
        """
        Derive the rate for a new reading.

        Returns the rate and the state to use next cycle. The first reading
        only seeds the state and reports 0.0.
        """
        successor = RateState(previous_value=value, previous_timestamp=timestamp)
        if not self.is_seeded:
            return 0.0, successor
        rate = compute_rate(value, self.previous_value, timestamp - self.previous_timestamp)
        return rate, successor
