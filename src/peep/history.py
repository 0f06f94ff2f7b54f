"""Fixed-capacity rolling history of derived data points."""

import threading
from collections import deque

from peep.models import HistoricalDataPoint

DEFAULT_CAPACITY = 900  # 30 minutes at a 2 second cadence
DEFAULT_CHART_WINDOW = 150  # 5 minutes at a 2 second cadence


class HistoryBuffer:
    """
    Insertion-ordered ring buffer of HistoricalDataPoint.

    Holds at most ``capacity`` points; appending past capacity silently
    drops the oldest one. Points are immutable, so a reader copying the
    buffer sees either the state before or after an append, never a
    half-written point. Single writer, any number of readers.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        """
        Initialize the HistoryBuffer.

        Args:
            capacity: Maximum number of points retained. Must be at least 1.
        """
        if capacity < 1:
            raise ValueError(f"capacity must be at least 1, got {capacity}")
        self._points: deque[HistoricalDataPoint] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    @classmethod
    def seeded(cls, capacity: int, interval: float, now: float) -> "HistoryBuffer":
        """
        Create a buffer pre-filled with ``capacity`` zero-value points.

        The placeholders are spaced ``interval`` seconds apart and end one
        interval before ``now``, so consumers never observe an empty series.
        """
        buffer = cls(capacity)
        for i in range(capacity):
            buffer.append(HistoricalDataPoint.placeholder(now - (capacity - i) * interval))
        return buffer

    @property
    def capacity(self) -> int:
        return self._points.maxlen

    def __len__(self) -> int:
        return len(self._points)

    def append(self, point: HistoricalDataPoint) -> None:
        """Append a point at the tail, evicting the head when full."""
        with self._lock:
            self._points.append(point)

    def snapshot(self, window_size: int | None = None) -> list[HistoricalDataPoint]:
        """
        Return the most recent points, oldest first.

        Args:
            window_size: How many of the most recent points to return.
                None returns everything held.
        """
        with self._lock:
            points = list(self._points)
        if window_size is None:
            return points
        if window_size <= 0:
            return []
        return points[-window_size:]

    def latest(self) -> HistoricalDataPoint | None:
        """Get the most recently appended point."""
        with self._lock:
            return self._points[-1] if self._points else None
