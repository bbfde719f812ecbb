"""
ReadingHistory: time-ascending store of readings over a trailing window.
Appends are O(1) amortised; pruning drops from the front only.
"""
from collections import deque
from datetime import datetime, timedelta
from typing import Deque, Iterator, List, Optional, Tuple

from core.models.reading import Reading

DEFAULT_WINDOW = timedelta(hours=24)


def prune_older_than(readings: List[Reading], now: datetime, window: timedelta = DEFAULT_WINDOW) -> List[Reading]:
    """Return readings with now - timestamp <= window, order preserved."""
    return [r for r in readings if now - r.timestamp <= window]


class ReadingHistory:
    """
    Ordered history of readings, owned by the engine.
    - Non-decreasing timestamps
    - Entries older than the window are pruned on each append
    """

    __slots__ = ('window', '_readings')

    def __init__(self, window: timedelta = DEFAULT_WINDOW):
        self.window = window
        self._readings: Deque[Reading] = deque()

    def append(self, reading: Reading, now: Optional[datetime] = None) -> None:
        """Append a reading then prune relative to ``now`` (defaults to the reading's timestamp)."""
        if self._readings and reading.timestamp < self._readings[-1].timestamp:
            raise ValueError(
                f"Reading at {reading.timestamp.isoformat()} is older than the latest "
                f"entry ({self._readings[-1].timestamp.isoformat()})"
            )
        self._readings.append(reading)
        self.prune(now or reading.timestamp)

    def prune(self, now: datetime) -> int:
        """Drop entries older than the window. Returns how many were removed."""
        removed = 0
        while self._readings and now - self._readings[0].timestamp > self.window:
            self._readings.popleft()
            removed += 1
        return removed

    @property
    def latest(self) -> Optional[Reading]:
        return self._readings[-1] if self._readings else None

    def recent(self, count: int) -> List[Reading]:
        """Most recent ``count`` readings, oldest first."""
        if count <= 0:
            return []
        return list(self._readings)[-count:]

    def snapshot(self) -> Tuple[Reading, ...]:
        """Read-only view of the whole history."""
        return tuple(self._readings)

    def clear(self) -> None:
        self._readings.clear()

    def __len__(self) -> int:
        return len(self._readings)

    def __iter__(self) -> Iterator[Reading]:
        return iter(tuple(self._readings))
