"""
Synthetic glucose value generation.

Each value is a random walk from the previous one plus a time-of-day offset
(dawn phenomenon, meal peaks, night drop), clamped to [40, 400] mg/dL.
"""
import random
from datetime import datetime
from typing import Optional

from core.models.reading import (
    MAX_GLUCOSE_MGDL,
    MIN_GLUCOSE_MGDL,
    Reading,
    ReadingQuality,
    clamp_glucose,
)

STEP_RANGE = (-10.0, 10.0)
START_RANGE = (80.0, 120.0)


def time_of_day_offset(hour: int, rng: random.Random) -> float:
    """Random offset in mg/dL for a local hour."""
    if 4 <= hour <= 7:  # dawn
        return rng.uniform(5, 15)
    if 11 <= hour <= 13:  # lunch
        return rng.uniform(10, 30)
    if 17 <= hour <= 19:  # dinner
        return rng.uniform(15, 35)
    if 22 <= hour <= 23:  # night drop
        return rng.uniform(-15, -5)
    return rng.uniform(-5, 5)


class ReadingGenerator:
    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()

    def next_value(self, last_value: Optional[float], now: datetime) -> float:
        if last_value is not None:
            base = last_value + self.rng.uniform(*STEP_RANGE)
        else:
            base = self.rng.uniform(*START_RANGE)
        return clamp_glucose(base + time_of_day_offset(now.hour, self.rng))

    def generate(self, device_id: str, now: datetime, last: Optional[Reading] = None) -> Reading:
        """Build the next good-quality reading following ``last``."""
        value = self.next_value(last.value_mgdl if last is not None else None, now)
        return Reading(timestamp=now, value_mgdl=value, source_device_id=device_id,
                       quality=ReadingQuality.GOOD)

    def corrupt_reading(self, device_id: str, now: datetime) -> Reading:
        """Uncertain reading with a value drawn uniformly over the whole range."""
        value = self.rng.uniform(MIN_GLUCOSE_MGDL, MAX_GLUCOSE_MGDL)
        return Reading(timestamp=now, value_mgdl=value, source_device_id=device_id,
                       quality=ReadingQuality.UNCERTAIN)
