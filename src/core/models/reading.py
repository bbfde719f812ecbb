"""
Glucose reading models.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

MIN_GLUCOSE_MGDL = 40.0
MAX_GLUCOSE_MGDL = 400.0
MGDL_PER_MMOL = 18.0


class ReadingQuality(Enum):
    """Quality flag attached to every reading."""
    GOOD = "good"
    UNCERTAIN = "uncertain"
    INVALID = "invalid"


def clamp_glucose(value: float) -> float:
    """Clamp a value to the physiological display range [40, 400] mg/dL."""
    return max(MIN_GLUCOSE_MGDL, min(MAX_GLUCOSE_MGDL, value))


@dataclass(frozen=True)
class Reading:
    """
    Data class representing a single glucose reading.
    Never mutated once emitted by the generator.
    """
    timestamp: datetime
    value_mgdl: float
    source_device_id: str
    quality: ReadingQuality = ReadingQuality.GOOD
    is_simulated: bool = True
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def value_mmol(self) -> float:
        return self.value_mgdl / MGDL_PER_MMOL


@dataclass(frozen=True)
class PredictedPoint:
    """A forecasted value. Not clamped."""
    timestamp: datetime
    value: float
