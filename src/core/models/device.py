"""
Sensor device model.
"""

import dataclasses
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

DEFAULT_DEVICE_NAME = "GlucoSense Sensor"
DEFAULT_FIRMWARE_VERSION = "1.0.0"


class DeviceStatus(Enum):
    """Lifecycle status of a sensor device."""
    INACTIVE = "inactive"
    ACTIVE = "active"
    EXPIRED = "expired"
    ERROR = "error"
    UNKNOWN = "unknown"


@dataclass
class Device:
    """
    Data class representing a synthetic sensor.
    Only one device may have is_current set at a time.
    """
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    name: str = DEFAULT_DEVICE_NAME
    battery_level: float = 1.0
    serial_number: str = field(default_factory=lambda: str(uuid.uuid4()))
    firmware_version: str = DEFAULT_FIRMWARE_VERSION
    activation_instant: Optional[datetime] = None
    expiration_instant: Optional[datetime] = None
    last_connection_instant: Optional[datetime] = None
    status: DeviceStatus = DeviceStatus.INACTIVE
    is_current: bool = False

    def __post_init__(self):
        if not 0.0 <= self.battery_level <= 1.0:
            raise ValueError(f"battery_level must be within [0, 1], got {self.battery_level}")

    def is_expired_at(self, now: datetime) -> bool:
        """True once the expiration instant has passed, or the status says so."""
        if self.status == DeviceStatus.EXPIRED:
            return True
        return self.expiration_instant is not None and now >= self.expiration_instant

    def copy(self, **changes) -> "Device":
        """Return a copy carrying every field unchanged unless explicitly replaced."""
        return dataclasses.replace(self, **changes)
