import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from core.models.device import Device, DeviceStatus

logger = logging.getLogger(__name__)

EXPIRED_BATTERY_LEVEL = 0.05
DEFAULT_LIFETIME_HOURS = 72.0


class SensorLifecycleManager:
    """
    Owns the "current device", independently of connectivity.
    Every mutation is reported through ``on_change`` with a copy of the device.
    """

    def __init__(self, lifetime_hours: float = DEFAULT_LIFETIME_HOURS,
                 on_change: Optional[Callable[[Device], None]] = None):
        self.lifetime = timedelta(hours=lifetime_hours)
        self._on_change = on_change
        self._current: Optional[Device] = None
        self._devices: List[Device] = []

    @property
    def current_device(self) -> Optional[Device]:
        """The latest device, including one that has just expired."""
        return self._current

    @property
    def active_device(self) -> Optional[Device]:
        """The current device only if it can still produce readings."""
        if self._current is not None and self._current.status == DeviceStatus.ACTIVE and self._current.is_current:
            return self._current
        return None

    @property
    def devices(self) -> List[Device]:
        return list(self._devices)

    def activate_new_device(self, now: datetime) -> Device:
        """Create a new active device and supersede every previous one."""
        for device in self._devices:
            if device.is_current:
                device.is_current = False
                self._notify(device)
        device = Device(
            activation_instant=now,
            expiration_instant=now + self.lifetime,
            last_connection_instant=now,
            status=DeviceStatus.ACTIVE,
            is_current=True,
        )
        self._devices.append(device)
        self._current = device
        logger.info(f"Activated sensor {device.id} (expires {device.expiration_instant.isoformat()})")
        self._notify(device)
        return device

    def expire_current(self, now: datetime) -> Optional[Device]:
        """Mark the current device as expired. Metadata other than the expiry fields is kept."""
        device = self._current
        if device is None:
            logger.warning("No current sensor to expire")
            return None
        device.battery_level = EXPIRED_BATTERY_LEVEL
        device.expiration_instant = now
        device.last_connection_instant = now
        device.status = DeviceStatus.EXPIRED
        device.is_current = False
        logger.warning(f"Sensor {device.id} expired")
        self._notify(device)
        return device

    def check_expiration(self, now: datetime) -> bool:
        """True when the active device's expiration instant has passed."""
        device = self.active_device
        return device is not None and device.is_expired_at(now)

    def touch(self, now: datetime):
        """Record a connection event on the active device."""
        device = self.active_device
        if device is None:
            return
        device.last_connection_instant = now
        self._notify(device)

    def replace_metadata(self, battery_level: Optional[float] = None,
                         firmware_version: Optional[str] = None) -> Optional[Device]:
        """Explicitly replace battery or firmware metadata of the current device."""
        device = self._current
        if device is None:
            return None
        if battery_level is not None:
            if not 0.0 <= battery_level <= 1.0:
                raise ValueError(f"battery_level must be within [0, 1], got {battery_level}")
            device.battery_level = battery_level
        if firmware_version is not None:
            device.firmware_version = firmware_version
        self._notify(device)
        return device

    def _notify(self, device: Device):
        if self._on_change is not None:
            self._on_change(device.copy())
