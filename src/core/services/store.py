"""
Persistence collaborators for readings and devices.

The engine never talks to a store directly: ``StoreWriter`` subscribes to the
engine's event hub and forwards each new reading / device mutation. Store
failures are logged and dropped, the in-memory engine state stays authoritative.
"""
import csv
import json
import logging
import os
from dataclasses import asdict
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Protocol

from core.event_hub import DEVICE_CHANGED, READING_CREATED, EventHub
from core.models.device import Device, DeviceStatus
from core.models.reading import Reading

logger = logging.getLogger(__name__)

READINGS_FILE = "readings.csv"
DEVICES_FILE = "devices.json"
READING_FIELDS = ["id", "timestamp", "value_mgdl", "source_device_id", "quality", "is_simulated"]


class SensorStore(Protocol):
    def insert(self, reading: Reading) -> None: ...

    def upsert(self, device: Device) -> None: ...

    def clear_current(self, except_id: Optional[str] = None) -> None: ...


class InMemoryStore:
    """Store kept in process memory."""

    def __init__(self):
        self.readings: List[Reading] = []
        self.devices: Dict[str, Device] = {}

    def insert(self, reading: Reading) -> None:
        self.readings.append(reading)

    def upsert(self, device: Device) -> None:
        self.devices[device.id] = device.copy()

    def clear_current(self, except_id: Optional[str] = None) -> None:
        for device_id, device in self.devices.items():
            if device_id != except_id and device.is_current:
                self.devices[device_id] = device.copy(is_current=False)

    def current_devices(self) -> List[Device]:
        return [d for d in self.devices.values() if d.is_current]


def _to_json(value):
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return value


def _device_from_json(data: dict) -> Device:
    for key in ("activation_instant", "expiration_instant", "last_connection_instant"):
        if data.get(key):
            data[key] = datetime.fromisoformat(data[key])
    data["status"] = DeviceStatus(data.get("status", DeviceStatus.UNKNOWN.value))
    return Device(**data)


class FileStore:
    """
    Store writing readings to a CSV file and devices to a JSON file
    inside ``directory``.
    """

    def __init__(self, directory: str):
        self.directory = directory
        self.readings_path = os.path.join(directory, READINGS_FILE)
        self.devices_path = os.path.join(directory, DEVICES_FILE)
        os.makedirs(directory, exist_ok=True)
        self._devices: Dict[str, Device] = self._load_devices()

    def _load_devices(self) -> Dict[str, Device]:
        if not os.path.exists(self.devices_path):
            return {}
        try:
            with open(self.devices_path, 'r') as f:
                raw = json.load(f)
            return {item["id"]: _device_from_json(item) for item in raw}
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.error(f"Failed to load devices from {self.devices_path}: {e}")
            return {}

    def _write_devices(self):
        payload = [
            {key: _to_json(value) for key, value in asdict(device).items()}
            for device in self._devices.values()
        ]
        tmp_path = self.devices_path + ".tmp"
        with open(tmp_path, 'w') as f:
            json.dump(payload, f, indent=2)
        os.replace(tmp_path, self.devices_path)

    def insert(self, reading: Reading) -> None:
        write_header = not os.path.exists(self.readings_path)
        with open(self.readings_path, 'a', newline='') as f:
            writer = csv.DictWriter(f, fieldnames=READING_FIELDS)
            if write_header:
                writer.writeheader()
            writer.writerow({
                "id": reading.id,
                "timestamp": reading.timestamp.isoformat(),
                "value_mgdl": reading.value_mgdl,
                "source_device_id": reading.source_device_id,
                "quality": reading.quality.value,
                "is_simulated": reading.is_simulated,
            })

    def upsert(self, device: Device) -> None:
        self._devices[device.id] = device.copy()
        self._write_devices()

    def clear_current(self, except_id: Optional[str] = None) -> None:
        changed = False
        for device_id, device in self._devices.items():
            if device_id != except_id and device.is_current:
                device.is_current = False
                changed = True
        if changed:
            self._write_devices()

    def devices(self) -> List[Device]:
        return list(self._devices.values())


class StoreWriter:
    """Forwards engine events to a store. Write errors are logged, never raised."""

    def __init__(self, store: SensorStore, event_hub: EventHub):
        self.store = store
        self.event_hub = event_hub
        self.failures = 0

    def attach(self):
        self.event_hub.subscribe(READING_CREATED, self._on_reading)
        self.event_hub.subscribe(DEVICE_CHANGED, self._on_device)

    def detach(self):
        self.event_hub.unsubscribe(READING_CREATED, self._on_reading)
        self.event_hub.unsubscribe(DEVICE_CHANGED, self._on_device)

    def _on_reading(self, topic: str, reading: Reading):
        try:
            self.store.insert(reading)
        except Exception as e:
            self.failures += 1
            logger.error(f"Failed to save reading {reading.id}: {e}")

    def _on_device(self, topic: str, device: Device):
        try:
            if device.is_current:
                self.store.clear_current(except_id=device.id)
            self.store.upsert(device)
        except Exception as e:
            self.failures += 1
            logger.error(f"Failed to save sensor {device.id}: {e}")
