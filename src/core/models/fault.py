"""
Simulated fault types.

A fault is a tagged variant: one frozen dataclass per kind, each carrying the
payload that kind needs. ``FaultState`` wraps the active fault together with
its schedule and a token used by recovery callbacks to detect supersession.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Union


class FaultKind(Enum):
    """Enumeration of the simulated fault kinds."""
    SIGNAL_LOSS = "signalLoss"
    DATA_CORRUPTION = "dataCorruption"
    PAIRING_FAILED = "pairingFailed"
    CONNECTION_FAILED = "connectionFailed"
    SENSOR_EXPIRED = "sensorExpired"


@dataclass(frozen=True)
class SignalLoss:
    recovery_seconds: float
    kind: FaultKind = FaultKind.SIGNAL_LOSS


@dataclass(frozen=True)
class DataCorruption:
    reading_id: Optional[str] = None
    kind: FaultKind = FaultKind.DATA_CORRUPTION


@dataclass(frozen=True)
class PairingFailed:
    recovery_seconds: float = 10.0
    kind: FaultKind = FaultKind.PAIRING_FAILED


@dataclass(frozen=True)
class ConnectionFailed:
    recovery_seconds: float = 5.0
    kind: FaultKind = FaultKind.CONNECTION_FAILED


@dataclass(frozen=True)
class SensorExpired:
    device_id: Optional[str] = None
    kind: FaultKind = FaultKind.SENSOR_EXPIRED


Fault = Union[SignalLoss, DataCorruption, PairingFailed, ConnectionFailed, SensorExpired]


@dataclass(frozen=True)
class FaultState:
    """The currently active fault. clears_at is None for faults that never auto-clear."""
    fault: Fault
    token: int
    raised_at: datetime
    clears_at: Optional[datetime] = None

    @property
    def kind(self) -> FaultKind:
        return self.fault.kind
