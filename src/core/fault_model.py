import logging
import random
from typing import Optional, Sequence

from core.models.fault import (
    ConnectionFailed,
    DataCorruption,
    Fault,
    FaultKind,
    PairingFailed,
    SensorExpired,
    SignalLoss,
)

logger = logging.getLogger(__name__)

MAX_ERROR_PROBABILITY = 1.0
DEFAULT_SIGNAL_LOSS_RECOVERY = (30.0, 120.0, 300.0)


class FaultModel:
    """
    Decides whether a fault fires and which one.
    Probability-only policy: a fault fires when error_probability exceeds a uniform draw.
    """

    def __init__(self, error_probability: float = 0.05, rng: Optional[random.Random] = None,
                 signal_loss_recovery: Sequence[float] = DEFAULT_SIGNAL_LOSS_RECOVERY,
                 pairing_failure_recovery: float = 10.0,
                 connection_failure_recovery: float = 5.0):
        self.rng = rng or random.Random()
        self._error_probability = 0.0
        self.error_probability = error_probability
        self.signal_loss_recovery = tuple(signal_loss_recovery)
        self.pairing_failure_recovery = pairing_failure_recovery
        self.connection_failure_recovery = connection_failure_recovery

    @property
    def error_probability(self) -> float:
        return self._error_probability

    @error_probability.setter
    def error_probability(self, value: float):
        if not 0.0 <= value <= MAX_ERROR_PROBABILITY:
            raise ValueError(f"error_probability must be within [0, {MAX_ERROR_PROBABILITY}], got {value}")
        self._error_probability = float(value)

    def should_fault(self) -> bool:
        """Draw once in [0, 1) and compare against the configured probability."""
        return self._error_probability > self.rng.random()

    def pick_kind(self) -> FaultKind:
        return self.rng.choice(list(FaultKind))

    def make_fault(self, kind: FaultKind, device_id: Optional[str] = None) -> Fault:
        """Build the fault variant for a kind, drawing its recovery delay where it has one."""
        if kind == FaultKind.SIGNAL_LOSS:
            return SignalLoss(recovery_seconds=self.rng.choice(self.signal_loss_recovery))
        if kind == FaultKind.DATA_CORRUPTION:
            return DataCorruption()
        if kind == FaultKind.PAIRING_FAILED:
            return PairingFailed(recovery_seconds=self.pairing_failure_recovery)
        if kind == FaultKind.CONNECTION_FAILED:
            return ConnectionFailed(recovery_seconds=self.connection_failure_recovery)
        if kind == FaultKind.SENSOR_EXPIRED:
            return SensorExpired(device_id=device_id)
        raise ValueError(f"Unknown fault kind: {kind}")

    def draw(self, device_id: Optional[str] = None) -> Optional[Fault]:
        """One fault check: returns a random fault if one fires, otherwise None."""
        if not self.should_fault():
            return None
        fault = self.make_fault(self.pick_kind(), device_id=device_id)
        logger.debug(f"Fault drawn: {fault.kind.value}")
        return fault
