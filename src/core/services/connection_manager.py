"""
Connection state machine for the simulated sensor.

States: disconnected (initial), connecting, pairing, connected, intermittent,
error. Outcomes of connect/pair and every fault recovery are deferred through
the shared scheduler; each one applies its status change and side effects in
a single callback before the listener publishes the new state. Signal loss
only degrades a live link: in any other state it is recorded without
changing the status, and its recovery never reconnects.
"""
import itertools
import logging
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Optional, Protocol

from core.event_hub import EventHub
from core.fault_model import FaultModel
from core.models.connection_status import ConnectionStatus
from core.models.fault import (
    ConnectionFailed,
    DataCorruption,
    Fault,
    FaultState,
    PairingFailed,
    SensorExpired,
    SignalLoss,
)
from core.scheduler import Scheduler

logger = logging.getLogger(__name__)

DEFAULT_CONNECT_DELAY = 2.0
DEFAULT_PAIRING_DELAY = 3.0


class ConnectionListener(Protocol):
    def connection_established(self) -> None: ...

    def link_restored(self) -> None: ...

    def connection_lost(self) -> None: ...

    def pairing_succeeded(self) -> None: ...

    def sensor_expired(self) -> None: ...

    def data_corrupted(self) -> Optional[str]: ...

    def fault_raised(self, fault: Fault) -> None: ...

    def state_changed(self) -> None: ...


class ConnectionStateMachine:
    """
    Sole owner of ConnectionStatus and the active FaultState.
    Every transition runs inside an event hub batch: listeners publish while
    the state is being applied, subscribers only see the finished transition.
    """

    def __init__(self, scheduler: Scheduler, fault_model: FaultModel, listener: ConnectionListener,
                 event_hub: EventHub, connect_delay: float = DEFAULT_CONNECT_DELAY,
                 pairing_delay: float = DEFAULT_PAIRING_DELAY):
        self.scheduler = scheduler
        self.fault_model = fault_model
        self.listener = listener
        self.event_hub = event_hub
        self.connect_delay = connect_delay
        self.pairing_delay = pairing_delay
        self._status = ConnectionStatus.DISCONNECTED
        self._active_fault: Optional[FaultState] = None
        self._fault_tokens = itertools.count(1)
        self._attempt = 0

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def active_fault(self) -> Optional[FaultState]:
        return self._active_fault

    def connect(self) -> bool:
        """Start a connection attempt. Returns False when nothing was started."""
        if self._status in (ConnectionStatus.CONNECTED, ConnectionStatus.CONNECTING):
            logger.debug(f"connect() ignored while {self._status.value}")
            return False
        if self._active_fault is not None and isinstance(self._active_fault.fault, SensorExpired):
            logger.warning("Sensor expired, pair a new sensor before connecting")
            return False

        with self.event_hub.batch():
            self._status = ConnectionStatus.CONNECTING
            self._attempt += 1
            self.scheduler.schedule(self.connect_delay, self._resolve_connect, self._attempt, name="resolve_connect")
            logger.info("Connecting to sensor...")
            self.listener.state_changed()
        return True

    def disconnect(self):
        """Valid from any state. Pending connect/pair outcomes are discarded, fault recoveries are not."""
        with self.event_hub.batch():
            self._attempt += 1
            was_disconnected = self._status == ConnectionStatus.DISCONNECTED
            self._status = ConnectionStatus.DISCONNECTED
            self.listener.connection_lost()
            if was_disconnected:
                return
            logger.info("Disconnected from sensor")
            self.listener.state_changed()

    def start_pairing(self):
        with self.event_hub.batch():
            self._status = ConnectionStatus.PAIRING
            self._attempt += 1
            self.scheduler.schedule(self.pairing_delay, self._resolve_pairing, self._attempt, name="resolve_pairing")
            logger.info("Starting NFC pairing sequence...")
            self.listener.state_changed()

    def raise_fault(self, fault: Fault) -> Fault:
        """Apply a fault now and publish the resulting state. Returns the fault as applied."""
        with self.event_hub.batch():
            applied = self._apply_fault(fault)
            self.listener.state_changed()
        return applied

    def _resolve_connect(self, attempt: int):
        if attempt != self._attempt or self._status != ConnectionStatus.CONNECTING:
            logger.debug("Discarding stale connection outcome")
            return
        with self.event_hub.batch():
            if self.fault_model.should_fault():
                self._apply_fault(ConnectionFailed(recovery_seconds=self.fault_model.connection_failure_recovery))
                logger.error("Connection failed (simulated)")
            else:
                self._active_fault = None
                self._status = ConnectionStatus.CONNECTED
                self.listener.connection_established()
                logger.info("Connected to sensor (simulated)")
            self.listener.state_changed()

    def _resolve_pairing(self, attempt: int):
        if attempt != self._attempt or self._status != ConnectionStatus.PAIRING:
            logger.debug("Discarding stale pairing outcome")
            return
        with self.event_hub.batch():
            if self.fault_model.should_fault():
                self._apply_fault(PairingFailed(recovery_seconds=self.fault_model.pairing_failure_recovery))
                logger.error("Pairing failed (simulated)")
            else:
                self._active_fault = None
                self._status = ConnectionStatus.CONNECTED
                self.listener.pairing_succeeded()
                self.listener.connection_established()
                logger.info("Pairing completed successfully (simulated)")
            self.listener.state_changed()

    def _apply_fault(self, fault: Fault) -> Fault:
        now = self.scheduler.now()

        if isinstance(fault, DataCorruption):
            # Instantaneous: nothing to revert, the active fault slot is left alone
            reading_id = self.listener.data_corrupted()
            fault = replace(fault, reading_id=reading_id)
            logger.warning("Simulated error: data corruption")
            self.listener.fault_raised(fault)
            return fault

        token = next(self._fault_tokens)
        if isinstance(fault, SignalLoss):
            self._active_fault = FaultState(fault, token, now, self._due(fault.recovery_seconds))
            if self._status in (ConnectionStatus.CONNECTED, ConnectionStatus.INTERMITTENT):
                self._status = ConnectionStatus.INTERMITTENT
            self.scheduler.schedule(fault.recovery_seconds, self._recover_signal, token, name="recover_signal")
            logger.warning(f"Simulated error: signal loss (recovery in {fault.recovery_seconds:.0f}s)")
        elif isinstance(fault, (PairingFailed, ConnectionFailed)):
            self._active_fault = FaultState(fault, token, now, self._due(fault.recovery_seconds))
            self._status = ConnectionStatus.ERROR
            self.scheduler.schedule(fault.recovery_seconds, self._recover_to_disconnected, token,
                                    name=f"recover_{fault.kind.value}")
            logger.warning(f"Simulated error: {fault.kind.value}")
        elif isinstance(fault, SensorExpired):
            self._active_fault = FaultState(fault, token, now)
            self._status = ConnectionStatus.ERROR
            self.listener.sensor_expired()
            logger.warning("Simulated error: sensor expired")
        else:
            raise TypeError(f"Unsupported fault: {fault!r}")

        self.listener.fault_raised(fault)
        return fault

    def _due(self, seconds: float) -> datetime:
        return self.scheduler.now() + timedelta(seconds=seconds)

    def _is_active(self, token: int) -> bool:
        return self._active_fault is not None and self._active_fault.token == token

    def _recover_signal(self, token: int):
        if not self._is_active(token):
            logger.debug("Signal recovery skipped, superseded by a newer fault")
            return
        with self.event_hub.batch():
            self._active_fault = None
            if self._status == ConnectionStatus.INTERMITTENT:
                self._status = ConnectionStatus.CONNECTED
                self.listener.link_restored()
                logger.info("Signal recovered")
            elif self._status == ConnectionStatus.ERROR:
                # The error's own recovery was superseded by this fault
                self._status = ConnectionStatus.DISCONNECTED
                self.listener.connection_lost()
                logger.info("Signal loss cleared, reset to disconnected")
            else:
                logger.info(f"Signal loss cleared while {self._status.value}")
            self.listener.state_changed()

    def _recover_to_disconnected(self, token: int):
        if not self._is_active(token):
            logger.debug("Fault recovery skipped, superseded by a newer fault")
            return
        with self.event_hub.batch():
            kind = self._active_fault.kind
            self._active_fault = None
            if self._status == ConnectionStatus.ERROR:
                self._status = ConnectionStatus.DISCONNECTED
                self.listener.connection_lost()
            logger.info(f"Reset after {kind.value}")
            self.listener.state_changed()
