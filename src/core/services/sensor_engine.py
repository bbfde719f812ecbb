"""
SensorEngine: composition of the simulated sensor components.

The application's composition root creates one engine and hands it to its
collaborators. Commands are fire-and-forget: their outcome is observed through
the published state (properties, ``snapshot()`` and event hub topics).
"""
import logging
import random
from dataclasses import dataclass
from datetime import timedelta
from typing import List, Optional, Tuple

from core.event_hub import DEVICE_CHANGED, FAULT_RAISED, STATE_CHANGED, EventHub
from core.fault_model import FaultModel
from core.models.config_data import SimulatorConfig
from core.models.connection_status import ConnectionStatus
from core.models.device import Device, DeviceStatus
from core.models.fault import Fault, FaultKind, FaultState, SensorExpired
from core.models.reading import PredictedPoint, Reading
from core.models.reading_history import ReadingHistory
from core.processing.prediction import forecast
from core.reading_generator import ReadingGenerator
from core.scheduler import Scheduler
from core.services.connection_manager import ConnectionStateMachine
from core.services.sensor_lifecycle import SensorLifecycleManager
from core.services.simulation_loop import SimulationLoop

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EngineState:
    """Immutable view of everything the engine publishes."""
    connection_status: ConnectionStatus
    current_device: Optional[Device]
    last_reading: Optional[Reading]
    reading_history: Tuple[Reading, ...]
    prediction_curve: Tuple[PredictedPoint, ...]
    active_fault: Optional[FaultState]
    error_probability: float
    simulation_enabled: bool
    generating: bool


class SensorEngine:
    def __init__(self, config: Optional[SimulatorConfig] = None, scheduler: Optional[Scheduler] = None,
                 event_hub: Optional[EventHub] = None, rng: Optional[random.Random] = None):
        self.config = config or SimulatorConfig()
        self.rng = rng or random.Random(self.config.random_seed)
        self.scheduler = scheduler or Scheduler()
        self.event_hub = event_hub or EventHub()

        self.fault_model = FaultModel(
            self.config.error_probability,
            self.rng,
            signal_loss_recovery=self.config.signal_loss_recovery,
            pairing_failure_recovery=self.config.pairing_failure_recovery,
            connection_failure_recovery=self.config.connection_failure_recovery,
        )
        self.generator = ReadingGenerator(self.rng)
        self.history = ReadingHistory(timedelta(hours=self.config.history_window_hours))
        self.lifecycle = SensorLifecycleManager(self.config.sensor_lifetime_hours, on_change=self._on_device_changed)
        self.connection = ConnectionStateMachine(
            self.scheduler,
            self.fault_model,
            listener=self,
            event_hub=self.event_hub,
            connect_delay=self.config.connect_delay,
            pairing_delay=self.config.pairing_delay,
        )
        self.loop = SimulationLoop(
            self.scheduler,
            self.connection,
            self.lifecycle,
            self.fault_model,
            self.generator,
            self.history,
            self.event_hub,
            interval=self.config.tick_interval,
            enabled=self.config.simulation_enabled,
            prediction_minutes=self.config.prediction_minutes,
            on_update=self.state_changed,
        )

    # Commands

    def connect(self) -> bool:
        device = self.lifecycle.current_device
        if device is not None and device.status == DeviceStatus.EXPIRED:
            logger.warning(f"Sensor {device.id} is expired, pair a new sensor first")
            return False
        return self.connection.connect()

    def disconnect(self):
        self.connection.disconnect()

    def start_pairing(self):
        self.connection.start_pairing()

    def simulate_fault(self, kind: Optional[FaultKind] = None) -> Fault:
        """Force a fault, bypassing the probability. Random kind unless one is given."""
        kind = kind or self.fault_model.pick_kind()
        device = self.lifecycle.current_device
        fault = self.fault_model.make_fault(kind, device_id=device.id if device else None)
        return self.connection.raise_fault(fault)

    def simulate_expiration(self):
        device = self.lifecycle.current_device
        self.connection.raise_fault(SensorExpired(device_id=device.id if device else None))

    def generate_one_reading(self):
        """Manual trigger of one generation cycle (e.g. pull-to-refresh)."""
        self.loop.tick()

    def set_simulation_enabled(self, enabled: bool):
        with self.event_hub.batch():
            self.loop.set_enabled(enabled)
            logger.info(f"Simulation {'enabled' if enabled else 'disabled'}")
            self.state_changed()

    def set_error_probability(self, probability: float):
        self.fault_model.error_probability = probability
        logger.info(f"Error probability set to {probability:.2f}")
        self.state_changed()

    def update_device_metadata(self, battery_level: Optional[float] = None,
                               firmware_version: Optional[str] = None) -> Optional[Device]:
        with self.event_hub.batch():
            device = self.lifecycle.replace_metadata(battery_level=battery_level, firmware_version=firmware_version)
            self.state_changed()
        return device.copy() if device else None

    def forecast(self, minutes_ahead: Optional[int] = None, apply_time_of_day: bool = True) -> List[PredictedPoint]:
        """Forecast from the latest reading using the 4-point regression trend."""
        latest = self.history.latest
        if latest is None:
            return []
        return forecast(
            latest.value_mgdl,
            self.history.snapshot(),
            self.scheduler.now(),
            minutes_ahead=self.config.forecast_horizon_minutes if minutes_ahead is None else minutes_ahead,
            step=self.config.forecast_step_minutes,
            apply_time_of_day=apply_time_of_day,
        )

    def shutdown(self):
        self.loop.stop()
        self.scheduler.clear()
        logger.info("Sensor engine stopped")

    # Published state

    @property
    def connection_status(self) -> ConnectionStatus:
        return self.connection.status

    @property
    def current_device(self) -> Optional[Device]:
        device = self.lifecycle.current_device
        return device.copy() if device else None

    @property
    def last_reading(self) -> Optional[Reading]:
        return self.loop.last_reading

    @property
    def reading_history(self) -> Tuple[Reading, ...]:
        return self.history.snapshot()

    @property
    def prediction_curve(self) -> Tuple[PredictedPoint, ...]:
        return self.loop.prediction_curve

    @property
    def active_fault(self) -> Optional[FaultState]:
        return self.connection.active_fault

    @property
    def error_probability(self) -> float:
        return self.fault_model.error_probability

    @property
    def simulation_enabled(self) -> bool:
        return self.loop.enabled

    def snapshot(self) -> EngineState:
        return EngineState(
            connection_status=self.connection_status,
            current_device=self.current_device,
            last_reading=self.last_reading,
            reading_history=self.reading_history,
            prediction_curve=self.prediction_curve,
            active_fault=self.active_fault,
            error_probability=self.error_probability,
            simulation_enabled=self.simulation_enabled,
            generating=self.loop.generating,
        )

    # ConnectionListener

    def connection_established(self):
        now = self.scheduler.now()
        if self.lifecycle.current_device is None:
            logger.info("No sensor paired yet, activating one")
            self.lifecycle.activate_new_device(now)
        else:
            self.lifecycle.touch(now)
        self.loop.start()

    def link_restored(self):
        self.loop.resume()

    def connection_lost(self):
        self.loop.stop()

    def pairing_succeeded(self):
        self.lifecycle.activate_new_device(self.scheduler.now())

    def sensor_expired(self):
        self.loop.stop()
        self.lifecycle.expire_current(self.scheduler.now())

    def data_corrupted(self) -> Optional[str]:
        reading = self.loop.record_corrupt_reading()
        return reading.id if reading else None

    def fault_raised(self, fault: Fault):
        self.event_hub.publish(FAULT_RAISED, fault)

    def state_changed(self):
        self.event_hub.publish(STATE_CHANGED, self.snapshot())

    def _on_device_changed(self, device: Device):
        self.event_hub.publish(DEVICE_CHANGED, device)
