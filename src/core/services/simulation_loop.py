import logging
from datetime import datetime
from typing import Callable, Optional, Tuple

from core.event_hub import READING_CREATED, EventHub
from core.fault_model import FaultModel
from core.models.connection_status import ConnectionStatus
from core.models.device import Device
from core.models.fault import SensorExpired
from core.models.reading import PredictedPoint, Reading
from core.models.reading_history import ReadingHistory
from core.processing.prediction import CURVE_MINUTES, build_prediction_curve
from core.processing.trend import CURVE_MIN_POINTS, curve_trend
from core.reading_generator import ReadingGenerator
from core.scheduler import ScheduledTask, Scheduler
from core.services.connection_manager import ConnectionStateMachine
from core.services.sensor_lifecycle import SensorLifecycleManager

logger = logging.getLogger(__name__)

DEFAULT_TICK_INTERVAL = 60.0


class SimulationLoop:
    """
    Periodic reading generation.
    Each tick: expiration check, fault draw, then either a fault transition
    or a new reading followed by a fresh prediction curve.
    """

    def __init__(self, scheduler: Scheduler, connection: ConnectionStateMachine,
                 lifecycle: SensorLifecycleManager, fault_model: FaultModel,
                 generator: ReadingGenerator, history: ReadingHistory, event_hub: EventHub,
                 interval: float = DEFAULT_TICK_INTERVAL, enabled: bool = True,
                 prediction_minutes: int = CURVE_MINUTES,
                 on_update: Optional[Callable[[], None]] = None):
        self.scheduler = scheduler
        self.connection = connection
        self.lifecycle = lifecycle
        self.fault_model = fault_model
        self.generator = generator
        self.history = history
        self.event_hub = event_hub
        self.interval = interval
        self.enabled = enabled
        self.prediction_minutes = prediction_minutes
        self.on_update = on_update
        self.last_reading: Optional[Reading] = None
        self.prediction_curve: Tuple[PredictedPoint, ...] = ()
        self._task: Optional[ScheduledTask] = None

    @property
    def running(self) -> bool:
        """The periodic tick is scheduled. Ticks are no-ops unless the link is connected."""
        return self._task is not None and self._task.active

    @property
    def generating(self) -> bool:
        return self.running and self.connection.status == ConnectionStatus.CONNECTED

    def start(self, immediate: bool = True):
        """(Re)start the periodic tick. The first reading is generated right away unless immediate is False."""
        if not self.enabled:
            logger.info("Simulation disabled, periodic generation not started")
            return
        self.stop()
        self._task = self.scheduler.schedule_periodic(self.interval, self.tick, name="simulation_tick")
        logger.info(f"Started data simulation with interval: {self.interval}s")
        if immediate:
            self.tick()

    def resume(self):
        """Start ticking again without an immediate reading, if not already running."""
        if not self.running:
            self.start(immediate=False)

    def stop(self):
        if self._task is None:
            return
        self.scheduler.cancel(self._task)
        self._task = None
        logger.info("Stopped data simulation")

    def set_enabled(self, enabled: bool):
        with self.event_hub.batch():
            self.enabled = enabled
            if not enabled:
                self.stop()
            elif self.connection.status == ConnectionStatus.CONNECTED and not self.running:
                self.start()

    def tick(self):
        """One generation cycle. Does nothing unless connected with an active device."""
        with self.event_hub.batch():
            self._tick()

    def _tick(self):
        if self.connection.status != ConnectionStatus.CONNECTED:
            return
        device = self.lifecycle.active_device
        if device is None:
            return
        now = self.scheduler.now()

        if self.lifecycle.check_expiration(now):
            logger.info(f"Sensor {device.id} reached its expiration time")
            self.connection.raise_fault(SensorExpired(device_id=device.id))
            return

        fault = self.fault_model.draw(device_id=device.id)
        if fault is not None:
            self.connection.raise_fault(fault)
            return

        self.generate_reading(device, now)

    def generate_reading(self, device: Device, now: datetime) -> Reading:
        reading = self.generator.generate(device.id, now, self.history.latest)
        self._record(reading, now)
        self._recompute_predictions(now)
        self.lifecycle.touch(now)
        logger.info(f"Generated reading: {reading.value_mgdl:.1f} mg/dL")
        self._notify()
        return reading

    def record_corrupt_reading(self) -> Optional[Reading]:
        device = self.lifecycle.current_device
        if device is None:
            logger.warning("Data corruption with no sensor, no reading recorded")
            return None
        now = self.scheduler.now()
        reading = self.generator.corrupt_reading(device.id, now)
        self._record(reading, now)
        logger.info(f"Recorded uncertain reading: {reading.value_mgdl:.1f} mg/dL")
        return reading

    def _record(self, reading: Reading, now: datetime):
        self.history.append(reading, now)
        self.last_reading = reading
        self.event_hub.publish(READING_CREATED, reading)

    def _recompute_predictions(self, now: datetime):
        readings = self.history.snapshot()
        if len(readings) < CURVE_MIN_POINTS:
            self.prediction_curve = ()
            return
        rate = curve_trend(readings)
        self.prediction_curve = tuple(
            build_prediction_curve(readings[-1].value_mgdl, rate, now, self.prediction_minutes)
        )

    def _notify(self):
        if self.on_update is not None:
            self.on_update()
