from dataclasses import dataclass
from typing import Optional, Tuple


@dataclass
class SimulatorConfig:
    # Durations are in seconds
    tick_interval: float = 60.0
    connect_delay: float = 2.0
    pairing_delay: float = 3.0
    error_probability: float = 0.05
    simulation_enabled: bool = True
    signal_loss_recovery: Tuple[float, ...] = (30.0, 120.0, 300.0)
    pairing_failure_recovery: float = 10.0
    connection_failure_recovery: float = 5.0
    sensor_lifetime_hours: float = 72.0
    history_window_hours: float = 24.0
    prediction_minutes: int = 30
    forecast_horizon_minutes: int = 30
    forecast_step_minutes: int = 5
    storage_dir: str = ""
    random_seed: Optional[int] = None

    def __post_init__(self):
        if not 0.0 <= self.error_probability <= 1.0:
            raise ValueError(f"error_probability must be within [0, 1], got {self.error_probability}")
        if self.tick_interval <= 0:
            raise ValueError(f"tick_interval must be positive, got {self.tick_interval}")
        if not self.signal_loss_recovery:
            raise ValueError("signal_loss_recovery needs at least one duration")
        self.signal_loss_recovery = tuple(float(s) for s in self.signal_loss_recovery)

