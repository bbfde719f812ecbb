from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from core.models.connection_status import ConnectionStatus
from core.models.device import DeviceStatus
from core.models.fault import FaultKind
from core.models.reading import ReadingQuality

# The UI exposes a narrower range than the engine accepts
MAX_UI_ERROR_PROBABILITY = 0.5


class AppHealthOK(BaseModel):
    status: str
    app: str


class ReadingOut(BaseModel):
    id: str
    timestamp: datetime
    value_mgdl: float
    value_mmol: float
    source_device_id: str
    quality: ReadingQuality
    is_simulated: bool


class ReadingsList(BaseModel):
    list: List[ReadingOut]


class PredictedPointOut(BaseModel):
    timestamp: datetime
    value: float


class PredictionList(BaseModel):
    list: List[PredictedPointOut]


class DeviceOut(BaseModel):
    id: str
    name: str
    battery_level: float
    serial_number: str
    firmware_version: str
    activation_instant: Optional[datetime] = None
    expiration_instant: Optional[datetime] = None
    last_connection_instant: Optional[datetime] = None
    status: DeviceStatus
    is_current: bool


class FaultOut(BaseModel):
    kind: FaultKind
    raised_at: datetime
    clears_at: Optional[datetime] = None


class EngineStateOut(BaseModel):
    connection_status: ConnectionStatus
    current_device: Optional[DeviceOut] = None
    last_reading: Optional[ReadingOut] = None
    active_fault: Optional[FaultOut] = None
    error_probability: float
    simulation_enabled: bool
    generating: bool
    history_size: int
    prediction_curve: List[PredictedPointOut]


class FaultRequest(BaseModel):
    kind: Optional[FaultKind] = None


class SimulationSettings(BaseModel):
    simulation_enabled: Optional[bool] = None
    error_probability: Optional[float] = Field(default=None, ge=0.0, le=MAX_UI_ERROR_PROBABILITY)
