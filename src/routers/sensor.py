from typing import Iterable, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from core.models.connection_status import ConnectionStatus
from core.models.device import Device
from core.models.fault import FaultState
from core.models.reading import PredictedPoint, Reading
from core.services.sensor_engine import SensorEngine
from schemas import (
    DeviceOut,
    EngineStateOut,
    FaultOut,
    FaultRequest,
    PredictedPointOut,
    PredictionList,
    ReadingOut,
    ReadingsList,
    SimulationSettings,
)

router = APIRouter(prefix="/sensor", tags=["sensor"])

ENGINE_UNAVAILABLE = {
    503: {
        "description": "The sensor engine is not running.",
        "content": {
            "application/json": {
                "example": {"detail": "Sensor engine is not running"}
            }
        }
    }
}


def get_engine(request: Request) -> SensorEngine:
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(status_code=503, detail="Sensor engine is not running")
    return engine


def _reading_out(reading: Reading) -> ReadingOut:
    return ReadingOut(
        id=reading.id,
        timestamp=reading.timestamp,
        value_mgdl=reading.value_mgdl,
        value_mmol=reading.value_mmol,
        source_device_id=reading.source_device_id,
        quality=reading.quality,
        is_simulated=reading.is_simulated,
    )


def _device_out(device: Device) -> DeviceOut:
    return DeviceOut(
        id=device.id,
        name=device.name,
        battery_level=device.battery_level,
        serial_number=device.serial_number,
        firmware_version=device.firmware_version,
        activation_instant=device.activation_instant,
        expiration_instant=device.expiration_instant,
        last_connection_instant=device.last_connection_instant,
        status=device.status,
        is_current=device.is_current,
    )


def _fault_out(fault: FaultState) -> FaultOut:
    return FaultOut(kind=fault.kind, raised_at=fault.raised_at, clears_at=fault.clears_at)


def _points(points: Iterable[PredictedPoint]) -> list[PredictedPointOut]:
    return [PredictedPointOut(timestamp=p.timestamp, value=p.value) for p in points]


@router.get("/state", response_model=EngineStateOut, responses=ENGINE_UNAVAILABLE)
async def get_state(engine: SensorEngine = Depends(get_engine)) -> EngineStateOut:
    """
    Get the published state of the simulated sensor: connectivity, current
    device, latest reading, active fault and the live prediction curve.
    """
    state = engine.snapshot()
    return EngineStateOut(
        connection_status=state.connection_status,
        current_device=_device_out(state.current_device) if state.current_device else None,
        last_reading=_reading_out(state.last_reading) if state.last_reading else None,
        active_fault=_fault_out(state.active_fault) if state.active_fault else None,
        error_probability=state.error_probability,
        simulation_enabled=state.simulation_enabled,
        generating=state.generating,
        history_size=len(state.reading_history),
        prediction_curve=_points(state.prediction_curve),
    )


@router.get("/readings", response_model=ReadingsList, responses=ENGINE_UNAVAILABLE)
async def get_readings(
    limit: Optional[int] = Query(default=None, ge=1, description="Only the most recent N readings"),
    engine: SensorEngine = Depends(get_engine),
) -> ReadingsList:
    """Readings of the trailing 24 hours, oldest first."""
    readings = engine.reading_history
    if limit is not None:
        readings = readings[-limit:]
    return ReadingsList(list=[_reading_out(r) for r in readings])


@router.get("/prediction", response_model=PredictionList, responses=ENGINE_UNAVAILABLE)
async def get_prediction(engine: SensorEngine = Depends(get_engine)) -> PredictionList:
    """Prediction curve recomputed after the last reading (one point per minute)."""
    return PredictionList(list=_points(engine.prediction_curve))


@router.get("/forecast", response_model=PredictionList, responses=ENGINE_UNAVAILABLE)
async def get_forecast(
    minutes_ahead: int = Query(default=30, ge=0, le=240),
    time_of_day: bool = Query(default=True, description="Apply the time-of-day correction"),
    engine: SensorEngine = Depends(get_engine),
) -> PredictionList:
    """Forecast every 5 minutes up to ``minutes_ahead`` from the 4 most recent readings."""
    return PredictionList(list=_points(engine.forecast(minutes_ahead, apply_time_of_day=time_of_day)))


@router.put("/connect", status_code=204, responses=ENGINE_UNAVAILABLE)
async def connect(engine: SensorEngine = Depends(get_engine)) -> None:
    """
    Start connecting to the current sensor. The outcome (connected or error)
    is observed through GET /state once the connection delay has elapsed.
    """
    engine.connect()


@router.put("/disconnect", status_code=204, responses=ENGINE_UNAVAILABLE)
async def disconnect(engine: SensorEngine = Depends(get_engine)) -> None:
    """Disconnect and stop periodic reading generation."""
    engine.disconnect()


@router.put("/pair", status_code=204, responses=ENGINE_UNAVAILABLE)
async def pair(engine: SensorEngine = Depends(get_engine)) -> None:
    """Start pairing a brand-new sensor."""
    engine.start_pairing()


@router.put("/fault", status_code=204, responses=ENGINE_UNAVAILABLE)
async def simulate_fault(payload: Optional[FaultRequest] = None,
                         engine: SensorEngine = Depends(get_engine)) -> None:
    """Force a fault. A random kind is picked when none is given."""
    engine.simulate_fault(payload.kind if payload else None)


@router.put("/expire", status_code=204, responses=ENGINE_UNAVAILABLE)
async def simulate_expiration(engine: SensorEngine = Depends(get_engine)) -> None:
    """Expire the current sensor now."""
    engine.simulate_expiration()


@router.put("/reading", status_code=204, responses={
    409: {
        "description": "The sensor is not connected.",
        "content": {
            "application/json": {
                "example": {"detail": "Sensor is not connected"}
            }
        }
    },
    **ENGINE_UNAVAILABLE,
})
async def generate_reading(engine: SensorEngine = Depends(get_engine)) -> None:
    """Run one generation cycle immediately (pull-to-refresh)."""
    if engine.connection_status != ConnectionStatus.CONNECTED:
        raise HTTPException(status_code=409, detail="Sensor is not connected")
    engine.generate_one_reading()


@router.put("/settings", status_code=204, responses=ENGINE_UNAVAILABLE)
async def update_settings(settings: SimulationSettings, engine: SensorEngine = Depends(get_engine)) -> None:
    """Update simulation settings. error_probability must be within [0, 0.5]."""
    try:
        if settings.error_probability is not None:
            engine.set_error_probability(settings.error_probability)
        if settings.simulation_enabled is not None:
            engine.set_simulation_enabled(settings.simulation_enabled)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
