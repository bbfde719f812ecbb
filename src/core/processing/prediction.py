from datetime import datetime, timedelta
from typing import List, Sequence

from core.models.reading import PredictedPoint, Reading
from core.processing.trend import regression_trend


CURVE_MINUTES = 30
FORECAST_HORIZON_MINUTES = 30
FORECAST_STEP_MINUTES = 5


def time_of_day_factor(hour: int) -> float:
    """Reduced-magnitude time-of-day correction applied to longer forecasts."""
    if 4 <= hour <= 8:  # dawn phenomenon
        return (hour - 4) * 2.0
    if hour in (12, 13, 18, 19):  # post-meal peaks
        return 5.0
    if hour >= 22 or hour <= 3:
        return -3.0
    return 0.0


def build_prediction_curve(last_value: float, rate: float, now: datetime,
                           minutes: int = CURVE_MINUTES) -> List[PredictedPoint]:
    """One point per future minute 1..minutes, valued last_value + rate * minute. Not clamped."""
    return [
        PredictedPoint(timestamp=now + timedelta(minutes=minute), value=last_value + rate * minute)
        for minute in range(1, minutes + 1)
    ]


def forecast(current_value: float, recent_readings: Sequence[Reading], now: datetime,
             minutes_ahead: int = FORECAST_HORIZON_MINUTES, step: int = FORECAST_STEP_MINUTES,
             apply_time_of_day: bool = True) -> List[PredictedPoint]:
    """
    Forecast every ``step`` minutes up to ``minutes_ahead`` using the 4-point
    regression trend, plus the time-of-day factor of each predicted instant.
    """
    if step <= 0:
        raise ValueError(f"step must be positive, got {step}")
    if minutes_ahead < 0:
        raise ValueError(f"minutes_ahead must be >= 0, got {minutes_ahead}")
    rate = regression_trend(recent_readings)
    points: List[PredictedPoint] = []
    for minute in range(step, minutes_ahead + 1, step):
        predicted_time = now + timedelta(minutes=minute)
        value = current_value + rate * minute
        if apply_time_of_day:
            value += time_of_day_factor(predicted_time.hour)
        points.append(PredictedPoint(timestamp=predicted_time, value=value))
    return points
