"""
Trend estimation: rate of glucose change in mg/dL per minute.

Two estimators exist with different windows:
- regression_trend: last 4 readings, used by the forecasting helper
- curve_trend: last 10 readings, used for the live prediction curve
"""
from typing import Sequence, Tuple

from core.models.reading import Reading

REGRESSION_WINDOW = 4
REGRESSION_MIN_POINTS = 4
CURVE_WINDOW = 10
CURVE_MIN_POINTS = 3


def least_squares_slope(points: Sequence[Tuple[float, float]]) -> float:
    """
    Ordinary least-squares slope of y over x:
    (nΣxy − ΣxΣy) / (nΣxx − (Σx)²). Returns 0.0 when x has no spread.
    """
    n = len(points)
    if n < 2:
        return 0.0
    sum_x = sum(x for x, _ in points)
    sum_y = sum(y for _, y in points)
    sum_xy = sum(x * y for x, y in points)
    sum_xx = sum(x * x for x, _ in points)
    denominator = n * sum_xx - sum_x * sum_x
    if denominator == 0:
        return 0.0
    return (n * sum_xy - sum_x * sum_y) / denominator


def rate_per_minute(readings: Sequence[Reading]) -> float:
    """OLS slope of value against timestamp seconds, converted to per minute."""
    if not readings:
        return 0.0
    # x relative to the first reading keeps the sums small enough for float precision
    origin = readings[0].timestamp
    points = [((r.timestamp - origin).total_seconds(), r.value_mgdl) for r in readings]
    return least_squares_slope(points) * 60


def _windowed_rate(readings: Sequence[Reading], window: int, min_points: int) -> float:
    recent = list(readings)[-window:]
    if len(recent) < min_points:
        return 0.0
    return rate_per_minute(recent)


def regression_trend(readings: Sequence[Reading]) -> float:
    return _windowed_rate(readings, REGRESSION_WINDOW, REGRESSION_MIN_POINTS)


def curve_trend(readings: Sequence[Reading]) -> float:
    return _windowed_rate(readings, CURVE_WINDOW, CURVE_MIN_POINTS)
