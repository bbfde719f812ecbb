"""Pytest configuration and fixtures for test suite."""

import os
import random
from datetime import datetime, timedelta

import pytest

# Keep the app from writing readings into the project tree during tests
os.environ.setdefault("STORAGE_DIR", "")

from core.event_hub import EventHub
from core.models.config_data import SimulatorConfig
from core.models.reading import Reading, ReadingQuality
from core.scheduler import ManualClock, Scheduler
from core.services.sensor_engine import SensorEngine
from core.services.store import InMemoryStore, StoreWriter

# A Monday at 09:00 local time: outside every time-of-day effect window
START = datetime(2026, 3, 2, 9, 0).astimezone()


@pytest.fixture
def clock():
    return ManualClock(START)


@pytest.fixture
def scheduler(clock):
    return Scheduler(clock=clock)


@pytest.fixture
def make_engine():
    """Factory for engines on a manual clock with a seeded RNG."""
    def _make(error_probability: float = 0.0, seed: int = 7, start: datetime = START, **overrides) -> SensorEngine:
        config = SimulatorConfig(error_probability=error_probability, **overrides)
        return SensorEngine(
            config=config,
            scheduler=Scheduler(clock=ManualClock(start)),
            event_hub=EventHub(),
            rng=random.Random(seed),
        )
    return _make


@pytest.fixture
def engine(make_engine):
    return make_engine()


@pytest.fixture
def store(engine):
    store = InMemoryStore()
    StoreWriter(store, engine.event_hub).attach()
    return store


@pytest.fixture
def paired_engine(engine):
    """Engine with a freshly paired sensor and the first reading generated."""
    engine.start_pairing()
    engine.scheduler.advance(engine.config.pairing_delay)
    return engine


def make_readings(values, start: datetime = START, step_seconds: float = 60.0, device_id: str = "dev-1"):
    """Readings spaced ``step_seconds`` apart starting at ``start``."""
    return [
        Reading(
            timestamp=start + timedelta(seconds=i * step_seconds),
            value_mgdl=value,
            source_device_id=device_id,
            quality=ReadingQuality.GOOD,
        )
        for i, value in enumerate(values)
    ]
