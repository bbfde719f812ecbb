import random

import pytest

from core.fault_model import FaultModel
from core.models.fault import (
    ConnectionFailed,
    DataCorruption,
    FaultKind,
    PairingFailed,
    SensorExpired,
    SignalLoss,
)


class TestFaultModel:
    """Test the probability policy and fault construction."""

    def test_zero_probability_never_faults(self):
        model = FaultModel(0.0, random.Random(1))
        assert not any(model.should_fault() for _ in range(1000))
        assert model.draw() is None

    def test_full_probability_always_faults(self):
        model = FaultModel(1.0, random.Random(1))
        assert all(model.should_fault() for _ in range(1000))
        assert model.draw() is not None

    def test_rate_follows_probability(self):
        model = FaultModel(0.25, random.Random(42))
        hits = sum(model.should_fault() for _ in range(10000))
        assert 2200 < hits < 2800

    @pytest.mark.parametrize("value", [-0.01, 1.01])
    def test_probability_out_of_range(self, value):
        with pytest.raises(ValueError):
            FaultModel(value)
        model = FaultModel(0.1)
        with pytest.raises(ValueError):
            model.error_probability = value
        assert model.error_probability == pytest.approx(0.1)

    def test_make_fault_variants(self):
        model = FaultModel(rng=random.Random(3), pairing_failure_recovery=12, connection_failure_recovery=4)

        signal = model.make_fault(FaultKind.SIGNAL_LOSS)
        assert isinstance(signal, SignalLoss)
        assert signal.recovery_seconds in (30.0, 120.0, 300.0)
        assert isinstance(model.make_fault(FaultKind.DATA_CORRUPTION), DataCorruption)
        assert model.make_fault(FaultKind.PAIRING_FAILED) == PairingFailed(recovery_seconds=12)
        assert model.make_fault(FaultKind.CONNECTION_FAILED) == ConnectionFailed(recovery_seconds=4)
        assert model.make_fault(FaultKind.SENSOR_EXPIRED, device_id="dev-1") == SensorExpired(device_id="dev-1")

    def test_every_kind_is_drawn(self):
        model = FaultModel(1.0, random.Random(5))
        kinds = {model.draw().kind for _ in range(500)}
        assert kinds == set(FaultKind)
