from pathlib import Path
import sys

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

import pytest

from ventsim.core.engine import SimulationEngine
from ventsim.core.state import SimulationConfig
from ventsim.patient.patient import PatientParameters


DEFAULT_PATIENT = dict(compliance=50.0, resistance=10.0, residual_volume=1000.0)


@pytest.fixture
def patient():
    """Standard adult mechanics used across most tests."""
    return PatientParameters(**DEFAULT_PATIENT)


@pytest.fixture
def engine_factory(patient):
    """Build engines with the standard patient and optional config overrides."""
    created = []

    def _factory(config=None, **config_overrides):
        if config is None:
            config = SimulationConfig(**config_overrides)
        engine = SimulationEngine(config, patient=patient)
        created.append(engine)
        return engine

    yield _factory
    for engine in created:
        engine.pause()


@pytest.fixture
def basic_engine(engine_factory):
    """Engine with the single-compartment model."""
    return engine_factory(model="basic")


@pytest.fixture
def advanced_engine(engine_factory):
    """Engine with the multi-compartment model (normal lungs)."""
    return engine_factory(model="advanced")


@pytest.fixture
def advance_time():
    """Helper to advance engines using consistent step handling."""
    def _advance(engine, seconds, dt=0.01):
        steps = int(round(seconds / dt))
        snapshot = None
        for _ in range(steps):
            snapshot = engine.tick(dt)
        return snapshot

    return _advance
