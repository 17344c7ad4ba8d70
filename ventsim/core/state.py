from dataclasses import dataclass
from typing import Optional, Tuple

from .constants import DEFAULT_DT, HISTORY_WINDOW_SEC, PRESSURE_RESPONSE_TAU
from .enums import BreathPhase


@dataclass
class SimulationConfig:
    """Configuration for the simulation engine."""
    dt: float = DEFAULT_DT  # Time step in seconds

    # Model selection.
    model: str = "basic"            # 'basic' (single compartment) or 'advanced'
    unit_count: int = 10            # Alveolar units in the advanced model
    lung_preset: str = "normal"     # 'normal', 'ards', 'copd', 'asthma'
    ards_severity: Optional[str] = None  # 'mild', 'moderate', 'severe'

    # History retention (seconds of simulated time).
    history_window_sec: float = HISTORY_WINDOW_SEC

    # First-order airway pressure lag (s); 0 delivers the target directly.
    pressure_response_tau: float = PRESSURE_RESPONSE_TAU

    # Runtime settings.
    simulation_speed: float = 1.0   # Real-time multiplier
    driver_interval: float = 0.05   # Seconds between driver wake-ups
    rng_seed: Optional[int] = None  # None = deterministic unit properties


@dataclass(frozen=True, slots=True)
class UnitSnapshot:
    """Per-unit recruitment state at one instant."""
    id: int
    is_open: bool
    volume: float       # mL above baseline
    perfusion: float = 1.0


@dataclass(frozen=True, slots=True)
class SimulationSnapshot:
    """Immutable snapshot of the simulation state at a specific time."""
    time: float = 0.0
    phase: BreathPhase = BreathPhase.EXPIRATION

    # Airway.
    airway_pressure: float = 0.0    # Delivered Paw (cmH2O)
    target_pressure: float = 0.0    # Generator target before lag (cmH2O)

    # Lung.
    total_volume: float = 0.0       # mL
    total_flow: float = 0.0         # mL/s, positive = inspiration
    tidal_volume: float = 0.0       # mL above baseline

    # Advanced model only; empty for the single compartment.
    units: Tuple[UnitSnapshot, ...] = ()

    @property
    def flow_l_min(self) -> float:
        """Flow in L/min for display."""
        return self.total_flow * 60.0 / 1000.0

    @property
    def recruited_count(self) -> int:
        return sum(1 for u in self.units if u.is_open)
