"""
Breath-cycle monitoring values derived from snapshot history.
"""

from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np
import pandas as pd

from .constants import SECONDS_PER_MINUTE
from .state import SimulationSnapshot

# Pressure swing below which compliance is not reported (cmH2O)
MIN_DRIVING_DELTA = 0.5


@dataclass(frozen=True)
class BreathMetrics:
    """Monitor values over the most recent breath period."""
    peak_pressure: float = 0.0         # cmH2O
    mean_airway_pressure: float = 0.0  # cmH2O
    tidal_volume: float = 0.0          # mL (volume swing over the breath)
    dynamic_compliance: Optional[float] = None  # mL/cmH2O
    minute_volume: float = 0.0         # L/min
    recruited_units: int = 0
    unit_count: int = 0
    vq_ratio: Optional[float] = None


def history_to_frame(history: Sequence[SimulationSnapshot]) -> pd.DataFrame:
    """Tabulate snapshots (one row per tick) for analysis or plotting."""
    return pd.DataFrame({
        "time": [s.time for s in history],
        "phase": [s.phase.value for s in history],
        "airway_pressure": [s.airway_pressure for s in history],
        "target_pressure": [s.target_pressure for s in history],
        "total_volume": [s.total_volume for s in history],
        "total_flow": [s.total_flow for s in history],
        "tidal_volume": [s.tidal_volume for s in history],
        "recruited_units": [s.recruited_count for s in history],
    })


def vq_ratio(snapshot: SimulationSnapshot) -> Optional[float]:
    """
    Simplified V/Q: open-unit volume over total perfusion weight.

    Returns None for the single-compartment model (no units).
    """
    if not snapshot.units:
        return None
    ventilated = sum(u.volume for u in snapshot.units if u.is_open)
    perfused = sum(u.perfusion for u in snapshot.units)
    return ventilated / max(1.0, perfused)


def compute_breath_metrics(history: Sequence[SimulationSnapshot], peep: float,
                           respiratory_rate: float) -> BreathMetrics:
    """
    Compute monitor values over the last breath period of history.

    Args:
        history: Ordered snapshots (oldest first)
        peep: Set PEEP (cmH2O)
        respiratory_rate: Set rate (bpm), defines the breath window

    Returns:
        BreathMetrics (zeros when history is empty)
    """
    if not history:
        return BreathMetrics()

    latest = history[-1]
    period = SECONDS_PER_MINUTE / respiratory_rate if respiratory_rate > 0 else latest.time
    t = np.array([s.time for s in history])
    mask = t >= latest.time - period

    paw = np.array([s.airway_pressure for s in history])[mask]
    vol = np.array([s.total_volume for s in history])[mask]

    peak = float(np.max(paw))
    vt = float(np.max(vol) - np.min(vol))
    delta_p = peak - peep
    compliance = vt / delta_p if delta_p > MIN_DRIVING_DELTA else None

    return BreathMetrics(
        peak_pressure=peak,
        mean_airway_pressure=float(np.mean(paw)),
        tidal_volume=vt,
        dynamic_compliance=compliance,
        minute_volume=vt * respiratory_rate / 1000.0,
        recruited_units=latest.recruited_count,
        unit_count=len(latest.units),
        vq_ratio=vq_ratio(latest),
    )
