"""
Multi-Compartment Alveolar Recruitment Model.

N independently gated alveolar units share one airway pressure. Each unit
sees the airway pressure minus a gravitational superimposed pressure that
grows toward the dorsal (dependent) lung:

    P_eff = Paw - position * gravity_pressure

Recruitment gate with hysteresis (evaluated before the volume update):
- closed and P_eff >= opening_pressure  -> open
- open and P_eff <= closing_pressure    -> closed

Open units fill toward (P_eff - PEEP) * compliance with a position-scaled
time constant; compliance is the unit's share of total lung compliance.
Closed units empty quickly, except air-trapped units which retain most
of their volume. Consolidated units keep the same gate but carry a
small share of compliance, so they add little volume once recruited.
"""

import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np

from ventsim.core.constants import TAU_CONVERSION, AlveolarTuning
from ventsim.core.enums import Pathology
from ventsim.core.errors import InvalidModelState, InvalidParameters
from ventsim.core.state import UnitSnapshot
from ventsim.core.utils import approach_fraction
from ventsim.physiology.resp_mech import LungState

logger = logging.getLogger(__name__)


@dataclass
class AlveolarUnit:
    """
    One lung compartment.

    compliance is this unit's share of total lung compliance (mL/cmH2O),
    never whole-lung compliance.
    """
    id: int
    position: float              # 0 = ventral .. 1 = dorsal
    opening_pressure: float      # cmH2O
    closing_pressure: float      # cmH2O
    compliance: float            # mL/cmH2O
    perfusion: float = 1.0       # Relative blood flow weight
    pathology: Pathology = Pathology.NORMAL
    is_open: bool = False
    volume: float = 0.0          # mL above baseline
    flow: float = 0.0            # mL/s

    def __post_init__(self):
        if not self.opening_pressure > self.closing_pressure:
            logger.error("Unit %d rejected: opening %.2f <= closing %.2f",
                         self.id, self.opening_pressure, self.closing_pressure)
            raise InvalidParameters(
                f"Unit {self.id}: opening_pressure ({self.opening_pressure}) must exceed "
                f"closing_pressure ({self.closing_pressure})"
            )
        if not self.compliance > 0:
            raise InvalidParameters(f"Unit {self.id}: compliance must be > 0 (got {self.compliance})")
        if not 0.0 <= self.position <= 1.0:
            raise InvalidParameters(f"Unit {self.id}: position must be within 0-1 (got {self.position})")
        if self.perfusion < 0:
            raise InvalidParameters(f"Unit {self.id}: perfusion must be >= 0 (got {self.perfusion})")

    def snapshot(self) -> UnitSnapshot:
        return UnitSnapshot(id=self.id, is_open=self.is_open, volume=self.volume,
                            perfusion=self.perfusion)


class MultiCompartmentLungModel:
    """
    Aggregate of alveolar units with recruitment hysteresis.

    Total volume = baseline_volume + sum(unit volumes);
    total flow = sum(unit flows).
    """

    def __init__(self, units: List[AlveolarUnit], resistance: float = 10.0,
                 baseline_volume: float = 0.0, tuning: AlveolarTuning = AlveolarTuning()):
        if not units:
            raise InvalidParameters("unit_count must be >= 1")
        if not resistance > 0:
            raise InvalidParameters(f"resistance must be > 0 (got {resistance})")
        if baseline_volume < 0:
            raise InvalidParameters(f"baseline_volume must be >= 0 (got {baseline_volume})")
        self.units = units
        self.resistance = resistance
        self.baseline_volume = baseline_volume
        self.tuning = tuning
        self.state = LungState(volume=baseline_volume)

    @classmethod
    def from_preset(cls, kind, severity=None, unit_count: int = 10,
                    rng: Optional[np.random.Generator] = None,
                    baseline_volume: float = 0.0,
                    tuning: AlveolarTuning = AlveolarTuning()) -> "MultiCompartmentLungModel":
        # Local import: lung_presets depends on AlveolarUnit defined here.
        from ventsim.physiology.lung_presets import build_lung_units

        units, resistance = build_lung_units(kind, severity, unit_count=unit_count,
                                             rng=rng, tuning=tuning)
        return cls(units, resistance=resistance, baseline_volume=baseline_volume, tuning=tuning)

    @property
    def unit_count(self) -> int:
        return len(self.units)

    @property
    def total_compliance(self) -> float:
        return sum(u.compliance for u in self.units)

    @property
    def base_time_constant(self) -> float:
        """Whole-lung RC time constant (s)."""
        return self.resistance * self.total_compliance * TAU_CONVERSION

    def superimposed_pressure(self, unit: AlveolarUnit) -> float:
        return unit.position * self.tuning.gravity_pressure

    def unit_time_constant(self, unit: AlveolarUnit) -> float:
        """Dependent units respond more slowly (0.8x ventral .. 1.2x dorsal)."""
        t = self.tuning
        return self.base_time_constant * (t.tau_position_base + unit.position * t.tau_position_gain)

    def step(self, paw: float, dt: float, peep: float = 0.0) -> LungState:
        """
        Advance all units by dt seconds under airway pressure paw (cmH2O).
        """
        if not self.units:
            raise InvalidModelState("Lung model has no alveolar units")
        state = self.state
        state.paw = paw
        if dt <= 0:
            return state

        t = self.tuning
        total_volume = 0.0
        total_flow = 0.0
        for unit in self.units:
            effective = paw - self.superimposed_pressure(unit)
            self._update_gate(unit, effective)

            previous = unit.volume
            if unit.is_open:
                # Negative transpulmonary pressure cannot drive volume below baseline.
                target = max(0.0, (effective - peep) * unit.compliance)
                unit.volume += (target - unit.volume) * approach_fraction(dt, self.unit_time_constant(unit))
            elif unit.pathology is Pathology.AIR_TRAPPED:
                unit.volume *= t.air_trapped_retention ** (dt / t.air_trapped_reference_dt)
            else:
                unit.volume *= math.exp(-dt / t.collapse_tau)

            unit.flow = (unit.volume - previous) / dt
            total_volume += unit.volume
            total_flow += unit.flow

        state.volume = self.baseline_volume + total_volume
        state.flow = total_flow
        state.tidal_volume = max(0.0, total_volume)
        return state

    def _update_gate(self, unit: AlveolarUnit, effective: float):
        if not unit.is_open and effective >= unit.opening_pressure:
            unit.is_open = True
            logger.debug("Unit %d recruited at %.2f cmH2O", unit.id, effective)
        elif unit.is_open and effective <= unit.closing_pressure:
            unit.is_open = False
            logger.debug("Unit %d derecruited at %.2f cmH2O", unit.id, effective)

    def unit_states(self) -> Tuple[UnitSnapshot, ...]:
        return tuple(u.snapshot() for u in self.units)
