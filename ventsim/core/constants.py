"""
Physiological and Numerical Constants for VentSim.

This module centralizes magic numbers used throughout the simulation.

NOTE: Only add constants here that are ACTIVELY IMPORTED elsewhere.
"""

from dataclasses import dataclass

# Ventilator waveform (used in machine/ventilator.py).

# Exponent of the curved inspiratory ramp: peep + dP * progress**0.7
INSP_RAMP_EXPONENT = 0.7

# Expiratory decay rate toward PEEP (per unit of expiratory progress)
EXP_DECAY_RATE = 5.0

# Breath period = 60 / rate (bpm)
SECONDS_PER_MINUTE = 60.0

# Lung mechanics unit conversion (used in resp_mech.py, alveolar.py).
# tau (s) = R (cmH2O*s/L) * C (mL/cmH2O) * 0.001 (L/mL)
TAU_CONVERSION = 0.001

# Predicted lung volumes per kg ideal body weight (male reference).
TLC_PER_KG = 7.99
VC_PER_KG = 4.5
RV_PER_KG = 1.31
FRC_PER_KG = 2.4

# Engine defaults (used in state.py).
DEFAULT_DT = 0.01               # s
HISTORY_WINDOW_SEC = 10.0       # s of snapshots retained
PRESSURE_RESPONSE_TAU = 0.15    # s, airway pressure lag toward target

# Real-time driver (used in driver.py).
DRIVER_MAX_FRAME_SEC = 0.2      # Cap on wall-clock delta per wake-up
DRIVER_MAX_STEPS = 100          # Steps consumed per wake-up


@dataclass(frozen=True)
class AlveolarTuning:
    """Centralized multi-compartment lung tuning parameters."""
    # Superimposed (gravitational) pressure at the most dorsal unit (cmH2O)
    gravity_pressure: float = 5.0

    # Unit time constant multiplier: 0.8 ventral .. 1.2 dorsal
    tau_position_base: float = 0.8
    tau_position_gain: float = 0.4

    # Passive emptying of a collapsed unit (s)
    collapse_tau: float = 0.1

    # Air-trapped unit keeps this fraction per reference step
    air_trapped_retention: float = 0.9
    air_trapped_reference_dt: float = 0.01

    # Consolidated units lose most of their compliance
    consolidated_compliance_factor: float = 0.1
