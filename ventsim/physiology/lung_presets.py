"""
Alveolar unit set construction for lung pathology presets.

Unit properties are deterministic functions of position (0 = ventral,
1 = dorsal), interpolated across each preset's range. Passing a numpy
Generator adds bounded random jitter around those values for visual
variety; the hysteresis invariant (opening > closing) is preserved.
"""

import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np

from ventsim.core.constants import AlveolarTuning
from ventsim.core.enums import ArdsSeverity, LungPreset, Pathology, parse_enum
from ventsim.core.errors import InvalidParameters
from ventsim.core.utils import lerp
from ventsim.physiology.alveolar import AlveolarUnit

logger = logging.getLogger(__name__)

# Minimum opening-closing gap kept when jitter is applied (cmH2O)
MIN_HYSTERESIS = 0.25

# Jitter half-width as a fraction of each range
JITTER_FRACTION = 0.1


@dataclass(frozen=True)
class PresetProfile:
    """Per-preset ranges as (ventral, dorsal) end points."""
    opening: Tuple[float, float]        # cmH2O
    closing: Tuple[float, float]        # cmH2O
    compliance: Tuple[float, float]     # Whole-lung mL/cmH2O, split across units
    perfusion: Tuple[float, float] = (0.5, 1.5)
    resistance: float = 10.0            # cmH2O*s/L


PRESET_PROFILES = {
    LungPreset.NORMAL: PresetProfile(opening=(2.0, 5.0), closing=(1.0, 3.0),
                                     compliance=(60.0, 40.0)),
    # ARDS thresholds are further scaled by severity.
    LungPreset.ARDS: PresetProfile(opening=(4.0, 10.0), closing=(2.0, 6.0),
                                   compliance=(30.0, 10.0), resistance=12.0),
    LungPreset.COPD: PresetProfile(opening=(1.0, 3.0), closing=(0.5, 1.5),
                                   compliance=(120.0, 80.0), resistance=20.0),
    LungPreset.ASTHMA: PresetProfile(opening=(5.0, 15.0), closing=(2.0, 8.0),
                                     compliance=(60.0, 30.0), resistance=25.0),
}

ARDS_PRESSURE_FACTOR = {
    ArdsSeverity.MILD: 1.5,
    ArdsSeverity.MODERATE: 2.0,
    ArdsSeverity.SEVERE: 3.0,
}

# Fraction of the most dorsal units consolidated at construction
ARDS_CONSOLIDATED_FRACTION = {
    ArdsSeverity.MILD: 0.1,
    ArdsSeverity.MODERATE: 0.2,
    ArdsSeverity.SEVERE: 0.4,
}

# COPD: every third unit (starting at index 1) traps air
COPD_AIR_TRAPPED_STRIDE = 3


def unit_position(index: int, unit_count: int) -> float:
    """Evenly spaced position in [0, 1]; a single unit sits at 0."""
    if unit_count <= 1:
        return 0.0
    return index / (unit_count - 1)


def consolidated_count(severity: ArdsSeverity, unit_count: int) -> int:
    """
    Number of dorsal units consolidated for an ARDS severity.

    Severe ARDS always consolidates at least one unit, so it stays worse
    than mild even for very small unit counts.
    """
    count = int(math.floor(ARDS_CONSOLIDATED_FRACTION[severity] * unit_count + 0.5))
    if severity is ArdsSeverity.SEVERE and unit_count >= 1:
        count = max(count, 1)
    return count


def _sample(bounds: Tuple[float, float], position: float, rng: Optional[np.random.Generator]) -> float:
    value = lerp(bounds[0], bounds[1], position)
    if rng is not None:
        half_width = JITTER_FRACTION * abs(bounds[1] - bounds[0])
        value += rng.uniform(-half_width, half_width)
    return value


def build_lung_units(kind, severity=None, unit_count: int = 10,
                     rng: Optional[np.random.Generator] = None,
                     tuning: AlveolarTuning = AlveolarTuning()) -> Tuple[List[AlveolarUnit], float]:
    """
    Build a complete alveolar unit set for a preset.

    Args:
        kind: LungPreset or its name ("normal", "ards", "copd", "asthma")
        severity: ArdsSeverity or name, ARDS only (default moderate)
        unit_count: Number of units (>= 1)
        rng: Optional numpy Generator for jittered properties
        tuning: Alveolar tuning constants

    Returns:
        (units, airway resistance in cmH2O*s/L)
    """
    try:
        kind = parse_enum(LungPreset, kind)
        if kind is LungPreset.ARDS:
            severity = parse_enum(ArdsSeverity, severity) if severity is not None else ArdsSeverity.MODERATE
        elif severity is not None:
            raise ValueError(f"severity applies only to ARDS (got {severity!r} for {kind.value})")
    except ValueError as e:
        raise InvalidParameters(str(e)) from e
    if unit_count < 1:
        raise InvalidParameters(f"unit_count must be >= 1 (got {unit_count})")

    profile = PRESET_PROFILES[kind]
    pressure_factor = ARDS_PRESSURE_FACTOR[severity] if kind is LungPreset.ARDS else 1.0
    n_consolidated = consolidated_count(severity, unit_count) if kind is LungPreset.ARDS else 0

    units = []
    for i in range(unit_count):
        position = unit_position(i, unit_count)
        opening = _sample(profile.opening, position, rng) * pressure_factor
        closing = _sample(profile.closing, position, rng) * pressure_factor
        closing = min(closing, opening - MIN_HYSTERESIS)
        compliance = max(_sample(profile.compliance, position, rng), 1.0) / unit_count
        perfusion = max(_sample(profile.perfusion, position, rng), 0.0)

        pathology = Pathology.NORMAL
        if i >= unit_count - n_consolidated:
            pathology = Pathology.CONSOLIDATED
            compliance *= tuning.consolidated_compliance_factor
        elif kind is LungPreset.COPD and i % COPD_AIR_TRAPPED_STRIDE == 1:
            pathology = Pathology.AIR_TRAPPED

        units.append(AlveolarUnit(
            id=i,
            position=position,
            opening_pressure=opening,
            closing_pressure=closing,
            compliance=compliance,
            perfusion=perfusion,
            pathology=pathology,
        ))

    label = kind.value if severity is None else f"{kind.value} ({severity.value})"
    logger.info("Created %d lung units for %s model", unit_count, label)
    return units, profile.resistance
