"""
Ventilator Pressure Waveform Generator.

Maps simulated time to a target airway pressure for pressure-controlled
breaths and tracks the inspiration/expiration phase.

Waveform:
- Inspiration: curved ramp, Paw = PEEP + dP * progress**0.7
- Expiration: exponential decay from PIP toward PEEP,
  Paw = PIP - (PIP - PEEP) * (1 - exp(-5 * progress))
"""

import logging
import math
from dataclasses import dataclass, fields, replace

from ventsim.core.constants import (
    EXP_DECAY_RATE,
    INSP_RAMP_EXPONENT,
    SECONDS_PER_MINUTE,
)
from ventsim.core.enums import BreathPhase, VentMode, parse_enum
from ventsim.core.errors import InvalidSettings
from ventsim.core.utils import clamp01

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VentilatorSettings:
    """Ventilator settings storage."""
    mode: VentMode = VentMode.PCV
    driving_pressure: float = 15.0    # Inspiratory pressure above PEEP (cmH2O)
    peep: float = 5.0                 # PEEP (cmH2O)
    respiratory_rate: float = 15.0    # Breaths per minute
    ie_ratio: float = 0.5             # I:E as I/E (1:2 = 0.5)
    fio2: float = 0.4                 # Fraction inspired O2
    trigger_sensitivity: float = 2.0  # cmH2O (not used by the waveform)
    rise_time_ms: float = 100.0       # ms (carried for display, ramp is curved)

    @property
    def pip(self) -> float:
        """Peak inspiratory pressure (cmH2O)."""
        return self.peep + self.driving_pressure


@dataclass(frozen=True)
class PressureTarget:
    """Generator output for one instant."""
    pressure: float
    phase: BreathPhase
    phase_elapsed: float


_NUMERIC_SETTINGS = tuple(f.name for f in fields(VentilatorSettings) if f.name != "mode")


def validate_settings(settings: VentilatorSettings) -> None:
    """Raise InvalidSettings if the settings cannot drive a breath cycle."""
    for name in _NUMERIC_SETTINGS:
        value = getattr(settings, name)
        if not math.isfinite(value):
            raise InvalidSettings(f"{name} must be a finite number (got {value})")
    if not settings.respiratory_rate > 0:
        raise InvalidSettings(f"respiratory_rate must be > 0 (got {settings.respiratory_rate})")
    if not settings.ie_ratio > 0:
        raise InvalidSettings(f"ie_ratio must be > 0 (got {settings.ie_ratio})")
    if not 0.21 <= settings.fio2 <= 1.0:
        raise InvalidSettings(f"fio2 must be within 0.21-1.0 (got {settings.fio2})")
    for name in ("peep", "driving_pressure", "rise_time_ms", "trigger_sensitivity"):
        if getattr(settings, name) < 0:
            raise InvalidSettings(f"{name} must be >= 0 (got {getattr(settings, name)})")


_SETTING_NAMES = frozenset(f.name for f in fields(VentilatorSettings))


def merge_settings(settings: VentilatorSettings, changes: dict) -> VentilatorSettings:
    """
    Return a validated copy of settings with changes applied.

    The input object is never modified; on failure nothing is committed.
    """
    unknown = set(changes) - _SETTING_NAMES
    if unknown:
        raise InvalidSettings(f"Unknown ventilator setting(s): {', '.join(sorted(unknown))}")
    if "mode" in changes:
        try:
            changes = dict(changes, mode=parse_enum(VentMode, changes["mode"]))
        except ValueError as e:
            raise InvalidSettings(str(e)) from e
    candidate = replace(settings, **changes)
    validate_settings(candidate)
    return candidate


class VentilatorWaveformGenerator:
    """
    Pressure-control waveform state machine.

    States are INSPIRATION and EXPIRATION. The device idles in EXPIRATION
    (at PEEP) until the first query. Timing is derived from the settings
    and recomputed on every successful update.
    """

    def __init__(self, settings: VentilatorSettings = None):
        settings = settings if settings is not None else VentilatorSettings()
        validate_settings(settings)
        self.settings = settings

        self.period = 0.0
        self.inspiration_time = 0.0
        self.expiration_time = 0.0
        self._recompute_timing()

        # Phase bookkeeping (observability only).
        self.phase = BreathPhase.EXPIRATION
        self.breath_count = 0

    def _recompute_timing(self):
        s = self.settings
        self.period = SECONDS_PER_MINUTE / s.respiratory_rate
        ie_fraction = s.ie_ratio / (s.ie_ratio + 1.0)
        self.inspiration_time = self.period * ie_fraction
        self.expiration_time = self.period - self.inspiration_time

    def update_settings(self, **changes) -> VentilatorSettings:
        """
        Apply a partial settings update.

        Raises InvalidSettings and keeps the previous settings when the
        merged result is invalid.
        """
        self.settings = merge_settings(self.settings, changes)
        self._recompute_timing()
        if self.settings.mode is not VentMode.PCV:
            logger.warning("Mode %s is not modelled; using pressure-control waveform",
                           self.settings.mode.value)
        logger.debug("Breath timing: period %.3fs, insp %.3fs, exp %.3fs",
                     self.period, self.inspiration_time, self.expiration_time)
        return self.settings

    def get_target_pressure(self, time: float) -> PressureTarget:
        """
        Target airway pressure at simulated time (s).

        Depends only on time and the current settings; the stored phase
        and breath counter are bookkeeping for display.
        """
        s = self.settings
        cycle_time = math.fmod(time, self.period)
        if cycle_time < 0:
            cycle_time += self.period

        if cycle_time < self.inspiration_time:
            phase = BreathPhase.INSPIRATION
            elapsed = cycle_time
            progress = clamp01(cycle_time / self.inspiration_time)
            pressure = s.peep + s.driving_pressure * progress ** INSP_RAMP_EXPONENT
        else:
            phase = BreathPhase.EXPIRATION
            elapsed = cycle_time - self.inspiration_time
            progress = clamp01(elapsed / self.expiration_time) if self.expiration_time > 0 else 1.0
            pip = s.pip
            pressure = pip - (pip - s.peep) * (1.0 - math.exp(-EXP_DECAY_RATE * progress))

        if phase is BreathPhase.INSPIRATION and self.phase is BreathPhase.EXPIRATION:
            self.breath_count += 1
        self.phase = phase
        return PressureTarget(pressure=pressure, phase=phase, phase_elapsed=elapsed)
