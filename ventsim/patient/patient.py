import math
from dataclasses import dataclass, field, fields, replace
from typing import Optional

from ventsim.core.constants import (
    FRC_PER_KG, RV_PER_KG, TAU_CONVERSION, TLC_PER_KG, VC_PER_KG
)
from ventsim.core.errors import InvalidParameters


@dataclass
class PatientParameters:
    """
    Single-compartment patient mechanics and predicted lung volumes.

    residual_volume defaults to the predicted FRC and is reset to it
    whenever ideal_body_weight changes.
    """
    compliance: float = 50.0          # mL/cmH2O
    resistance: float = 10.0          # cmH2O*s/L
    ideal_body_weight: float = 70.0   # kg
    residual_volume: Optional[float] = None  # mL (baseline lung volume)

    # Derived parameters (computed post-init)
    predicted_tlc: float = field(default=0.0, init=False)
    predicted_vc: float = field(default=0.0, init=False)
    predicted_rv: float = field(default=0.0, init=False)
    predicted_frc: float = field(default=0.0, init=False)

    def __post_init__(self):
        self.validate()
        self._calculate_predicted()
        if self.residual_volume is None:
            self.residual_volume = self.predicted_frc

    def _calculate_predicted(self):
        """Predicted TLC, VC, RV and FRC (mL) from IBW."""
        ibw = self.ideal_body_weight
        self.predicted_tlc = TLC_PER_KG * ibw
        self.predicted_vc = VC_PER_KG * ibw
        self.predicted_rv = RV_PER_KG * ibw
        self.predicted_frc = FRC_PER_KG * ibw

    def validate(self):
        for name in ("compliance", "resistance", "ideal_body_weight", "residual_volume"):
            value = getattr(self, name)
            if value is not None and not math.isfinite(value):
                raise InvalidParameters(f"{name} must be a finite number (got {value})")
        if not self.compliance > 0:
            raise InvalidParameters(f"compliance must be > 0 (got {self.compliance})")
        if not self.resistance > 0:
            raise InvalidParameters(f"resistance must be > 0 (got {self.resistance})")
        if not self.ideal_body_weight > 0:
            raise InvalidParameters(f"ideal_body_weight must be > 0 (got {self.ideal_body_weight})")
        if self.residual_volume is not None and self.residual_volume < 0:
            raise InvalidParameters(f"residual_volume must be >= 0 (got {self.residual_volume})")

    @property
    def time_constant(self) -> float:
        """RC time constant in seconds."""
        return self.resistance * self.compliance * TAU_CONVERSION

    def updated(self, **changes) -> "PatientParameters":
        """
        Return a validated copy with changes applied.

        A new ideal_body_weight recomputes the predicted volumes and resets
        residual_volume to the predicted FRC unless one is given explicitly.
        """
        allowed = {f.name for f in fields(self) if f.init}
        unknown = set(changes) - allowed
        if unknown:
            raise InvalidParameters(f"Unknown patient parameter(s): {', '.join(sorted(unknown))}")
        if "ideal_body_weight" in changes and "residual_volume" not in changes:
            changes = dict(changes, residual_volume=None)
        return replace(self, **changes)
