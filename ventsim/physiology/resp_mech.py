"""
Single Compartment Lung Model.

First-order resistance-compliance response of lung volume to applied
airway pressure:

    tau = R * C * 0.001                (s; R in cmH2O*s/L, C in mL/cmH2O)
    V_target = V_residual + C * Paw    (steady-state volume, mL)
    dV = (V_target - V) * (1 - exp(-dt / tau))
    flow = dV / dt                     (mL/s)

The exponential-approach update is exact for a pressure held constant
over the step, so it stays stable for any dt.
"""

import logging
from dataclasses import dataclass

from ventsim.core.utils import approach_fraction
from ventsim.patient.patient import PatientParameters

logger = logging.getLogger(__name__)


@dataclass
class LungState:
    """
    Lung model state snapshot.

    Shared by the single and multi-compartment models.
    """
    paw: float = 0.0            # Applied airway pressure (cmH2O)
    volume: float = 0.0         # Total lung volume (mL)
    flow: float = 0.0           # mL/s, positive = inspiration
    tidal_volume: float = 0.0   # Volume above baseline (mL)


class SingleCompartmentLungModel:
    """
    RC lung model driven by airway pressure.

    Parameter changes are validated on a copy and committed only when
    valid, so a rejected update leaves the model untouched.
    """

    def __init__(self, params: PatientParameters = None):
        self.params = params if params is not None else PatientParameters()
        self.state = LungState()
        self.reset()

    @property
    def time_constant(self) -> float:
        return self.params.time_constant

    @property
    def residual_volume(self) -> float:
        return self.params.residual_volume

    def reset(self):
        """Return to rest at the residual volume."""
        self.state = LungState(volume=self.params.residual_volume)

    def set_parameters(self, **changes) -> PatientParameters:
        """
        Apply a partial parameter update.

        Raises InvalidParameters on non-positive compliance/resistance/IBW.
        A change of ideal_body_weight resets the volume to the new FRC.
        """
        new_params = self.params.updated(**changes)
        ibw_changed = new_params.ideal_body_weight != self.params.ideal_body_weight
        rv_changed = new_params.residual_volume != self.params.residual_volume
        self.params = new_params
        if ibw_changed or rv_changed:
            self.reset()
            logger.info("Residual volume set to %.0f mL (IBW %.0f kg)",
                        new_params.residual_volume, new_params.ideal_body_weight)
        return self.params

    def step(self, paw: float, dt: float, peep: float = 0.0) -> LungState:
        """
        Advance by dt seconds under airway pressure paw (cmH2O).

        peep is accepted for interface parity with the multi-compartment
        model; the single compartment references volume to residual volume.
        """
        state = self.state
        state.paw = paw
        if dt <= 0:
            return state

        target_volume = self.params.residual_volume + self.params.compliance * paw
        volume_change = (target_volume - state.volume) * approach_fraction(dt, self.time_constant)

        state.volume += volume_change
        state.flow = volume_change / dt
        state.tidal_volume = max(0.0, state.volume - self.params.residual_volume)
        return state
