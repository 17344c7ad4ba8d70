"""
Tests for the single-compartment RC lung model and predicted volumes.
"""

import math

import pytest

from ventsim.core.errors import InvalidParameters
from ventsim.patient.patient import PatientParameters
from ventsim.physiology.resp_mech import SingleCompartmentLungModel


@pytest.fixture
def mech(patient):
    return SingleCompartmentLungModel(patient)


def run_constant(model, pressure, seconds, dt=0.01):
    state = None
    for _ in range(int(round(seconds / dt))):
        state = model.step(pressure, dt)
    return state


class TestTimeConstant:
    def test_time_constant_units(self, mech):
        """10 cmH2O*s/L * 50 mL/cmH2O * 0.001 = 0.5 s."""
        assert mech.time_constant == pytest.approx(0.5)

    def test_starts_at_residual_volume(self, mech):
        assert mech.state.volume == pytest.approx(1000.0)
        assert mech.state.tidal_volume == 0.0


class TestStepResponse:
    def test_pressure_step_converges(self, mech):
        """P=15 for 5 tau -> within 1% of 1000 + 50*15 = 1750 mL."""
        state = run_constant(mech, 15.0, 5 * mech.time_constant)
        assert state.volume == pytest.approx(1750.0, rel=0.01)

    def test_long_hold_reaches_steady_state(self, mech):
        state = run_constant(mech, 20.0, 20 * mech.time_constant)
        assert state.volume == pytest.approx(1000.0 + 50.0 * 20.0, abs=0.01)
        assert state.flow == pytest.approx(0.0, abs=0.01)

    def test_one_tau_reaches_63_percent(self, mech):
        state = run_constant(mech, 10.0, mech.time_constant)
        expected = 1000.0 + 500.0 * (1 - math.exp(-1.0))
        assert state.volume == pytest.approx(expected, rel=1e-9)

    def test_flow_integrates_to_volume_change(self, mech):
        for pressure, dt in [(15.0, 0.01), (15.0, 0.05), (3.0, 0.02), (0.0, 0.1)]:
            before = mech.state.volume
            state = mech.step(pressure, dt)
            assert state.volume - before == pytest.approx(state.flow * dt)

    def test_expiratory_flow_negative(self, mech):
        run_constant(mech, 20.0, 3.0)
        state = mech.step(5.0, 0.01)
        assert state.flow < 0

    def test_tidal_volume_never_negative(self, mech):
        state = run_constant(mech, 0.0, 1.0)
        assert state.tidal_volume == 0.0

    def test_zero_dt_is_noop(self, mech):
        volume = mech.state.volume
        mech.step(20.0, 0.0)
        assert mech.state.volume == volume

    def test_stable_with_large_dt(self, mech):
        """Exponential update never overshoots the target."""
        state = mech.step(15.0, 10.0)
        assert state.volume <= 1750.0 + 1e-9


class TestParameters:
    @pytest.mark.parametrize("changes", [
        {"compliance": 0},
        {"compliance": -5},
        {"resistance": 0},
        {"resistance": -1},
        {"ideal_body_weight": 0},
        {"ideal_body_weight": math.nan},
        {"compliance": math.inf},
        {"residual_volume": math.nan},
        {"unknown": 3},
    ])
    def test_invalid_parameters_rejected(self, mech, changes):
        before = mech.params
        with pytest.raises(InvalidParameters):
            mech.set_parameters(**changes)
        assert mech.params is before

    def test_compliance_change_keeps_volume(self, mech):
        run_constant(mech, 10.0, 1.0)
        volume = mech.state.volume
        mech.set_parameters(compliance=30.0)
        assert mech.state.volume == volume
        assert mech.time_constant == pytest.approx(0.3)

    def test_ibw_change_resets_to_frc(self, mech):
        run_constant(mech, 15.0, 2.0)
        params = mech.set_parameters(ideal_body_weight=60.0)
        assert params.residual_volume == pytest.approx(2.4 * 60.0)
        assert mech.state.volume == pytest.approx(params.residual_volume)


class TestPredictedVolumes:
    def test_male_reference_values(self):
        p = PatientParameters(ideal_body_weight=70.0)
        assert p.predicted_tlc == pytest.approx(7.99 * 70)
        assert p.predicted_vc == pytest.approx(4.5 * 70)
        assert p.predicted_rv == pytest.approx(1.31 * 70)
        assert p.predicted_frc == pytest.approx(2.4 * 70)

    def test_residual_defaults_to_frc(self):
        p = PatientParameters(ideal_body_weight=80.0)
        assert p.residual_volume == pytest.approx(2.4 * 80.0)

    def test_explicit_residual_volume_kept(self):
        p = PatientParameters(residual_volume=1000.0)
        assert p.residual_volume == 1000.0
        assert p.updated(compliance=40.0).residual_volume == 1000.0

    def test_ibw_update_recomputes(self):
        p = PatientParameters(residual_volume=1000.0).updated(ideal_body_weight=50.0)
        assert p.predicted_tlc == pytest.approx(7.99 * 50)
        assert p.residual_volume == pytest.approx(2.4 * 50)

    def test_invalid_constructor(self):
        with pytest.raises(InvalidParameters):
            PatientParameters(compliance=0)
