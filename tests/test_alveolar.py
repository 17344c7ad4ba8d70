"""
Tests for the multi-compartment alveolar recruitment model.
"""

import math

import pytest

from ventsim.core.constants import AlveolarTuning
from ventsim.core.enums import Pathology
from ventsim.core.errors import InvalidModelState, InvalidParameters
from ventsim.core.metrics import vq_ratio
from ventsim.core.state import SimulationSnapshot
from ventsim.physiology.alveolar import AlveolarUnit, MultiCompartmentLungModel


def make_unit(i=0, position=0.0, opening=10.0, closing=5.0, compliance=5.0,
              pathology=Pathology.NORMAL):
    return AlveolarUnit(id=i, position=position, opening_pressure=opening,
                        closing_pressure=closing, compliance=compliance,
                        pathology=pathology)


class TestUnitValidation:
    def test_opening_must_exceed_closing(self):
        with pytest.raises(InvalidParameters):
            make_unit(opening=5.0, closing=5.0)
        with pytest.raises(InvalidParameters):
            make_unit(opening=3.0, closing=5.0)

    def test_compliance_must_be_positive(self):
        with pytest.raises(InvalidParameters):
            make_unit(compliance=0.0)

    def test_model_requires_units(self):
        with pytest.raises(InvalidParameters):
            MultiCompartmentLungModel([])

    def test_step_without_units_is_model_state_error(self):
        model = MultiCompartmentLungModel([make_unit()])
        model.units.clear()
        with pytest.raises(InvalidModelState):
            model.step(10.0, 0.01, peep=5.0)


class TestHysteresis:
    def test_gate_toggles_with_hysteresis(self):
        """Never opens below opening pressure, never closes above closing pressure."""
        unit = make_unit(opening=10.0, closing=5.0)
        model = MultiCompartmentLungModel([unit])

        sequence = [0, 4, 8, 9.99, 10, 12, 8, 6, 5.01, 5, 3, 7, 9, 11, 6, 2]
        expected = [False, False, False, False, True, True, True, True, True, False,
                    False, False, False, True, True, False]
        for pressure, is_open in zip(sequence, expected):
            model.step(pressure, 0.01, peep=0.0)
            assert unit.is_open is is_open, f"P={pressure}"

    def test_oscillating_pressure_invariant(self):
        unit = make_unit(opening=10.0, closing=5.0)
        model = MultiCompartmentLungModel([unit])
        for i in range(2000):
            pressure = 7.5 + 6.0 * math.sin(i * 0.05)
            was_open = unit.is_open
            model.step(pressure, 0.01, peep=0.0)
            if not was_open and unit.is_open:
                assert pressure >= 10.0
            if was_open and not unit.is_open:
                assert pressure <= 5.0

    def test_superimposed_pressure_delays_dorsal_recruitment(self):
        ventral = make_unit(i=0, position=0.0, opening=10.0, closing=5.0)
        dorsal = make_unit(i=1, position=1.0, opening=10.0, closing=5.0)
        model = MultiCompartmentLungModel([ventral, dorsal])
        model.step(12.0, 0.01, peep=0.0)
        assert ventral.is_open
        assert not dorsal.is_open  # 12 - 5 = 7 < 10
        model.step(15.0, 0.01, peep=0.0)
        assert dorsal.is_open

    def test_consolidated_unit_follows_gate(self):
        unit = make_unit(opening=10.0, closing=5.0, compliance=0.5, pathology=Pathology.CONSOLIDATED)
        model = MultiCompartmentLungModel([unit])
        model.step(9.0, 0.01, peep=5.0)
        assert not unit.is_open
        assert unit.volume == 0.0
        for _ in range(500):
            model.step(25.0, 0.01, peep=5.0)
        assert unit.is_open
        assert unit.volume == pytest.approx((25.0 - 5.0) * 0.5, rel=1e-3)
        model.step(4.0, 0.01, peep=5.0)
        assert not unit.is_open


class TestVolumeDynamics:
    def test_open_unit_fills_to_transpulmonary_target(self):
        unit = make_unit(opening=2.0, closing=1.0, compliance=5.0)
        model = MultiCompartmentLungModel([unit], resistance=10.0)
        for _ in range(2000):
            model.step(20.0, 0.01, peep=5.0)
        assert unit.volume == pytest.approx((20.0 - 5.0) * 5.0, rel=1e-3)

    def test_unit_time_constant_scales_with_position(self):
        units = [make_unit(i=0, position=0.0), make_unit(i=1, position=1.0)]
        model = MultiCompartmentLungModel(units, resistance=10.0)
        base = model.base_time_constant
        assert base == pytest.approx(10.0 * 10.0 * 0.001)
        assert model.unit_time_constant(units[0]) == pytest.approx(0.8 * base)
        assert model.unit_time_constant(units[1]) == pytest.approx(1.2 * base)

    def test_closed_unit_empties_quickly(self):
        unit = make_unit(opening=10.0, closing=5.0)
        model = MultiCompartmentLungModel([unit])
        unit.volume = 100.0
        model.step(0.0, 0.1, peep=0.0)
        assert unit.volume == pytest.approx(100.0 * math.exp(-1.0))

    def test_air_trapped_unit_retains_volume(self):
        unit = make_unit(opening=10.0, closing=5.0, pathology=Pathology.AIR_TRAPPED)
        model = MultiCompartmentLungModel([unit])
        unit.volume = 100.0
        model.step(0.0, 0.01, peep=0.0)
        assert unit.volume == pytest.approx(90.0)

    def test_air_trapped_decay_independent_of_step_split(self):
        tuning = AlveolarTuning()
        a = make_unit(pathology=Pathology.AIR_TRAPPED)
        b = make_unit(pathology=Pathology.AIR_TRAPPED)
        a.volume = b.volume = 100.0
        MultiCompartmentLungModel([a], tuning=tuning).step(0.0, 0.02, peep=0.0)
        model_b = MultiCompartmentLungModel([b], tuning=tuning)
        model_b.step(0.0, 0.01, peep=0.0)
        model_b.step(0.0, 0.01, peep=0.0)
        assert a.volume == pytest.approx(b.volume)

    def test_open_unit_volume_never_negative(self):
        unit = make_unit(position=1.0, opening=2.0, closing=-5.0)
        model = MultiCompartmentLungModel([unit])
        model.step(10.0, 0.01, peep=5.0)  # 10 - 5 gravity = 5 >= 2
        assert unit.is_open
        for _ in range(200):
            model.step(5.0, 0.01, peep=5.0)  # effective 0, transpulmonary -5
        assert unit.is_open
        assert unit.volume >= 0.0


class TestAggregation:
    def test_totals_are_sums(self):
        units = [make_unit(i=i, position=i / 3, opening=2.0, closing=1.0) for i in range(4)]
        model = MultiCompartmentLungModel(units, baseline_volume=1000.0)
        for _ in range(30):
            state = model.step(20.0, 0.01, peep=5.0)
        assert state.volume == pytest.approx(1000.0 + sum(u.volume for u in units))
        assert state.flow == pytest.approx(sum(u.flow for u in units))
        assert state.tidal_volume == pytest.approx(sum(u.volume for u in units))

    def test_flow_matches_volume_delta(self):
        units = [make_unit(i=i, position=i / 2, opening=2.0, closing=1.0) for i in range(3)]
        model = MultiCompartmentLungModel(units)
        before = model.state.volume
        state = model.step(18.0, 0.02, peep=5.0)
        assert state.volume - before == pytest.approx(state.flow * 0.02)

    def test_recruited_count_and_vq(self):
        units = [make_unit(i=0, opening=2.0, closing=1.0),
                 make_unit(i=1, opening=50.0, closing=40.0)]
        units[0].perfusion = 1.5
        units[1].perfusion = 1.5
        model = MultiCompartmentLungModel(units)
        for _ in range(100):
            model.step(15.0, 0.01, peep=5.0)
        snap = SimulationSnapshot(units=model.unit_states())
        assert snap.recruited_count == 1
        assert vq_ratio(snap) == pytest.approx(units[0].volume / 3.0)

    def test_unit_states_snapshot(self):
        model = MultiCompartmentLungModel([make_unit(i=0), make_unit(i=1, position=1.0)])
        states = model.unit_states()
        assert [s.id for s in states] == [0, 1]
        assert all(not s.is_open for s in states)
