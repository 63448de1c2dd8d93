"""
Tests for the coupled leaf gas-exchange solver.
"""

import numpy as np
import pytest
from gasex_py.core.biochemistry import BiochemicalParameters, assimilation_at_ci
from gasex_py.core.conductance import ConductanceParameters, conductance_slope
from gasex_py.core.data_structures import LeafState
from gasex_py.core.energy_balance import LeafEnergyBalance
from gasex_py.core.errors import (
    InvalidParameterError,
    BelowCompensationWarning,
    NoConvergenceWarning,
)
from gasex_py.core.options import SolverOptions
from gasex_py.analysis.coupled import (
    solve_leaf_gas_exchange,
    solve_ci_given,
    solve_gs_given,
    solve_coupled,
    is_below_compensation,
    MODE_CI_GIVEN,
    MODE_GS_GIVEN,
    MODE_COUPLED,
)


@pytest.fixture
def state():
    return LeafState(ca=400.0, tleaf=25.0, vpd=1.5)


@pytest.fixture
def bio():
    return BiochemicalParameters(vcmax=100.0, jmax=180.0, rd=1.0)


@pytest.fixture
def medlyn():
    return ConductanceParameters(g0=0.0, g1=4.0, variant='MedlynOptimality')


class TestFullyCoupled:

    def test_medlyn_reference_case(self, state, bio, medlyn):
        result = solve_leaf_gas_exchange(state, bio, conductance_params=medlyn)

        assert result.mode == MODE_COUPLED
        assert result.converged
        assert 42.75 < result.ci < state.ca
        assert result.gs > 0
        assert result.transpiration > 0

    def test_ci_ratio_with_zero_intercept(self, state, bio, medlyn):
        """With g0 = 0, Ci/Ca = 1 - 1 / (1 + g1 / sqrt(D))."""
        result = solve_coupled(state, bio, medlyn)
        expected = state.ca * (1 - 1 / (1 + 4.0 / np.sqrt(1.5)))
        assert result.ci == pytest.approx(expected, rel=1e-6)

    def test_supply_equals_demand(self, state, bio):
        params = ConductanceParameters(g0=0.02, g1=4.0)
        result = solve_coupled(state, bio, params)

        supply = result.gs / 1.6 * (state.ca - result.ci)
        assert result.an == pytest.approx(supply, abs=1e-6)
        slope = conductance_slope(state.vpd, params)
        assert result.gs == pytest.approx(0.02 + slope * result.an / state.ca)

    @pytest.mark.parametrize('variant, g1', [('BallBerry', 9.0), ('Leuning', 10.0)])
    def test_other_variants(self, state, bio, variant, g1):
        params = ConductanceParameters(g0=0.01, g1=g1, variant=variant)
        result = solve_coupled(state, bio, params)
        assert result.converged
        assert 0 < result.ci < state.ca

    def test_transpiration(self, state, bio, medlyn):
        result = solve_coupled(state, bio, medlyn)
        assert result.transpiration == pytest.approx(result.gs * 1.5 / 101.325)


class TestModeRoundTrips:

    def test_gs_given_recovers_ci(self, state, bio, medlyn):
        coupled = solve_coupled(state, bio, medlyn)
        from_gs = solve_leaf_gas_exchange(state, bio, gs=coupled.gs)

        assert from_gs.mode == MODE_GS_GIVEN
        assert from_gs.converged
        assert from_gs.ci == pytest.approx(coupled.ci, abs=1e-4)
        assert from_gs.an == pytest.approx(coupled.an, abs=1e-6)

    def test_ci_given_recovers_an(self, state, bio, medlyn):
        coupled = solve_coupled(state, bio, medlyn)
        direct = solve_leaf_gas_exchange(state, bio, ci=coupled.ci)

        assert direct.mode == MODE_CI_GIVEN
        assert direct.an == pytest.approx(coupled.an, abs=1e-9)
        assert direct.gs == pytest.approx(coupled.gs, rel=1e-6)

    def test_ci_given_with_conductance_model(self, state, bio, medlyn):
        result = solve_ci_given(state, bio, ci=300.0, conductance_params=medlyn)
        slope = conductance_slope(1.5, medlyn)
        assert result.gs == pytest.approx(slope * result.an / 400.0)

    def test_ci_below_compensation_warns(self, state, bio, medlyn):
        with pytest.warns(BelowCompensationWarning):
            result = solve_leaf_gas_exchange(state, bio, conductance_params=medlyn,
                                             ci=30.0)

        assert result.mode == MODE_CI_GIVEN
        assert result.an < 0
        assert result.gs < 0

    def test_ci_from_state(self, bio):
        result = solve_leaf_gas_exchange(LeafState(ci=250.0), bio)
        assert result.mode == MODE_CI_GIVEN
        assert result.an == pytest.approx(assimilation_at_ci(250.0, 25.0, bio).an)

    def test_zero_gs_gives_compensation_point(self, state, bio):
        result = solve_gs_given(state, bio, 0.0)
        assert result.an == pytest.approx(0.0, abs=1e-6)
        assert result.transpiration == 0.0


class TestModeSelection:

    def test_both_ci_and_gs(self, state, bio):
        with pytest.raises(InvalidParameterError, match="not both"):
            solve_leaf_gas_exchange(state, bio, ci=300.0, gs=0.2)

    def test_nothing_to_solve(self, state, bio):
        with pytest.raises(InvalidParameterError):
            solve_leaf_gas_exchange(state, bio)

    def test_negative_gs(self, state, bio):
        with pytest.raises(InvalidParameterError):
            solve_gs_given(state, bio, -0.1)

    def test_invalid_state(self):
        with pytest.raises(InvalidParameterError):
            LeafState(patm=-1.0)


class TestNetSource:
    """Leaves that lose CO2 even at Ci = Ca."""

    @pytest.fixture
    def respiring(self):
        return BiochemicalParameters(vcmax=100.0, jmax=180.0, rd=50.0)

    def test_falls_back_to_g0(self, state, respiring):
        params = ConductanceParameters(g0=0.01, g1=4.0)
        with pytest.warns(BelowCompensationWarning):
            result = solve_coupled(state, respiring, params)

        assert result.gs == pytest.approx(0.01)
        assert result.ci > state.ca
        assert result.an < 0
        assert is_below_compensation(result)

    def test_closed_stomata_without_g0(self, state, respiring, medlyn):
        with pytest.warns(BelowCompensationWarning):
            result = solve_coupled(state, respiring, medlyn)

        assert result.gs == 0.0
        assert result.ci == state.ca
        assert result.transpiration == 0.0


class TestEnergyBalance:

    @pytest.fixture
    def warm_state(self):
        return LeafState(ca=400.0, tleaf=25.0, tair=25.0, vpd=1.5)

    def test_converges(self, warm_state, bio, medlyn):
        adapter = LeafEnergyBalance(rnet=300.0)
        result = solve_leaf_gas_exchange(warm_state, bio, conductance_params=medlyn,
                                         energy_balance=adapter)

        assert result.energy_balance_converged
        assert result.converged
        assert abs(result.tleaf - 25.0) < 15.0
        assert result.transpiration > 0

    def test_leaf_warms_under_load(self, warm_state, bio, medlyn):
        adapter = LeafEnergyBalance(rnet=500.0, wind_speed=0.5)
        result = solve_leaf_gas_exchange(warm_state, bio, conductance_params=medlyn,
                                         energy_balance=adapter)
        assert result.tleaf > 25.0
        assert result.vpd > 1.5

    def test_iteration_limit(self, warm_state, bio, medlyn):
        options = SolverOptions(max_energy_balance_iterations=1, energy_balance_tol=1e-12)
        with pytest.warns(NoConvergenceWarning):
            result = solve_leaf_gas_exchange(
                warm_state, bio, conductance_params=medlyn,
                energy_balance=LeafEnergyBalance(rnet=300.0), options=options
            )
        assert result.energy_balance_converged is False
        assert not result.converged
        assert 'energy balance' in result.message


class TestResult:

    def test_to_dict(self, state, bio, medlyn):
        result = solve_coupled(state, bio, medlyn)
        record = result.to_dict()
        for key in ('an', 'gs', 'ci', 'cc', 'tleaf', 'vpd', 'transpiration',
                    'regime', 'mode', 'converged'):
            assert key in record

    def test_to_leaf_state(self, state, medlyn):
        bio = BiochemicalParameters(vcmax=100.0, jmax=180.0, rd=1.0, gm=0.3)
        result = solve_coupled(state, bio, medlyn)
        solved = result.to_leaf_state(state)

        assert solved.ci == result.ci
        assert solved.cc == result.cc
        assert solved.cc < solved.ci
        assert solved.cc == pytest.approx(result.ci - result.an / 0.3, rel=1e-4)
        assert solved.ca == state.ca
        assert state.cc is None

    def test_invalid_options(self):
        with pytest.raises(InvalidParameterError):
            SolverOptions(root_xtol=0.0)
        with pytest.raises(InvalidParameterError):
            SolverOptions(max_energy_balance_iterations=0)


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
