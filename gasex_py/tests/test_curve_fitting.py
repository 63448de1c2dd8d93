"""
Tests for A-Ci curve fitting.

Synthetic curves are generated from known parameters with seeded noise so
that recovered estimates can be checked against the truth.
"""

import numpy as np
import pandas as pd
import pytest
from gasex_py.core.biochemistry import (
    BiochemicalParameters,
    calculate_assimilation,
    assimilation_at_ci,
    REGIME_RUBISCO,
)
from gasex_py.core.data_structures import CurveDataset
from gasex_py.core.errors import FitFailureError, InvalidParameterError
from gasex_py.analysis.curve_fitting import (
    fit_aci,
    METHOD_SMOOTHED,
    METHOD_FIXED_TRANSITION,
)
from gasex_py.analysis.initial_guess import (
    estimate_aci_initial_parameters,
    generate_starting_points,
    validate_initial_guess,
    RETRY_MULTIPLIERS,
)
from gasex_py.analysis.results import summarize_fit

CI_STEPS = np.array([50, 100, 150, 200, 250, 300, 400, 500, 600, 800,
                     1000, 1200, 1500], dtype=float)


def synthetic_curve(truth, ci=CI_STEPS, tleaf=25.0, par=None, noise=0.3, seed=42):
    rng = np.random.default_rng(seed)
    an = np.array([assimilation_at_ci(c, tleaf, truth, par).an for c in ci])
    frame = pd.DataFrame({'Ci': ci, 'A': an + rng.normal(0, noise, len(ci))})
    frame['Tleaf'] = tleaf
    if par is not None:
        frame['PAR'] = par
    return CurveDataset(frame)


@pytest.fixture
def truth():
    return BiochemicalParameters(vcmax=100.0, jmax=180.0, rd=1.0)


@pytest.fixture
def curve(truth):
    return synthetic_curve(truth)


class TestFitAci:
    """Recovery of known parameters."""

    def test_recovers_parameters(self, curve):
        result = fit_aci(curve)

        assert result.converged
        assert result.method == METHOD_SMOOTHED
        assert result.parameter_names == ['vcmax', 'jmax', 'rd']
        for name, true_value in [('vcmax', 100.0), ('jmax', 180.0)]:
            estimate = result.parameters[name]
            se = result.standard_errors[name]
            assert np.isfinite(se) and se > 0
            assert abs(estimate - true_value) < 4 * se + 0.1 * true_value
        assert result.r_squared > 0.99

    def test_standard_errors_shrink_with_points(self, truth):
        small = fit_aci(synthetic_curve(truth, seed=1))
        large = fit_aci(synthetic_curve(truth, ci=np.tile(CI_STEPS, 8), seed=1))

        for name in ('vcmax', 'jmax'):
            assert large.standard_errors[name] < small.standard_errors[name]

    def test_confidence_intervals_contain_estimate(self, curve):
        result = fit_aci(curve)
        for name in result.parameter_names:
            lower, upper = result.confidence_intervals[name]
            assert lower < result.parameters[name] < upper

    def test_transition_ci(self, curve):
        result = fit_aci(curve)
        # Analytic transition for the true parameters lies near Ci = 426
        assert 300 < result.transition_ci < 600

    def test_known_rd(self, curve):
        result = fit_aci(curve, known_rd=1.0)

        assert result.parameter_names == ['vcmax', 'jmax']
        assert result.parameters['rd'] == 1.0
        assert result.fixed_parameters == {'rd': 1.0}
        assert 'rd' not in result.standard_errors

    def test_fixed_transition(self, curve):
        result = fit_aci(curve, fixed_transition_ci=426.0)

        assert result.method == METHOD_FIXED_TRANSITION
        assert result.transition_ci == 426.0
        assert result.regime[2] == REGIME_RUBISCO
        assert abs(result.parameters['vcmax'] - 100.0) < 15.0

    def test_leaf_temperature_column(self, truth):
        data = synthetic_curve(truth, tleaf=30.0, noise=0.1)
        result = fit_aci(data)
        assert result.parameters['vcmax'] == pytest.approx(100.0, rel=0.1)
        assert result.parameters['jmax'] == pytest.approx(180.0, rel=0.1)

    def test_light_limited_curve(self, truth):
        data = synthetic_curve(truth, par=1500.0, noise=0.1)
        result = fit_aci(data)
        assert result.parameters['jmax'] == pytest.approx(180.0, rel=0.15)

    def test_mesophyll_conductance(self):
        truth = BiochemicalParameters(vcmax=100.0, jmax=180.0, rd=1.0, gm=0.3)
        data = synthetic_curve(truth, noise=0.1)
        result = fit_aci(data, gm=0.3)

        assert result.fixed_parameters['gm'] == 0.3
        assert result.parameters['vcmax'] == pytest.approx(100.0, rel=0.1)

    def test_accepts_dataframe(self, curve):
        result = fit_aci(curve.data)
        assert result.n_points == len(CI_STEPS)


class TestFitFailures:

    def test_missing_column(self):
        frame = pd.DataFrame({'Ci': CI_STEPS, 'Photo': np.ones(len(CI_STEPS))})
        with pytest.raises(ValueError, match="Missing required columns"):
            fit_aci(frame)

    def test_too_few_points(self, truth):
        data = synthetic_curve(truth, ci=np.array([100.0, 400.0, 1000.0]))
        with pytest.raises(ValueError, match="At least"):
            fit_aci(data)

    def test_invalid_known_rd(self, curve):
        with pytest.raises(InvalidParameterError):
            fit_aci(curve, known_rd=-1.0)

    def test_evaluation_budget_exhausted(self, curve):
        with pytest.raises(FitFailureError) as excinfo:
            fit_aci(curve, maxfev=1)
        assert excinfo.value.diagnostics['attempts'] == len(RETRY_MULTIPLIERS)


class TestFitReporting:

    def test_summary_frame(self, curve):
        result = fit_aci(curve)
        frame = summarize_fit(result)

        assert list(frame.columns) == ['Parameter', 'Value', 'StdError',
                                       'CI_lower', 'CI_upper', 'Unit']
        assert {'vcmax', 'jmax', 'rd', 'RMSE'} <= set(frame['Parameter'])

    def test_residual_frame(self, curve):
        result = fit_aci(curve)
        frame = result.residual_frame()

        assert len(frame) == len(CI_STEPS)
        np.testing.assert_allclose(frame['observed'] - frame['fitted'], frame['residual'])
        assert 'regime' in frame.columns

    def test_text_summary(self, curve):
        text = fit_aci(curve).summary()
        assert 'vcmax' in text
        assert 'RMSE' in text
        assert '95% CI' in text

    def test_text_summary_reports_interval_level(self, curve):
        wide = fit_aci(curve)
        narrow = fit_aci(curve, confidence_level=0.80)

        assert narrow.confidence_level == 0.80
        assert '80% CI' in narrow.summary()
        assert '95% CI' not in narrow.summary()
        lower, upper = narrow.confidence_intervals['vcmax']
        wide_lower, wide_upper = wide.confidence_intervals['vcmax']
        assert upper - lower < wide_upper - wide_lower


class TestInitialGuess:

    def test_estimates_close_to_truth(self, truth):
        ci = CI_STEPS
        a = calculate_assimilation(ci, 25.0, truth).an
        guess = estimate_aci_initial_parameters(ci, a, truth)

        assert 50 < guess['vcmax'] < 200
        assert 90 < guess['jmax'] < 360
        is_valid, warnings = validate_initial_guess(guess)
        assert is_valid, warnings

    def test_starting_points_are_deterministic(self):
        initial = {'vcmax': 100.0, 'jmax': 180.0, 'rd': 1.0}
        first = generate_starting_points(initial, 5)
        second = generate_starting_points(initial, 5)

        assert first == second
        assert len(first) == 5
        assert first[0] == initial

    def test_invalid_guess_flagged(self):
        is_valid, warnings = validate_initial_guess({'vcmax': -5.0, 'jmax': 180.0, 'rd': 1.0})
        assert not is_valid
        assert warnings


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
