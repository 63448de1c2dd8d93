"""
Unit tests for batch processing functionality.

Tests the batch.py module including:
- BatchResult class
- batch_fit_aci function
- batch_solve_leaf function
- Parameter variability analysis
"""

import pytest
import numpy as np
import pandas as pd

from gasex_py.core.biochemistry import BiochemicalParameters, calculate_assimilation
from gasex_py.core.conductance import ConductanceParameters
from gasex_py.core.data_structures import CurveDataset
from gasex_py.analysis.batch import (
    BatchResult,
    batch_fit_aci,
    batch_solve_leaf,
    analyze_parameter_variability,
    process_single_curve,
)
from gasex_py.analysis.curve_fitting import fit_aci

CI_STEPS = np.array([50, 100, 150, 200, 250, 300, 400, 500, 600, 800,
                     1000, 1200, 1500], dtype=float)


def make_curve(vcmax, jmax, seed):
    truth = BiochemicalParameters(vcmax=vcmax, jmax=jmax, rd=1.0)
    rng = np.random.default_rng(seed)
    a = calculate_assimilation(CI_STEPS, 25.0, truth).an + rng.normal(0, 0.2, len(CI_STEPS))
    return pd.DataFrame({'Ci': CI_STEPS, 'A': a, 'Tleaf': 25.0})


@pytest.fixture
def curves():
    return {
        'leaf_a': make_curve(90.0, 170.0, 1),
        'leaf_b': make_curve(110.0, 200.0, 2),
        'broken': pd.DataFrame({'Ci': CI_STEPS, 'Photo': np.ones(len(CI_STEPS))}),
    }


class TestBatchResult:
    """Test BatchResult container class."""

    def test_initialization(self):
        br = BatchResult()
        assert br.results == {}
        assert br.summary_df is None
        assert br.failed_curves == []
        assert br.warnings == {}

    def test_add_failure(self):
        """Failures are listed and noted among the warnings."""
        br = BatchResult()

        br.add_failure('curve_1', 'Convergence failed')
        assert 'curve_1' in br.failed_curves
        assert 'Failed: Convergence failed' in br.warnings['curve_1'][0]

    def test_add_warning(self):
        br = BatchResult()

        br.add_warning('curve_1', 'Low R-squared')
        br.add_warning('curve_1', 'High RMSE')
        assert br.warnings['curve_1'] == ['Low R-squared', 'High RMSE']
        assert br.failed_curves == []

    def test_generate_summary(self):
        br = BatchResult()
        br.add_result('curve_1', fit_aci(make_curve(100.0, 180.0, 3)))
        br.add_failure('curve_2', 'bad data')

        summary = br.generate_summary()

        assert len(summary) == 2
        row = summary.set_index('item_id').loc['curve_1']
        assert row['success']
        assert 'vcmax_SE' in summary.columns
        assert 'vcmax_CI_lower' in summary.columns
        assert not summary.set_index('item_id').loc['curve_2', 'success']


class TestProcessSingleCurve:

    def test_returns_result(self):
        curve_id, outcome, caught = process_single_curve(
            make_curve(100.0, 180.0, 4), 'leaf', fit_aci, {}
        )
        assert curve_id == 'leaf'
        assert outcome.converged

    def test_returns_exception(self):
        frame = pd.DataFrame({'Ci': [100.0, 200.0], 'Photo': [1.0, 2.0]})
        _, outcome, _ = process_single_curve(frame, 'bad', fit_aci, {})
        assert isinstance(outcome, ValueError)

    def test_fit_failure_is_captured(self):
        _, outcome, _ = process_single_curve(
            make_curve(100.0, 180.0, 5), 'leaf', fit_aci, {'maxfev': 1}
        )
        assert isinstance(outcome, RuntimeError)


class TestBatchFitAci:

    def test_partial_failure(self, curves):
        result = batch_fit_aci(curves, progress_bar=False)

        assert set(result.results) == {'leaf_a', 'leaf_b'}
        assert result.failed_curves == ['broken']
        summary = result.summary_df.set_index('item_id')
        assert summary.loc['leaf_a', 'success']
        assert not summary.loc['broken', 'success']
        assert 'Missing required columns' in summary.loc['broken', 'error']

    def test_any_item_error_is_recorded(self):
        curves = {'good': make_curve(100.0, 180.0, 7), 'empty': None}
        result = batch_fit_aci(curves, progress_bar=False)

        assert list(result.results) == ['good']
        assert result.failed_curves == ['empty']
        summary = result.summary_df.set_index('item_id')
        assert summary.loc['empty', 'error'].startswith('TypeError')
        assert summary.loc['good', 'success']

    def test_groupby(self):
        frames = []
        for leaf, (vcmax, jmax) in enumerate([(90.0, 170.0), (110.0, 200.0)]):
            frame = make_curve(vcmax, jmax, leaf)
            frame['Leaf'] = leaf
            frames.append(frame)
        data = pd.concat(frames, ignore_index=True)

        result = batch_fit_aci(data, groupby=['Leaf'], progress_bar=False, known_rd=1.0)
        assert set(result.results) == {'0', '1'}
        assert result.results['1'].parameters['vcmax'] > result.results['0'].parameters['vcmax']

    def test_curve_dataset_input(self):
        result = batch_fit_aci(CurveDataset(make_curve(100.0, 180.0, 6)), progress_bar=False)
        assert list(result.results) == ['curve_1']

    def test_parallel(self, curves):
        result = batch_fit_aci(curves, n_jobs=2, progress_bar=False)
        assert set(result.results) == {'leaf_a', 'leaf_b'}
        assert result.failed_curves == ['broken']

    def test_invalid_input(self):
        with pytest.raises(ValueError):
            batch_fit_aci([1, 2, 3], progress_bar=False)


class TestParameterVariability:

    def test_statistics(self, curves):
        result = batch_fit_aci(curves, progress_bar=False)
        stats = analyze_parameter_variability(result, ['vcmax', 'jmax'])

        assert list(stats['parameter']) == ['vcmax', 'jmax']
        vcmax = stats.set_index('parameter').loc['vcmax']
        assert vcmax['n_curves'] == 2
        assert vcmax['min'] < vcmax['mean'] < vcmax['max']
        assert vcmax['cv'] > 0

    def test_defaults_to_estimated_parameters(self, curves):
        result = batch_fit_aci(curves, progress_bar=False)
        stats = analyze_parameter_variability(result)
        assert set(stats['parameter']) == {'vcmax', 'jmax', 'rd'}


class TestBatchSolveLeaf:

    @pytest.fixture
    def bio(self):
        return BiochemicalParameters(vcmax=100.0, jmax=180.0, rd=1.0)

    def test_driver_table(self, bio):
        drivers = pd.DataFrame({
            'Tleaf': [25.0, 25.0, 25.0, 25.0],
            'VPD': [1.0, 1.5, 2.5, 1.5],
            'Ca': [400.0, 400.0, 400.0, 400.0],
            'Patm': [101.325, 101.325, 101.325, -1.0],
        })
        result = batch_solve_leaf(drivers, bio, ConductanceParameters(g0=0.01, g1=4.0))

        assert set(result.results) == {'0', '1', '2'}
        assert result.failed_curves == ['3']
        summary = result.summary_df.set_index('item_id')
        assert summary.loc['1', 'converged']
        assert summary.loc['1', 'mode'] == 'coupled'
        assert not summary.loc['1', 'below_compensation']
        # Higher VPD closes stomata
        assert summary.loc['2', 'gs'] < summary.loc['0', 'gs']

    def test_mode_columns(self, bio):
        drivers = pd.DataFrame({
            'Tleaf': [25.0, 25.0],
            'Ci': [300.0, np.nan],
            'gs': [np.nan, 0.2],
        })
        result = batch_solve_leaf(drivers, bio)

        assert result.results['0'].mode == 'ci_given'
        assert result.results['0'].ci == 300.0
        assert result.results['1'].mode == 'gs_given'
        assert result.results['1'].gs == 0.2

    def test_net_source_flagged(self):
        bio = BiochemicalParameters(vcmax=20.0, jmax=40.0, rd=30.0)
        drivers = pd.DataFrame({'Tleaf': [25.0], 'VPD': [1.5]})
        result = batch_solve_leaf(drivers, bio, ConductanceParameters(g0=0.01))

        summary = result.summary_df.set_index('item_id')
        assert summary.loc['0', 'below_compensation']
        assert summary.loc['0', 'n_warnings'] >= 1


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
