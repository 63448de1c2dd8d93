"""
Tests for LeafState and CurveDataset.
"""

import numpy as np
import pandas as pd
import pytest
from gasex_py.core.data_structures import LeafState, CurveDataset, as_curve_dataset
from gasex_py.core.errors import InvalidParameterError


class TestLeafState:

    def test_defaults(self):
        state = LeafState()
        assert state.ca == 400.0
        assert state.patm == 101.325
        assert state.par is None
        assert state.air_temperature == state.tleaf

    def test_replace_is_a_copy(self):
        state = LeafState(tleaf=20.0)
        warm = state.replace(tleaf=30.0)
        assert warm.tleaf == 30.0
        assert state.tleaf == 20.0

    @pytest.mark.parametrize('kwargs', [
        {'ca': 0.0},
        {'vpd': -0.1},
        {'par': -10.0},
        {'rh': 1.2},
        {'tleaf': np.nan},
    ])
    def test_invalid(self, kwargs):
        with pytest.raises(InvalidParameterError):
            LeafState(**kwargs)

    def test_to_dict(self):
        record = LeafState(tair=22.0).to_dict()
        assert record['tair'] == 22.0
        assert set(record) >= {'ci', 'cc', 'tleaf', 'par', 'vpd', 'patm', 'ca'}


class TestCurveDataset:

    @pytest.fixture
    def frame(self):
        return pd.DataFrame({'Ci': [400.0, 100.0, 800.0], 'A': [20.0, 8.0, 28.0]})

    def test_sorted_by_ci(self, frame):
        data = CurveDataset(frame)
        assert list(data['Ci']) == [100.0, 400.0, 800.0]
        assert list(data['A']) == [8.0, 20.0, 28.0]

    def test_units(self, frame):
        data = CurveDataset(frame, units={'A': 'custom'})
        assert data.get_column_units('Ci') == 'µmol mol⁻¹'
        assert data.get_column_units('A') == 'custom'
        assert data.get_column_units('unknown') == 'dimensionless'

    def test_missing_required(self):
        with pytest.raises(ValueError, match="Missing required columns: A"):
            CurveDataset(pd.DataFrame({'Ci': [100.0]}))

    def test_from_arrays(self):
        data = CurveDataset.from_arrays([300.0, 100.0], [15.0, 5.0], tleaf=28.0,
                                        species='wheat')
        assert len(data) == 2
        assert data.metadata == {'species': 'wheat'}
        np.testing.assert_array_equal(data.column_values('Tleaf'), [28.0, 28.0])

    def test_column_values_default(self, frame):
        data = CurveDataset(frame)
        assert data.column_values('PAR') is None
        np.testing.assert_array_equal(data.column_values('PAR', 1500.0), [1500.0] * 3)

    def test_subset_and_copy(self, frame):
        data = CurveDataset(frame, metadata={'leaf': 1})
        low = data.subset_rows(data['Ci'] < 500)
        assert len(low) == 2

        clone = data.copy()
        clone.metadata['leaf'] = 2
        assert data.metadata['leaf'] == 1

    def test_as_curve_dataset(self, frame):
        data = as_curve_dataset(frame)
        assert isinstance(data, CurveDataset)
        assert as_curve_dataset(data) is data
        with pytest.raises(TypeError):
            as_curve_dataset([1, 2, 3])


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
