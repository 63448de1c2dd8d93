"""
Data structures for gasex_py.

LeafState describes the microclimate and CO2 concentrations of a single leaf
at one instant. CurveDataset wraps a measured response curve (a pandas
DataFrame) together with unit metadata for each column.
"""

from typing import Dict, List, Optional, Union, Any
from dataclasses import dataclass, replace, asdict
from copy import deepcopy

import numpy as np
import pandas as pd

from .errors import InvalidParameterError


DEFAULT_UNITS = {
    'Ci': 'µmol mol⁻¹',
    'Ca': 'µmol mol⁻¹',
    'A': 'µmol m⁻² s⁻¹',
    'gs': 'mol m⁻² s⁻¹',
    'Tleaf': '°C',
    'Tair': '°C',
    'PAR': 'µmol m⁻² s⁻¹',
    'VPD': 'kPa',
    'Patm': 'kPa',
    'RH': 'fraction',
}


@dataclass(frozen=True)
class LeafState:
    """
    Instantaneous state of a leaf and its surroundings.

    Attributes:
        ci: Intercellular CO2 (µmol mol⁻¹), None until solved
        cc: Chloroplastic CO2 (µmol mol⁻¹), equals ci when gm is infinite
        tleaf: Leaf temperature (°C)
        par: Absorbed photosynthetically active radiation (µmol m⁻² s⁻¹);
            None means light saturation (J = Jmax)
        vpd: Leaf-to-air vapour pressure deficit (kPa)
        patm: Atmospheric pressure (kPa)
        ca: CO2 at the leaf surface (µmol mol⁻¹)
        rh: Relative humidity at the leaf surface (0-1), optional
        tair: Air temperature (°C), used by energy balance; defaults to tleaf
    """
    ci: Optional[float] = None
    cc: Optional[float] = None
    tleaf: float = 25.0
    par: Optional[float] = None
    vpd: float = 1.5
    patm: float = 101.325
    ca: float = 400.0
    rh: Optional[float] = None
    tair: Optional[float] = None

    def __post_init__(self):
        if not np.isfinite(self.tleaf):
            raise InvalidParameterError("tleaf must be finite")
        if self.patm <= 0:
            raise InvalidParameterError(f"patm must be > 0, got {self.patm}")
        if self.ca <= 0:
            raise InvalidParameterError(f"ca must be > 0, got {self.ca}")
        if self.vpd < 0:
            raise InvalidParameterError(f"vpd must be >= 0, got {self.vpd}")
        if self.par is not None and self.par < 0:
            raise InvalidParameterError(f"par must be >= 0, got {self.par}")
        if self.rh is not None and not 0 <= self.rh <= 1:
            raise InvalidParameterError(f"rh must be within [0, 1], got {self.rh}")

    @property
    def air_temperature(self) -> float:
        """Air temperature, falling back to leaf temperature."""
        return self.tleaf if self.tair is None else self.tair

    def replace(self, **changes) -> 'LeafState':
        """Return a new state with some fields changed."""
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class CurveDataset:
    """
    A measured response curve with unit metadata.

    Rows are kept ordered by increasing Ci. The ``A`` and ``Ci`` columns are
    required; ``Tleaf`` and ``PAR`` are used per point when present.

    Attributes:
        data: pandas DataFrame holding the measurements
        units: Dictionary mapping column names to unit strings
        metadata: Free-form information about the curve (species, leaf id, ...)
    """

    REQUIRED_COLUMNS = ('Ci', 'A')

    def __init__(
        self,
        data: Union[pd.DataFrame, Dict, List],
        units: Optional[Dict[str, str]] = None,
        metadata: Optional[Dict[str, Any]] = None,
        required: Optional[List[str]] = None
    ):
        if isinstance(data, pd.DataFrame):
            frame = data.copy()
        else:
            frame = pd.DataFrame(data)

        self.units = dict(units or {})
        self.metadata = dict(metadata or {})
        self.data = frame
        self.check_required_variables(list(required or self.REQUIRED_COLUMNS))

        if 'Ci' in frame.columns:
            self.data = frame.sort_values('Ci', kind='mergesort').reset_index(drop=True)

        for col in self.data.columns:
            if col not in self.units:
                self.units[col] = DEFAULT_UNITS.get(col, 'dimensionless')

    @classmethod
    def from_arrays(
        cls,
        ci: Union[np.ndarray, List[float]],
        a: Union[np.ndarray, List[float]],
        tleaf: Optional[Union[float, np.ndarray]] = None,
        par: Optional[Union[float, np.ndarray]] = None,
        **metadata
    ) -> 'CurveDataset':
        """Build a dataset from plain arrays."""
        frame = pd.DataFrame({'Ci': np.asarray(ci, dtype=float),
                              'A': np.asarray(a, dtype=float)})
        if tleaf is not None:
            frame['Tleaf'] = tleaf
        if par is not None:
            frame['PAR'] = par
        return cls(frame, metadata=metadata)

    def check_required_variables(self, required: List[str]) -> None:
        """
        Check that required columns exist.

        Raises:
            ValueError: If any column is missing
        """
        missing = [col for col in required if col not in self.data.columns]
        if missing:
            raise ValueError(f"Missing required columns: {', '.join(missing)}")

    def has_column(self, column: str) -> bool:
        return column in self.data.columns

    def column_values(
        self,
        column: str,
        default: Optional[float] = None
    ) -> Optional[np.ndarray]:
        """
        Column as a float array, or ``default`` broadcast to the row count.

        Returns None when the column is absent and no default is given.
        """
        if column in self.data.columns:
            return self.data[column].to_numpy(dtype=float)
        if default is None:
            return None
        return np.full(len(self.data), default, dtype=float)

    def get_column_units(self, column: str) -> str:
        return self.units.get(column, 'dimensionless')

    def copy(self) -> 'CurveDataset':
        return CurveDataset(self.data, deepcopy(self.units), deepcopy(self.metadata))

    def subset_rows(self, mask: Union[pd.Series, np.ndarray, List]) -> 'CurveDataset':
        """New dataset holding only the selected rows."""
        return CurveDataset(
            self.data.loc[mask], deepcopy(self.units), deepcopy(self.metadata)
        )

    def __len__(self) -> int:
        return len(self.data)

    def __getitem__(self, key: str) -> pd.Series:
        return self.data[key]

    def __repr__(self) -> str:
        n_rows, n_cols = self.data.shape
        cols_with_units = [
            f"{col} [{self.units.get(col, '?')}]"
            for col in self.data.columns[:5]
        ]
        if n_cols > 5:
            cols_with_units.append("...")
        return (
            f"CurveDataset with {n_rows} rows and {n_cols} columns:\n"
            f"Columns: {', '.join(cols_with_units)}"
        )


def as_curve_dataset(data: Union[CurveDataset, pd.DataFrame]) -> CurveDataset:
    """Accept either a CurveDataset or a DataFrame."""
    if isinstance(data, CurveDataset):
        return data
    if isinstance(data, pd.DataFrame):
        return CurveDataset(data)
    raise TypeError(
        f"Expected CurveDataset or pandas DataFrame, got {type(data).__name__}"
    )
