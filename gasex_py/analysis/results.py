"""
Fit result container shared by the A-Ci and conductance fitters.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np
import pandas as pd
from scipy import stats


PARAMETER_UNITS = {
    'vcmax': 'µmol m⁻² s⁻¹',
    'jmax': 'µmol m⁻² s⁻¹',
    'rd': 'µmol m⁻² s⁻¹',
    'g0': 'mol m⁻² s⁻¹',
    'g1': '',
    'd0': 'kPa',
    'gk': '',
}


@dataclass(frozen=True)
class FitResult:
    """Container for model fitting results."""
    # Estimates
    parameters: Dict[str, float]
    standard_errors: Dict[str, float]
    covariance: np.ndarray
    parameter_names: List[str]

    # Optimization results
    converged: bool
    rss: float
    transition_ci: float
    messages: List[str]

    # Model predictions
    observed: np.ndarray
    fitted: np.ndarray
    residuals: np.ndarray
    x: np.ndarray

    # Statistics
    rmse: float
    r_squared: float
    n_points: int
    confidence_intervals: Dict[str, Tuple[float, float]]

    # Additional info
    method: str = ''
    confidence_level: float = 0.95
    fixed_parameters: Dict[str, float] = field(default_factory=dict)
    attempts: int = 1
    regime: Optional[np.ndarray] = None

    @property
    def degrees_of_freedom(self) -> int:
        return self.n_points - len(self.parameter_names)

    def summary(self) -> str:
        """Plain-text report of estimates and fit statistics."""
        lines = [f"Fit method: {self.method}  (converged: {self.converged}, "
                 f"attempts: {self.attempts})"]
        for name in self.parameter_names:
            lower, upper = self.confidence_intervals.get(name, (np.nan, np.nan))
            lines.append(
                f"  {name:>6s} = {self.parameters[name]:10.4f} "
                f"± {self.standard_errors[name]:.4f}  "
                f"{self.confidence_level:.0%} CI [{lower:.4f}, {upper:.4f}] {PARAMETER_UNITS.get(name, '')}"
            )
        for name, value in self.fixed_parameters.items():
            lines.append(f"  {name:>6s} = {value:10.4f} (fixed)")
        lines.append(f"  RMSE = {self.rmse:.4f}, R² = {self.r_squared:.4f}, "
                     f"n = {self.n_points}")
        if np.isfinite(self.transition_ci):
            lines.append(f"  Transition Ci = {self.transition_ci:.1f} µmol mol⁻¹")
        for message in self.messages:
            lines.append(f"  note: {message}")
        return "\n".join(lines)

    def summary_frame(self) -> pd.DataFrame:
        """
        Summary DataFrame of parameter estimates and statistics.

        Returns:
            DataFrame with Parameter, Value, StdError, CI_lower, CI_upper, Unit
        """
        rows = []
        for name in self.parameter_names:
            lower, upper = self.confidence_intervals.get(name, (np.nan, np.nan))
            rows.append({
                'Parameter': name,
                'Value': self.parameters[name],
                'StdError': self.standard_errors[name],
                'CI_lower': lower,
                'CI_upper': upper,
                'Unit': PARAMETER_UNITS.get(name, ''),
            })
        for name, value in self.fixed_parameters.items():
            rows.append({'Parameter': name, 'Value': value, 'StdError': np.nan,
                         'CI_lower': np.nan, 'CI_upper': np.nan,
                         'Unit': PARAMETER_UNITS.get(name, '')})

        stats_rows = {
            'RMSE': self.rmse,
            'R²': self.r_squared,
            'RSS': self.rss,
            'transition_Ci': self.transition_ci,
        }
        for name, value in stats_rows.items():
            rows.append({'Parameter': name, 'Value': value, 'StdError': np.nan,
                         'CI_lower': np.nan, 'CI_upper': np.nan, 'Unit': ''})
        return pd.DataFrame(rows)

    def residual_frame(self) -> pd.DataFrame:
        """Per-point observed, fitted and residual values, ready for plotting."""
        frame = pd.DataFrame({
            'x': self.x,
            'observed': self.observed,
            'fitted': self.fitted,
            'residual': self.residuals,
        })
        if self.regime is not None:
            frame['regime'] = self.regime
        return frame


def fit_statistics(observed: np.ndarray, fitted: np.ndarray) -> Tuple[float, float, float]:
    """
    Returns:
        (rss, rmse, r_squared)
    """
    residuals = observed - fitted
    rss = float(np.sum(residuals ** 2))
    rmse = float(np.sqrt(np.mean(residuals ** 2)))
    ss_tot = float(np.sum((observed - np.mean(observed)) ** 2))
    r_squared = 1.0 - rss / ss_tot if ss_tot > 0 else 0.0
    return rss, rmse, r_squared


def t_confidence_intervals(
    estimates: Dict[str, float],
    standard_errors: Dict[str, float],
    dof: int,
    confidence_level: float = 0.95
) -> Dict[str, Tuple[float, float]]:
    """Symmetric t-based intervals, estimate ± t(dof) SE."""
    if dof < 1:
        return {name: (np.nan, np.nan) for name in estimates}
    t_crit = stats.t.ppf(0.5 + confidence_level / 2.0, dof)
    return {
        name: (value - t_crit * standard_errors[name],
               value + t_crit * standard_errors[name])
        for name, value in estimates.items()
    }


def summarize_fit(result: FitResult) -> pd.DataFrame:
    """
    Create a summary DataFrame of fitting results.

    Args:
        result: FitResult from fit_aci or fit_conductance

    Returns:
        DataFrame with parameter estimates and statistics
    """
    return result.summary_frame()
