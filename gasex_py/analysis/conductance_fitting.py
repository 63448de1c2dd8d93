"""
Regression of stomatal conductance model coefficients.

Every variant can be written as

    gs - a(D) An / Ca = g0 + g1 b(D) An / Ca

which is linear in (g0, g1) once the VPD response is fixed. Those cases use
ordinary least squares (``scipy.stats.linregress``, or a closed form through
a fixed intercept). When the Leuning D0 or the Medlyn exponent gk is
estimated as well, the model is fitted by nonlinear least squares with lmfit.
"""

from typing import Dict, Optional, Union, Tuple

import lmfit
import numpy as np
import pandas as pd
from scipy import stats

from ..core.conductance import ConductanceParameters, get_variant
from ..core.data_structures import CurveDataset
from ..core.errors import InvalidParameterError, FitFailureError
from .results import FitResult, fit_statistics, t_confidence_intervals

REQUIRED_COLUMNS = ['gs', 'A', 'Ca', 'VPD']

# Extra coefficient estimated by the nonlinear fit, with its bounds
D_RESPONSE_PARAMETERS = {
    'Leuning': ('d0', 1e-3, 50.0),
    'MedlynOptimality': ('gk', 0.0, 1.0),
}


def _columns(data: Union[CurveDataset, pd.DataFrame]) -> Dict[str, np.ndarray]:
    frame = data.data if isinstance(data, CurveDataset) else data
    missing = [col for col in REQUIRED_COLUMNS if col not in frame.columns]
    if missing:
        raise ValueError(f"Missing required columns: {', '.join(missing)}")
    frame = frame.dropna(subset=REQUIRED_COLUMNS)
    columns = {col: frame[col].to_numpy(dtype=float) for col in REQUIRED_COLUMNS}
    columns['RH'] = frame['RH'].to_numpy(dtype=float) if 'RH' in frame.columns else None
    return columns


def _linear_design(columns, params: ConductanceParameters) -> Tuple[np.ndarray, np.ndarray]:
    """Predictor b(D) An/Ca and response gs - a(D) An/Ca."""
    variant = get_variant(params.variant)
    vpd = np.maximum(columns['VPD'], params.vpd_min)
    an_over_ca = columns['A'] / columns['Ca']
    x = variant.slope_factor(vpd, columns['RH'], params) * an_over_ca
    y = columns['gs'] - variant.intercept_factor(vpd, columns['RH'], params) * an_over_ca
    return x, y


def _fit_linear(x, y, fix_g0):
    """
    Returns:
        (estimates, standard_errors, covariance, parameter_names)
    """
    n = len(x)
    if fix_g0 is None:
        reg = stats.linregress(x, y)
        estimates = {'g0': float(reg.intercept), 'g1': float(reg.slope)}
        se_slope = float(reg.stderr)
        se_intercept = float(reg.intercept_stderr)
        cov_01 = -np.mean(x) * se_slope ** 2
        covariance = np.array([[se_intercept ** 2, cov_01],
                               [cov_01, se_slope ** 2]])
        errors = {'g0': se_intercept, 'g1': se_slope}
        return estimates, errors, covariance, ['g0', 'g1']

    # Least squares through a fixed intercept
    sxx = float(np.sum(x ** 2))
    if sxx == 0:
        raise FitFailureError("Predictor is identically zero; g1 is not identifiable")
    g1 = float(np.sum(x * (y - fix_g0)) / sxx)
    rss = float(np.sum((y - fix_g0 - g1 * x) ** 2))
    variance = rss / (n - 1)
    se_g1 = float(np.sqrt(variance / sxx))
    return {'g1': g1}, {'g1': se_g1}, np.array([[se_g1 ** 2]]), ['g1']


def _predict(an_over_ca, vpd, rh, values, base: ConductanceParameters) -> np.ndarray:
    """gs from raw coefficient values, which may lie outside the physical range."""
    variant = get_variant(base.variant)
    shape = base.replace(d0=values.get('d0', base.d0), gk=values.get('gk', base.gk))
    d = np.maximum(vpd, base.vpd_min)
    slope = (variant.intercept_factor(d, rh, shape)
             + values['g1'] * variant.slope_factor(d, rh, shape))
    return values.get('g0', 0.0) + slope * an_over_ca


def _residual(pars, an_over_ca, vpd, rh, gs, base):
    return _predict(an_over_ca, vpd, rh, pars.valuesdict(), base) - gs


def fit_conductance(
    data: Union[CurveDataset, pd.DataFrame],
    variant: str = 'MedlynOptimality',
    fix_g0: Optional[float] = None,
    fit_d_response: bool = False,
    d0: float = 1.5,
    gk: float = 0.5,
    confidence_level: float = 0.95,
    verbose: bool = False
) -> FitResult:
    """
    Estimate conductance model coefficients from paired observations.

    Args:
        data: Columns 'gs' (mol m⁻² s⁻¹), 'A' (µmol m⁻² s⁻¹), 'Ca'
            (µmol mol⁻¹) and 'VPD' (kPa); 'RH' is used by Ball-Berry
        variant: 'BallBerry', 'Leuning' or 'MedlynOptimality'
        fix_g0: Hold g0 at this value instead of estimating it
        fit_d_response: Also estimate d0 (Leuning) or gk (Medlyn)
        d0, gk: VPD response coefficients used when not estimated
        confidence_level: Level of the t-based confidence intervals
        verbose: Print the lmfit report for nonlinear fits

    Returns:
        FitResult; ``x`` holds the linear predictor b(D) An/Ca

    Raises:
        ValueError: Missing columns or too few points
        InvalidParameterError: Unknown variant, or a D response requested
            for a variant without one
        FitFailureError: The nonlinear fit did not converge
    """
    base = ConductanceParameters(variant=variant, d0=d0, gk=gk)
    columns = _columns(data)
    n_points = len(columns['gs'])

    if fit_d_response and variant not in D_RESPONSE_PARAMETERS:
        raise InvalidParameterError(
            f"Variant '{variant}' has no VPD response coefficient to estimate"
        )

    n_free = (1 if fix_g0 is None else 0) + 1 + (1 if fit_d_response else 0)
    if n_points <= n_free:
        raise ValueError(f"At least {n_free + 1} points are required, got {n_points}")

    x, y = _linear_design(columns, base)
    fixed = {} if fix_g0 is None else {'g0': float(fix_g0)}
    messages = []

    if not fit_d_response:
        estimates, errors, covariance, names = _fit_linear(x, y, fix_g0)
        method = 'linear_regression' if fix_g0 is None else 'linear_fixed_intercept'
        converged = True
        fixed.update({'d0': d0} if variant == 'Leuning' else {})
        fixed.update({'gk': gk} if variant == 'MedlynOptimality' else {})
    else:
        extra, lower, upper = D_RESPONSE_PARAMETERS[variant]
        start, _, _, _ = _fit_linear(x, y, fix_g0)

        params = lmfit.Parameters()
        params.add('g0', start.get('g0', fix_g0), vary=fix_g0 is None)
        params.add('g1', max(start['g1'], 1e-3), min=0.0)
        params.add(extra, d0 if extra == 'd0' else gk, min=lower, max=upper)

        out = lmfit.minimize(
            _residual, params,
            args=(columns['A'] / columns['Ca'], columns['VPD'], columns['RH'],
                  columns['gs'], base),
            method='leastsq'
        )
        if verbose:
            print(lmfit.fit_report(out))
        if not out.success:
            raise FitFailureError(
                f"Nonlinear conductance fit did not converge: {out.message}",
                {'estimates': out.params.valuesdict(), 'message': out.message}
            )

        names = list(out.var_names)
        estimates = {name: float(out.params[name].value) for name in names}
        if out.covar is not None and out.errorbars:
            covariance = np.asarray(out.covar)
            errors = {name: float(out.params[name].stderr) for name in names}
        else:
            covariance = np.full((len(names), len(names)), np.nan)
            errors = {name: np.nan for name in names}
            messages.append('covariance could not be estimated')
        method = 'nonlinear_lmfit'
        converged = bool(out.success)

    all_values = {**fixed, **estimates}
    fitted = _predict(columns['A'] / columns['Ca'], columns['VPD'], columns['RH'],
                      all_values, base)
    rss, rmse, r_squared = fit_statistics(columns['gs'], fitted)
    intervals = t_confidence_intervals(estimates, errors, n_points - len(names),
                                       confidence_level)

    return FitResult(
        parameters=all_values,
        standard_errors=errors,
        covariance=covariance,
        parameter_names=names,
        converged=converged,
        rss=rss,
        transition_ci=np.nan,
        messages=messages,
        observed=columns['gs'],
        fitted=fitted,
        residuals=columns['gs'] - fitted,
        x=x,
        rmse=rmse,
        r_squared=r_squared,
        n_points=n_points,
        confidence_intervals=intervals,
        method=method,
        confidence_level=confidence_level,
        fixed_parameters=fixed,
    )
