"""
Bracketed root finding shared by the leaf solvers.
"""

import warnings
from typing import Callable, Tuple

import numpy as np
from scipy.optimize import brentq

from .errors import NoConvergenceWarning
from .options import SolverOptions, DEFAULT_SOLVER_OPTIONS


def expand_bracket(
    func: Callable[[float], float],
    lower: float,
    upper: float,
    options: SolverOptions = DEFAULT_SOLVER_OPTIONS,
    lower_limit: float = 0.0
) -> Tuple[float, float, bool]:
    """
    Widen [lower, upper] until func changes sign.

    The upper bound is doubled away from the lower one; the lower bound is
    moved down but never below ``lower_limit``.

    Returns:
        (lower, upper, found_sign_change)
    """
    f_lo = func(lower)
    f_hi = func(upper)
    if np.sign(f_lo) != np.sign(f_hi) or f_lo == 0 or f_hi == 0:
        return lower, upper, True

    for _ in range(options.max_bracket_expansions):
        width = max(upper - lower, 1.0)
        if abs(f_hi) < abs(f_lo) or lower <= lower_limit:
            upper = upper + width
            f_hi = func(upper)
        else:
            lower = max(lower_limit, lower - width)
            f_lo = func(lower)
        if np.sign(f_lo) != np.sign(f_hi) or f_lo == 0 or f_hi == 0:
            return lower, upper, True

    return lower, upper, False


def find_root(
    func: Callable[[float], float],
    lower: float,
    upper: float,
    options: SolverOptions = DEFAULT_SOLVER_OPTIONS,
    lower_limit: float = 0.0,
    label: str = 'root'
) -> Tuple[float, bool, int]:
    """
    Solve func(x) = 0 with Brent's method on a (possibly widened) bracket.

    On failure a NoConvergenceWarning is issued and the end of the bracket
    with the smaller residual is returned as the best estimate.

    Args:
        func: Scalar residual function
        lower, upper: Initial bracket
        options: Iteration and tolerance bounds
        lower_limit: Hard floor for the lower bracket end
        label: Name of the quantity being solved, used in warnings

    Returns:
        (root, converged, iterations)
    """
    lower, upper, bracketed = expand_bracket(func, lower, upper, options, lower_limit)
    if not bracketed:
        f_lo, f_hi = func(lower), func(upper)
        best = lower if abs(f_lo) <= abs(f_hi) else upper
        warnings.warn(
            f"Could not bracket {label} within [{lower:.4g}, {upper:.4g}] "
            f"after {options.max_bracket_expansions} expansions",
            NoConvergenceWarning
        )
        return best, False, 0

    root, info = brentq(
        func, lower, upper,
        xtol=options.root_xtol, rtol=options.root_rtol,
        maxiter=options.root_maxiter, full_output=True, disp=False
    )
    f_root = func(root)
    converged = (bool(info.converged) and np.isfinite(f_root)
                 and abs(f_root) <= options.residual_atol)
    if not converged:
        warnings.warn(
            f"{label} solve did not converge in {info.iterations} iterations "
            f"({info.flag})",
            NoConvergenceWarning
        )
    return float(root), converged, int(info.iterations)
