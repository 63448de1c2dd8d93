"""
A-Ci curve fitting.

Nonlinear least squares (Levenberg-Marquardt through
``scipy.optimize.curve_fit``) of net assimilation against intercellular CO2
for Vcmax, Jmax and, unless it is known, Rd. Parameters are estimated at the
25 °C reference; leaf temperature and PAR are applied per point when the
dataset carries them.
"""

import warnings
from typing import Dict, Optional, List, Union

import numpy as np
import pandas as pd
from scipy.optimize import curve_fit, OptimizeWarning

from ..core.biochemistry import (
    BiochemicalParameters,
    assimilation_rates,
    calculate_assimilation,
    electron_transport_rate,
    find_transition_ci,
    solve_cc_from_net,
    REGIME_RUBISCO,
    REGIME_ELECTRON_TRANSPORT,
    REGIME_BELOW_COMPENSATION,
)
from ..core.data_structures import CurveDataset, as_curve_dataset
from ..core.errors import FitFailureError, InvalidParameterError, NoConvergenceWarning
from ..core.options import SolverOptions, DEFAULT_SOLVER_OPTIONS
from .initial_guess import (
    estimate_aci_initial_parameters,
    generate_starting_points,
    validate_initial_guess,
    RETRY_MULTIPLIERS,
)
from .results import FitResult, fit_statistics, t_confidence_intervals

METHOD_SMOOTHED = 'smoothed_minimum'
METHOD_FIXED_TRANSITION = 'fixed_transition'


class _AciModel:
    """
    Vectorised A-Ci model with per-point temperature factors precomputed.

    Trial parameter vectors proposed by the optimizer are evaluated without
    validation so that non-physical trials simply produce a poor fit.
    """

    def __init__(self, ci, tleaf, par, template, known_rd, fixed_transition_ci, options):
        self.ci = ci
        self.par = par
        self.template = template
        self.known_rd = known_rd
        self.fixed_transition_ci = fixed_transition_ci
        self.options = options
        self.gm = template.gm if template.has_mesophyll_limitation else None

        unit = template.replace(vcmax=1.0, jmax=1.0, rd=1.0, gm=None)
        adj = unit.at_temperature(tleaf)
        shape = ci.shape
        self.vcmax_factor = np.broadcast_to(adj.vcmax, shape)
        self.jmax_factor = np.broadcast_to(adj.jmax, shape)
        self.rd_factor = np.broadcast_to(adj.rd, shape)
        self.gamma_star = np.broadcast_to(adj.gamma_star, shape)
        self.km = np.broadcast_to(adj.km, shape)
        self.tpu = np.broadcast_to(adj.tpu, shape)

        self.parameter_names = ['vcmax', 'jmax'] + (['rd'] if known_rd is None else [])

    def unpack(self, p):
        vcmax, jmax = p[0], p[1]
        rd = p[2] if self.known_rd is None else self.known_rd
        return vcmax, jmax, rd

    def rates(self, vcmax, jmax, rd):
        """Returns (an, ac, aj, cc) at every data point."""
        vcmax_t = vcmax * self.vcmax_factor
        j = electron_transport_rate(self.par, jmax * self.jmax_factor,
                                    self.template.alpha, self.template.theta_j)
        j = np.broadcast_to(j, self.ci.shape)
        rd_t = rd * self.rd_factor

        def point_rates(c, i):
            an, ac, aj, _, _ = assimilation_rates(
                c, vcmax_t[i], j[i], rd_t[i], self.gamma_star[i], self.km[i],
                self.template.theta, self.tpu[i]
            )
            if self.fixed_transition_ci is not None:
                an = np.where(self.ci[i] < self.fixed_transition_ci, ac, aj) - rd_t[i]
            return an, ac, aj

        if self.gm is None:
            cc = self.ci
        else:
            cc = np.array([
                solve_cc_from_net(self.ci[i], self.gm,
                                  lambda c, i=i: float(point_rates(c, i)[0]),
                                  self.options)
                for i in range(len(self.ci))
            ])

        an, ac, aj = point_rates(cc, slice(None))
        return np.asarray(an, dtype=float), ac, aj, cc

    def __call__(self, _x, *p):
        return self.rates(*self.unpack(p))[0]


def _is_valid(popt, pcov) -> bool:
    return bool(
        np.all(np.isfinite(popt)) and np.all(popt > 0) and np.all(np.isfinite(pcov))
    )


def fit_aci(
    dataset: Union[CurveDataset, pd.DataFrame],
    known_rd: Optional[float] = None,
    fixed_transition_ci: Optional[float] = None,
    gm: Optional[float] = None,
    bio_template: Optional[BiochemicalParameters] = None,
    initial_guess: Optional[Dict[str, float]] = None,
    n_starts: int = len(RETRY_MULTIPLIERS),
    maxfev: int = 5000,
    confidence_level: float = 0.95,
    options: SolverOptions = DEFAULT_SOLVER_OPTIONS,
    verbose: bool = False
) -> FitResult:
    """
    Fit the C3 biochemical model to an A-Ci curve.

    Args:
        dataset: Curve with 'Ci' and 'A' columns; 'Tleaf' and 'PAR' are used
            per point when present
        known_rd: Fix Rd (µmol m⁻² s⁻¹) instead of estimating it
        fixed_transition_ci: Use the discrete Ac/Aj split at this Ci instead
            of the smoothed minimum
        gm: Mesophyll conductance; the model is then evaluated at Cc
        bio_template: Supplies kinetic constants, curvature and temperature
            table; its vcmax/jmax/rd are ignored
        initial_guess: Starting values overriding the data-driven estimate
        n_starts: Number of starting points tried (deterministic grid)
        maxfev: Function evaluation limit per attempt
        confidence_level: Level of the t-based confidence intervals
        options: Tolerances for the Cc root solve when gm is finite
        verbose: Print progress information

    Returns:
        FitResult with parameters at 25 °C

    Raises:
        ValueError: If required columns are missing or there are too few points
        InvalidParameterError: If known_rd, gm or fixed_transition_ci is invalid
        FitFailureError: If no starting point yields a valid fit
    """
    data = as_curve_dataset(dataset)
    data.check_required_variables(['Ci', 'A'])

    frame = data.data.dropna(subset=['Ci', 'A'])
    ci = frame['Ci'].to_numpy(dtype=float)
    a = frame['A'].to_numpy(dtype=float)
    tleaf = frame['Tleaf'].to_numpy(dtype=float) if 'Tleaf' in frame else np.full_like(ci, 25.0)
    par = frame['PAR'].to_numpy(dtype=float) if 'PAR' in frame else None

    if known_rd is not None and known_rd < 0:
        raise InvalidParameterError(f"known_rd must be >= 0, got {known_rd}")
    if fixed_transition_ci is not None and not fixed_transition_ci > 0:
        raise InvalidParameterError(
            f"fixed_transition_ci must be > 0, got {fixed_transition_ci}"
        )

    template = bio_template or BiochemicalParameters(vcmax=100.0, jmax=180.0)
    if gm is not None:
        template = template.replace(gm=gm)

    model = _AciModel(ci, tleaf, par, template, known_rd, fixed_transition_ci, options)
    names = model.parameter_names
    n_points = len(ci)
    if n_points <= len(names):
        raise ValueError(
            f"At least {len(names) + 1} points are required to fit {names}, got {n_points}"
        )

    # Starting values
    if initial_guess is None:
        if verbose:
            print("Estimating initial parameters...")
        initial = estimate_aci_initial_parameters(ci, a, template, tleaf, par, known_rd)
    else:
        initial = {**estimate_aci_initial_parameters(ci, a, template, tleaf, par, known_rd),
                   **initial_guess}
    messages: List[str] = []
    is_valid, guess_warnings = validate_initial_guess(initial)
    if not is_valid:
        messages.extend(guess_warnings)
        if verbose:
            print(f"Initial guess warnings: {guess_warnings}")

    starts = generate_starting_points(initial, n_starts)
    best = None
    accepted = None
    attempts = 0

    for start in starts:
        attempts += 1
        p0 = [start[name] for name in names]
        try:
            with warnings.catch_warnings():
                warnings.simplefilter('ignore', OptimizeWarning)
                warnings.simplefilter('ignore', NoConvergenceWarning)
                warnings.simplefilter('ignore', RuntimeWarning)
                popt, pcov, infodict, mesg, ier = curve_fit(
                    model, ci, a, p0=p0, method='lm', maxfev=maxfev,
                    full_output=True
                )
        except (RuntimeError, ValueError) as e:
            if verbose:
                print(f"  attempt {attempts} from {p0} failed: {e}")
            if best is None:
                best = {'start': dict(zip(names, p0)), 'estimates': None,
                        'rss': np.inf, 'message': str(e)}
            continue

        rss = float(np.sum(infodict['fvec'] ** 2))
        attempt = {'start': dict(zip(names, p0)),
                   'estimates': dict(zip(names, popt)),
                   'rss': rss, 'message': mesg}
        if best is None or rss < best['rss']:
            best = attempt
        if _is_valid(popt, pcov):
            accepted = (popt, pcov, mesg)
            break
        if verbose:
            print(f"  attempt {attempts} rejected: estimates {popt}")

    if accepted is None:
        diagnostics = dict(best or {})
        diagnostics['attempts'] = attempts
        raise FitFailureError(
            f"A-Ci fit failed from all {attempts} starting points", diagnostics
        )

    popt, pcov, mesg = accepted
    if attempts > 1:
        messages.append(f"accepted fit from starting point {attempts}")

    vcmax, jmax, rd = model.unpack(popt)
    fitted, ac, aj, cc = model.rates(vcmax, jmax, rd)
    residuals = a - fitted
    rss, rmse, r_squared = fit_statistics(a, fitted)

    estimates = dict(zip(names, map(float, popt)))
    standard_errors = dict(zip(names, map(float, np.sqrt(np.diag(pcov)))))
    dof = n_points - len(names)
    intervals = t_confidence_intervals(estimates, standard_errors, dof, confidence_level)

    fitted_params = template.replace(vcmax=vcmax, jmax=jmax, rd=rd)
    mean_par = None if par is None else float(np.mean(par))
    if fixed_transition_ci is not None:
        transition_ci = float(fixed_transition_ci)
        regime = np.where(ci < fixed_transition_ci, REGIME_RUBISCO,
                          REGIME_ELECTRON_TRANSPORT).astype(object)
        regime[cc <= model.gamma_star] = REGIME_BELOW_COMPENSATION
        method = METHOD_FIXED_TRANSITION
    else:
        transition_ci = float(find_transition_ci(float(np.mean(tleaf)), fitted_params, mean_par))
        regime = np.asarray(
            calculate_assimilation(cc, tleaf, fitted_params, par).regime, dtype=object
        )
        method = METHOD_SMOOTHED

    fixed = {}
    if known_rd is not None:
        fixed['rd'] = float(known_rd)
    if gm is not None:
        fixed['gm'] = float(gm)

    result = FitResult(
        parameters={**estimates, **fixed},
        standard_errors=standard_errors,
        covariance=pcov,
        parameter_names=names,
        converged=True,
        rss=rss,
        transition_ci=transition_ci,
        messages=messages,
        observed=a,
        fitted=fitted,
        residuals=residuals,
        x=ci,
        rmse=rmse,
        r_squared=r_squared,
        n_points=n_points,
        confidence_intervals=intervals,
        method=method,
        confidence_level=confidence_level,
        fixed_parameters=fixed,
        attempts=attempts,
        regime=regime,
    )

    if verbose:
        print(f"Optimization complete: {mesg}")
        print(result.summary())

    return result
