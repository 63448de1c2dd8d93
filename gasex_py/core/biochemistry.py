"""
C3 photosynthesis calculations using the Farquhar-von Caemmerer-Berry model.

This module implements the biochemical demand function:
- Rubisco-limited gross assimilation (Ac)
- RuBP-regeneration (electron transport) limited gross assimilation (Aj)
- Optional triose phosphate utilization cap (Ap)
- Smoothed co-limitation and net CO2 assimilation (An = Am - Rd)

Parameters are defined at 25 °C and scaled to leaf temperature with the
coefficient tables in ``temperature.py``. All rate functions accept scalars
or numpy arrays.
"""

import numpy as np
from typing import Callable, Dict, Union, Optional, Mapping, Tuple
from dataclasses import dataclass, field, replace

from .errors import InvalidParameterError
from .options import SolverOptions, DEFAULT_SOLVER_OPTIONS
from .numerics import find_root
from .temperature import (
    TemperatureParameter,
    apply_temperature_response,
    TEMPERATURE_PARAM_DEFAULT,
)

ArrayLike = Union[float, np.ndarray]

# Reference values at 25 °C (plantecophys defaults)
GAMMA_STAR_25 = 42.75  # µmol mol⁻¹
KC_25 = 404.9          # µmol mol⁻¹
KO_25 = 278.4          # mmol mol⁻¹
OXYGEN = 210.0         # mmol mol⁻¹

ALPHA_J = 0.24   # Quantum yield of electron transport
THETA_J = 0.85   # Curvature of the light response of J
THETA = 0.9999   # Co-limitation curvature between Ac and Aj

REGIME_RUBISCO = 'rubisco'
REGIME_ELECTRON_TRANSPORT = 'electron_transport'
REGIME_TPU = 'tpu'
REGIME_BELOW_COMPENSATION = 'below_compensation'


@dataclass(frozen=True)
class BiochemicalParameters:
    """
    Photosynthetic capacity of a leaf at the 25 °C reference.

    Attributes:
        vcmax: Maximum carboxylation rate (µmol m⁻² s⁻¹)
        jmax: Maximum electron transport rate (µmol m⁻² s⁻¹)
        rd: Day respiration (µmol m⁻² s⁻¹)
        gamma_star: CO2 compensation point without Rd (µmol mol⁻¹);
            None uses the 25 °C default
        km: Effective Michaelis constant (µmol mol⁻¹); None computes
            Km = Kc (1 + O / Ko)
        kc, ko, oxygen: Rubisco kinetic constants used when km is None
        theta: Curvature of the Ac/Aj smoothed minimum (1 = hard minimum)
        alpha: Quantum yield of electron transport
        theta_j: Curvature of the J light response
        tpu: Triose phosphate utilization rate (inf disables the cap)
        gm: Mesophyll conductance (mol m⁻² s⁻¹); None means infinite
        temperature_params: Coefficient table keyed by parameter name
    """
    vcmax: float
    jmax: float
    rd: float = 1.0
    gamma_star: Optional[float] = None
    km: Optional[float] = None
    kc: float = KC_25
    ko: float = KO_25
    oxygen: float = OXYGEN
    theta: float = THETA
    alpha: float = ALPHA_J
    theta_j: float = THETA_J
    tpu: float = np.inf
    gm: Optional[float] = None
    temperature_params: Mapping[str, TemperatureParameter] = field(
        default_factory=lambda: TEMPERATURE_PARAM_DEFAULT, hash=False, repr=False
    )

    def __post_init__(self):
        _validate_parameters(self)

    @property
    def has_mesophyll_limitation(self) -> bool:
        return self.gm is not None and np.isfinite(self.gm)

    def values_at_25(self) -> Dict[str, float]:
        """Parameter values that carry a temperature response."""
        values = {
            'vcmax': self.vcmax,
            'jmax': self.jmax,
            'rd': self.rd,
            'gamma_star': GAMMA_STAR_25 if self.gamma_star is None else self.gamma_star,
            'tpu': self.tpu,
        }
        if self.km is None:
            values['kc'] = self.kc
            values['ko'] = self.ko
        else:
            values['km'] = self.km
        return values

    def at_temperature(self, tleaf: ArrayLike) -> 'TemperatureAdjustedParameters':
        """
        Scale the 25 °C values to leaf temperature.

        Args:
            tleaf: Leaf temperature (°C), scalar or array

        Returns:
            TemperatureAdjustedParameters; this object is left unchanged
        """
        adjusted = apply_temperature_response(
            self.values_at_25(), self.temperature_params, tleaf
        )
        if self.km is None:
            km = adjusted['kc'] * (1.0 + self.oxygen / adjusted['ko'])
        else:
            km = adjusted['km']
        return TemperatureAdjustedParameters(
            vcmax=adjusted['vcmax'],
            jmax=adjusted['jmax'],
            rd=adjusted['rd'],
            gamma_star=adjusted['gamma_star'],
            km=km,
            tpu=adjusted['tpu'],
            tleaf=tleaf,
        )

    def replace(self, **changes) -> 'BiochemicalParameters':
        return replace(self, **changes)


@dataclass(frozen=True)
class TemperatureAdjustedParameters:
    """Kinetic parameters at leaf temperature."""
    vcmax: ArrayLike
    jmax: ArrayLike
    rd: ArrayLike
    gamma_star: ArrayLike
    km: ArrayLike
    tpu: ArrayLike
    tleaf: ArrayLike


@dataclass
class AssimilationResult:
    """Container for assimilation calculation results."""
    an: ArrayLike  # Net CO2 assimilation rate (µmol m⁻² s⁻¹)
    ac: ArrayLike  # Rubisco-limited gross assimilation
    aj: ArrayLike  # Electron-transport-limited gross assimilation
    ap: ArrayLike  # TPU-limited gross assimilation (inf when disabled)
    am: ArrayLike  # Co-limited gross assimilation
    regime: Union[str, np.ndarray]
    cc: ArrayLike

    # Temperature-adjusted parameters
    vcmax: ArrayLike
    j: ArrayLike
    rd: ArrayLike
    gamma_star: ArrayLike
    km: ArrayLike


def _validate_parameters(params: BiochemicalParameters) -> None:
    """
    Raises:
        InvalidParameterError: If any value is non-physical
    """
    for name in ('vcmax', 'jmax', 'kc', 'ko', 'tpu', 'alpha'):
        value = getattr(params, name)
        if not value > 0:
            raise InvalidParameterError(f"{name} must be > 0, got {value}")
    if params.km is not None and not params.km > 0:
        raise InvalidParameterError(f"km must be > 0, got {params.km}")
    if params.gamma_star is not None and params.gamma_star < 0:
        raise InvalidParameterError(f"gamma_star must be >= 0, got {params.gamma_star}")
    if not params.rd >= 0:
        raise InvalidParameterError(f"rd must be >= 0, got {params.rd}")
    if params.oxygen < 0:
        raise InvalidParameterError(f"oxygen must be >= 0, got {params.oxygen}")
    for name in ('theta', 'theta_j'):
        value = getattr(params, name)
        if not 0 < value <= 1:
            raise InvalidParameterError(f"{name} must be within (0, 1], got {value}")
    if params.gm is not None and not params.gm > 0:
        raise InvalidParameterError(f"gm must be > 0 when given, got {params.gm}")


def electron_transport_rate(
    par: Optional[ArrayLike],
    jmax: ArrayLike,
    alpha: float = ALPHA_J,
    theta_j: float = THETA_J
) -> ArrayLike:
    """
    Potential electron transport rate from the non-rectangular hyperbola.

    J = (aQ + Jmax - sqrt((aQ + Jmax)^2 - 4 theta_j aQ Jmax)) / (2 theta_j)

    Returns Jmax when PAR is None (light saturation).
    """
    if par is None:
        return jmax
    aq = alpha * np.asarray(par, dtype=float)
    radicand = np.maximum((aq + jmax) ** 2 - 4.0 * theta_j * aq * jmax, 0.0)
    return (aq + jmax - np.sqrt(radicand)) / (2.0 * theta_j)


def smoothed_minimum(x: ArrayLike, y: ArrayLike, theta: float = THETA) -> ArrayLike:
    """
    Smaller root of theta z^2 - (x + y) z + x y = 0.

    Reduces to min(x, y) when theta = 1. The radicand is clamped at zero.
    """
    total = x + y
    radicand = np.maximum(total ** 2 - 4.0 * theta * x * y, 0.0)
    return (total - np.sqrt(radicand)) / (2.0 * theta)


def assimilation_rates(
    cc: ArrayLike,
    vcmax: ArrayLike,
    j: ArrayLike,
    rd: ArrayLike,
    gamma_star: ArrayLike,
    km: ArrayLike,
    theta: float = THETA,
    tpu: ArrayLike = np.inf
) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """
    Raw rate equations, without validation.

    Used directly by the curve fitter, which must evaluate trial parameter
    vectors the optimizer proposes even when they are non-physical.

    Returns:
        (an, ac, aj, ap, am) as arrays
    """
    cc = np.asarray(cc, dtype=float)
    with np.errstate(divide='ignore', invalid='ignore'):
        denom_c = cc + km
        denom_j = cc + 2.0 * gamma_star
        ac = np.where(denom_c > 0, vcmax * (cc - gamma_star) / denom_c, np.nan)
        aj = np.where(denom_j > 0, j / 4.0 * (cc - gamma_star) / denom_j, np.nan)
    ap = np.broadcast_to(3.0 * np.asarray(tpu, dtype=float), ac.shape).astype(float)
    am = np.minimum(smoothed_minimum(ac, aj, theta), ap)
    an = am - rd
    return an, ac, aj, ap, am


def _classify(ac, aj, ap, am, cc, gamma_star, theta) -> np.ndarray:
    ac, aj, ap, am = np.broadcast_arrays(
        np.asarray(ac), np.asarray(aj), np.asarray(ap), np.asarray(am)
    )
    cc = np.broadcast_to(np.asarray(cc, dtype=float), ac.shape)
    gamma_star = np.broadcast_to(np.asarray(gamma_star, dtype=float), ac.shape)
    smooth = smoothed_minimum(ac, aj, theta)
    regime = np.where(ac <= aj, REGIME_RUBISCO, REGIME_ELECTRON_TRANSPORT).astype(object)
    regime[ap < smooth] = REGIME_TPU
    regime[cc <= gamma_star] = REGIME_BELOW_COMPENSATION
    return regime


def identify_limiting_regime(
    result: AssimilationResult,
    theta: float = THETA
) -> Union[str, np.ndarray]:
    """
    Identify which process limits photosynthesis at each point.

    Returns:
        'rubisco', 'electron_transport', 'tpu' or 'below_compensation'
        (a string for scalar results, an object array otherwise)
    """
    regime = _classify(result.ac, result.aj, result.ap, result.am,
                       result.cc, result.gamma_star, theta)
    if regime.ndim == 0:
        return str(regime[()])
    return regime


def _unwrap(value):
    value = np.asarray(value)
    return float(value) if value.ndim == 0 else value


def calculate_assimilation(
    cc: ArrayLike,
    tleaf: ArrayLike,
    params: BiochemicalParameters,
    par: Optional[ArrayLike] = None
) -> AssimilationResult:
    """
    Net assimilation at a given chloroplastic CO2 concentration.

    Args:
        cc: Chloroplastic CO2 (µmol mol⁻¹); equals Ci when gm is infinite
        tleaf: Leaf temperature (°C)
        params: Biochemical parameters at 25 °C
        par: Absorbed PAR (µmol m⁻² s⁻¹); None means light saturation

    Returns:
        AssimilationResult; a Cc at or below Γ* gives a non-positive An and
        the 'below_compensation' regime rather than an error
    """
    adj = params.at_temperature(tleaf)
    j = electron_transport_rate(par, adj.jmax, params.alpha, params.theta_j)
    an, ac, aj, ap, am = assimilation_rates(
        cc, adj.vcmax, j, adj.rd, adj.gamma_star, adj.km, params.theta, adj.tpu
    )
    regime = _classify(ac, aj, ap, am, cc, adj.gamma_star, params.theta)

    return AssimilationResult(
        an=_unwrap(an), ac=_unwrap(ac), aj=_unwrap(aj), ap=_unwrap(ap),
        am=_unwrap(am),
        regime=str(regime[()]) if regime.ndim == 0 else regime,
        cc=_unwrap(cc),
        vcmax=_unwrap(adj.vcmax), j=_unwrap(j), rd=_unwrap(adj.rd),
        gamma_star=_unwrap(adj.gamma_star), km=_unwrap(adj.km),
    )


def chloroplast_co2(
    ci: ArrayLike,
    tleaf: ArrayLike,
    params: BiochemicalParameters,
    par: Optional[ArrayLike] = None,
    options: SolverOptions = DEFAULT_SOLVER_OPTIONS
) -> ArrayLike:
    """
    Chloroplastic CO2 from intercellular CO2 through a finite gm.

    Solves An(Cc) = gm (Ci - Cc) for Cc. Returns Ci unchanged when gm is
    None or infinite. Array inputs are solved point by point.
    """
    if not params.has_mesophyll_limitation:
        return ci

    ci_arr, tleaf_arr = np.broadcast_arrays(
        np.asarray(ci, dtype=float), np.asarray(tleaf, dtype=float)
    )
    par_arr = None if par is None else np.broadcast_to(
        np.asarray(par, dtype=float), ci_arr.shape
    )

    cc = np.empty(ci_arr.shape, dtype=float)
    for idx in np.ndindex(ci_arr.shape):
        point_par = None if par_arr is None else float(par_arr[idx])
        cc[idx] = _solve_cc(float(ci_arr[idx]), float(tleaf_arr[idx]),
                            params, point_par, options)
    return _unwrap(cc)


def _solve_cc(ci, tleaf, params, par, options) -> float:
    adj = params.at_temperature(tleaf)
    j = electron_transport_rate(par, adj.jmax, params.alpha, params.theta_j)

    def net(c):
        return float(assimilation_rates(
            c, adj.vcmax, j, adj.rd, adj.gamma_star, adj.km, params.theta, adj.tpu
        )[0])

    return solve_cc_from_net(ci, params.gm, net, options)


def solve_cc_from_net(
    ci: float,
    gm: float,
    net: Callable[[float], float],
    options: SolverOptions = DEFAULT_SOLVER_OPTIONS
) -> float:
    """
    Root of net(Cc) - gm (Ci - Cc) for any net assimilation function.

    The residual increases with Cc, and the drawdown net(Ci) / gm bounds the
    root on the side opposite to Ci.
    """
    an_ci = net(ci)
    if an_ci == 0:
        return ci

    def residual(c):
        return net(c) - gm * (ci - c)

    drawdown = an_ci / gm
    if an_ci > 0:
        lower, upper = max(0.0, ci - drawdown - 1.0), ci
    else:
        lower, upper = ci, ci - drawdown + 1.0
    cc, _, _ = find_root(residual, lower, upper, options, label='Cc')
    return cc


def find_transition_ci(
    tleaf: float,
    params: BiochemicalParameters,
    par: Optional[float] = None
) -> float:
    """
    Intercellular CO2 at which Ac equals Aj.

    Closed form in Cc: (J Km / 4 - 2 Γ* Vcmax) / (Vcmax - J / 4), mapped back
    to Ci through gm when mesophyll conductance is finite.

    Returns:
        Transition Ci (µmol mol⁻¹), NaN when Ac and Aj never cross for Cc > 0
    """
    adj = params.at_temperature(tleaf)
    j = electron_transport_rate(par, adj.jmax, params.alpha, params.theta_j)
    slope = adj.vcmax - j / 4.0
    if slope <= 0:
        return np.nan
    cc_t = (j * adj.km / 4.0 - 2.0 * adj.gamma_star * adj.vcmax) / slope
    if not cc_t > 0:
        return np.nan
    cc_t = float(cc_t)
    if not params.has_mesophyll_limitation:
        return cc_t
    an = calculate_assimilation(cc_t, tleaf, params, par).an
    return cc_t + an / params.gm


def assimilation_at_ci(
    ci: float,
    tleaf: float,
    params: BiochemicalParameters,
    par: Optional[float] = None,
    options: SolverOptions = DEFAULT_SOLVER_OPTIONS
) -> AssimilationResult:
    """Net assimilation at intercellular CO2, passing through gm when finite."""
    cc = chloroplast_co2(ci, tleaf, params, par, options)
    return calculate_assimilation(cc, tleaf, params, par)


def compensation_point(
    tleaf: float,
    params: BiochemicalParameters,
    par: Optional[float] = None,
    upper: float = 400.0,
    options: SolverOptions = DEFAULT_SOLVER_OPTIONS
) -> float:
    """
    Intercellular CO2 compensation point (An = 0, Rd included).

    Searches upward from Ci = 0 with bracket expansion beyond ``upper``.
    """
    def net(ci):
        return assimilation_at_ci(ci, tleaf, params, par, options).an

    root, _, _ = find_root(net, 0.0, upper, options, label='compensation point')
    return root
