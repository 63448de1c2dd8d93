"""
Empirical and optimality-based stomatal conductance models.

All variants share one form,

    gs = g0 + (a(D) + g1 b(D)) An / Ca

where a and b depend only on the leaf-to-air vapour pressure deficit D (and
relative humidity for Ball-Berry). Each variant is a small record of those
two functions in the ``CONDUCTANCE_VARIANTS`` registry, so the coupled
solver and the regression fitter treat every variant identically.

Conductances are for water vapour (mol m⁻² s⁻¹); divide by 1.6 for CO2.
"""

import warnings
from dataclasses import dataclass, replace
from typing import Callable, Dict, Optional, Union

import numpy as np

from .errors import InvalidParameterError, BelowCompensationWarning

ArrayLike = Union[float, np.ndarray]

# Ratio of the diffusivities of water vapour and CO2 in air
GS_H2O_TO_CO2 = 1.6


@dataclass(frozen=True)
class ConductanceParameters:
    """
    Stomatal conductance coefficients.

    Attributes:
        g0: Residual conductance (mol m⁻² s⁻¹)
        g1: Slope parameter (units depend on the variant)
        variant: 'BallBerry', 'Leuning' or 'MedlynOptimality'
        d0: Leuning VPD sensitivity (kPa)
        gk: Medlyn VPD exponent; gs scales with D^-(1 - gk)
        vpd_min: Floor applied to VPD before evaluation (kPa)
    """
    g0: float = 0.0
    g1: float = 4.0
    variant: str = 'MedlynOptimality'
    d0: float = 1.5
    gk: float = 0.5
    vpd_min: float = 0.05

    def __post_init__(self):
        if self.variant not in CONDUCTANCE_VARIANTS:
            raise InvalidParameterError(
                f"Unknown conductance variant '{self.variant}'. "
                f"Available: {', '.join(CONDUCTANCE_VARIANTS)}"
            )
        if self.g0 < 0:
            raise InvalidParameterError(f"g0 must be >= 0, got {self.g0}")
        if self.g1 < 0:
            raise InvalidParameterError(f"g1 must be >= 0, got {self.g1}")
        if not self.d0 > 0:
            raise InvalidParameterError(f"d0 must be > 0, got {self.d0}")
        if not 0 <= self.gk <= 1:
            raise InvalidParameterError(f"gk must be within [0, 1], got {self.gk}")
        if not self.vpd_min > 0:
            raise InvalidParameterError(f"vpd_min must be > 0, got {self.vpd_min}")

    def replace(self, **changes) -> 'ConductanceParameters':
        return replace(self, **changes)


@dataclass(frozen=True)
class ConductanceVariant:
    """
    A conductance model as a pair of VPD responses.

    intercept_factor(D, rh, params) -> a(D)
    slope_factor(D, rh, params) -> b(D)
    """
    name: str
    intercept_factor: Callable[[np.ndarray, Optional[ArrayLike], ConductanceParameters], ArrayLike]
    slope_factor: Callable[[np.ndarray, Optional[ArrayLike], ConductanceParameters], ArrayLike]
    description: str = ''


def _zero(vpd, rh, params):
    return np.zeros_like(vpd)


def _ball_berry_slope(vpd, rh, params):
    if rh is None:
        return np.ones_like(vpd)
    return np.asarray(rh, dtype=float) * np.ones_like(vpd)


def _leuning_slope(vpd, rh, params):
    return 1.0 / (1.0 + vpd / params.d0)


def _medlyn_intercept(vpd, rh, params):
    return np.full_like(vpd, GS_H2O_TO_CO2)


def _medlyn_slope(vpd, rh, params):
    return GS_H2O_TO_CO2 / vpd ** (1.0 - params.gk)


CONDUCTANCE_VARIANTS: Dict[str, ConductanceVariant] = {
    'BallBerry': ConductanceVariant(
        'BallBerry', _zero, _ball_berry_slope,
        'gs = g0 + g1 An h / Ca (h = 1 when RH is not supplied)'
    ),
    'Leuning': ConductanceVariant(
        'Leuning', _zero, _leuning_slope,
        'gs = g0 + g1 An / (Ca (1 + D / D0))'
    ),
    'MedlynOptimality': ConductanceVariant(
        'MedlynOptimality', _medlyn_intercept, _medlyn_slope,
        'gs = g0 + 1.6 (1 + g1 / D^(1 - gk)) An / Ca'
    ),
}


def get_variant(name: str) -> ConductanceVariant:
    try:
        return CONDUCTANCE_VARIANTS[name]
    except KeyError:
        raise InvalidParameterError(
            f"Unknown conductance variant '{name}'. "
            f"Available: {', '.join(CONDUCTANCE_VARIANTS)}"
        ) from None


def floor_vpd(vpd: ArrayLike, params: ConductanceParameters) -> np.ndarray:
    return np.maximum(np.asarray(vpd, dtype=float), params.vpd_min)


def conductance_slope(
    vpd: ArrayLike,
    params: ConductanceParameters,
    rh: Optional[ArrayLike] = None
) -> ArrayLike:
    """Multiplier of An/Ca in the conductance equation, slope(D)."""
    variant = get_variant(params.variant)
    d = floor_vpd(vpd, params)
    slope = variant.intercept_factor(d, rh, params) + params.g1 * variant.slope_factor(d, rh, params)
    return float(slope) if np.ndim(slope) == 0 else slope


def _conductance(an, ca, vpd, params, rh=None):
    return params.g0 + conductance_slope(vpd, params, rh) * np.asarray(an, dtype=float) / ca


def stomatal_conductance(
    an: ArrayLike,
    ca: ArrayLike,
    vpd: ArrayLike,
    params: ConductanceParameters,
    rh: Optional[ArrayLike] = None
) -> ArrayLike:
    """
    Stomatal conductance to water vapour.

    Args:
        an: Net assimilation (µmol m⁻² s⁻¹)
        ca: CO2 at the leaf surface (µmol mol⁻¹)
        vpd: Vapour pressure deficit (kPa), floored at params.vpd_min
        params: Conductance coefficients and variant
        rh: Relative humidity (0-1), used by Ball-Berry when given

    Returns:
        gs (mol m⁻² s⁻¹). Negative An is evaluated with the same formula
        and triggers a BelowCompensationWarning.
    """
    if np.any(np.asarray(ca) <= 0):
        raise InvalidParameterError("ca must be > 0")
    if np.any(np.asarray(an) < 0):
        warnings.warn(
            "Net assimilation is negative; conductance may fall below g0",
            BelowCompensationWarning
        )
    gs = _conductance(an, ca, vpd, params, rh)
    return float(gs) if np.ndim(gs) == 0 else gs
