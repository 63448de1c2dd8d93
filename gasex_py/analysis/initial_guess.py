import numpy as np
from typing import Dict, Tuple, Optional, List

from ..core.biochemistry import BiochemicalParameters


# Multipliers applied to (vcmax, jmax) starting values on successive retries
RETRY_MULTIPLIERS = [
    (1.0, 1.0),
    (0.5, 0.5),
    (2.0, 2.0),
    (0.75, 1.5),
    (1.5, 0.75),
    (0.5, 2.0),
    (2.0, 0.5),
    (0.25, 0.25),
    (3.0, 3.0),
]


def estimate_aci_initial_parameters(
    ci: np.ndarray,
    a: np.ndarray,
    template: BiochemicalParameters,
    tleaf: Optional[np.ndarray] = None,
    par: Optional[np.ndarray] = None,
    known_rd: Optional[float] = None
) -> Dict[str, float]:
    """
    Estimate starting values for an A-Ci fit from the data.

    Vcmax is obtained by inverting the Rubisco-limited equation on the low-Ci
    points, J by inverting the electron-transport equation on the high-Ci
    points; both are brought back to 25 °C with the template's temperature
    responses.

    Args:
        ci: Intercellular CO2 (sorted or not)
        a: Net assimilation
        template: Kinetic constants and temperature table to use
        tleaf: Leaf temperature per point (°C); 25 °C when None
        par: PAR per point; light saturation when None
        known_rd: Day respiration, if known

    Returns:
        Dictionary with 'vcmax', 'jmax' and 'rd'
    """
    ci = np.asarray(ci, dtype=float)
    a = np.asarray(a, dtype=float)
    if tleaf is None:
        tleaf = np.full_like(ci, 25.0)

    unit = template.replace(vcmax=1.0, jmax=1.0, rd=1.0, gm=None)
    adj = unit.at_temperature(tleaf)
    gamma_star = np.broadcast_to(adj.gamma_star, ci.shape)
    km = np.broadcast_to(adj.km, ci.shape)
    vcmax_factor = np.broadcast_to(adj.vcmax, ci.shape)
    jmax_factor = np.broadcast_to(adj.jmax, ci.shape)
    rd_factor = np.broadcast_to(adj.rd, ci.shape)

    rd_guess = estimate_rd(a) if known_rd is None else known_rd
    rd_t = rd_guess * rd_factor

    vcmax_guess = estimate_vcmax_from_low_ci(ci, a, rd_t, gamma_star, km, vcmax_factor)
    j_values = estimate_j_from_high_ci(ci, a, rd_t, gamma_star)
    if j_values is None:
        jmax_guess = 1.8 * vcmax_guess
    else:
        j, mask = j_values
        point_par = None if par is None else np.asarray(par, dtype=float)[mask]
        jmax_t = jmax_from_j(j, point_par, template.alpha, template.theta_j)
        jmax_guess = float(np.median(jmax_t / jmax_factor[mask]))

    return {
        'vcmax': float(np.clip(vcmax_guess, 5.0, 500.0)),
        'jmax': float(np.clip(jmax_guess, 10.0, 1000.0)),
        'rd': float(rd_guess),
    }


def estimate_vcmax_from_low_ci(
    ci: np.ndarray,
    a: np.ndarray,
    rd: np.ndarray,
    gamma_star: np.ndarray,
    km: np.ndarray,
    vcmax_factor: np.ndarray,
    ci_threshold: float = 300.0
) -> float:
    """
    Median of Vcmax = (A + Rd)(Ci + Km)/(Ci - Γ*) over low-Ci points.

    Points within 20 µmol mol⁻¹ of Γ* are skipped as the inversion is
    ill-conditioned there.
    """
    mask = (ci < ci_threshold) & (ci - gamma_star > 20.0)
    if np.sum(mask) < 2:
        order = np.argsort(ci)
        usable = order[(ci[order] - gamma_star[order]) > 20.0][:3]
        mask = np.zeros_like(ci, dtype=bool)
        mask[usable] = True
    if not np.any(mask):
        return 4.0 * max(np.max(a), 1.0)

    vcmax_t = (a[mask] + rd[mask]) * (ci[mask] + km[mask]) / (ci[mask] - gamma_star[mask])
    return float(np.median(vcmax_t / vcmax_factor[mask]))


def estimate_j_from_high_ci(
    ci: np.ndarray,
    a: np.ndarray,
    rd: np.ndarray,
    gamma_star: np.ndarray,
    ci_threshold: float = 500.0
) -> Optional[Tuple[np.ndarray, np.ndarray]]:
    """
    J = 4 (A + Rd)(Ci + 2Γ*)/(Ci - Γ*) over high-Ci points.

    Returns:
        (J values, boolean mask of the points used), or None without usable points
    """
    mask = (ci > ci_threshold) & (a + rd > 0)
    if np.sum(mask) < 2:
        # fall back to the upper third of the curve
        cutoff = np.quantile(ci, 2.0 / 3.0)
        mask = (ci >= cutoff) & (ci > gamma_star) & (a + rd > 0)
    if not np.any(mask):
        return None
    j = 4.0 * (a[mask] + rd[mask]) * (ci[mask] + 2.0 * gamma_star[mask]) / (ci[mask] - gamma_star[mask])
    return j, mask


def jmax_from_j(
    j: np.ndarray,
    par: Optional[np.ndarray],
    alpha: float,
    theta_j: float
) -> np.ndarray:
    """
    Invert the non-rectangular hyperbola for Jmax.

    Jmax = J (aQ - theta J) / (aQ - J); points where aQ <= J are taken at
    light saturation (Jmax = J).
    """
    if par is None:
        return j
    aq = alpha * par
    with np.errstate(divide='ignore', invalid='ignore'):
        jmax = j * (aq - theta_j * j) / (aq - j)
    return np.where(aq > j * 1.05, jmax, j)


def estimate_rd(a: np.ndarray) -> float:
    """
    Estimate day respiration from assimilation data.

    Uses the most negative A when the curve goes below zero, otherwise a
    small fraction of the mean positive A, bounded to [0.5, 5].
    """
    a_min = np.min(a)
    if a_min < 0:
        rd_guess = abs(a_min)
    else:
        rd_guess = 0.05 * np.mean(a[a > 0])
    return float(max(0.5, min(rd_guess, 5.0)))


def generate_starting_points(
    initial: Dict[str, float],
    n_starts: int = len(RETRY_MULTIPLIERS)
) -> List[Dict[str, float]]:
    """
    Deterministic grid of perturbed starting values.

    The first entry is the unperturbed estimate; Rd is not perturbed.
    """
    starts = []
    for vc_mult, j_mult in RETRY_MULTIPLIERS[:max(1, n_starts)]:
        start = dict(initial)
        start['vcmax'] = initial['vcmax'] * vc_mult
        start['jmax'] = initial['jmax'] * j_mult
        starts.append(start)
    return starts


def validate_initial_guess(params: Dict[str, float]) -> Tuple[bool, List[str]]:
    """
    Check starting values for implausible combinations.

    Returns:
        Tuple of (is_valid, list_of_warnings)
    """
    warnings = []

    if 'vcmax' in params and 'jmax' in params:
        ratio = params['jmax'] / params['vcmax']
        if ratio < 1.0:
            warnings.append(f"Jmax/Vcmax ratio is low: {ratio:.2f}")
        elif ratio > 4.0:
            warnings.append(f"Jmax/Vcmax ratio is high: {ratio:.2f}")

    if params.get('vcmax', 0) < 10:
        warnings.append("Vcmax seems too low")
    if params.get('rd', 0) > 5:
        warnings.append("Rd seems too high")

    return len(warnings) == 0, warnings
