"""
Optimal stomatal conductance.

Finds the intercellular CO2 that maximises the net carbon gain

    An(Ci) - lambda E(Ci),   gs(Ci) = 1.6 An / (Ca - Ci),   E = gs D / Patm

with lambda the marginal water cost of carbon (µmol CO2 mol⁻¹ H2O). The
search runs over (Ci_compensation, Ca): a coarse grid scan locates the
neighbourhood of the maximum, then a bounded Brent search refines it.
"""

import warnings
from dataclasses import dataclass, asdict
from typing import Optional, Tuple, Dict, Any

import numpy as np
from scipy.optimize import minimize_scalar

from ..core.biochemistry import BiochemicalParameters, assimilation_at_ci
from ..core.conductance import GS_H2O_TO_CO2
from ..core.data_structures import LeafState
from ..core.energy_balance import EnergyBalanceAdapter, total_water_conductance
from ..core.errors import InvalidParameterError, NoOptimumFound, NoConvergenceWarning
from ..core.numerics import find_root
from ..core.options import SolverOptions, DEFAULT_SOLVER_OPTIONS


@dataclass
class OptimalConductanceResult:
    """Container for the optimal-conductance solution."""
    ci: float
    an: float
    gs: float
    transpiration: float
    objective: float
    tleaf: float
    vpd: float
    optimum_found: bool
    message: str = ''
    evaluations: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _no_optimum(state: LeafState, message: str, evaluations: int = 0) -> OptimalConductanceResult:
    warnings.warn(message, NoOptimumFound)
    return OptimalConductanceResult(
        ci=np.nan, an=np.nan, gs=np.nan, transpiration=np.nan,
        objective=np.nan, tleaf=state.tleaf, vpd=state.vpd,
        optimum_found=False, message=message, evaluations=evaluations,
    )


class _GainFunction:
    """Net carbon gain as a function of Ci, optionally energy-balanced."""

    def __init__(self, state, lambda_cost, bio_params, energy_balance, options):
        self.state = state
        self.lambda_cost = lambda_cost
        self.bio_params = bio_params
        self.energy_balance = energy_balance
        self.options = options
        self.evaluations = 0
        self.energy_balance_failures = 0

    def _gas_exchange(self, ci: float, tleaf: float, vpd: float, gb: float):
        an = float(assimilation_at_ci(
            ci, tleaf, self.bio_params, self.state.par, self.options
        ).an)
        gs = GS_H2O_TO_CO2 * an / (self.state.ca - ci)
        e = total_water_conductance(max(gs, 0.0), gb) * vpd / self.state.patm
        return an, gs, e

    def evaluate(self, ci: float) -> Tuple[float, float, float, float, float, float]:
        """Returns (objective, an, gs, transpiration, tleaf, vpd)."""
        self.evaluations += 1
        state = self.state
        if ci >= state.ca:
            return -np.inf, np.nan, np.nan, np.nan, state.tleaf, state.vpd

        if self.energy_balance is None:
            an, gs, e = self._gas_exchange(ci, state.tleaf, state.vpd, np.inf)
            return an - self.lambda_cost * e, an, gs, e, state.tleaf, state.vpd

        adapter = self.energy_balance
        tleaf = state.tleaf
        vpd = adapter.leaf_vpd(state, tleaf)
        for _ in range(self.options.max_energy_balance_iterations):
            gb = adapter.boundary_layer_conductance(state, tleaf)
            an, gs, e = self._gas_exchange(ci, tleaf, vpd, gb)
            update = adapter.update(state, tleaf, gs)
            converged = abs(update.tleaf - tleaf) < self.options.energy_balance_tol
            tleaf, vpd = update.tleaf, update.vpd
            if converged:
                break
        else:
            self.energy_balance_failures += 1

        gb = adapter.boundary_layer_conductance(state, tleaf)
        an, gs, e = self._gas_exchange(ci, tleaf, vpd, gb)
        return an - self.lambda_cost * e, an, gs, e, tleaf, vpd

    def __call__(self, ci: float) -> float:
        return self.evaluate(ci)[0]


def solve_optimal_conductance(
    state: LeafState,
    lambda_cost: float,
    bio_params: BiochemicalParameters,
    energy_balance: Optional[EnergyBalanceAdapter] = None,
    options: SolverOptions = DEFAULT_SOLVER_OPTIONS
) -> OptimalConductanceResult:
    """
    Solve for the conductance that maximises An - lambda E.

    Args:
        state: Leaf state and microclimate
        lambda_cost: Marginal water cost of carbon (µmol CO2 mol⁻¹ H2O)
        bio_params: Biochemical parameters at 25 °C
        energy_balance: Adapter correcting leaf temperature and VPD at each
            trial Ci
        options: Iteration and tolerance bounds

    Returns:
        OptimalConductanceResult. When the maximum lies on a search bound
        a NoOptimumFound warning is issued, optimum_found is False and the
        numerical fields are NaN.
    """
    if lambda_cost is None or not lambda_cost > 0:
        raise InvalidParameterError(f"lambda_cost must be > 0, got {lambda_cost}")

    def net(ci):
        return float(assimilation_at_ci(ci, state.tleaf, bio_params, state.par, options).an)

    if net(state.ca) <= 0:
        return _no_optimum(state, "Net assimilation is non-positive at Ci = Ca")

    ci_comp, _, _ = find_root(net, 0.0, state.ca, options, label='compensation point')
    gain = _GainFunction(state, lambda_cost, bio_params, energy_balance, options)

    # Coarse scan on interior points
    n = options.optimizer_grid_points
    nodes = np.linspace(ci_comp, state.ca, n + 2)
    values = np.array([gain(ci) for ci in nodes[1:-1]])
    k = int(np.nanargmax(values)) + 1
    lower, upper = nodes[k - 1], nodes[k + 1]

    res = minimize_scalar(
        lambda ci: -gain(ci),
        bounds=(lower, upper),
        method='bounded',
        options={'xatol': options.optimizer_xatol},
    )
    ci_opt = float(res.x)
    objective, an, gs, e, tleaf, vpd = gain.evaluate(ci_opt)

    # Never report a refined point worse than the best grid node
    if objective < values[k - 1]:
        ci_opt = float(nodes[k])
        objective, an, gs, e, tleaf, vpd = gain.evaluate(ci_opt)

    span = state.ca - ci_comp
    margin = options.boundary_tol * span
    if ci_opt - ci_comp <= margin or state.ca - ci_opt <= margin:
        return _no_optimum(
            state,
            f"Maximum of An - lambda E lies at a search bound (Ci = {ci_opt:.4g}, "
            f"bounds {ci_comp:.4g}..{state.ca:.4g})",
            gain.evaluations,
        )

    message = ''
    if gain.energy_balance_failures:
        warnings.warn(
            f"Energy balance did not converge for {gain.energy_balance_failures} "
            f"trial Ci values",
            NoConvergenceWarning
        )
        message = 'energy balance not converged at some trial points'

    return OptimalConductanceResult(
        ci=ci_opt, an=an, gs=gs, transpiration=e, objective=objective,
        tleaf=tleaf, vpd=vpd, optimum_found=True, message=message,
        evaluations=gain.evaluations,
    )
