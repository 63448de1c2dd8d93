"""
Coupled leaf gas exchange.

Three ways of closing the supply and demand equations for CO2:

- Ci given: direct evaluation of the biochemical model
- gs given: Ci is the root of An(Ci) - gs / 1.6 (Ca - Ci)
- fully coupled: gs itself follows the conductance model,
  An(Ci) = (g0 + slope(D) An(Ci) / Ca) / 1.6 (Ca - Ci)

Optionally an energy-balance adapter corrects leaf temperature and VPD in an
outer fixed-point loop until the leaf temperature settles.
"""

import warnings
from dataclasses import dataclass, asdict
from typing import Dict, Optional, Any, Callable

import numpy as np

from ..core.biochemistry import (
    BiochemicalParameters,
    AssimilationResult,
    assimilation_at_ci,
    REGIME_BELOW_COMPENSATION,
)
from ..core.conductance import (
    ConductanceParameters,
    GS_H2O_TO_CO2,
    conductance_slope,
    stomatal_conductance,
)
from ..core.data_structures import LeafState
from ..core.energy_balance import EnergyBalanceAdapter, total_water_conductance
from ..core.errors import (
    InvalidParameterError,
    NoConvergenceWarning,
    BelowCompensationWarning,
)
from ..core.numerics import find_root
from ..core.options import SolverOptions, DEFAULT_SOLVER_OPTIONS

MODE_CI_GIVEN = 'ci_given'
MODE_GS_GIVEN = 'gs_given'
MODE_COUPLED = 'coupled'


@dataclass
class LeafGasExchangeResult:
    """Container for a solved leaf gas-exchange state."""
    an: float             # Net assimilation (µmol m⁻² s⁻¹)
    ac: float             # Rubisco-limited gross assimilation
    aj: float             # Electron-transport-limited gross assimilation
    gs: float             # Stomatal conductance to water vapour (mol m⁻² s⁻¹)
    ci: float             # Intercellular CO2 (µmol mol⁻¹)
    cc: float             # Chloroplastic CO2 (µmol mol⁻¹)
    tleaf: float          # Leaf temperature (°C)
    vpd: float            # Leaf-to-air VPD (kPa)
    transpiration: float  # mol m⁻² s⁻¹
    regime: str
    mode: str
    converged: bool
    iterations: int
    energy_balance_converged: Optional[bool] = None
    message: str = ''

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_leaf_state(self, state: LeafState) -> LeafState:
        """The input state with the solved Ci, Cc, leaf temperature and VPD."""
        return state.replace(ci=self.ci, cc=self.cc, tleaf=self.tleaf, vpd=self.vpd)


def _transpiration(gs: float, vpd: float, patm: float, gb: float = np.inf) -> float:
    return total_water_conductance(max(gs, 0.0), gb) * vpd / patm


def _net_assimilation(
    state: LeafState,
    bio_params: BiochemicalParameters,
    options: SolverOptions
) -> Callable[[float], float]:
    def net(ci):
        return float(assimilation_at_ci(
            ci, state.tleaf, bio_params, state.par, options
        ).an)
    return net


def _build_result(
    state: LeafState,
    assim: AssimilationResult,
    ci: float,
    gs: float,
    mode: str,
    converged: bool,
    iterations: int,
    message: str = '',
    gb: float = np.inf
) -> LeafGasExchangeResult:
    return LeafGasExchangeResult(
        an=float(assim.an), ac=float(assim.ac), aj=float(assim.aj),
        gs=float(gs), ci=float(ci), cc=float(assim.cc),
        tleaf=float(state.tleaf), vpd=float(state.vpd),
        transpiration=_transpiration(gs, state.vpd, state.patm, gb),
        regime=str(assim.regime), mode=mode,
        converged=bool(converged), iterations=int(iterations),
        message=message,
    )


def solve_ci_given(
    state: LeafState,
    bio_params: BiochemicalParameters,
    ci: Optional[float] = None,
    conductance_params: Optional[ConductanceParameters] = None,
    options: SolverOptions = DEFAULT_SOLVER_OPTIONS
) -> LeafGasExchangeResult:
    """
    Evaluate the leaf at a known intercellular CO2.

    gs follows the conductance model when its parameters are given,
    otherwise the diffusion-implied value 1.6 An / (Ca - Ci).
    """
    ci = state.ci if ci is None else ci
    if ci is None:
        raise InvalidParameterError("Ci must be given for direct evaluation")
    if ci < 0:
        raise InvalidParameterError(f"Ci must be >= 0, got {ci}")

    assim = assimilation_at_ci(ci, state.tleaf, bio_params, state.par, options)
    if conductance_params is not None:
        gs = stomatal_conductance(assim.an, state.ca, state.vpd,
                                  conductance_params, state.rh)
    elif ci != state.ca:
        gs = GS_H2O_TO_CO2 * assim.an / (state.ca - ci)
    else:
        gs = np.nan

    return _build_result(state, assim, ci, gs, MODE_CI_GIVEN, True, 0)


def solve_gs_given(
    state: LeafState,
    bio_params: BiochemicalParameters,
    gs: float,
    options: SolverOptions = DEFAULT_SOLVER_OPTIONS
) -> LeafGasExchangeResult:
    """
    Intercellular CO2 consistent with a known stomatal conductance.

    The residual An(Ci) - gs / 1.6 (Ca - Ci) increases with Ci; its root is
    bracketed on [0, Ca] and the bracket is widened above Ca when the leaf
    is a net CO2 source.
    """
    if gs is None or not gs >= 0:
        raise InvalidParameterError(f"gs must be >= 0, got {gs}")

    net = _net_assimilation(state, bio_params, options)
    gc = gs / GS_H2O_TO_CO2

    def residual(ci):
        return net(ci) - gc * (state.ca - ci)

    ci, converged, iterations = find_root(
        residual, 0.0, state.ca, options, label='Ci (gs given)'
    )
    assim = assimilation_at_ci(ci, state.tleaf, bio_params, state.par, options)
    message = '' if converged else 'Ci root not converged; best estimate returned'
    return _build_result(state, assim, ci, gs, MODE_GS_GIVEN, converged,
                         iterations, message)


def solve_coupled(
    state: LeafState,
    bio_params: BiochemicalParameters,
    conductance_params: ConductanceParameters,
    options: SolverOptions = DEFAULT_SOLVER_OPTIONS
) -> LeafGasExchangeResult:
    """
    Jointly solve photosynthesis and stomatal conductance.

    The root is searched on (Ci_compensation, Ca]. When the leaf is a net
    CO2 source even at Ci = Ca, conductance falls back to g0 and the state is
    flagged through a BelowCompensationWarning.
    """
    net = _net_assimilation(state, bio_params, options)
    slope = conductance_slope(state.vpd, conductance_params, state.rh)
    g0 = conductance_params.g0

    if net(state.ca) <= 0:
        warnings.warn(
            "Net assimilation is non-positive at Ci = Ca; "
            "conductance set to g0",
            BelowCompensationWarning
        )
        if g0 > 0:
            result = solve_gs_given(state, bio_params, g0, options)
            result.mode = MODE_COUPLED
            result.message = 'net CO2 source: gs = g0'
            return result
        assim = assimilation_at_ci(state.ca, state.tleaf, bio_params, state.par, options)
        return _build_result(state, assim, state.ca, 0.0, MODE_COUPLED, True, 0,
                             'net CO2 source with g0 = 0: Ci = Ca')

    ci_comp, comp_converged, comp_iter = find_root(
        net, 0.0, state.ca, options, label='compensation point'
    )

    def residual(ci):
        an = net(ci)
        gs = g0 + slope * an / state.ca
        return an - gs / GS_H2O_TO_CO2 * (state.ca - ci)

    lower = min(ci_comp + options.root_xtol * 10, state.ca)
    if residual(lower) >= 0:
        ci, converged, iterations = ci_comp, comp_converged, 0
        message = 'solution at the compensation point'
    else:
        ci, converged, iterations = find_root(
            residual, lower, state.ca, options, lower_limit=lower,
            label='Ci (coupled)'
        )
        message = '' if converged else 'Ci root not converged; best estimate returned'

    assim = assimilation_at_ci(ci, state.tleaf, bio_params, state.par, options)
    gs = stomatal_conductance(assim.an, state.ca, state.vpd,
                              conductance_params, state.rh)
    return _build_result(state, assim, ci, gs, MODE_COUPLED, converged,
                         comp_iter + iterations, message)


def _select_mode(state, conductance_params, ci, gs) -> str:
    if ci is not None and gs is not None:
        raise InvalidParameterError("Give either ci or gs, not both")
    if ci is not None:
        return MODE_CI_GIVEN
    if gs is not None:
        return MODE_GS_GIVEN
    if conductance_params is not None:
        return MODE_COUPLED
    if state.ci is not None:
        return MODE_CI_GIVEN
    raise InvalidParameterError(
        "Nothing to solve: provide ci, gs or conductance parameters"
    )


def solve_leaf_gas_exchange(
    state: LeafState,
    bio_params: BiochemicalParameters,
    conductance_params: Optional[ConductanceParameters] = None,
    ci: Optional[float] = None,
    gs: Optional[float] = None,
    energy_balance: Optional[EnergyBalanceAdapter] = None,
    options: SolverOptions = DEFAULT_SOLVER_OPTIONS
) -> LeafGasExchangeResult:
    """
    Solve the leaf gas-exchange state.

    The mode is chosen from the inputs: an explicit ``ci`` (or ``state.ci``)
    evaluates directly, ``gs`` solves for Ci, and conductance parameters
    alone give the fully coupled solution.

    Args:
        state: Leaf state and microclimate
        bio_params: Biochemical parameters at 25 °C
        conductance_params: Stomatal conductance model
        ci: Known intercellular CO2 (µmol mol⁻¹)
        gs: Known stomatal conductance to water vapour (mol m⁻² s⁻¹)
        energy_balance: Adapter correcting leaf temperature and VPD; the
            state's vpd is then the air VPD at ``tair``
        options: Iteration and tolerance bounds

    Returns:
        LeafGasExchangeResult
    """
    mode = _select_mode(state, conductance_params, ci, gs)

    def solve_at(leaf_state: LeafState) -> LeafGasExchangeResult:
        if mode == MODE_CI_GIVEN:
            return solve_ci_given(leaf_state, bio_params, ci, conductance_params, options)
        if mode == MODE_GS_GIVEN:
            return solve_gs_given(leaf_state, bio_params, gs, options)
        return solve_coupled(leaf_state, bio_params, conductance_params, options)

    if energy_balance is None:
        return solve_at(state)

    tleaf = state.tleaf
    vpd = energy_balance.leaf_vpd(state, tleaf)
    eb_converged = False
    for iteration in range(options.max_energy_balance_iterations):
        result = solve_at(state.replace(tleaf=tleaf, vpd=vpd))
        update = energy_balance.update(state, tleaf, result.gs)
        delta = abs(update.tleaf - tleaf)
        tleaf, vpd = update.tleaf, update.vpd
        if delta < options.energy_balance_tol:
            eb_converged = True
            break

    result = solve_at(state.replace(tleaf=tleaf, vpd=vpd))
    gb = energy_balance.boundary_layer_conductance(state, tleaf)
    result.transpiration = _transpiration(result.gs, vpd, state.patm, gb)
    result.energy_balance_converged = eb_converged
    result.iterations += iteration + 1
    if not eb_converged:
        warnings.warn(
            f"Energy balance did not converge after "
            f"{options.max_energy_balance_iterations} iterations",
            NoConvergenceWarning
        )
        result.converged = False
        result.message = (result.message + '; ' if result.message else '') + \
            'energy balance not converged'
    return result


def is_below_compensation(result: LeafGasExchangeResult) -> bool:
    """True when the solved leaf is at or below its CO2 compensation point."""
    return result.regime == REGIME_BELOW_COMPENSATION or result.an <= 0
