"""
gasex_py: leaf gas-exchange modelling and fitting.

Farquhar-type C3 photosynthesis coupled to empirical and optimality-based
stomatal conductance, with A-Ci curve fitting, conductance regression and
an optimal-conductance solver.
"""

__version__ = "0.1.0"

# Import main components for easier access
from gasex_py.core.data_structures import LeafState, CurveDataset
from gasex_py.core.options import SolverOptions
from gasex_py.core.errors import (
    InvalidParameterError,
    FitFailureError,
    NoConvergenceWarning,
    NoOptimumFound,
    BelowCompensationWarning,
)
from gasex_py.core.biochemistry import (
    BiochemicalParameters,
    calculate_assimilation,
    chloroplast_co2,
    find_transition_ci,
)
from gasex_py.core.conductance import ConductanceParameters, stomatal_conductance
from gasex_py.core.energy_balance import EnergyBalanceAdapter, LeafEnergyBalance
from gasex_py.core.temperature import (
    TEMPERATURE_PARAM_DEFAULT,
    TEMPERATURE_PARAM_BERNACCHI,
    TEMPERATURE_PARAM_FLAT,
)
from gasex_py.analysis.coupled import solve_leaf_gas_exchange, LeafGasExchangeResult
from gasex_py.analysis.optimal import solve_optimal_conductance, OptimalConductanceResult
from gasex_py.analysis.curve_fitting import fit_aci
from gasex_py.analysis.conductance_fitting import fit_conductance
from gasex_py.analysis.results import FitResult, summarize_fit
from gasex_py.analysis.batch import batch_fit_aci, batch_solve_leaf, BatchResult

__all__ = [
    # Core classes
    "LeafState",
    "CurveDataset",
    "SolverOptions",
    "BiochemicalParameters",
    "ConductanceParameters",
    "EnergyBalanceAdapter",
    "LeafEnergyBalance",
    # Errors
    "InvalidParameterError",
    "FitFailureError",
    "NoConvergenceWarning",
    "NoOptimumFound",
    "BelowCompensationWarning",
    # Main functions
    "calculate_assimilation",
    "chloroplast_co2",
    "find_transition_ci",
    "stomatal_conductance",
    "solve_leaf_gas_exchange",
    "LeafGasExchangeResult",
    "solve_optimal_conductance",
    "OptimalConductanceResult",
    "fit_aci",
    "fit_conductance",
    "FitResult",
    "summarize_fit",
    "batch_fit_aci",
    "batch_solve_leaf",
    "BatchResult",
    # Temperature parameter sets
    "TEMPERATURE_PARAM_DEFAULT",
    "TEMPERATURE_PARAM_BERNACCHI",
    "TEMPERATURE_PARAM_FLAT",
    # Version
    "__version__",
]
