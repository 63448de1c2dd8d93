from .coupled import (
    solve_leaf_gas_exchange,
    solve_ci_given,
    solve_gs_given,
    solve_coupled,
    LeafGasExchangeResult,
)
from .optimal import solve_optimal_conductance, OptimalConductanceResult
from .results import FitResult, summarize_fit
from .initial_guess import (
    estimate_aci_initial_parameters,
    generate_starting_points,
    validate_initial_guess,
)
from .curve_fitting import fit_aci
from .conductance_fitting import fit_conductance
from .batch import (
    BatchResult,
    batch_fit_aci,
    batch_solve_leaf,
    process_single_curve,
    analyze_parameter_variability,
)

__all__ = [
    'solve_leaf_gas_exchange',
    'solve_ci_given',
    'solve_gs_given',
    'solve_coupled',
    'LeafGasExchangeResult',
    'solve_optimal_conductance',
    'OptimalConductanceResult',
    'FitResult',
    'summarize_fit',
    'estimate_aci_initial_parameters',
    'generate_starting_points',
    'validate_initial_guess',
    'fit_aci',
    'fit_conductance',
    # Batch processing
    'BatchResult',
    'batch_fit_aci',
    'batch_solve_leaf',
    'process_single_curve',
    'analyze_parameter_variability',
]
