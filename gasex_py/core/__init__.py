"""
Core modules for gasex_py.

This package contains the data structures, temperature responses and the
biochemical, stomatal and energy-balance models used by the solvers.
"""

from gasex_py.core.errors import (
    InvalidParameterError,
    FitFailureError,
    NoConvergenceWarning,
    NoOptimumFound,
    BelowCompensationWarning,
)
from gasex_py.core.options import SolverOptions, DEFAULT_SOLVER_OPTIONS
from gasex_py.core.data_structures import LeafState, CurveDataset, as_curve_dataset
from gasex_py.core.temperature import (
    arrhenius_response,
    peaked_arrhenius_response,
    q10_response,
    thermal_optimum,
    calculate_temperature_response,
    apply_temperature_response,
    TemperatureParameter,
    TEMPERATURE_PARAM_DEFAULT,
    TEMPERATURE_PARAM_BERNACCHI,
    TEMPERATURE_PARAM_FLAT,
)
from gasex_py.core.biochemistry import (
    BiochemicalParameters,
    TemperatureAdjustedParameters,
    AssimilationResult,
    calculate_assimilation,
    assimilation_at_ci,
    electron_transport_rate,
    smoothed_minimum,
    identify_limiting_regime,
    chloroplast_co2,
    find_transition_ci,
    compensation_point,
)
from gasex_py.core.conductance import (
    ConductanceParameters,
    ConductanceVariant,
    CONDUCTANCE_VARIANTS,
    stomatal_conductance,
    conductance_slope,
)
from gasex_py.core.energy_balance import (
    EnergyBalanceAdapter,
    EnergyBalanceUpdate,
    LeafEnergyBalance,
    saturation_vapour_pressure,
)

__all__ = [
    # Errors
    "InvalidParameterError",
    "FitFailureError",
    "NoConvergenceWarning",
    "NoOptimumFound",
    "BelowCompensationWarning",
    # Options and data structures
    "SolverOptions",
    "DEFAULT_SOLVER_OPTIONS",
    "LeafState",
    "CurveDataset",
    "as_curve_dataset",
    # Temperature response
    "arrhenius_response",
    "peaked_arrhenius_response",
    "q10_response",
    "thermal_optimum",
    "calculate_temperature_response",
    "apply_temperature_response",
    "TemperatureParameter",
    "TEMPERATURE_PARAM_DEFAULT",
    "TEMPERATURE_PARAM_BERNACCHI",
    "TEMPERATURE_PARAM_FLAT",
    # Biochemistry
    "BiochemicalParameters",
    "TemperatureAdjustedParameters",
    "AssimilationResult",
    "calculate_assimilation",
    "assimilation_at_ci",
    "electron_transport_rate",
    "smoothed_minimum",
    "identify_limiting_regime",
    "chloroplast_co2",
    "find_transition_ci",
    "compensation_point",
    # Conductance
    "ConductanceParameters",
    "ConductanceVariant",
    "CONDUCTANCE_VARIANTS",
    "stomatal_conductance",
    "conductance_slope",
    # Energy balance
    "EnergyBalanceAdapter",
    "EnergyBalanceUpdate",
    "LeafEnergyBalance",
    "saturation_vapour_pressure",
]
