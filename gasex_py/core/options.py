"""
Iteration and tolerance bounds for the numerical solvers.
"""

from dataclasses import dataclass, replace

from .errors import InvalidParameterError


@dataclass(frozen=True)
class SolverOptions:
    """
    Bounds shared by the coupled and optimal-conductance solvers.

    Attributes:
        root_xtol: Absolute tolerance on Ci for the root finders (µmol mol⁻¹)
        root_rtol: Relative tolerance on Ci for the root finders
        root_maxiter: Maximum Brent iterations per root solve
        residual_atol: Residual (µmol m⁻² s⁻¹) accepted as converged
        max_bracket_expansions: How many times a bracket may be widened
        max_energy_balance_iterations: Outer leaf temperature iterations
        energy_balance_tol: Leaf temperature change (°C) accepted as converged
        optimizer_xatol: Absolute Ci tolerance of the bounded optimizer
        optimizer_grid_points: Coarse scan points before the bounded search
        boundary_tol: Relative distance to a bound treated as "at the bound"
    """
    root_xtol: float = 1e-8
    root_rtol: float = 1e-10
    root_maxiter: int = 200
    residual_atol: float = 1e-6
    max_bracket_expansions: int = 20
    max_energy_balance_iterations: int = 40
    energy_balance_tol: float = 0.01
    optimizer_xatol: float = 1e-4
    optimizer_grid_points: int = 60
    boundary_tol: float = 1e-3

    def __post_init__(self):
        for name in ('root_xtol', 'root_rtol', 'residual_atol',
                     'energy_balance_tol', 'optimizer_xatol', 'boundary_tol'):
            if getattr(self, name) <= 0:
                raise InvalidParameterError(f"{name} must be > 0")
        for name in ('root_maxiter', 'max_energy_balance_iterations',
                     'optimizer_grid_points'):
            if getattr(self, name) < 1:
                raise InvalidParameterError(f"{name} must be >= 1")
        if self.max_bracket_expansions < 0:
            raise InvalidParameterError("max_bracket_expansions must be >= 0")

    def replace(self, **changes) -> 'SolverOptions':
        """Return a copy with some bounds overridden."""
        return replace(self, **changes)


DEFAULT_SOLVER_OPTIONS = SolverOptions()
