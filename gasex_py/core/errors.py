"""
Exception and warning types used across gasex_py.

Fatal problems with a single call raise exceptions; numerical trouble that
still yields a usable (flagged) result is reported through ``warnings.warn``
so that batch drivers can keep going.
"""

from typing import Dict, Optional, Any


class InvalidParameterError(ValueError):
    """Raised when a parameter set or leaf state is non-physical."""


class FitFailureError(RuntimeError):
    """
    Raised when every starting point of a curve fit failed.

    Attributes:
        diagnostics: Information about the best failed attempt (starting
            values, estimates, residual sum of squares, optimizer message)
    """

    def __init__(self, message: str, diagnostics: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.diagnostics = diagnostics or {}


class NoConvergenceWarning(RuntimeWarning):
    """A root finder or fixed-point loop hit its iteration bound."""


class NoOptimumFound(RuntimeWarning):
    """The net-gain objective has no interior maximum within the Ci bounds."""


class BelowCompensationWarning(UserWarning):
    """Conductance evaluated with negative net assimilation."""
