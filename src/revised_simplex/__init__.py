"""High-level entrypoints for the revised simplex linear programming library."""

from .data import (
    MAX_ITERATION_LIMIT,
    Basis,
    LpModel,
    ModelStatus,
    ObjSense,
    ProgressCallback,
    ProgressInfo,
    ReturnStatus,
    SimplexStats,
    SimplexStrategy,
    Solution,
    SolveInfo,
    SolveResult,
    SolverOptions,
    VariableStatus,
    build_model,
)
from .diagnostics import ConvergenceMonitor
from .exceptions import (
    InvalidModelError,
    LPSolverError,
    NumericalInstabilityError,
    SingularBasisError,
    SolverConfigurationError,
)
from .scaling import ScalingFactors, compute_scaling_factors
from .simplex import SimplexSolver
from .solver import solve_lp
from .standard_form import StandardFormLp, to_standard_form
from .validation import InputStatus, check_model, validate_model

__version__ = "0.1.0"

__all__ = [
    # Main API
    "build_model",
    "solve_lp",
    "SimplexSolver",
    # Model and results
    "LpModel",
    "ObjSense",
    "Basis",
    "VariableStatus",
    "Solution",
    "SolveInfo",
    "SolveResult",
    "SimplexStats",
    "ModelStatus",
    "ReturnStatus",
    # Configuration
    "SolverOptions",
    "SimplexStrategy",
    "MAX_ITERATION_LIMIT",
    # Progress tracking
    "ProgressCallback",
    "ProgressInfo",
    # Validation
    "InputStatus",
    "check_model",
    "validate_model",
    # Scaling
    "compute_scaling_factors",
    "ScalingFactors",
    # Standard form
    "to_standard_form",
    "StandardFormLp",
    # Diagnostics
    "ConvergenceMonitor",
    # Exceptions
    "LPSolverError",
    "InvalidModelError",
    "SolverConfigurationError",
    "SingularBasisError",
    "NumericalInstabilityError",
    # Version
    "__version__",
]
