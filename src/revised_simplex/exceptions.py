"""Custom exceptions for the revised simplex library."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .validation import InputStatus


class LPSolverError(Exception):
    """Base exception for all revised simplex errors.

    All custom exceptions in the revised_simplex package inherit from this class,
    allowing users to catch all solver-related errors with a single except clause.

    Terminal outcomes of a solve (optimal, infeasible, unbounded, iteration or
    time limit, objective bound) are reported through ``SolveResult`` statuses
    and never raised.

    Example:
        try:
            result = solve_lp(model)
        except LPSolverError as e:
            print(f"Solver error: {e}")
    """


class InvalidModelError(LPSolverError):
    """Raised when a model violates the caller contract.

    The model is rejected before any solve begins. This includes:
    - Negative dimensions or array lengths that disagree with them
    - Column start offsets that are not monotone or do not end at the nonzero count
    - Row indices outside ``[0, num_row)`` or repeated within a column
    - Non-finite matrix values or costs
    - Bounds with ``lower > upper``, ``lower = +inf`` or ``upper = -inf``

    Example:
        InvalidModelError(
            "Row index 7 in column 2 is outside [0, 3)",
            input_status=InputStatus.ERROR_MATRIX_INDICES,
        )
    """

    def __init__(self, message: str, input_status: InputStatus | None = None):
        """Initialize with message and the failed input check."""
        super().__init__(message)
        self.input_status = input_status


class SolverConfigurationError(LPSolverError):
    """Raised when solver configuration or options are invalid.

    This includes:
    - Unknown simplex or edge weight strategy names
    - Negative iteration or time limits
    - Non-positive tolerances or refactorization limits

    Example:
        SolverConfigurationError("simplex_iteration_limit must be >= 0, got -1")
    """


class SingularBasisError(LPSolverError):
    """Raised when the chosen basic columns are linearly dependent.

    The factorization cannot be built. The error carries the basis positions
    whose columns are dependent and the rows no remaining column covers; the
    caller substitutes the logical variables of those rows at those positions
    and factorizes again.

    Example:
        SingularBasisError(
            "Basis matrix has rank 2 < 3",
            dependent_positions=[1],
            uncovered_rows=[2],
        )
    """

    def __init__(
        self,
        message: str,
        dependent_positions: list[int] | None = None,
        uncovered_rows: list[int] | None = None,
    ):
        """Initialize with message and repair information."""
        super().__init__(message)
        self.dependent_positions = list(dependent_positions or [])
        self.uncovered_rows = list(uncovered_rows or [])


class NumericalInstabilityError(LPSolverError):
    """Raised when numerical issues prevent a reliable pivot.

    This can occur due to:
    - The pivot computed from the row and from the column disagreeing
    - A ratio test that finds no blocking variable where one must exist
    - Ill-conditioned basis matrices

    The drivers catch this error, refactorize and retry. Only after
    ``numerical_retry_limit`` consecutive failures does the solve end with
    ``ModelStatus.SOLVE_ERROR``.

    Example:
        NumericalInstabilityError(
            "Pivot mismatch: column 1.0e-3, row 2.1e-3",
            pivot_error=1.1e-3,
        )
    """

    def __init__(
        self,
        message: str,
        condition_number: float | None = None,
        pivot_error: float | None = None,
    ):
        """Initialize with message and optional diagnostic information."""
        super().__init__(message)
        self.condition_number = condition_number
        self.pivot_error = pivot_error
