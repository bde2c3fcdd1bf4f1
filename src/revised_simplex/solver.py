"""Public solver entrypoints."""

from __future__ import annotations

from .data import Basis, LpModel, ProgressCallback, SolveResult, SolverOptions
from .simplex import SimplexSolver


def solve_lp(
    model: LpModel,
    options: SolverOptions | None = None,
    basis: Basis | None = None,
    progress_callback: ProgressCallback | None = None,
) -> SolveResult:
    """Solve a linear program with the revised simplex method.

    This is the main entry point for one-off solves. Use ``SimplexSolver``
    directly to keep the basis between solves (hot start).

    Args:
        model: The LP to solve, typically created with ``build_model``.
        options: Solver configuration options. If None, uses defaults.
                 See SolverOptions for tuning parameters.
        basis: Optional starting basis, e.g. ``result.basis`` from a previous
               solve of the same model. An unusable basis is logged and replaced
               by the logical (all-slack) basis.
        progress_callback: Optional callback receiving ``ProgressInfo`` every
                           100 iterations.

    Returns:
        SolveResult containing:
        - status: ReturnStatus.OK, WARNING (iteration/time limit) or ERROR
        - model_status: optimal, infeasible, unbounded, objective_bound, limits
        - solution: column/row values and duals in the caller's sense
        - basis: final basis, usable to warm start another solve
        - info: objective, dual objective, infeasibility and complementarity measures
        - stats: factorization counts and work-vector densities

    Raises:
        InvalidModelError: If the model breaks the caller contract.

    Examples:
        >>> import math
        >>> from revised_simplex import build_model, solve_lp
        >>> model = build_model(
        ...     num_col=2, num_row=2,
        ...     col_cost=[-8.0, -10.0],
        ...     col_lower=[0.0, 0.0], col_upper=[math.inf, math.inf],
        ...     row_lower=[-math.inf, -math.inf], row_upper=[80.0, 120.0],
        ...     a_start=[0, 2, 4], a_index=[0, 1, 0, 1], a_value=[1.0, 2.0, 1.0, 4.0],
        ... )
        >>> result = solve_lp(model)
        >>> print(f"{result.model_status.value}: {result.info.objective_function_value}")
        optimal: -480.0
    """
    solver = SimplexSolver(model, options)
    if basis is not None:
        solver.set_basis(basis)
    return solver.solve(progress_callback=progress_callback)
