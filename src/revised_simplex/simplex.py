"""Revised simplex solver object with warm and hot start support."""

from __future__ import annotations

import logging

import numpy as np

from .basis import SimplexBasis, nonbasic_move_for
from .controller import IterationController, RunClock, StatsRecorder
from .data import (
    Basis,
    LpModel,
    ModelStatus,
    ObjSense,
    ProgressCallback,
    SimplexStats,
    SimplexStrategy,
    Solution,
    SolveInfo,
    SolveResult,
    SolverOptions,
    VariableStatus,
)
from .dual import DualSimplex
from .exceptions import InvalidModelError, SingularBasisError
from .model_view import StandardFormView
from .parallel import TaskPool
from .primal import PrimalSimplex
from .simplex_adaptive import AdaptiveTuner
from .simplex_driver import SimplexDriver
from .workspace import WorkingVectors


class SimplexSolver:
    """Solve one LP repeatedly, keeping the basis between solves.

    The solver owns the model view and basis manager. After a solve the final
    basis and its factorization are retained, so the next ``solve`` continues
    from them (hot start) when ``use_warm_start`` is set. ``set_basis`` supplies
    a basis for the next solve; ``clear_solver`` forgets all retained state.

    Examples:
        >>> solver = SimplexSolver(model)
        >>> result = solver.solve()
        >>> result.model_status
        <ModelStatus.OPTIMAL: 'optimal'>
        >>> solver.solve().info.simplex_iteration_count
        0
    """

    def __init__(self, model: LpModel | None = None, options: SolverOptions | None = None):
        self.options = options or SolverOptions()
        self.logger = logging.getLogger(__name__)
        self._model: LpModel | None = None
        self._view: StandardFormView | None = None
        self._basis: SimplexBasis | None = None
        self._pending_basis: Basis | None = None
        self._basis_supplied = False
        self._result: SolveResult | None = None
        self._run_clock = RunClock()
        if model is not None:
            self.pass_model(model)

    # ------------------------------------------------------------------
    # State management
    # ------------------------------------------------------------------

    @property
    def model(self) -> LpModel | None:
        return self._model

    def pass_model(self, model: LpModel) -> None:
        """Install a new model; validates it and clears all retained state."""
        model.validate()
        self._model = model
        self.clear_solver()

    def set_options(self, options: SolverOptions) -> None:
        """Replace the options used by subsequent solves.

        Changing the scaling strategy discards the model view, and with it the
        retained factorization; the basis membership is kept.
        """
        rescale = options.simplex_scale_strategy != self.options.simplex_scale_strategy
        self.options = options
        if rescale and self._basis is not None and self._pending_basis is None:
            self._pending_basis = self._export_basis()
            self._basis_supplied = self._pending_basis.valid
        if rescale:
            self._view = None
            self._basis = None

    def clear_solver(self) -> None:
        """Forget the retained basis, factorization and last result.

        The run clock keeps running; it is started once per solver.
        """
        self._view = None
        self._basis = None
        self._pending_basis = None
        self._basis_supplied = False
        self._result = None

    def set_basis(self, basis: Basis | None = None) -> None:
        """Use ``basis`` for the next solve; None selects the logical basis.

        The next solve factorizes the supplied basis from scratch.
        """
        if self._model is None:
            raise InvalidModelError("A model must be passed before setting a basis.")
        self._pending_basis = basis
        self._basis_supplied = True

    def change_objective_sense(self, sense: ObjSense | int) -> None:
        """Flip the objective direction, keeping the current basis."""
        if self._model is None:
            raise InvalidModelError("A model must be passed before changing its sense.")
        sense = ObjSense(sense)
        if sense == self._model.sense:
            return
        retained = self._export_basis() if self._basis is not None else None
        self._model = self._model.with_sense(sense)
        self._view = None
        self._basis = None
        self._result = None
        if retained is not None and not self._basis_supplied:
            self._pending_basis = retained
            self._basis_supplied = retained.valid

    # ------------------------------------------------------------------
    # Solve
    # ------------------------------------------------------------------

    def solve(self, progress_callback: ProgressCallback | None = None) -> SolveResult:
        """Run the simplex driver selected by ``options.simplex_strategy``.

        Args:
            progress_callback: Optional callable receiving ``ProgressInfo`` every
                               100 iterations.

        Returns:
            SolveResult with statuses, solution, basis, info and stats.

        Raises:
            InvalidModelError: If no model has been passed.
        """
        if self._model is None:
            raise InvalidModelError("No model has been passed to the solver.")
        options = self.options
        model = self._model
        view = self._ensure_view()
        basis = self._prepare_basis(view)
        basis.set_update_limit(options.update_limit)
        work = WorkingVectors(view)
        controller = IterationController(options, progress_callback, run_clock=self._run_clock)
        stats = StatsRecorder()
        tuner = AdaptiveTuner(options, self.logger)

        self.logger.info(
            "Starting revised simplex solve",
            extra={
                "model": model.model_name,
                "rows": model.num_row,
                "columns": model.num_col,
                "nonzeros": model.num_nz,
                "strategy": options.simplex_strategy.value,
                "iteration_limit": options.simplex_iteration_limit,
            },
        )

        pool = None
        if options.simplex_strategy in (SimplexStrategy.DUAL_TASKS, SimplexStrategy.DUAL_MULTI):
            pool = TaskPool(options.max_concurrency)
        try:
            driver = self._create_driver(view, basis, work, controller, stats, tuner, pool)
            model_status = driver.run()
        except SingularBasisError as exc:
            self.logger.error(
                f"Basis could not be repaired: {exc}",
                extra={"iteration": controller.iterations},
            )
            model_status = ModelStatus.SOLVE_ERROR
        finally:
            if pool is not None:
                pool.shutdown()

        self._finalize_vectors(basis, work)
        solution = self._build_solution(view, work)
        info = self._build_info(view, basis, work, solution, controller.iterations)
        result = SolveResult(
            status=model_status.return_status,
            model_status=model_status,
            solution=solution,
            basis=self._export_basis(),
            info=info,
            stats=stats.snapshot(basis, controller.iterations),
            elapsed_time=controller.elapsed,
        )
        self._result = result
        self.logger.info(
            "Solver complete",
            extra={
                "status": model_status.value,
                "objective": info.objective_function_value,
                "iterations": controller.iterations,
                "elapsed_ms": round(result.elapsed_time * 1000, 2),
                "num_invert": basis.num_invert,
                "degenerate_ratio": round(tuner.degenerate_ratio, 3),
            },
        )
        return result

    def _ensure_view(self) -> StandardFormView:
        if self._view is None:
            self._view = StandardFormView(
                self._model, scale=self.options.simplex_scale_strategy == 1
            )
            self._basis = None
        return self._view

    def _prepare_basis(self, view: StandardFormView) -> SimplexBasis:
        """Choose the starting basis: supplied, retained or logical."""
        fresh = self._basis is None
        if fresh:
            self._basis = SimplexBasis(
                view, update_limit=self.options.update_limit, use_jit=self.options.use_jit
            )
        basis = self._basis
        if self._basis_supplied:
            self._install_basis(basis, self._pending_basis)
            self._pending_basis = None
            self._basis_supplied = False
        elif not fresh and not self.options.use_warm_start:
            basis.set_logical_basis()
        return basis

    def _install_basis(self, basis: SimplexBasis, supplied: Basis | None) -> None:
        view = basis.view
        if supplied is None:
            basis.set_logical_basis()
            return
        problem = self._basis_problem(view, supplied)
        if problem is not None:
            self.logger.warning(f"{problem}. Falling back to the logical basis.")
            basis.set_logical_basis()
            return
        statuses = list(supplied.col_status) + list(supplied.row_status)
        basic = np.array(
            [var for var, status in enumerate(statuses) if status is VariableStatus.BASIC],
            dtype=np.int64,
        )
        moves = np.zeros(view.num_tot, dtype=np.int8)
        for var, status in enumerate(statuses):
            lower, upper = view.lower[var], view.upper[var]
            if status is VariableStatus.AT_LOWER and np.isfinite(lower):
                moves[var] = 1 if lower < upper else 0
            elif status is VariableStatus.AT_UPPER and np.isfinite(upper):
                moves[var] = -1 if lower < upper else 0
            elif status is not VariableStatus.BASIC:
                moves[var] = nonbasic_move_for(lower, upper)
        basis.set_basic_variables(basic, moves)
        self.logger.info(
            "Applied supplied basis",
            extra={"basic_structurals": int(np.count_nonzero(basic < view.num_col))},
        )

    @staticmethod
    def _basis_problem(view: StandardFormView, supplied: Basis) -> str | None:
        if not supplied.valid:
            return "Supplied basis is marked invalid"
        if len(supplied.col_status) != view.num_col or len(supplied.row_status) != view.num_row:
            return (
                f"Supplied basis has {len(supplied.col_status)} column and "
                f"{len(supplied.row_status)} row statuses, expected {view.num_col} and {view.num_row}"
            )
        if supplied.num_basic != view.num_row:
            return f"Supplied basis has {supplied.num_basic} basic variables, expected {view.num_row}"
        return None

    def _create_driver(
        self,
        view: StandardFormView,
        basis: SimplexBasis,
        work: WorkingVectors,
        controller: IterationController,
        stats: StatsRecorder,
        tuner: AdaptiveTuner,
        pool: TaskPool | None,
    ) -> SimplexDriver:
        strategy = self.options.simplex_strategy
        if strategy is SimplexStrategy.PRIMAL:
            return PrimalSimplex(view, basis, work, self.options, controller, stats, tuner)
        if strategy is SimplexStrategy.CHOOSE:
            strategy = SimplexStrategy.DUAL_PLAIN
        return DualSimplex(
            view, basis, work, self.options, controller, stats, tuner, strategy=strategy, pool=pool
        )

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def _finalize_vectors(self, basis: SimplexBasis, work: WorkingVectors) -> None:
        """Leave model costs, true duals and consistent values behind."""
        work.restore_bounds()
        work.remove_cost_perturbation()
        try:
            if basis.needs_refactor:
                basis.factorize_with_repair()
            work.place_nonbasic(basis)
            work.compute_primal(basis)
            work.compute_dual(basis)
        except SingularBasisError as exc:
            self.logger.error(f"Final basis is singular: {exc}")

    def _build_solution(self, view: StandardFormView, work: WorkingVectors) -> Solution:
        col_value, row_value = view.unscale_primal(work.value)
        col_dual, row_dual = view.unscale_dual(work.dual)
        return Solution(col_value=col_value, col_dual=col_dual, row_value=row_value, row_dual=row_dual)

    def _build_info(
        self,
        view: StandardFormView,
        basis: SimplexBasis,
        work: WorkingVectors,
        solution: Solution,
        iterations: int,
    ) -> SolveInfo:
        model = view.model
        options = self.options
        values = np.concatenate((solution.col_value, solution.row_value))
        reported_duals = np.concatenate((solution.col_dual, solution.row_dual))
        lower = np.concatenate((model.col_lower, model.row_lower))
        upper = np.concatenate((model.col_upper, model.row_upper))
        nonbasic = basis.nonbasic_flag == 1

        primal_violation = np.maximum(np.maximum(lower - values, values - upper), 0.0)
        primal_violation[primal_violation <= options.primal_feasibility_tolerance] = 0.0

        # Minimization-form duals decide the sign conditions.
        min_duals = view.scaling.unscale_duals(work.dual)
        move = basis.nonbasic_move
        free = ~np.isfinite(lower) & ~np.isfinite(upper)
        dual_violation = np.where(
            move > 0,
            np.maximum(-min_duals, 0.0),
            np.where(move < 0, np.maximum(min_duals, 0.0), np.where(free, np.abs(min_duals), 0.0)),
        )
        dual_violation[~nonbasic] = np.abs(min_duals[~nonbasic])
        dual_violation[dual_violation <= options.dual_feasibility_tolerance] = 0.0

        distance = np.minimum(
            np.where(np.isfinite(lower), np.abs(values - lower), np.inf),
            np.where(np.isfinite(upper), np.abs(upper - values), np.inf),
        )
        distance = np.where(free, np.abs(values), distance)
        complementarity = distance * np.abs(reported_duals)

        objective = float(model.col_cost @ solution.col_value) + model.offset
        dual_objective = model.offset + float(reported_duals[nonbasic] @ values[nonbasic])
        return SolveInfo(
            objective_function_value=objective,
            dual_objective_value=dual_objective,
            simplex_iteration_count=iterations,
            num_primal_infeasibilities=int(np.count_nonzero(primal_violation)),
            max_primal_infeasibility=float(primal_violation.max(initial=0.0)),
            sum_primal_infeasibilities=float(primal_violation.sum()),
            num_dual_infeasibilities=int(np.count_nonzero(dual_violation)),
            max_dual_infeasibility=float(dual_violation.max(initial=0.0)),
            sum_dual_infeasibilities=float(dual_violation.sum()),
            max_complementarity_violation=float(complementarity.max(initial=0.0)),
            sum_complementarity_violation=float(complementarity.sum()),
        )

    def _export_basis(self) -> Basis:
        basis = self._basis
        if basis is None:
            return Basis(valid=False)
        view = basis.view
        statuses: list[VariableStatus] = []
        for var in range(view.num_tot):
            lower, upper = view.lower[var], view.upper[var]
            if basis.nonbasic_flag[var] == 0:
                statuses.append(VariableStatus.BASIC)
            elif lower == upper:
                statuses.append(VariableStatus.FIXED)
            elif basis.nonbasic_move[var] > 0:
                statuses.append(VariableStatus.AT_LOWER)
            elif basis.nonbasic_move[var] < 0:
                statuses.append(VariableStatus.AT_UPPER)
            else:
                statuses.append(VariableStatus.FREE)
        return Basis(
            col_status=statuses[: view.num_col],
            row_status=statuses[view.num_col :],
            valid=True,
        )

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    def _last_result(self) -> SolveResult:
        if self._result is None:
            raise InvalidModelError("No solve has completed since the model was passed.")
        return self._result

    def get_model_status(self) -> ModelStatus:
        return ModelStatus.NOTSET if self._result is None else self._result.model_status

    def get_solution(self) -> Solution:
        return self._last_result().solution

    def get_basis(self) -> Basis:
        return self._export_basis()

    def get_info(self) -> SolveInfo:
        return self._last_result().info

    def get_stats(self) -> SimplexStats:
        return SimplexStats() if self._result is None else self._result.stats

    def get_objective_function_value(self) -> float:
        return self._last_result().info.objective_function_value

    def get_dual_objective_value(self) -> float:
        return self._last_result().info.dual_objective_value

    def get_run_time(self) -> float:
        """Seconds since the solver was created; ``time_limit`` is a deadline on this clock."""
        return self._run_clock.elapsed

    def get_iteration_count(self) -> int:
        return 0 if self._result is None else self._result.info.simplex_iteration_count
