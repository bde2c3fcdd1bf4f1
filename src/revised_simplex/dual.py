"""Dual simplex driver.

Phase 1 makes the basis dual feasible: boxed variables are flipped to the bound
their reduced cost prefers, and any remaining infeasibility is removed by
running phase-2 iterations on an auxiliary problem whose bounds are replaced
by small artificial boxes. Phase 2 keeps dual feasibility while driving out
primal infeasibilities, one leaving row per iteration.

When dual feasibility cannot be reached, or removing the cost perturbation at
the end exposes dual infeasibilities, the primal driver finishes the solve on
the same basis.
"""

from __future__ import annotations

import logging

import numpy as np

from .basis import SimplexBasis
from .controller import IterationController, StatsRecorder
from .data import ModelStatus, SimplexStrategy, SolverOptions
from .exceptions import NumericalInstabilityError
from .model_view import StandardFormView
from .parallel import PivotChoice, TaskPool, create_row_pricer
from .primal import PrimalSimplex
from .simplex_adaptive import AdaptiveTuner
from .simplex_driver import SimplexDriver
from .simplex_pricing import DualPricingStrategy, create_dual_pricing
from .workspace import WorkingVectors


class DualSimplex(SimplexDriver):
    """Bounded-variable dual simplex with Harris ratio test and bound flipping.

    Attributes:
        strategy: The dual variant; decides which row pricer is used.
        pricing: Dual edge weights (steepest edge, Devex or plain).
        row_pricer: Performs CHUZR, BTRAN, PRICE and CHUZC each iteration.
    """

    algorithm = "dual"

    def __init__(
        self,
        view: StandardFormView,
        basis: SimplexBasis,
        work: WorkingVectors,
        options: SolverOptions,
        controller: IterationController,
        stats: StatsRecorder,
        tuner: AdaptiveTuner,
        strategy: SimplexStrategy = SimplexStrategy.DUAL_PLAIN,
        pool: TaskPool | None = None,
    ):
        super().__init__(view, basis, work, options, controller, stats, tuner)
        self.strategy = strategy
        self.pricing: DualPricingStrategy = create_dual_pricing(
            options.dual_edge_weight_strategy, view.num_row
        )
        self.row_pricer = create_row_pricer(
            strategy, view, basis, work, self.pricing, options, stats, pool
        )
        self._weights_ready = False

    # ------------------------------------------------------------------
    # Driver entry point
    # ------------------------------------------------------------------

    def run(self) -> ModelStatus:
        self.logger.info(
            "Starting dual simplex",
            extra={
                "rows": self.view.num_row,
                "columns": self.view.num_col,
                "strategy": self.strategy.value,
                "edge_weights": self.options.dual_edge_weight_strategy,
            },
        )
        self.rebuild()
        if self.options.perturb_costs:
            self.work.perturb_costs(self.basis, self.options.random_seed)
            self.compute_duals()
        self.pricing.initialize(self.basis)
        self._weights_ready = True

        return self._solve()

    def _solve(self) -> ModelStatus:
        tolerance = self.options.dual_feasibility_tolerance
        self.work.flip_dual_infeasible_boxed(self.basis, tolerance)
        if self.work.dual_infeasibilities(self.basis, tolerance).any():
            status = self._phase_one()
            if status is not None:
                return self._finish(status)
            if self.work.dual_infeasibilities(self.basis, tolerance).any():
                return self._hand_off("dual infeasibilities remain after dual phase 1")

        self.phase = 2
        self.logger.info(
            "Dual phase 2",
            extra={"iteration": self.controller.iterations, "phase": 2},
        )
        status = self._iterate(check_bound=True)
        if status is not ModelStatus.OPTIMAL:
            return self._finish(status)

        if self.work.costs_perturbed:
            self.work.remove_cost_perturbation()
            self.compute_duals()
            if self.work.dual_infeasibilities(self.basis, tolerance).any():
                return self._hand_off("cost perturbation removal left dual infeasibilities")
        objective = self.reported_objective()
        if self.objective_bound_exceeded(objective):
            return ModelStatus.OBJECTIVE_BOUND
        return ModelStatus.OPTIMAL

    def _finish(self, status: ModelStatus) -> ModelStatus:
        """Remove the perturbation before returning a non-optimal status."""
        if self.work.costs_perturbed:
            self.work.remove_cost_perturbation()
            self.compute_duals()
        return status

    def _hand_off(self, reason: str) -> ModelStatus:
        """Finish the solve with the primal driver on model costs."""
        self.work.remove_cost_perturbation()
        self.logger.info(
            f"Switching to primal simplex: {reason}",
            extra={"iteration": self.controller.iterations},
        )
        primal = PrimalSimplex(
            self.view,
            self.basis,
            self.work,
            self.options,
            self.controller,
            self.stats,
            self.tuner,
        )
        return primal.run()

    # ------------------------------------------------------------------
    # Phase 1
    # ------------------------------------------------------------------

    def _phase_one(self) -> ModelStatus | None:
        """Solve the artificial-bounds problem; returns a limit status or None."""
        self.phase = 1
        self.logger.info(
            "Dual phase 1",
            extra={"iteration": self.controller.iterations, "phase": 1},
        )
        work = self.work
        work.set_artificial_bounds()
        work.reset_nonbasic_moves(self.basis)
        work.compute_primal(self.basis)

        status = self._iterate(check_bound=False)

        work.restore_bounds()
        work.reset_nonbasic_moves(self.basis)
        work.compute_primal(self.basis)
        if status in (
            ModelStatus.ITERATION_LIMIT,
            ModelStatus.TIME_LIMIT,
            ModelStatus.SOLVE_ERROR,
        ):
            return status
        if status is ModelStatus.INFEASIBLE:
            self.logger.debug("Dual phase 1 auxiliary problem reported infeasible")
        return None

    # ------------------------------------------------------------------
    # Iterations
    # ------------------------------------------------------------------

    def _iterate(self, check_bound: bool) -> ModelStatus:
        while True:
            limit = self.controller.check()
            if limit is not None:
                return limit
            if check_bound and self._objective_bound_reached():
                self.logger.info(
                    "Dual objective exceeds the objective bound",
                    extra={
                        "iteration": self.controller.iterations,
                        "bound": self.options.objective_bound,
                    },
                )
                return ModelStatus.OBJECTIVE_BOUND
            try:
                status = self._iteration()
            except NumericalInstabilityError as exc:
                if not self.recover(exc):
                    return ModelStatus.SOLVE_ERROR
                continue
            if status is not None:
                return status

    def _objective_bound_reached(self) -> bool:
        """Whether the dual objective proves the optimum lies above the bound.

        With perturbed costs the check is confirmed with the model costs while
        the basis is dual feasible for them; otherwise the perturbation is put
        back and iterations continue.
        """
        if not self.objective_bound_exceeded(self.dual_objective()):
            return False
        if not self.work.costs_perturbed:
            return True
        shift = self.work.shift.copy()
        self.work.remove_cost_perturbation()
        self.compute_duals()
        tolerance = self.options.dual_feasibility_tolerance
        if not self.work.dual_infeasibilities(self.basis, tolerance).any():
            if self.objective_bound_exceeded(self.dual_objective()):
                return True
        self.work.apply_cost_shift(shift)
        self.compute_duals()
        return False

    def dual_objective(self) -> float:
        """Dual objective of the current basis in the caller's sense."""
        return (
            self.view.sense * self.work.dual_objective_value(self.basis) + self.view.model.offset
        )

    def _iteration(self) -> ModelStatus | None:
        choice = self.row_pricer.choose()
        if choice is None:
            return ModelStatus.OPTIMAL
        if choice.ratio.infeasible:
            self.logger.info(
                "Dual ratio test found no entering variable; primal infeasible",
                extra={"iteration": self.controller.iterations, "leaving": choice.leaving},
            )
            return ModelStatus.INFEASIBLE

        basis = self.basis
        row = choice.row
        entering = choice.ratio.entering
        aq = basis.column_ftran(entering)
        self.stats.record("col_aq", aq)
        alpha = float(aq[row])
        self.check_pivot(alpha, choice.ratio.alpha)

        tau = None
        if self.pricing.requires_dse_vector:
            tau = basis.ftran(choice.rho)
            self.stats.record("row_DSE", tau)

        self._update_duals(choice)
        leaving_move = self._update_primal(choice, aq)
        self.pricing.update(row, aq, alpha, choice.rho, tau)
        basis.update(row, entering, aq, leaving_move)
        flips = 0
        if not basis.needs_refactor:
            # Otherwise the flips happen in after_rebuild on the new factors.
            flips = self.work.flip_dual_infeasible_boxed(
                basis, self.options.dual_feasibility_tolerance
            )

        if self.logger.isEnabledFor(logging.DEBUG):
            self.logger.debug(
                "Dual pivot",
                extra={
                    "iteration": self.controller.iterations,
                    "leaving": choice.leaving,
                    "entering": entering,
                    "step": choice.ratio.step,
                    "flips": flips,
                },
            )
        self.count_iteration()
        self.finish_pivot(choice.ratio.step)
        return None

    def _update_duals(self, choice: PivotChoice) -> None:
        """Move reduced costs by ``sigma * t * alpha_r`` along the pivotal row."""
        dual = self.work.dual
        step = choice.sigma * choice.ratio.step
        nonbasic = self.basis.nonbasic_flag == 1
        dual[nonbasic] += step * choice.alpha_row[nonbasic]
        dual[choice.leaving] = step
        dual[choice.ratio.entering] = 0.0

    def _update_primal(self, choice: PivotChoice, aq: np.ndarray) -> int:
        """Move the leaving variable onto its violated bound.

        Returns:
            Move direction of the leaving variable once nonbasic.
        """
        work = self.work
        leaving = choice.leaving
        if choice.sigma > 0:
            target = work.lower[leaving]
            leaving_move = 1
        else:
            target = work.upper[leaving]
            leaving_move = -1
        if work.lower[leaving] == work.upper[leaving]:
            leaving_move = 0
        theta = (work.value[leaving] - target) / aq[choice.row]
        work.value[self.basis.basic_index] -= theta * aq
        work.value[choice.ratio.entering] += theta
        work.value[leaving] = target
        return leaving_move

    def after_rebuild(self, removed: list[int]) -> None:
        if not self._weights_ready:
            return
        self.work.flip_dual_infeasible_boxed(self.basis, self.options.dual_feasibility_tolerance)
        if removed or self.pricing.drift_detected:
            self.pricing.initialize(self.basis)
