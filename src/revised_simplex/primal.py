"""Primal simplex driver.

Phase 1 minimizes the sum of bound violations of the basic variables with a
composite cost of -1 for variables below their lower bound and +1 for those
above their upper bound; phase 2 minimizes the working costs. The phase is
re-derived every iteration from the current basic values, so a pivot that
restores feasibility moves straight into phase 2.
"""

from __future__ import annotations

import logging

import numpy as np

from .basis import SimplexBasis
from .controller import IterationController, StatsRecorder
from .data import ModelStatus, SolverOptions
from .diagnostics import ConvergenceMonitor
from .exceptions import NumericalInstabilityError
from .model_view import StandardFormView
from .ratio_test import primal_ratio_test
from .simplex_adaptive import AdaptiveTuner
from .simplex_driver import SimplexDriver
from .simplex_pricing import BlandPricing, PrimalPricingStrategy, create_primal_pricing
from .workspace import WorkingVectors

STALL_ITERATIONS = 50  # Iterations without progress before switching to Bland's rule.


class PrimalSimplex(SimplexDriver):
    """Bounded-variable primal simplex with Devex or Dantzig pricing."""

    algorithm = "primal"

    def __init__(
        self,
        view: StandardFormView,
        basis: SimplexBasis,
        work: WorkingVectors,
        options: SolverOptions,
        controller: IterationController,
        stats: StatsRecorder,
        tuner: AdaptiveTuner,
    ):
        super().__init__(view, basis, work, options, controller, stats, tuner)
        self.pricing: PrimalPricingStrategy = create_primal_pricing(
            options.primal_pricing_strategy, view.num_tot
        )
        self.monitor = ConvergenceMonitor()
        self.phase = 0

    def compute_duals(self) -> None:
        if self.phase == 1:
            self._composite_duals()
        else:
            self.work.compute_dual(self.basis)

    def after_rebuild(self, removed: list[int]) -> None:
        if removed:
            self.pricing.reset()

    def _composite_duals(self) -> None:
        """Reduced costs of the phase-1 objective for the current basis."""
        basic_index = self.basis.basic_index
        tolerance = self.options.primal_feasibility_tolerance
        values = self.work.value[basic_index]
        composite = np.where(
            values < self.work.lower[basic_index] - tolerance,
            -1.0,
            np.where(values > self.work.upper[basic_index] + tolerance, 1.0, 0.0),
        )
        if basic_index.size:
            dual = -self.view.price_row(self.basis.btran(composite))
        else:
            dual = np.zeros(self.view.num_tot)
        dual[basic_index] = 0.0
        self.work.dual = dual

    def _enter_phase(self, phase: int) -> None:
        self.phase = phase
        self.monitor.reset()
        if isinstance(self.pricing, BlandPricing):
            self.pricing = create_primal_pricing(
                self.options.primal_pricing_strategy, self.view.num_tot
            )
        else:
            self.pricing.reset()
        self.logger.info(
            f"Primal phase {phase}",
            extra={"iteration": self.controller.iterations, "phase": phase},
        )

    def run(self) -> ModelStatus:
        self.logger.info(
            "Starting primal simplex",
            extra={"rows": self.view.num_row, "columns": self.view.num_col},
        )
        self.rebuild()
        while True:
            limit = self.controller.check()
            if limit is not None:
                self.work.compute_dual(self.basis)
                return limit
            try:
                status = self._iteration()
            except NumericalInstabilityError as exc:
                if not self.recover(exc):
                    return ModelStatus.SOLVE_ERROR
                continue
            if status is not None:
                return status

    def _iteration(self) -> ModelStatus | None:
        work = self.work
        basis = self.basis
        infeasibility = work.primal_infeasibilities(
            basis.basic_index, self.options.primal_feasibility_tolerance
        )
        phase = 1 if infeasibility.any() else 2
        if phase != self.phase:
            self._enter_phase(phase)
        self.compute_duals()

        if self.monitor.is_stalled(STALL_ITERATIONS) and not isinstance(
            self.pricing, BlandPricing
        ):
            self.logger.info(
                "Primal simplex stalled; switching to Bland's rule",
                extra={
                    "iteration": self.controller.iterations,
                    "degeneracy_ratio": self.monitor.get_degeneracy_ratio(),
                },
            )
            self.pricing = BlandPricing(self.view.num_tot)

        entering = self.pricing.select_entering(
            work.dual_infeasibilities(basis, self.options.dual_feasibility_tolerance)
        )
        if entering is None:
            if phase == 1:
                self.logger.info(
                    "Primal phase 1 ended with infeasibilities",
                    extra={"sum_infeasibilities": float(infeasibility.sum())},
                )
                return ModelStatus.INFEASIBLE
            return self._optimal()

        move = int(basis.nonbasic_move[entering])
        if move != 0:
            direction = move
        else:
            direction = -1 if work.dual[entering] > 0.0 else 1

        aq = basis.column_ftran(entering)
        self.stats.record("col_aq", aq)
        result = primal_ratio_test(
            aq,
            direction,
            work.value,
            work.lower,
            work.upper,
            basis.basic_index,
            float(work.range[entering]),
            self.options.primal_feasibility_tolerance,
            self.options.pivot_tolerance,
            phase_one=phase == 1,
        )
        if result.unbounded:
            if phase == 1:
                raise NumericalInstabilityError(
                    f"Phase 1 found no blocking variable for entering {entering}"
                )
            self.logger.info(
                "Primal simplex found an unbounded ray",
                extra={"entering": entering, "iteration": self.controller.iterations},
            )
            return ModelStatus.UNBOUNDED

        step = result.step
        if result.flip:
            work.value[basis.basic_index] -= step * direction * aq
            basis.nonbasic_move[entering] = -move
            work.value[entering] = work.upper[entering] if move > 0 else work.lower[entering]
        else:
            self._pivot(entering, direction, aq, result.row, step, result.leaving_to_upper)

        self.count_iteration()
        self.monitor.record_iteration(
            float(infeasibility.sum()) if phase == 1 else work.objective_value(),
            step == 0.0,
        )
        self.finish_pivot(step)
        return None

    def _pivot(
        self,
        entering: int,
        direction: int,
        aq: np.ndarray,
        row: int,
        step: float,
        leaving_to_upper: bool,
    ) -> None:
        work = self.work
        basis = self.basis
        leaving = int(basis.basic_index[row])
        alpha = float(aq[row])

        pivotal_row = None
        if self.pricing.requires_pivotal_row:
            rho = basis.unit_btran(row)
            pivotal_row = self.view.price_row(rho)
            self.stats.record("row_ep", rho)
            self.stats.record("row_ap", pivotal_row)
            self.check_pivot(alpha, float(pivotal_row[entering]))

        work.value[basis.basic_index] -= step * direction * aq
        work.value[entering] += step * direction
        if work.lower[leaving] == work.upper[leaving]:
            leaving_move = 0
            work.value[leaving] = work.lower[leaving]
        elif leaving_to_upper:
            leaving_move = -1
            work.value[leaving] = work.upper[leaving]
        else:
            leaving_move = 1
            work.value[leaving] = work.lower[leaving]

        self.pricing.update(entering, leaving, pivotal_row, alpha)
        basis.update(row, entering, aq, leaving_move)
        if self.logger.isEnabledFor(logging.DEBUG):
            self.logger.debug(
                "Primal pivot",
                extra={
                    "iteration": self.controller.iterations,
                    "entering": entering,
                    "leaving": leaving,
                    "step": step,
                },
            )

    def _optimal(self) -> ModelStatus:
        objective = self.reported_objective()
        if self.objective_bound_exceeded(objective):
            self.logger.info(
                "Optimal objective exceeds the objective bound",
                extra={"objective": objective, "bound": self.options.objective_bound},
            )
            return ModelStatus.OBJECTIVE_BOUND
        return ModelStatus.OPTIMAL
