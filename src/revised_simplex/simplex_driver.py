"""Shared machinery of the primal and dual simplex drivers."""

from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod

from .basis import SimplexBasis
from .controller import IterationController, StatsRecorder
from .data import ModelStatus, ObjSense, SolverOptions
from .exceptions import NumericalInstabilityError
from .model_view import StandardFormView
from .simplex_adaptive import AdaptiveTuner
from .workspace import WorkingVectors

PIVOT_AGREEMENT_TOLERANCE = 1e-7  # Relative gap allowed between row and column pivots.


class SimplexDriver(ABC):
    """Base class of a simplex algorithm running on shared solve state.

    A driver mutates the basis and working vectors it is given and returns a
    ``ModelStatus`` from ``run``. Drivers share the iteration controller, so a
    hand-off from one driver to another keeps counting iterations globally.
    """

    algorithm = "simplex"

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
        self.view = view
        self.basis = basis
        self.work = work
        self.options = options
        self.controller = controller
        self.stats = stats
        self.tuner = tuner
        self.logger = logging.getLogger(type(self).__module__)
        self.phase = 2
        self.consecutive_failures = 0
        self._pivots_since_check = 0

    @abstractmethod
    def run(self) -> ModelStatus:
        """Iterate until a terminal status."""

    # ------------------------------------------------------------------
    # Factorization and recomputation
    # ------------------------------------------------------------------

    def rebuild(self) -> list[int]:
        """Refactorize if needed and recompute primal and dual values.

        Returns:
            Variables removed from the basis by singularity repair.
        """
        removed: list[int] = []
        if self.basis.needs_refactor:
            removed = self.basis.factorize_with_repair()
            if self.logger.isEnabledFor(logging.DEBUG):
                self.logger.debug(
                    "Refactorized basis",
                    extra={
                        "iteration": self.controller.iterations,
                        "num_invert": self.basis.num_invert,
                        "factor_nnz": self.basis.last_invert_num_el,
                    },
                )
        self.work.place_nonbasic(self.basis)
        self.work.compute_primal(self.basis)
        self.compute_duals()
        self.after_rebuild(removed)
        return removed

    def compute_duals(self) -> None:
        self.work.compute_dual(self.basis)

    def after_rebuild(self, removed: list[int]) -> None:
        """Hook for drivers that keep state tied to the factorization."""

    def check_pivot(self, alpha_col: float, alpha_row: float) -> None:
        """Compare the pivot from the entering column with the pivotal row entry."""
        error = abs(alpha_col - alpha_row)
        if error > PIVOT_AGREEMENT_TOLERANCE * (1.0 + abs(alpha_col)):
            raise NumericalInstabilityError(
                f"Pivot mismatch: column gives {alpha_col:.6e}, row gives {alpha_row:.6e}",
                pivot_error=error,
            )

    def finish_pivot(self, step: float) -> None:
        """Bookkeeping after a committed pivot; refactorizes when required."""
        self.consecutive_failures = 0
        self.tuner.record_pivot(step == 0.0)
        if self.options.adaptive_refactorization:
            self._pivots_since_check += 1
            if self._pivots_since_check >= self.options.condition_check_interval:
                self._pivots_since_check = 0
                condition = self.basis.estimate_condition_number()
                self.tuner.adjust_update_limit(condition)
                self.basis.set_update_limit(self.tuner.current_update_limit)
                if condition is not None and condition > self.options.condition_number_threshold:
                    self.logger.debug(
                        "Condition estimate above threshold; refactorizing",
                        extra={"condition_number": f"{condition:.2e}"},
                    )
                    self.basis.request_refactor()
        if self.basis.needs_refactor:
            self.rebuild()

    def recover(self, exc: NumericalInstabilityError) -> bool:
        """Refactorize after a numerical failure.

        Returns:
            False once more than ``numerical_retry_limit`` consecutive failures
            occurred, in which case the solve must stop.
        """
        self.consecutive_failures += 1
        if self.consecutive_failures > self.options.numerical_retry_limit:
            self.logger.error(
                "Numerical failure persists after refactorization",
                extra={
                    "iteration": self.controller.iterations,
                    "failures": self.consecutive_failures,
                    "pivot_error": exc.pivot_error,
                },
            )
            return False
        self.logger.warning(
            f"Numerical instability: {exc}; refactorizing",
            extra={"iteration": self.controller.iterations, "pivot_error": exc.pivot_error},
        )
        self.basis.request_refactor()
        self.rebuild()
        return True

    # ------------------------------------------------------------------
    # Objective values in the caller's sense
    # ------------------------------------------------------------------

    def reported_objective(self) -> float:
        """Objective of the current point with working costs, caller's sense."""
        return self.view.sense * self.work.objective_value() + self.view.model.offset

    def objective_bound_exceeded(self, objective: float) -> bool:
        """True when minimizing against a finite bound that ``objective`` exceeds."""
        bound = self.options.objective_bound
        if self.view.sense != ObjSense.MINIMIZE or not math.isfinite(bound):
            return False
        return objective > bound

    def count_iteration(self) -> None:
        objective = self.reported_objective() if self.controller.wants_progress else math.nan
        self.controller.record_iteration(self.phase, self.algorithm, objective)
