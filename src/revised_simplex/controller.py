"""Iteration control and statistics recording for a single solve."""

from __future__ import annotations

import logging
import math
import time

import numpy as np

from .basis import SimplexBasis
from .data import ModelStatus, ProgressCallback, ProgressInfo, SimplexStats, SolverOptions

logger = logging.getLogger(__name__)


class RunClock:
    """Wall clock started once per solver instance; ``time_limit`` is measured on it."""

    def __init__(self) -> None:
        self.start_time = time.perf_counter()

    @property
    def elapsed(self) -> float:
        return time.perf_counter() - self.start_time


class IterationController:
    """Owns the stopping policy of one solve.

    The drivers poll ``check`` once at the top of every iteration, before
    pricing, so a limit of ``k`` iterations performs exactly ``k`` and a limit of
    0 performs none.

    Attributes:
        iteration_limit: Maximum simplex iterations.
        time_limit: Deadline in seconds on the run clock, which may have been
            started before this solve.
        iterations: Iterations performed so far in this solve.
    """

    def __init__(
        self,
        options: SolverOptions,
        progress_callback: ProgressCallback | None = None,
        progress_interval: int = 100,
        run_clock: RunClock | None = None,
    ):
        self.iteration_limit = options.simplex_iteration_limit
        self.time_limit = options.time_limit
        self.progress_callback = progress_callback
        self.progress_interval = max(1, progress_interval)
        self.iterations = 0
        self.start_time = time.perf_counter()
        self.run_clock = run_clock if run_clock is not None else RunClock()

    @property
    def elapsed(self) -> float:
        return time.perf_counter() - self.start_time

    def check(self) -> ModelStatus | None:
        """Return a limit status if the solve must stop before the next iteration."""
        if self.iterations >= self.iteration_limit:
            logger.info(
                "Iteration limit reached",
                extra={"iterations": self.iterations, "iteration_limit": self.iteration_limit},
            )
            return ModelStatus.ITERATION_LIMIT
        if math.isfinite(self.time_limit) and self.run_clock.elapsed >= self.time_limit:
            logger.info(
                "Time limit reached",
                extra={
                    "iterations": self.iterations,
                    "time_limit": self.time_limit,
                    "run_time": self.run_clock.elapsed,
                },
            )
            return ModelStatus.TIME_LIMIT
        return None

    def record_iteration(self, phase: int, algorithm: str, objective: float) -> None:
        """Count one iteration and report progress at the configured interval.

        ``objective`` is in the caller's sense; it is only evaluated by callers
        when a callback is installed (see ``wants_progress``).
        """
        self.iterations += 1
        if self.progress_callback is not None and self.iterations % self.progress_interval == 0:
            self.progress_callback(
                ProgressInfo(
                    iteration=self.iterations,
                    max_iterations=self.iteration_limit,
                    phase=phase,
                    algorithm=algorithm,
                    objective_estimate=objective,
                    elapsed_time=self.elapsed,
                )
            )

    @property
    def wants_progress(self) -> bool:
        return (
            self.progress_callback is not None
            and (self.iterations + 1) % self.progress_interval == 0
        )


class StatsRecorder:
    """Running averages of work-vector densities across iterations."""

    NAMES = ("col_aq", "row_ep", "row_ap", "row_DSE")

    def __init__(self) -> None:
        self._density = {name: 0.0 for name in self.NAMES}
        self._count = {name: 0 for name in self.NAMES}

    def record(self, name: str, vector: np.ndarray) -> None:
        size = vector.shape[0]
        local = float(np.count_nonzero(vector)) / size if size else 0.0
        self._count[name] += 1
        self._density[name] += (local - self._density[name]) / self._count[name]

    def snapshot(self, basis: SimplexBasis, iteration_count: int) -> SimplexStats:
        return SimplexStats(
            valid=True,
            iteration_count=iteration_count,
            num_invert=basis.num_invert,
            last_invert_num_el=basis.last_invert_num_el,
            last_factored_basis_num_el=basis.last_factored_basis_num_el,
            col_aq_density=self._density["col_aq"],
            row_ep_density=self._density["row_ep"],
            row_ap_density=self._density["row_ap"],
            row_DSE_density=self._density["row_DSE"],
        )
