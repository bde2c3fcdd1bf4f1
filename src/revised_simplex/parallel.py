"""Row pricing for the dual simplex, serial and fanned out over a task pool.

A row pricer performs the read-only part of a dual iteration: choose the
leaving row (CHUZR), compute ``rho = e_r^T B^-1`` (BTRAN), price the pivotal row
``rho^T [A -I]`` and run the dual ratio test (CHUZC). The pivot itself is
committed afterwards by the driver, sequentially.

``ChunkedRowPricer`` splits each scan into contiguous chunks and reduces them
with the same tie rules as a single scan, so it reproduces the serial pivot
sequence exactly. ``MultipleRowPricer`` evaluates several candidate rows at
once and keeps the one with the largest dual objective gain.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import TypeVar

import numpy as np

from .basis import SimplexBasis
from .controller import StatsRecorder
from .data import SimplexStrategy, SolverOptions
from .model_view import StandardFormView
from .ratio_test import DualRatioResult, DualRatioTest, combine_pass_two
from .simplex_pricing import DualPricingStrategy, best_row, combine_best_rows
from .workspace import WorkingVectors

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

MIN_CHUNK_SIZE = 64  # Smaller scans are not worth a task.


class TaskPool:
    """Bounded fan-out/fan-in over a thread pool.

    Tasks only read solver state; every ``map`` call joins all of its tasks
    before returning, in submission order.
    """

    def __init__(self, max_workers: int):
        self.max_workers = max_workers
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="simplex-pricing"
        )

    def chunks(self, size: int) -> list[tuple[int, int]]:
        """Split ``[0, size)`` into at most ``max_workers`` contiguous ranges."""
        if size <= 0:
            return []
        count = max(1, min(self.max_workers, size // MIN_CHUNK_SIZE))
        bounds = np.linspace(0, size, count + 1).astype(int)
        return [(int(bounds[i]), int(bounds[i + 1])) for i in range(count)]

    def map(self, fn: Callable[[T], R], items: Iterable[T]) -> list[R]:
        return list(self._executor.map(fn, items))

    def shutdown(self) -> None:
        self._executor.shutdown(wait=True)

    def __enter__(self) -> TaskPool:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()


@dataclass
class PivotChoice:
    """A priced leaving row and the outcome of its ratio test.

    Attributes:
        row: Basis position of the leaving variable.
        leaving: The leaving variable.
        sigma: +1 if the leaving variable is below its lower bound, -1 if above.
        infeasibility: Bound violation of the leaving variable.
        rho: ``e_r^T B^-1``.
        alpha_row: Pivotal row ``rho^T [A -I]`` over all variables.
        ratio: Dual ratio test result (entering variable and step).
    """

    row: int
    leaving: int
    sigma: int
    infeasibility: float
    rho: np.ndarray
    alpha_row: np.ndarray
    ratio: DualRatioResult

    @property
    def gain(self) -> float:
        """First-order increase of the dual objective for this pivot."""
        return self.ratio.step * self.infeasibility


class RowPricer:
    """Serial CHUZR, BTRAN, PRICE and CHUZC."""

    def __init__(
        self,
        view: StandardFormView,
        basis: SimplexBasis,
        work: WorkingVectors,
        pricing: DualPricingStrategy,
        options: SolverOptions,
        stats: StatsRecorder,
    ):
        self.view = view
        self.basis = basis
        self.work = work
        self.pricing = pricing
        self.options = options
        self.stats = stats

    def choose(self) -> PivotChoice | None:
        """Price one dual iteration; None when the basis is primal feasible."""
        chosen = self._choose_row()
        if chosen is None:
            return None
        _, _, row = chosen
        return self._evaluate(row)

    def _choose_row(self) -> tuple[float, int, int] | None:
        infeasibility = self.work.primal_infeasibilities(
            self.basis.basic_index, self.options.primal_feasibility_tolerance
        )
        return best_row(self.pricing.merit(infeasibility), self.basis.basic_index)

    def _leaving_side(self, leaving: int) -> tuple[int, float]:
        """Direction ``sigma`` and size of the bound violation of ``leaving``."""
        value = self.work.value[leaving]
        lower = self.work.lower[leaving]
        if value < lower:
            return 1, float(lower - value)
        return -1, float(value - self.work.upper[leaving])

    def _evaluate(self, row: int) -> PivotChoice:
        leaving = int(self.basis.basic_index[row])
        sigma, infeasibility = self._leaving_side(leaving)
        rho = self.basis.unit_btran(row)
        alpha_row = self._price(rho)
        self.stats.record("row_ep", rho)
        self.stats.record("row_ap", alpha_row)
        ratio = self._ratio_test(self._ratio_scan(alpha_row, sigma))
        return PivotChoice(
            row=row,
            leaving=leaving,
            sigma=sigma,
            infeasibility=infeasibility,
            rho=rho,
            alpha_row=alpha_row,
            ratio=ratio,
        )

    def _ratio_scan(self, alpha_row: np.ndarray, sigma: int) -> DualRatioTest:
        free = ~np.isfinite(self.work.lower) & ~np.isfinite(self.work.upper)
        return DualRatioTest(
            alpha_row,
            self.work.dual,
            self.basis.nonbasic_move,
            self.basis.nonbasic_flag,
            free,
            sigma,
            self.options.dual_feasibility_tolerance,
            self.options.pivot_tolerance,
        )

    def _price(self, rho: np.ndarray) -> np.ndarray:
        return self.view.price_row(rho)

    def _ratio_test(self, test: DualRatioTest) -> DualRatioResult:
        return test.run()


class ChunkedRowPricer(RowPricer):
    """Row pricer that fans each scan out over contiguous chunks."""

    def __init__(
        self,
        view: StandardFormView,
        basis: SimplexBasis,
        work: WorkingVectors,
        pricing: DualPricingStrategy,
        options: SolverOptions,
        stats: StatsRecorder,
        pool: TaskPool,
    ):
        super().__init__(view, basis, work, pricing, options, stats)
        self.pool = pool
        self._row_chunks = pool.chunks(view.num_row)
        self._var_chunks = pool.chunks(view.num_tot)

    def _choose_row(self) -> tuple[float, int, int] | None:
        basic_index = self.basis.basic_index
        tolerance = self.options.primal_feasibility_tolerance

        def scan(chunk: tuple[int, int]) -> tuple[float, int, int] | None:
            start, stop = chunk
            infeasibility = self.work.primal_infeasibilities(basic_index, tolerance, start, stop)
            merit = self.pricing.merit(infeasibility, start, stop)
            return best_row(merit, basic_index[start:stop], start)

        return combine_best_rows(self.pool.map(scan, self._row_chunks))

    def _price(self, rho: np.ndarray) -> np.ndarray:
        parts = self.pool.map(lambda chunk: self.view.price_row(rho, *chunk), self._var_chunks)
        if not parts:
            return np.zeros(0)
        return np.concatenate(parts)

    def _ratio_test(self, test: DualRatioTest) -> DualRatioResult:
        theta_max = min(
            self.pool.map(lambda chunk: test.pass_one(*chunk), self._var_chunks),
            default=math.inf,
        )
        if not math.isfinite(theta_max):
            return test.finish(None)
        chosen = combine_pass_two(
            self.pool.map(lambda chunk: test.pass_two(theta_max, *chunk), self._var_chunks)
        )
        return test.finish(chosen)


class MultipleRowPricer(RowPricer):
    """Multiple pricing: evaluate the best ``multi_candidates`` rows concurrently.

    Candidate rows are the primal infeasible rows with the largest merit
    (ties by lowest basic variable index). Their BTRANs run sequentially; the
    pivotal rows and ratio tests run on the pool. The candidate whose ratio test
    finds no entering variable proves infeasibility and is returned at once.
    Otherwise the candidate with the largest ``step * infeasibility`` is
    committed; ties go to the candidate with the better merit.
    """

    def __init__(
        self,
        view: StandardFormView,
        basis: SimplexBasis,
        work: WorkingVectors,
        pricing: DualPricingStrategy,
        options: SolverOptions,
        stats: StatsRecorder,
        pool: TaskPool,
    ):
        super().__init__(view, basis, work, pricing, options, stats)
        self.pool = pool
        self.num_candidates = options.multi_candidates

    def candidate_rows(self) -> np.ndarray:
        infeasibility = self.work.primal_infeasibilities(
            self.basis.basic_index, self.options.primal_feasibility_tolerance
        )
        merit = self.pricing.merit(infeasibility)
        rows = np.flatnonzero(merit > 0.0)
        if rows.size == 0:
            return rows
        order = np.lexsort((self.basis.basic_index[rows], -merit[rows]))
        return rows[order[: self.num_candidates]]

    def choose(self) -> PivotChoice | None:
        rows = self.candidate_rows()
        if rows.size == 0:
            return None
        rhos = [self.basis.unit_btran(int(row)) for row in rows]

        def evaluate(item: tuple[int, np.ndarray]) -> PivotChoice:
            row, rho = item
            leaving = int(self.basis.basic_index[row])
            sigma, infeasibility = self._leaving_side(leaving)
            alpha_row = self.view.price_row(rho)
            return PivotChoice(
                row=row,
                leaving=leaving,
                sigma=sigma,
                infeasibility=infeasibility,
                rho=rho,
                alpha_row=alpha_row,
                ratio=self._ratio_scan(alpha_row, sigma).run(),
            )

        best: PivotChoice | None = None
        for choice in self.pool.map(evaluate, zip((int(r) for r in rows), rhos)):
            ratio = choice.ratio
            if ratio.infeasible:
                best = choice
                break
            if best is None or choice.gain > best.gain:
                best = choice

        self.stats.record("row_ep", best.rho)
        self.stats.record("row_ap", best.alpha_row)
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "Multiple pricing choice",
                extra={"candidates": int(rows.size), "row": best.row, "gain": best.gain},
            )
        return best


def create_row_pricer(
    strategy: SimplexStrategy,
    view: StandardFormView,
    basis: SimplexBasis,
    work: WorkingVectors,
    pricing: DualPricingStrategy,
    options: SolverOptions,
    stats: StatsRecorder,
    pool: TaskPool | None = None,
) -> RowPricer:
    """Map a dual strategy onto its row pricer."""
    if strategy is SimplexStrategy.DUAL_TASKS and pool is not None:
        return ChunkedRowPricer(view, basis, work, pricing, options, stats, pool)
    if strategy is SimplexStrategy.DUAL_MULTI and pool is not None:
        return MultipleRowPricer(view, basis, work, pricing, options, stats, pool)
    return RowPricer(view, basis, work, pricing, options, stats)
