"""Pricing strategies for revised simplex variable selection.

This module contains the strategies used to pick the entering variable in the
primal simplex and the leaving row in the dual simplex, together with the edge
weights that normalize their merit. All strategies break ties by the lowest
variable index so that serial and chunked scans make identical choices.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from .basis import SimplexBasis

# Constants for Devex weight bounds
DEVEX_WEIGHT_MIN = 1e-12  # Prevent division by zero or runaway weights
DEVEX_WEIGHT_MAX = 1e12  # Cap the Devex weight to avoid catastrophic scaling
DSE_WEIGHT_MIN = 1e-4  # Steepest edge weights never fall below this
DSE_DRIFT_RATIO = 3.0  # Updated vs exact weight ratio flagged as drift


class PrimalPricingStrategy(ABC):
    """Abstract base class for primal entering-variable selection.

    A strategy receives the dual infeasibility of every variable (0 for basic
    variables and for reduced costs within tolerance) and returns the variable
    with the largest weighted merit ``infeasibility^2 / w_j``.
    """

    requires_pivotal_row = False

    def __init__(self, num_tot: int):
        self.num_tot = num_tot
        self.weights = np.ones(num_tot, dtype=float)

    def select_entering(self, infeasibility: np.ndarray) -> int | None:
        """Select an entering variable, or None if no reduced cost is attractive."""
        candidates = infeasibility > 0.0
        if not candidates.any():
            return None
        merit = np.where(candidates, infeasibility * infeasibility / self.weights, -1.0)
        # argmax returns the first maximum, i.e. the lowest variable index on ties.
        return int(np.argmax(merit))

    @abstractmethod
    def update(
        self, entering: int, leaving: int, pivotal_row: np.ndarray | None, alpha: float
    ) -> None:
        """Update weights after ``entering`` replaced ``leaving`` with pivot ``alpha``."""

    def reset(self) -> None:
        """Reset weights to 1.0."""
        self.weights.fill(1.0)


class DantzigPricing(PrimalPricingStrategy):
    """Dantzig pricing: select the largest reduced cost violation.

    This is the simplest pricing strategy. Weights stay at 1 so the merit is the
    squared dual infeasibility.
    """

    def update(
        self, entering: int, leaving: int, pivotal_row: np.ndarray | None, alpha: float
    ) -> None:
        """Dantzig pricing is stateless, so nothing to update."""


class DevexPricing(PrimalPricingStrategy):
    """Devex pricing: steepest edge approximation in a reference framework.

    Weights start at 1 (the initial nonbasic set is the reference framework)
    and are updated from the pivotal row ``alpha_r``:

        w_j = max(w_j, (alpha_rj / alpha_rq)^2 * w_q)      for nonbasic j
        w_p = max(w_q / alpha_rq^2, 1)                       for the leaving p
    """

    requires_pivotal_row = True

    def update(
        self, entering: int, leaving: int, pivotal_row: np.ndarray | None, alpha: float
    ) -> None:
        if pivotal_row is None:
            return
        entering_weight = float(self.weights[entering])
        ratio = pivotal_row / alpha
        np.maximum(self.weights, ratio * ratio * entering_weight, out=self.weights)
        self.weights[leaving] = max(entering_weight / (alpha * alpha), 1.0)
        self.weights[entering] = 1.0
        np.clip(self.weights, DEVEX_WEIGHT_MIN, DEVEX_WEIGHT_MAX, out=self.weights)


class BlandPricing(PrimalPricingStrategy):
    """Bland's rule: the lowest-index attractive variable.

    Used as an anti-cycling fallback when the convergence monitor reports a
    stall.
    """

    def select_entering(self, infeasibility: np.ndarray) -> int | None:
        candidates = np.flatnonzero(infeasibility > 0.0)
        if candidates.size == 0:
            return None
        return int(candidates[0])

    def update(
        self, entering: int, leaving: int, pivotal_row: np.ndarray | None, alpha: float
    ) -> None:
        """Bland's rule keeps no weights."""


def best_row(
    merit: np.ndarray, basic_index: np.ndarray, offset: int = 0
) -> tuple[float, int, int] | None:
    """Best ``(merit, variable, row)`` in a chunk of rows starting at ``offset``.

    Ties in merit go to the lowest basic variable index.
    """
    if merit.size == 0:
        return None
    best = float(merit.max())
    if best <= 0.0:
        return None
    ties = np.flatnonzero(merit == best)
    pick = int(ties[np.argmin(basic_index[ties])])
    return best, int(basic_index[pick]), offset + pick


def combine_best_rows(
    results: Iterable[tuple[float, int, int] | None],
) -> tuple[float, int, int] | None:
    """Reduce per-chunk ``best_row`` results with the same tie rule."""
    chosen: tuple[float, int, int] | None = None
    for result in results:
        if result is None:
            continue
        if chosen is None or result[0] > chosen[0] or (
            result[0] == chosen[0] and result[1] < chosen[1]
        ):
            chosen = result
    return chosen


class DualPricingStrategy(ABC):
    """Abstract base class for dual leaving-row selection.

    Merit of row ``r`` is ``infeasibility_r^2 / w_r`` where the infeasibility is
    the bound violation of its basic variable.

    Attributes:
        weights: One weight per basic row position.
    """

    requires_dse_vector = False
    drift_detected = False

    def __init__(self, num_row: int):
        self.num_row = num_row
        self.weights = np.ones(num_row, dtype=float)

    def initialize(self, basis: SimplexBasis) -> None:
        """Set weights for the starting basis."""
        self.weights = np.ones(self.num_row, dtype=float)

    def merit(self, infeasibility: np.ndarray, start: int = 0, stop: int | None = None) -> np.ndarray:
        return infeasibility * infeasibility / self.weights[start:stop]

    def select_leaving_row(
        self, infeasibility: np.ndarray, basic_index: np.ndarray
    ) -> int | None:
        """Return the row with the best merit, or None if primal feasible."""
        result = best_row(self.merit(infeasibility), basic_index)
        return None if result is None else result[2]

    @abstractmethod
    def update(
        self,
        row: int,
        aq: np.ndarray,
        alpha: float,
        rho: np.ndarray,
        tau: np.ndarray | None,
    ) -> None:
        """Update weights for a pivot in ``row`` with entering column ``aq``."""

    def reset(self) -> None:
        self.weights.fill(1.0)


class DantzigDualPricing(DualPricingStrategy):
    """Plain dual pricing: the largest bound violation."""

    def update(
        self,
        row: int,
        aq: np.ndarray,
        alpha: float,
        rho: np.ndarray,
        tau: np.ndarray | None,
    ) -> None:
        """Unit weights never change."""


class DevexDualPricing(DualPricingStrategy):
    """Dual Devex weights in a reference framework of the starting basis."""

    def update(
        self,
        row: int,
        aq: np.ndarray,
        alpha: float,
        rho: np.ndarray,
        tau: np.ndarray | None,
    ) -> None:
        row_weight = float(self.weights[row])
        ratio = aq / alpha
        np.maximum(self.weights, ratio * ratio * row_weight, out=self.weights)
        self.weights[row] = max(row_weight / (alpha * alpha), 1.0)
        np.clip(self.weights, DEVEX_WEIGHT_MIN, DEVEX_WEIGHT_MAX, out=self.weights)


class SteepestEdgeDualPricing(DualPricingStrategy):
    """Dual steepest edge: ``w_r = ||e_r^T B^-1||^2`` maintained exactly.

    The update needs ``tau = B^-1 rho_r`` (one extra FTRAN per iteration):

        w_i = w_i + (aq_i / alpha)^2 * w_r - 2 * (aq_i / alpha) * tau_i
        w_r = w_r / alpha^2

    The leaving row weight is replaced by the exact ``||rho_r||^2`` before the
    update; a large discrepancy counts as drift and triggers an exact
    recomputation at the next refactorization.
    """

    requires_dse_vector = True

    def __init__(self, num_row: int):
        super().__init__(num_row)
        self.drift_detected = False

    def initialize(self, basis: SimplexBasis) -> None:
        self.drift_detected = False
        self.weights = np.ones(self.num_row, dtype=float)
        if np.all(basis.basic_index >= basis.view.num_col):
            # Logical basis: B = -I, every row of B^-1 has unit norm.
            return
        for row in range(self.num_row):
            rho = basis.unit_btran(row)
            self.weights[row] = max(float(rho @ rho), DSE_WEIGHT_MIN)

    def update(
        self,
        row: int,
        aq: np.ndarray,
        alpha: float,
        rho: np.ndarray,
        tau: np.ndarray | None,
    ) -> None:
        if tau is None:
            raise ValueError("Steepest edge update requires the DSE vector tau.")
        exact = float(rho @ rho)
        stored = float(self.weights[row])
        if exact > DSE_DRIFT_RATIO * stored or stored > DSE_DRIFT_RATIO * exact:
            self.drift_detected = True
        ratio = aq / alpha
        updated = self.weights + ratio * (ratio * exact - 2.0 * tau)
        updated[row] = exact / (alpha * alpha)
        self.weights = np.maximum(updated, DSE_WEIGHT_MIN)


def create_primal_pricing(name: str, num_tot: int) -> PrimalPricingStrategy:
    if name == "devex":
        return DevexPricing(num_tot)
    if name == "dantzig":
        return DantzigPricing(num_tot)
    raise ValueError(f"Unknown primal pricing strategy '{name}'.")


def create_dual_pricing(name: str, num_row: int) -> DualPricingStrategy:
    if name == "steepest_edge":
        return SteepestEdgeDualPricing(num_row)
    if name == "devex":
        return DevexDualPricing(num_row)
    if name == "dantzig":
        return DantzigDualPricing(num_row)
    raise ValueError(f"Unknown dual edge weight strategy '{name}'.")
