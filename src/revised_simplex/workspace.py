"""Working vectors of an active solve and the cost perturbation they carry.

The vectors shadow the model view so phase-specific bounds and perturbed costs
never touch model data. ``cost`` always includes ``shift``; the perturbation is
removed by subtracting ``shift`` back out.
"""

from __future__ import annotations

import logging
import math

import numpy as np

from .basis import SimplexBasis
from .model_view import StandardFormView

logger = logging.getLogger(__name__)

PERTURBATION_BASE = 5e-7  # Relative size of the random cost perturbation.
ARTIFICIAL_FREE_BOUND = 1000.0  # Box given to free variables in dual phase 1.


class WorkingVectors:
    """Per-variable cost, bound, value, dual and perturbation vectors.

    Attributes:
        cost: Working costs (model costs plus ``shift``).
        shift: Cost perturbation currently applied.
        lower: Working lower bounds.
        upper: Working upper bounds.
        range: ``upper - lower``.
        value: Current value of every variable.
        dual: Reduced cost of every variable (0 for basic variables).
    """

    def __init__(self, view: StandardFormView):
        self.view = view
        self.num_tot = view.num_tot
        self.reset()

    def reset(self) -> None:
        """Initialize every vector from the model view."""
        self.cost = self.view.cost.copy()
        self.shift = np.zeros(self.num_tot)
        self.value = np.zeros(self.num_tot)
        self.dual = np.zeros(self.num_tot)
        self.restore_bounds()

    def restore_bounds(self) -> None:
        self.lower = self.view.lower.copy()
        self.upper = self.view.upper.copy()
        self.range = self.upper - self.lower

    def set_artificial_bounds(self) -> None:
        """Replace bounds by the boxes of the dual phase-1 auxiliary problem.

        Free variables get ``[-1000, 1000]``, lower-bounded ones ``[0, 1]``,
        upper-bounded ones ``[-1, 0]`` and boxed or fixed ones ``[0, 0]``.
        """
        has_lower = np.isfinite(self.view.lower)
        has_upper = np.isfinite(self.view.upper)
        lower = np.zeros(self.num_tot)
        upper = np.zeros(self.num_tot)
        free = ~has_lower & ~has_upper
        lower[free] = -ARTIFICIAL_FREE_BOUND
        upper[free] = ARTIFICIAL_FREE_BOUND
        upper[has_lower & ~has_upper] = 1.0
        lower[~has_lower & has_upper] = -1.0
        self.lower = lower
        self.upper = upper
        self.range = upper - lower

    # ------------------------------------------------------------------
    # Cost perturbation
    # ------------------------------------------------------------------

    @property
    def costs_perturbed(self) -> bool:
        return bool(np.any(self.shift != 0.0))

    def perturb_costs(self, basis: SimplexBasis, seed: int) -> None:
        """Shift structural costs by small random amounts toward dual feasibility.

        Lower-bounded variables get a positive shift, upper-bounded ones a
        negative shift and boxed ones a shift matching their nonbasic side.
        Fixed, free and basic variables are left alone, so a basis that is
        dual feasible for the model costs stays dual feasible. Every shift is bounded by
        ``2 * base * (1 + |c_j|)`` with ``base = 5e-7 * max(1, C)`` and ``C`` the
        largest cost magnitude (damped above 100), so the optimal basis of the
        perturbed problem needs at most a short primal cleanup afterwards.
        """
        n = self.view.num_col
        if n == 0:
            return
        base_cost = self.view.cost[:n]
        big_cost = float(np.max(np.abs(base_cost)))
        if big_cost > 100.0:
            big_cost = math.sqrt(math.sqrt(big_cost))
        base = PERTURBATION_BASE * max(big_cost, 1.0)

        rng = np.random.default_rng(seed)
        magnitude = base * (1.0 + np.abs(base_cost)) * (1.0 + rng.random(n))

        lower = self.view.lower[:n]
        upper = self.view.upper[:n]
        has_lower = np.isfinite(lower)
        has_upper = np.isfinite(upper)
        move = basis.nonbasic_move[:n]
        boxed_side = np.where(
            basis.nonbasic_flag[:n] == 1,
            np.where(move < 0, -1.0, 1.0),
            np.where(base_cost < 0, -1.0, 1.0),
        )
        direction = np.zeros(n)
        direction[has_lower & ~has_upper] = 1.0
        direction[~has_lower & has_upper] = -1.0
        boxed = has_lower & has_upper & (lower < upper)
        direction[boxed] = boxed_side[boxed]
        direction[basis.nonbasic_flag[:n] == 0] = 0.0

        shift = np.zeros(self.num_tot)
        shift[:n] = direction * magnitude
        self.apply_cost_shift(shift)
        logger.debug(
            "Applied cost perturbation",
            extra={"base": base, "max_shift": float(np.max(np.abs(shift)))},
        )

    def apply_cost_shift(self, shift: np.ndarray) -> None:
        self.shift = shift.copy()
        self.cost = self.view.cost + self.shift

    def remove_cost_perturbation(self) -> None:
        self.cost = self.view.cost.copy()
        self.shift = np.zeros(self.num_tot)

    # ------------------------------------------------------------------
    # Primal and dual values
    # ------------------------------------------------------------------

    def place_nonbasic(self, basis: SimplexBasis) -> None:
        """Set every nonbasic variable to the bound matching its move."""
        move = basis.nonbasic_move
        fixed_or_free = np.where(self.lower == self.upper, self.lower, 0.0)
        target = np.where(move > 0, self.lower, np.where(move < 0, self.upper, fixed_or_free))
        nonbasic = basis.nonbasic_flag == 1
        self.value[nonbasic] = target[nonbasic]

    def reset_nonbasic_moves(self, basis: SimplexBasis) -> None:
        """Choose each nonbasic side from the working bounds and the dual sign.

        Boxed variables take the side that makes them dual feasible; others take
        their only finite bound.
        """
        has_lower = np.isfinite(self.lower)
        has_upper = np.isfinite(self.upper)
        move = np.zeros(self.num_tot, dtype=np.int8)
        move[has_lower & ~has_upper] = 1
        move[~has_lower & has_upper] = -1
        boxed = has_lower & has_upper & (self.lower < self.upper)
        move[boxed] = np.where(self.dual[boxed] < 0.0, -1, 1)
        nonbasic = basis.nonbasic_flag == 1
        basis.nonbasic_move[nonbasic] = move[nonbasic]
        self.place_nonbasic(basis)

    def compute_primal(self, basis: SimplexBasis) -> None:
        """Solve ``B x_B = -N x_N`` for the basic values."""
        if basis.num_row == 0:
            return
        nonbasic_values = self.value.copy()
        nonbasic_values[basis.basic_index] = 0.0
        rhs = -self.view.matvec(nonbasic_values)
        self.value[basis.basic_index] = basis.ftran(rhs)

    def compute_dual(self, basis: SimplexBasis) -> None:
        """Compute ``y = B^-T c_B`` and reduced costs ``d = c - [A -I]^T y``."""
        if basis.num_row == 0:
            self.dual = self.cost.copy()
            return
        y = basis.btran(self.cost[basis.basic_index])
        self.dual = self.cost - self.view.price_row(y)
        self.dual[basis.basic_index] = 0.0

    def primal_infeasibilities(
        self,
        basic_index: np.ndarray,
        tolerance: float,
        start: int = 0,
        stop: int | None = None,
    ) -> np.ndarray:
        """Bound violation of the basic variables at positions ``[start, stop)``.

        Violations within ``tolerance`` are reported as 0.
        """
        variables = basic_index[start:stop]
        values = self.value[variables]
        infeasibility = np.maximum(
            np.maximum(self.lower[variables] - values, values - self.upper[variables]), 0.0
        )
        infeasibility[infeasibility <= tolerance] = 0.0
        return infeasibility

    def dual_infeasibilities(self, basis: SimplexBasis, tolerance: float) -> np.ndarray:
        """Sign violation of each nonbasic reduced cost; 0 within ``tolerance``."""
        move = basis.nonbasic_move
        free = ~np.isfinite(self.lower) & ~np.isfinite(self.upper)
        infeasibility = np.where(
            move > 0,
            np.maximum(-self.dual, 0.0),
            np.where(move < 0, np.maximum(self.dual, 0.0), np.where(free, np.abs(self.dual), 0.0)),
        )
        infeasibility[basis.nonbasic_flag == 0] = 0.0
        infeasibility[infeasibility <= tolerance] = 0.0
        return infeasibility

    def flip_dual_infeasible_boxed(self, basis: SimplexBasis, tolerance: float) -> int:
        """Move dual infeasible boxed nonbasics to their other bound.

        Returns:
            Number of variables flipped. Basic values are recomputed when any flip.
        """
        infeasible = self.dual_infeasibilities(basis, tolerance) > 0.0
        boxed = np.isfinite(self.lower) & np.isfinite(self.upper) & (self.lower < self.upper)
        flips = np.flatnonzero(infeasible & boxed)
        if flips.size == 0:
            return 0
        basis.nonbasic_move[flips] = -basis.nonbasic_move[flips]
        self.place_nonbasic(basis)
        self.compute_primal(basis)
        return int(flips.size)

    def objective_value(self) -> float:
        """Minimization objective of the current point with working costs."""
        return float(self.cost @ self.value)

    def dual_objective_value(self, basis: SimplexBasis) -> float:
        """``sum d_k x_k`` over nonbasic variables with working costs."""
        nonbasic = basis.nonbasic_flag == 1
        return float(self.dual[nonbasic] @ self.value[nonbasic])
