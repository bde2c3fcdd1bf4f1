"""Basis bookkeeping and factorization management for the revised simplex."""

from __future__ import annotations

import logging

import numpy as np
import scipy.linalg

from .basis_lu import LUFactors, SingularFactorError, build_lu
from .core.product_form import ProductFormUpdate
from .exceptions import SingularBasisError
from .model_view import StandardFormView

RANK_TOLERANCE = 1e-9  # Relative R-diagonal size treated as rank deficient.


def nonbasic_move_for(lower: float, upper: float) -> int:
    """Default move direction of a nonbasic variable with the given bounds.

    +1: at lower, may increase. -1: at upper, may decrease. 0: fixed or free.
    """
    if lower == upper:
        return 0
    if np.isfinite(lower):
        return 1
    if np.isfinite(upper):
        return -1
    return 0


class SimplexBasis:
    """Manage the basic index set and its factorized representation.

    The basis maps each of the ``m`` row positions to a variable of the
    unified space. Nonbasic variables carry a move direction. The basis
    matrix is factorized with SuperLU and subsequent pivots are absorbed as
    product-form eta columns until ``update_limit`` is reached, an update is
    rejected, or a refactorization is requested.

    Attributes:
        basic_index: Variable at each row position.
        nonbasic_flag: 1 for nonbasic variables, 0 for basic ones.
        nonbasic_move: Move direction of nonbasic variables (0 for basic).
        position: Row position of each basic variable, -1 for nonbasic.
        num_invert: Number of factorizations built.
        last_invert_num_el: Nonzeros in ``L + U`` of the last factorization.
        last_factored_basis_num_el: Nonzeros of the last factorized basis matrix.
    """

    def __init__(
        self,
        view: StandardFormView,
        update_limit: int = 64,
        pivot_tolerance: float = 1e-9,
        growth_limit: float = 1e10,
        use_jit: bool = True,
    ) -> None:
        self.view = view
        self.num_row = view.num_row
        self.num_tot = view.num_tot
        self.update_limit = update_limit
        self.pivot_tolerance = pivot_tolerance
        self.growth_limit = growth_limit
        self.use_jit = use_jit
        self.logger = logging.getLogger(__name__)

        self.basic_index = np.zeros(self.num_row, dtype=np.int64)
        self.nonbasic_flag = np.ones(self.num_tot, dtype=np.int8)
        self.nonbasic_move = np.zeros(self.num_tot, dtype=np.int8)
        self.position = np.full(self.num_tot, -1, dtype=np.int64)

        self._factors: LUFactors | None = None
        self._updates: ProductFormUpdate | None = None
        self._refactor_requested = True

        self.num_invert = 0
        self.last_invert_num_el = 0
        self.last_factored_basis_num_el = 0

        self.set_logical_basis()

    # ------------------------------------------------------------------
    # Basis membership
    # ------------------------------------------------------------------

    def set_logical_basis(self) -> None:
        """Make every logical basic and place structurals at their default bound."""
        n = self.view.num_col
        self.set_basic_variables(np.arange(n, self.num_tot, dtype=np.int64))

    def set_basic_variables(
        self, basic_index: np.ndarray, nonbasic_move: np.ndarray | None = None
    ) -> None:
        """Install a basic index set; nonbasic moves default from the bounds."""
        basic_index = np.asarray(basic_index, dtype=np.int64)
        if basic_index.shape[0] != self.num_row:
            raise ValueError(
                f"Basis needs {self.num_row} basic variables, got {basic_index.shape[0]}."
            )
        if len(np.unique(basic_index)) != self.num_row:
            raise ValueError("Basic variables must be distinct.")
        self.basic_index = basic_index.copy()
        self.nonbasic_flag = np.ones(self.num_tot, dtype=np.int8)
        self.nonbasic_flag[basic_index] = 0
        self.position = np.full(self.num_tot, -1, dtype=np.int64)
        self.position[basic_index] = np.arange(self.num_row, dtype=np.int64)
        if nonbasic_move is None:
            self.nonbasic_move = np.array(
                [
                    nonbasic_move_for(lo, up)
                    for lo, up in zip(self.view.lower, self.view.upper)
                ],
                dtype=np.int8,
            )
        else:
            self.nonbasic_move = np.asarray(nonbasic_move, dtype=np.int8).copy()
        self.nonbasic_move[basic_index] = 0
        self.invalidate()

    def is_basic(self, var: int) -> bool:
        return self.nonbasic_flag[var] == 0

    def invalidate(self) -> None:
        """Drop the factorization; the next solve factorizes from scratch."""
        self._factors = None
        self._updates = None
        self._refactor_requested = True

    # ------------------------------------------------------------------
    # Factorization
    # ------------------------------------------------------------------

    @property
    def has_factorization(self) -> bool:
        return self.num_row == 0 or self._updates is not None

    @property
    def needs_refactor(self) -> bool:
        return self._refactor_requested

    @property
    def update_count(self) -> int:
        return 0 if self._updates is None else self._updates.update_count

    def request_refactor(self) -> None:
        self._refactor_requested = True

    def set_update_limit(self, limit: int) -> None:
        self.update_limit = limit
        if self._updates is not None:
            self._updates.max_updates = limit

    def factorize(self) -> None:
        """Build a fresh LU factorization of the current basis matrix.

        Raises:
            SingularBasisError: If the basic columns are linearly dependent. The
                error lists the dependent basis positions and the rows left
                uncovered by the independent columns.
        """
        self._refactor_requested = False
        self.num_invert += 1
        if self.num_row == 0:
            self._factors = None
            self._updates = None
            return
        matrix = self.view.basis_matrix(self.basic_index)
        self.last_factored_basis_num_el = int(matrix.nnz)
        try:
            factors = build_lu(matrix)
        except SingularFactorError as exc:
            self._factors = None
            self._updates = None
            self._refactor_requested = True
            positions, rows = self._diagnose_singularity(matrix.toarray())
            raise SingularBasisError(
                f"Basis matrix is singular ({exc}); {len(positions)} dependent columns",
                dependent_positions=positions,
                uncovered_rows=rows,
            ) from exc
        self._factors = factors
        self.last_invert_num_el = factors.num_el
        self._updates = ProductFormUpdate(
            factors,
            pivot_tolerance=self.pivot_tolerance,
            max_updates=self.update_limit,
            growth_limit=self.growth_limit,
            use_jit=self.use_jit,
        )

    def _diagnose_singularity(self, dense: np.ndarray) -> tuple[list[int], list[int]]:
        """Find dependent basis positions and the rows they should cover.

        A column-pivoted QR ranks the columns; an LU with partial pivoting of the
        independent columns identifies which rows they cover.
        """
        m = dense.shape[0]
        _, r_factor, permutation = scipy.linalg.qr(dense, pivoting=True, mode="economic")
        diagonal = np.abs(np.diag(r_factor))
        if diagonal.size == 0 or diagonal[0] == 0.0:
            return list(range(m)), list(range(m))
        rank = int(np.count_nonzero(diagonal > RANK_TOLERANCE * diagonal[0]))
        # SuperLU already rejected the matrix, so at least one column is dependent.
        rank = min(rank, m - 1)
        if rank == 0:
            return list(range(m)), list(range(m))
        kept = np.sort(permutation[:rank])
        dependent = sorted(int(p) for p in permutation[rank:])
        perm_matrix, _, _ = scipy.linalg.lu(dense[:, kept])
        row_order = np.argmax(perm_matrix, axis=0)
        uncovered = sorted(int(r) for r in row_order[rank:])
        return dependent, uncovered

    def replace_with_logicals(self, positions: list[int], rows: list[int]) -> list[int]:
        """Put the logicals of ``rows`` into the basis at ``positions``.

        Returns:
            The variables that left the basis. Their move direction is reset from
            their bounds; the caller places them at the matching bound value.
        """
        n = self.view.num_col
        removed: list[int] = []
        for pos, row in zip(positions, rows):
            leaving = int(self.basic_index[pos])
            entering = n + int(row)
            self.basic_index[pos] = entering
            self.nonbasic_flag[entering] = 0
            self.nonbasic_move[entering] = 0
            self.position[entering] = pos
            self.nonbasic_flag[leaving] = 1
            self.position[leaving] = -1
            self.nonbasic_move[leaving] = nonbasic_move_for(
                self.view.lower[leaving], self.view.upper[leaving]
            )
            removed.append(leaving)
        self.invalidate()
        return removed

    def factorize_with_repair(self) -> list[int]:
        """Factorize, substituting logicals until the basis is nonsingular.

        Returns:
            Variables removed from the basis by the repair (empty if none).
        """
        removed: list[int] = []
        for _ in range(self.num_row + 1):
            try:
                self.factorize()
                return removed
            except SingularBasisError as exc:
                self.logger.warning(
                    "Singular basis: substituting logical variables",
                    extra={
                        "dependent_positions": exc.dependent_positions,
                        "uncovered_rows": exc.uncovered_rows,
                    },
                )
                removed.extend(
                    self.replace_with_logicals(exc.dependent_positions, exc.uncovered_rows)
                )
        raise SingularBasisError("Basis repair did not produce a nonsingular basis")

    # ------------------------------------------------------------------
    # Solves and updates
    # ------------------------------------------------------------------

    def ftran(self, rhs: np.ndarray) -> np.ndarray:
        """Solve ``B x = rhs``."""
        if self.num_row == 0:
            return np.zeros(0)
        if self._updates is None:
            raise RuntimeError("Basis is not factorized.")
        return self._updates.ftran(rhs)

    def btran(self, rhs: np.ndarray) -> np.ndarray:
        """Solve ``B^T y = rhs``."""
        if self.num_row == 0:
            return np.zeros(0)
        if self._updates is None:
            raise RuntimeError("Basis is not factorized.")
        return self._updates.btran(rhs)

    def unit_btran(self, row: int) -> np.ndarray:
        """Row ``row`` of ``B^-1`` (BTRAN of the unit vector ``e_row``)."""
        unit = np.zeros(self.num_row)
        unit[row] = 1.0
        return self.btran(unit)

    def column_ftran(self, var: int) -> np.ndarray:
        """``B^-1 a_var`` for a column of ``[A -I]``."""
        return self.ftran(self.view.column(var))

    def update(self, row: int, entering: int, aq: np.ndarray, leaving_move: int) -> None:
        """Swap ``entering`` into position ``row`` and absorb the change.

        ``aq`` is ``B^-1 a_entering`` computed with the basis before the swap.
        When the eta update is rejected, a refactorization is requested.
        """
        leaving = int(self.basic_index[row])
        self.basic_index[row] = entering
        self.nonbasic_flag[entering] = 0
        self.nonbasic_move[entering] = 0
        self.position[entering] = row
        self.nonbasic_flag[leaving] = 1
        self.nonbasic_move[leaving] = leaving_move
        self.position[leaving] = -1

        if self._updates is None or not self._updates.update(row, aq):
            if self.logger.isEnabledFor(logging.DEBUG):
                self.logger.debug(
                    "Eta update rejected; refactorization requested",
                    extra={"row": row, "entering": entering, "updates": self.update_count},
                )
            self._refactor_requested = True

    def estimate_condition_number(self, samples: int = 10) -> float | None:
        """Estimate the 1-norm condition number of the basis matrix.

        Uses ``cond(B) ~ ||B||_1 * ||B^-1||_1`` where the inverse norm is estimated
        from FTRANs of a few unit vectors. This is an underestimate but suffices
        for monitoring drift between refactorizations.
        """
        if self.num_row == 0 or self._updates is None:
            return None
        matrix = self.view.basis_matrix(self.basic_index)
        norm_b = float(abs(matrix).sum(axis=0).max())
        max_col_sum = 0.0
        step = max(1, self.num_row // samples)
        for i in range(0, self.num_row, step):
            unit = np.zeros(self.num_row)
            unit[i] = 1.0
            max_col_sum = max(max_col_sum, float(np.sum(np.abs(self.ftran(unit)))))
        if max_col_sum == 0.0:
            return None
        return norm_b * max_col_sum
