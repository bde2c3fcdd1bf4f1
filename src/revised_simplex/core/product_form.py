"""Product-form eta file for maintaining basis factorizations.

Each column replacement ``B_k = B_{k-1} E_k`` is recorded as an eta column: the
pivot position ``p``, the pivot ``aq_p`` and the off-pivot entries of
``aq = B_{k-1}^-1 a_q``. FTRAN applies ``E_1^-1 ... E_k^-1`` after the base LU
solve; BTRAN applies ``E_k^-T ... E_1^-T`` before the transposed base solve.
"""

from __future__ import annotations

import numpy as np
from numba import njit  # type: ignore[import-untyped]

from ..basis_lu import LUFactors, solve_lu

ETA_DROP_TOLERANCE = 1e-14  # Entries below this are not stored in the eta file.


@njit(cache=True)  # type: ignore[misc]
def _ftran_etas_jit(
    result: np.ndarray,
    pivot_rows: np.ndarray,
    pivot_values: np.ndarray,
    starts: np.ndarray,
    indices: np.ndarray,
    values: np.ndarray,
) -> None:
    """Apply eta inverses in update order to ``result`` (JIT-compiled)."""
    for k in range(pivot_rows.shape[0]):
        p = pivot_rows[k]
        xp = result[p] / pivot_values[k]
        result[p] = xp
        if xp != 0.0:
            for t in range(starts[k], starts[k + 1]):
                result[indices[t]] -= values[t] * xp


@njit(cache=True)  # type: ignore[misc]
def _btran_etas_jit(
    result: np.ndarray,
    pivot_rows: np.ndarray,
    pivot_values: np.ndarray,
    starts: np.ndarray,
    indices: np.ndarray,
    values: np.ndarray,
) -> None:
    """Apply transposed eta inverses in reverse update order (JIT-compiled)."""
    for k in range(pivot_rows.shape[0] - 1, -1, -1):
        p = pivot_rows[k]
        acc = result[p]
        for t in range(starts[k], starts[k + 1]):
            acc -= values[t] * result[indices[t]]
        result[p] = acc / pivot_values[k]


def _ftran_etas_python(
    result: np.ndarray,
    pivot_rows: np.ndarray,
    pivot_values: np.ndarray,
    starts: np.ndarray,
    indices: np.ndarray,
    values: np.ndarray,
) -> None:
    for k in range(pivot_rows.shape[0]):
        p = pivot_rows[k]
        xp = result[p] / pivot_values[k]
        result[p] = xp
        if xp != 0.0:
            segment = slice(starts[k], starts[k + 1])
            result[indices[segment]] -= values[segment] * xp


def _btran_etas_python(
    result: np.ndarray,
    pivot_rows: np.ndarray,
    pivot_values: np.ndarray,
    starts: np.ndarray,
    indices: np.ndarray,
    values: np.ndarray,
) -> None:
    for k in range(pivot_rows.shape[0] - 1, -1, -1):
        p = pivot_rows[k]
        acc = result[p]
        for t in range(starts[k], starts[k + 1]):
            acc -= values[t] * result[indices[t]]
        result[p] = acc / pivot_values[k]


class ProductFormUpdate:
    """Maintain FTRAN/BTRAN solves for a basis matrix via eta columns."""

    def __init__(
        self,
        factors: LUFactors,
        pivot_tolerance: float = 1e-9,
        max_updates: int | None = 64,
        growth_limit: float | None = 1e10,
        use_jit: bool = True,
    ) -> None:
        self.size = factors.sparse_matrix.shape[0]
        self.pivot_tolerance = pivot_tolerance
        self.max_updates = max_updates
        self.growth_limit = growth_limit
        self.use_jit = use_jit
        self._base_factors = factors
        self._pivot_rows: list[int] = []
        self._pivot_values: list[float] = []
        self._indices: list[np.ndarray] = []
        self._values: list[np.ndarray] = []
        self._packed: tuple[np.ndarray, ...] | None = None

    @property
    def update_count(self) -> int:
        return len(self._pivot_rows)

    def _packed_etas(self) -> tuple[np.ndarray, ...]:
        if self._packed is None:
            count = len(self._pivot_rows)
            starts = np.zeros(count + 1, dtype=np.int64)
            if count:
                starts[1:] = np.cumsum([len(idx) for idx in self._indices])
                indices = np.concatenate(self._indices).astype(np.int64)
                values = np.concatenate(self._values).astype(np.float64)
            else:
                indices = np.zeros(0, dtype=np.int64)
                values = np.zeros(0, dtype=np.float64)
            self._packed = (
                np.array(self._pivot_rows, dtype=np.int64),
                np.array(self._pivot_values, dtype=np.float64),
                starts,
                indices,
                values,
            )
        return self._packed

    def ftran(self, rhs: np.ndarray) -> np.ndarray:
        """Solve ``B x = rhs`` accounting for accumulated updates."""
        vec = np.asarray(rhs, dtype=float).reshape(-1)
        if vec.shape[0] != self.size:
            raise ValueError("Right-hand side dimension does not match basis size.")
        result = np.array(solve_lu(self._base_factors, vec), dtype=float, copy=True)
        if self._pivot_rows:
            kernel = _ftran_etas_jit if self.use_jit else _ftran_etas_python
            kernel(result, *self._packed_etas())
        return result

    def btran(self, rhs: np.ndarray) -> np.ndarray:
        """Solve ``B^T y = rhs`` accounting for accumulated updates."""
        vec = np.array(rhs, dtype=float, copy=True).reshape(-1)
        if vec.shape[0] != self.size:
            raise ValueError("Right-hand side dimension does not match basis size.")
        if self._pivot_rows:
            kernel = _btran_etas_jit if self.use_jit else _btran_etas_python
            kernel(vec, *self._packed_etas())
        return np.array(solve_lu(self._base_factors, vec, transpose=True), dtype=float)

    def update(self, pivot: int, aq: np.ndarray) -> bool:
        """Record the replacement of basis position ``pivot`` by a column with
        ``B^-1 a_q = aq``.

        Returns:
            False when the update budget is exhausted, the pivot is too small or
            the eta column grows beyond ``growth_limit``; the caller must then
            refactorize.
        """
        if pivot < 0 or pivot >= self.size:
            raise ValueError("Pivot index outside of basis range.")
        if self.max_updates is not None and len(self._pivot_rows) >= self.max_updates:
            return False
        column = np.asarray(aq, dtype=float).reshape(-1)
        if column.shape[0] != self.size:
            raise ValueError("Entering column dimension does not match basis size.")
        pivot_value = float(column[pivot])
        if abs(pivot_value) <= self.pivot_tolerance:
            return False
        mask = np.abs(column) > ETA_DROP_TOLERANCE
        mask[pivot] = False
        indices = np.flatnonzero(mask)
        values = column[indices]
        if self.growth_limit is not None and values.size:
            growth = float(np.max(np.abs(values))) / abs(pivot_value)
            if growth > self.growth_limit:
                return False
        self._pivot_rows.append(int(pivot))
        self._pivot_values.append(pivot_value)
        self._indices.append(indices)
        self._values.append(values.copy())
        self._packed = None
        return True
