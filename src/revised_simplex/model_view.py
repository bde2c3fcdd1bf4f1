"""Unified structural + logical view of a model in scaled minimization form.

Row ``i`` gets a logical variable ``n + i`` whose value is the row activity, so
the constraints read ``[A  -I] x = 0`` and every variable carries its own bounds.
Costs are multiplied by the objective sense so the engine always minimizes.
"""

from __future__ import annotations

import numpy as np
from scipy.sparse import csc_matrix, hstack, identity

from .data import LpModel
from .scaling import ScalingFactors, compute_scaling_factors, identity_scaling, scale_matrix


class StandardFormView:
    """Read-only adapter exposing per-variable bounds, costs and columns.

    Attributes:
        model: The caller's model (unscaled, original sense).
        num_col: Number of structural variables ``n``.
        num_row: Number of rows and logical variables ``m``.
        num_tot: ``n + m``.
        scaling: Factors mapping between scaled and caller units.
        matrix: Scaled ``A`` in compressed-column form.
        cost: Scaled minimization costs (zero for logicals).
        lower: Scaled lower bounds of all variables.
        upper: Scaled upper bounds of all variables.
    """

    def __init__(self, model: LpModel, scale: bool = True):
        self.model = model
        self.num_col = model.num_col
        self.num_row = model.num_row
        self.num_tot = self.num_col + self.num_row
        self.sense = int(model.sense)

        raw = csc_matrix(
            (model.a_value, model.a_index, model.a_start),
            shape=(self.num_row, self.num_col),
        )
        raw.sort_indices()
        if scale:
            self.scaling: ScalingFactors = compute_scaling_factors(raw)
        else:
            self.scaling = identity_scaling(self.num_col, self.num_row)
        self.matrix = scale_matrix(raw, self.scaling)
        self.matrix.sort_indices()
        # Transposed copy for row-wise pricing of structural columns.
        self._row_matrix = self.matrix.T.tocsr()
        if self.num_row:
            self._full = hstack(
                [self.matrix, -identity(self.num_row, format="csc")], format="csc"
            )
        else:
            self._full = csc_matrix((0, self.num_tot))

        cost = np.zeros(self.num_tot)
        cost[: self.num_col] = self.sense * np.asarray(model.col_cost, dtype=float)
        self.cost = self.scaling.scale_costs(cost)
        self.lower = self.scaling.scale_bounds(
            np.concatenate((model.col_lower, model.row_lower)).astype(float)
        )
        self.upper = self.scaling.scale_bounds(
            np.concatenate((model.col_upper, model.row_upper)).astype(float)
        )

    def column(self, var: int) -> np.ndarray:
        """Dense column of ``[A -I]`` for variable ``var``."""
        column = np.zeros(self.num_row)
        if var < self.num_col:
            start, end = self.matrix.indptr[var], self.matrix.indptr[var + 1]
            column[self.matrix.indices[start:end]] = self.matrix.data[start:end]
        else:
            column[var - self.num_col] = -1.0
        return column

    def matvec(self, values: np.ndarray) -> np.ndarray:
        """Return ``[A -I] values``."""
        return self.matrix @ values[: self.num_col] - values[self.num_col :]

    def price_row(self, rho: np.ndarray, start: int = 0, stop: int | None = None) -> np.ndarray:
        """Return ``rho^T [A -I]`` restricted to variables ``[start, stop)``."""
        stop = self.num_tot if stop is None else stop
        result = np.empty(stop - start)
        col_stop = min(stop, self.num_col)
        if start < col_stop:
            result[: col_stop - start] = self._row_matrix[start:col_stop] @ rho
        row_start = max(start, self.num_col)
        if row_start < stop:
            result[row_start - start :] = -rho[row_start - self.num_col : stop - self.num_col]
        return result

    def basis_matrix(self, basic_index: np.ndarray) -> csc_matrix:
        """Columns of ``[A -I]`` selected by ``basic_index`` as an m x m matrix."""
        return csc_matrix(self._full[:, basic_index])

    def unscale_primal(self, values: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        """Split scaled variable values into caller-unit column and row values."""
        unscaled = self.scaling.unscale_values(values)
        return unscaled[: self.num_col].copy(), unscaled[self.num_col :].copy()

    def unscale_dual(self, duals: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        """Split scaled reduced costs into column and row duals in the caller's sense."""
        unscaled = self.sense * self.scaling.unscale_duals(duals)
        return unscaled[: self.num_col].copy(), unscaled[self.num_col :].copy()
