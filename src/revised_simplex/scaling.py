"""Power-of-two geometric-mean scaling of the constraint matrix.

Row and column factors are powers of two, so scaling and unscaling are exact in
floating point. Each variable ``k`` of the unified space carries one factor
``s_k``: the column factor for structurals, the reciprocal row factor for
logicals. In scaled units

    bound' = bound / s_k,   cost' = cost * s_k,   A'_ij = r_i * A_ij * c_j

and a solution maps back with ``value = s_k * value'`` and ``dual = dual' / s_k``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import numpy as np
from scipy.sparse import csc_matrix, diags

logger = logging.getLogger(__name__)

MAX_SCALE_EXPONENT = 20  # Factors stay within [2^-20, 2^20].


@dataclass
class ScalingFactors:
    """Stores scaling factors for unscaling the solution.

    Attributes:
        col_scale: Factor ``c_j`` of each structural column.
        row_scale: Factor ``r_i`` of each row.
        enabled: Whether scaling was actually applied.
    """

    col_scale: np.ndarray = field(default_factory=lambda: np.ones(0))
    row_scale: np.ndarray = field(default_factory=lambda: np.ones(0))
    enabled: bool = False

    @property
    def variable_scale(self) -> np.ndarray:
        """Factor ``s_k`` of every structural and logical variable."""
        return np.concatenate((self.col_scale, 1.0 / self.row_scale))

    def scale_bounds(self, bounds: np.ndarray) -> np.ndarray:
        return bounds / self.variable_scale

    def scale_costs(self, costs: np.ndarray) -> np.ndarray:
        return costs * self.variable_scale

    def unscale_values(self, values: np.ndarray) -> np.ndarray:
        return values * self.variable_scale

    def unscale_duals(self, duals: np.ndarray) -> np.ndarray:
        return duals / self.variable_scale


def identity_scaling(num_col: int, num_row: int) -> ScalingFactors:
    return ScalingFactors(col_scale=np.ones(num_col), row_scale=np.ones(num_row))


def _segment_extrema(indptr: np.ndarray, data: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Minimum and maximum of each compressed segment; 1.0 for empty segments."""
    count = len(indptr) - 1
    mins = np.ones(count)
    maxs = np.ones(count)
    nonempty = np.diff(indptr) > 0
    if data.size:
        starts = indptr[:-1][nonempty]
        mins[nonempty] = np.minimum.reduceat(data, starts)
        maxs[nonempty] = np.maximum.reduceat(data, starts)
    return mins, maxs


def _power_of_two_factor(mins: np.ndarray, maxs: np.ndarray) -> np.ndarray:
    exponent = -np.round(np.log2(np.sqrt(mins * maxs)))
    return np.exp2(exponent)


def compute_scaling_factors(matrix: csc_matrix, passes: int = 4) -> ScalingFactors:
    """Compute row and column factors by alternating geometric-mean passes.

    Args:
        matrix: Constraint matrix ``A`` (rows x structural columns).
        passes: Number of row-then-column passes.

    Returns:
        ScalingFactors with power-of-two entries.
    """
    num_row, num_col = matrix.shape
    row_scale = np.ones(num_row)
    col_scale = np.ones(num_col)
    magnitude = abs(csc_matrix(matrix, copy=True))
    magnitude.eliminate_zeros()
    if magnitude.nnz == 0:
        return ScalingFactors(col_scale=col_scale, row_scale=row_scale, enabled=False)

    limit = float(2**MAX_SCALE_EXPONENT)
    for _ in range(passes):
        scaled = (diags(row_scale) @ magnitude @ diags(col_scale)).tocsr()
        scaled.sort_indices()
        row_scale *= _power_of_two_factor(*_segment_extrema(scaled.indptr, scaled.data))
        row_scale = np.clip(row_scale, 1.0 / limit, limit)

        scaled = (diags(row_scale) @ magnitude @ diags(col_scale)).tocsc()
        scaled.sort_indices()
        col_scale *= _power_of_two_factor(*_segment_extrema(scaled.indptr, scaled.data))
        col_scale = np.clip(col_scale, 1.0 / limit, limit)

    enabled = bool(np.any(row_scale != 1.0) or np.any(col_scale != 1.0))
    if enabled:
        logger.debug(
            "Computed matrix scaling",
            extra={
                "min_row_scale": float(row_scale.min()) if num_row else 1.0,
                "max_row_scale": float(row_scale.max()) if num_row else 1.0,
                "min_col_scale": float(col_scale.min()) if num_col else 1.0,
                "max_col_scale": float(col_scale.max()) if num_col else 1.0,
            },
        )
    return ScalingFactors(col_scale=col_scale, row_scale=row_scale, enabled=enabled)


def scale_matrix(matrix: csc_matrix, factors: ScalingFactors) -> csc_matrix:
    """Return ``diag(r) A diag(c)`` in compressed-column form."""
    if not factors.enabled:
        return csc_matrix(matrix, copy=True)
    return csc_matrix(diags(factors.row_scale) @ matrix @ diags(factors.col_scale))
