"""Sparse LU helper for the simplex basis."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from scipy.sparse import csc_matrix
from scipy.sparse.linalg import SuperLU, splu

DIAGONAL_TOLERANCE = 1e-11  # Relative size of the smallest acceptable U pivot.


class SingularFactorError(RuntimeError):
    """SuperLU rejected the matrix or produced a negligible pivot."""


@dataclass
class LUFactors:
    sparse_matrix: csc_matrix
    lu: SuperLU
    num_el: int


def build_lu(matrix: csc_matrix) -> LUFactors:
    """Construct sparse LU factors for the given basis matrix.

    Args:
        matrix: Square basis matrix in compressed-column form.

    Returns:
        LUFactors holding the factorization and the nonzero count of ``L + U``
        (the unit diagonal of ``L`` is not counted).

    Raises:
        SingularFactorError: If the matrix is exactly or numerically singular.
    """
    sparse_mat = csc_matrix(matrix, dtype=float, copy=True)
    if sparse_mat.shape[0] != sparse_mat.shape[1]:
        raise ValueError("Basis matrix must be square.")
    try:
        lu = splu(sparse_mat)
    except RuntimeError as exc:
        raise SingularFactorError(str(exc)) from exc

    diagonal = np.abs(lu.U.diagonal())
    scale = max(float(diagonal.max()), 1.0) if diagonal.size else 1.0
    if diagonal.size and float(diagonal.min()) <= DIAGONAL_TOLERANCE * scale:
        raise SingularFactorError(
            f"Negligible pivot {float(diagonal.min()):.3e} in U factor"
        )
    num_el = int(lu.L.nnz + lu.U.nnz - sparse_mat.shape[0])
    return LUFactors(sparse_matrix=sparse_mat, lu=lu, num_el=num_el)


def solve_lu(factors: LUFactors, rhs: np.ndarray, transpose: bool = False) -> np.ndarray:
    vec = np.asarray(rhs, dtype=float).reshape(-1)
    if vec.shape[0] != factors.sparse_matrix.shape[0]:
        raise ValueError("Right-hand side dimension does not match factor dimensions.")
    result: np.ndarray = factors.lu.solve(vec, trans="T" if transpose else "N")
    return result
