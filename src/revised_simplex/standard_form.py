"""Conversion of a general-bounds LP into ``min c^T x  s.t.  A x = b, x >= 0``.

Columns are shifted to their lower bound, upper-bounded-only columns are
negated, free columns are split into a positive and a negative part, and boxed
columns receive an extra row ``x + t = u - l``. Rows become equalities through
slack columns: ``a x - s = l`` for lower-bounded rows, ``a x + s = u`` for
upper-bounded rows and, for boxed rows, ``a x - s = l`` with ``s + t = u - l``.
Free rows are dropped.

The standard form always minimizes ``sense * (c^T x + offset)``, so the
original objective is ``sense`` times the standard-form objective.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np
from scipy.sparse import csc_matrix

from .data import LpModel, ObjSense, build_model


@dataclass
class StandardFormLp:
    """An LP in equality standard form with nonnegative variables.

    Attributes:
        num_col: Number of columns, including split, slack and range columns.
        num_row: Number of equality rows.
        offset: Objective constant.
        cost: Objective coefficient of each column.
        rhs: Right-hand side ``b``.
        a_start: Column start offsets of ``A``.
        a_index: Row index of each nonzero.
        a_value: Value of each nonzero.
    """

    num_col: int
    num_row: int
    offset: float
    cost: np.ndarray
    rhs: np.ndarray
    a_start: np.ndarray
    a_index: np.ndarray
    a_value: np.ndarray

    @property
    def num_nz(self) -> int:
        return int(len(self.a_value))

    def as_model(self, model_name: str = "") -> LpModel:
        """Build the minimization ``LpModel`` with ``rhs <= A x <= rhs`` and ``x >= 0``."""
        return build_model(
            num_col=self.num_col,
            num_row=self.num_row,
            col_cost=self.cost,
            col_lower=np.zeros(self.num_col),
            col_upper=np.full(self.num_col, math.inf),
            row_lower=self.rhs,
            row_upper=self.rhs,
            a_start=self.a_start,
            a_index=self.a_index,
            a_value=self.a_value,
            sense=ObjSense.MINIMIZE,
            offset=self.offset,
            model_name=model_name,
        )


class _Builder:
    """Accumulates columns and rows of the standard form as triplets."""

    def __init__(self) -> None:
        self.rows: list[int] = []
        self.cols: list[int] = []
        self.values: list[float] = []
        self.cost: list[float] = []
        self.rhs: list[float] = []

    def add_row(self, rhs: float) -> int:
        self.rhs.append(rhs)
        return len(self.rhs) - 1

    def add_column(self, cost: float, rows, values) -> int:
        col = len(self.cost)
        self.cost.append(cost)
        for row, value in zip(rows, values):
            self.rows.append(int(row))
            self.cols.append(col)
            self.values.append(float(value))
        return col

    def add_entry(self, row: int, col: int, value: float) -> None:
        self.rows.append(row)
        self.cols.append(col)
        self.values.append(value)


def to_standard_form(model: LpModel) -> StandardFormLp:
    """Convert ``model`` into equality standard form.

    Examples:
        >>> standard = to_standard_form(model)
        >>> result = solve_lp(standard.as_model())
        >>> model.sense * result.info.objective_function_value  # original objective
    """
    n, m = model.num_col, model.num_row
    sense = float(model.sense)
    matrix = csc_matrix((model.a_value, model.a_index, model.a_start), shape=(m, n))
    cost = sense * np.asarray(model.col_cost, dtype=float)
    offset = sense * model.offset
    shift = np.zeros(m)

    row_lower = np.asarray(model.row_lower, dtype=float)
    row_upper = np.asarray(model.row_upper, dtype=float)
    has_lower = np.isfinite(row_lower)
    has_upper = np.isfinite(row_upper)
    kept = has_lower | has_upper
    new_row = np.full(m, -1, dtype=np.int64)
    new_row[kept] = np.arange(int(np.count_nonzero(kept)))

    builder = _Builder()
    for _ in range(int(np.count_nonzero(kept))):
        builder.add_row(0.0)

    boxed_columns: list[tuple[int, float]] = []
    for j in range(n):
        start, end = matrix.indptr[j], matrix.indptr[j + 1]
        rows = matrix.indices[start:end]
        values = matrix.data[start:end]
        keep = new_row[rows] >= 0
        std_rows = new_row[rows][keep]
        std_values = values[keep]
        lower, upper = model.col_lower[j], model.col_upper[j]
        if math.isfinite(lower):
            offset += cost[j] * lower
            shift[rows] += values * lower
            col = builder.add_column(cost[j], std_rows, std_values)
            if math.isfinite(upper):
                boxed_columns.append((col, upper - lower))
        elif math.isfinite(upper):
            offset += cost[j] * upper
            shift[rows] += values * upper
            builder.add_column(-cost[j], std_rows, -std_values)
        else:
            builder.add_column(cost[j], std_rows, std_values)
            builder.add_column(-cost[j], std_rows, -std_values)

    for i in np.flatnonzero(kept):
        row = int(new_row[i])
        lower, upper = row_lower[i], row_upper[i]
        if has_lower[i] and has_upper[i] and lower == upper:
            builder.rhs[row] = lower - shift[i]
        elif has_lower[i]:
            builder.rhs[row] = lower - shift[i]
            slack = builder.add_column(0.0, [row], [-1.0])
            if has_upper[i]:
                range_row = builder.add_row(upper - lower)
                builder.add_entry(range_row, slack, 1.0)
                builder.add_column(0.0, [range_row], [1.0])
        else:
            builder.rhs[row] = upper - shift[i]
            builder.add_column(0.0, [row], [1.0])

    for col, width in boxed_columns:
        range_row = builder.add_row(width)
        builder.add_entry(range_row, col, 1.0)
        builder.add_column(0.0, [range_row], [1.0])

    num_col = len(builder.cost)
    num_row = len(builder.rhs)
    result = csc_matrix(
        (builder.values, (builder.rows, builder.cols)), shape=(num_row, num_col)
    )
    result.sort_indices()
    return StandardFormLp(
        num_col=num_col,
        num_row=num_row,
        offset=float(offset),
        cost=np.asarray(builder.cost, dtype=float),
        rhs=np.asarray(builder.rhs, dtype=float),
        a_start=result.indptr.astype(np.int64),
        a_index=result.indices.astype(np.int64),
        a_value=result.data.astype(float),
    )
