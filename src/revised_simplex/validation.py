"""Caller-contract checks for linear programming models.

A malformed model is rejected before any solve begins. ``check_model`` reports
the first failed check as an ``InputStatus``; ``validate_model`` raises
``InvalidModelError`` carrying that status and a readable message.
"""

from __future__ import annotations

import math
from enum import Enum
from typing import TYPE_CHECKING

import numpy as np

from .exceptions import InvalidModelError

if TYPE_CHECKING:
    from .data import LpModel


class InputStatus(str, Enum):
    """Result of checking a model against the caller contract."""

    OK = "ok"
    ERROR_MATRIX_DIMENSIONS = "error_matrix_dimensions"
    ERROR_MATRIX_INDICES = "error_matrix_indices"
    ERROR_MATRIX_START = "error_matrix_start"
    ERROR_MATRIX_VALUE = "error_matrix_value"
    ERROR_COL_BOUNDS = "error_col_bounds"
    ERROR_ROW_BOUNDS = "error_row_bounds"
    ERROR_OBJECTIVE = "error_objective"


def _check_dimensions(model: LpModel) -> tuple[InputStatus, str] | None:
    if model.num_col < 0 or model.num_row < 0:
        return (
            InputStatus.ERROR_MATRIX_DIMENSIONS,
            f"Dimensions must be non-negative, got {model.num_col} columns and "
            f"{model.num_row} rows.",
        )
    expected = {
        "col_cost": model.num_col,
        "col_lower": model.num_col,
        "col_upper": model.num_col,
        "row_lower": model.num_row,
        "row_upper": model.num_row,
        "a_start": model.num_col + 1,
    }
    for name, size in expected.items():
        actual = len(getattr(model, name))
        if actual != size:
            return (
                InputStatus.ERROR_MATRIX_DIMENSIONS,
                f"{name} has length {actual}, expected {size}.",
            )
    if len(model.a_index) != len(model.a_value):
        return (
            InputStatus.ERROR_MATRIX_DIMENSIONS,
            f"a_index has length {len(model.a_index)} but a_value has length "
            f"{len(model.a_value)}.",
        )
    return None


def _check_matrix(model: LpModel) -> tuple[InputStatus, str] | None:
    start = np.asarray(model.a_start)
    if start[0] != 0:
        return InputStatus.ERROR_MATRIX_START, f"a_start[0] must be 0, got {start[0]}."
    if np.any(np.diff(start) < 0):
        col = int(np.flatnonzero(np.diff(start) < 0)[0])
        return (
            InputStatus.ERROR_MATRIX_START,
            f"a_start decreases at column {col}: {start[col]} > {start[col + 1]}.",
        )
    if start[-1] != len(model.a_index):
        return (
            InputStatus.ERROR_MATRIX_START,
            f"a_start[{model.num_col}] is {start[-1]} but there are "
            f"{len(model.a_index)} nonzeros.",
        )

    index = np.asarray(model.a_index)
    if index.size and (index.min() < 0 or index.max() >= model.num_row):
        bad = int(np.flatnonzero((index < 0) | (index >= model.num_row))[0])
        return (
            InputStatus.ERROR_MATRIX_INDICES,
            f"Row index {index[bad]} at nonzero {bad} is outside [0, {model.num_row}).",
        )
    for col in range(model.num_col):
        rows = index[start[col] : start[col + 1]]
        if len(np.unique(rows)) != len(rows):
            return (
                InputStatus.ERROR_MATRIX_INDICES,
                f"Column {col} repeats a row index.",
            )

    value = np.asarray(model.a_value, dtype=float)
    if not np.all(np.isfinite(value)):
        bad = int(np.flatnonzero(~np.isfinite(value))[0])
        return (
            InputStatus.ERROR_MATRIX_VALUE,
            f"Matrix value {value[bad]} at nonzero {bad} is not finite.",
        )
    return None


def _check_bounds(
    lower: np.ndarray, upper: np.ndarray, kind: str, status: InputStatus
) -> tuple[InputStatus, str] | None:
    for idx, (lo, up) in enumerate(zip(lower, upper)):
        if math.isnan(lo) or math.isnan(up):
            return status, f"{kind} {idx} has a NaN bound."
        if lo == math.inf or up == -math.inf:
            return status, f"{kind} {idx} has bounds [{lo}, {up}] that admit no value."
        if lo > up:
            return (
                status,
                f"{kind} {idx} has lower bound ({lo}) greater than upper bound ({up}).",
            )
    return None


def check_model(model: LpModel) -> tuple[InputStatus, str]:
    """Check a model and return the first failed status with a message.

    Returns:
        ``(InputStatus.OK, "")`` when the model is well formed.
    """
    checks = (
        lambda: _check_dimensions(model),
        lambda: _check_matrix(model),
        lambda: _check_bounds(
            model.col_lower, model.col_upper, "Column", InputStatus.ERROR_COL_BOUNDS
        ),
        lambda: _check_bounds(
            model.row_lower, model.row_upper, "Row", InputStatus.ERROR_ROW_BOUNDS
        ),
    )
    for check in checks:
        failure = check()
        if failure is not None:
            return failure

    cost = np.asarray(model.col_cost, dtype=float)
    if not np.all(np.isfinite(cost)):
        col = int(np.flatnonzero(~np.isfinite(cost))[0])
        return InputStatus.ERROR_OBJECTIVE, f"Cost of column {col} is not finite."
    if not math.isfinite(model.offset):
        return InputStatus.ERROR_OBJECTIVE, f"Objective offset {model.offset} is not finite."
    return InputStatus.OK, ""


def validate_model(model: LpModel) -> None:
    """Raise InvalidModelError if the model fails any caller-contract check."""
    status, message = check_model(model)
    if status is not InputStatus.OK:
        raise InvalidModelError(message, input_status=status)
