import math
import sys
from pathlib import Path

import numpy as np
import pytest

hypothesis = pytest.importorskip("hypothesis")
from hypothesis import HealthCheck, given, settings  # type: ignore  # noqa: E402
from hypothesis import strategies as st  # type: ignore  # noqa: E402

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from revised_simplex.data import ModelStatus, SolverOptions, build_model  # noqa: E402
from revised_simplex.solver import solve_lp  # noqa: E402


@st.composite
def _feasible_bounded_lps(draw):
    # Rows are built around a known point so the model is always feasible; boxed
    # columns keep it bounded.
    num_col = draw(st.integers(min_value=1, max_value=8))
    num_row = draw(st.integers(min_value=1, max_value=6))
    seed = draw(st.integers(min_value=0, max_value=2**31 - 1))
    rng = np.random.default_rng(seed)

    dense = rng.integers(-3, 4, size=(num_row, num_col)).astype(float)
    dense[rng.random((num_row, num_col)) < 0.4] = 0.0
    col_lower = rng.integers(-5, 1, num_col).astype(float)
    col_upper = col_lower + rng.integers(0, 6, num_col)
    point = col_lower + rng.random(num_col) * (col_upper - col_lower)
    activity = dense @ point

    row_lower = np.full(num_row, -math.inf)
    row_upper = np.full(num_row, math.inf)
    for i in range(num_row):
        kind = draw(st.sampled_from(["le", "ge", "range", "eq"]))
        if kind in ("ge", "range", "eq"):
            row_lower[i] = activity[i] - (0.0 if kind == "eq" else rng.uniform(0.0, 2.0))
        if kind in ("le", "range"):
            row_upper[i] = activity[i] + rng.uniform(0.0, 2.0)
        if kind == "eq":
            row_upper[i] = row_lower[i]

    a_start = [0]
    a_index = []
    a_value = []
    for j in range(num_col):
        rows = np.flatnonzero(dense[:, j])
        a_index.extend(rows.tolist())
        a_value.extend(dense[rows, j].tolist())
        a_start.append(len(a_index))

    return build_model(
        num_col=num_col,
        num_row=num_row,
        col_cost=rng.integers(-5, 6, num_col).astype(float),
        col_lower=col_lower,
        col_upper=col_upper,
        row_lower=row_lower,
        row_upper=row_upper,
        a_start=a_start,
        a_index=a_index,
        a_value=a_value,
    )


@settings(
    max_examples=60,
    deadline=None,
    suppress_health_check=[HealthCheck.too_slow],
)
@given(_feasible_bounded_lps())
def test_dual_and_primal_agree_on_optimum(model):
    dual = solve_lp(model, SolverOptions(simplex_strategy="dual-plain"))
    primal = solve_lp(model, SolverOptions(simplex_strategy="primal"))

    assert dual.model_status == ModelStatus.OPTIMAL
    assert primal.model_status == ModelStatus.OPTIMAL

    objective = dual.info.objective_function_value
    assert primal.info.objective_function_value == pytest.approx(objective, rel=1e-6, abs=1e-6)
    assert dual.info.dual_objective_value == pytest.approx(objective, rel=1e-6, abs=1e-6)

    for result in (dual, primal):
        assert result.info.max_primal_infeasibility <= 1e-6
        assert result.info.max_dual_infeasibility <= 1e-6
        col_value = result.solution.col_value
        assert np.all(col_value >= model.col_lower - 1e-6)
        assert np.all(col_value <= model.col_upper + 1e-6)
