"""Solving the equality standard form reproduces the original objective."""

import math
import sys
from pathlib import Path

import numpy as np
import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from revised_simplex import (  # noqa: E402
    ModelStatus,
    ObjSense,
    build_model,
    solve_lp,
    to_standard_form,
)

INF = math.inf


def _blending_model(sense=ObjSense.MINIMIZE, costs=(-8.0, -10.0), offset=0.0):
    return build_model(
        num_col=2,
        num_row=2,
        col_cost=list(costs),
        col_lower=[0.0, 0.0],
        col_upper=[INF, INF],
        row_lower=[-INF, -INF],
        row_upper=[80.0, 120.0],
        a_start=[0, 2, 4],
        a_index=[0, 1, 0, 1],
        a_value=[1.0, 2.0, 1.0, 4.0],
        sense=sense,
        offset=offset,
    )


def _mixed_bounds_model(sense=ObjSense.MINIMIZE):
    return build_model(
        num_col=4,
        num_row=3,
        col_cost=[1.0, 1.0, 1.0, -1.0],
        col_lower=[1.0, -INF, -INF, -1.0],
        col_upper=[INF, INF, 2.0, 3.0],
        row_lower=[0.0, 1.0, -INF],
        row_upper=[4.0, INF, 4.0],
        a_start=[0, 2, 4, 6, 8],
        a_index=[0, 2, 0, 1, 1, 2, 0, 2],
        a_value=[1.0] * 8,
        sense=sense,
        offset=-0.5,
    )


def _ranged_model():
    # Equality row, free row and a fixed column alongside ranged bounds.
    return build_model(
        num_col=3,
        num_row=3,
        col_cost=[2.0, -3.0, 1.0],
        col_lower=[0.0, -2.0, 1.5],
        col_upper=[4.0, 5.0, 1.5],
        row_lower=[2.0, -INF, -1.0],
        row_upper=[2.0, INF, 6.0],
        a_start=[0, 2, 5, 6],
        a_index=[0, 2, 0, 1, 2, 1],
        a_value=[1.0, 1.0, 1.0, 7.0, 1.0, 3.0],
        offset=1.25,
    )


MODELS = {
    "blending": _blending_model,
    "blending-max": lambda: _blending_model(ObjSense.MAXIMIZE, (8.0, 10.0), 10.0),
    "mixed-bounds": _mixed_bounds_model,
    "ranged": _ranged_model,
}


@pytest.mark.parametrize("name", sorted(MODELS))
def test_round_trip_objective(name):
    model = MODELS[name]()
    direct = solve_lp(model)
    standard = to_standard_form(model)
    via_standard = solve_lp(standard.as_model())

    assert direct.model_status == ModelStatus.OPTIMAL
    assert via_standard.model_status == ModelStatus.OPTIMAL
    recovered = float(model.sense) * via_standard.info.objective_function_value
    assert recovered == pytest.approx(direct.info.objective_function_value, rel=1e-10)


def test_mixed_bounds_round_trip_values():
    standard = to_standard_form(_mixed_bounds_model())
    result = solve_lp(standard.as_model())

    assert result.info.objective_function_value == pytest.approx(-1.0, rel=1e-10)
    assert np.all(result.solution.col_value >= -1e-9)


def test_maximize_round_trip_negates_objective():
    model = _mixed_bounds_model(ObjSense.MAXIMIZE)
    direct = solve_lp(model)
    standard = to_standard_form(model)
    via_standard = solve_lp(standard.as_model())

    assert direct.model_status == ModelStatus.OPTIMAL
    assert direct.info.objective_function_value == pytest.approx(7.5)
    assert -via_standard.info.objective_function_value == pytest.approx(7.5, rel=1e-10)
