"""Tests for the primal and dual Harris ratio tests."""

import math
import sys
from pathlib import Path

import numpy as np

PROJECT_ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from revised_simplex.ratio_test import (  # noqa: E402
    DualRatioTest,
    combine_pass_two,
    primal_ratio_test,
)

INF = math.inf


def _primal(aq, values, upper=None, entering_range=INF, phase_one=False, tolerance=1e-7):
    values = np.asarray(values, dtype=float)
    lower = np.zeros(len(values))
    upper = np.full(len(values), INF) if upper is None else np.asarray(upper, dtype=float)
    return primal_ratio_test(
        np.asarray(aq, dtype=float),
        1,
        values,
        lower,
        upper,
        np.array([3, 4, 5]),
        entering_range,
        tolerance,
        1e-9,
        phase_one=phase_one,
    )


class TestPrimalRatioTest:
    def test_tightest_bound_leaves(self):
        """Rows 0 and 2 fall to their lower bounds at steps 2 and 6; row 1 rises to 4 at 1.5."""
        result = _primal(
            aq=[1.0, -2.0, 0.5],
            values=[0.0, 0.0, 0.0, 2.0, 1.0, 3.0],
            upper=[INF, INF, INF, INF, 4.0, INF],
        )

        assert result.row == 1
        assert result.step == 1.5
        assert result.leaving_to_upper
        assert not result.flip
        assert not result.unbounded

    def test_bound_flip_when_range_is_shorter(self):
        result = _primal(
            aq=[1.0, -2.0, 0.5],
            values=[0.0, 0.0, 0.0, 2.0, 1.0, 3.0],
            upper=[INF, INF, INF, INF, 4.0, INF],
            entering_range=1.0,
        )

        assert result.flip
        assert result.row == -1
        assert result.step == 1.0
        assert not result.unbounded

    def test_unbounded_when_nothing_blocks(self):
        result = _primal(aq=[-1.0, 0.0, 0.0], values=[0.0, 0.0, 0.0, 2.0, 1.0, 3.0])

        assert result.unbounded
        assert result.step == INF

    def test_larger_pivot_preferred_within_tolerance(self):
        result = _primal(aq=[1.0, 2.0, 0.0], values=[0.0, 0.0, 0.0, 1.0, 2.0 + 1e-8, 0.0])

        assert result.row == 1
        assert result.step == (2.0 + 1e-8) / 2.0
        assert not result.leaving_to_upper

    def test_phase_one_blocks_at_violated_bound(self):
        """A variable below its lower bound blocks only while increasing."""
        values = [0.0, 0.0, 0.0, -1.0, 1.0, 3.0]

        rising = _primal(aq=[-1.0, 0.0, 0.0], values=values, phase_one=True)
        assert rising.row == 0
        assert rising.step == 1.0
        assert not rising.leaving_to_upper

        falling = _primal(aq=[1.0, 0.0, 0.0], values=values, phase_one=True)
        assert falling.unbounded

    def test_zero_step_is_legal(self):
        result = _primal(aq=[1.0, 0.0, 0.0], values=[0.0, 0.0, 0.0, 0.0, 1.0, 3.0])
        assert result.row == 0
        assert result.step == 0.0


def _dual_test(alpha, dual, move, nonbasic=None, free=None, sigma=1, tolerance=1e-9):
    size = len(alpha)
    return DualRatioTest(
        np.asarray(alpha, dtype=float),
        np.asarray(dual, dtype=float),
        np.asarray(move, dtype=np.int8),
        np.ones(size, dtype=np.int8) if nonbasic is None else np.asarray(nonbasic, dtype=np.int8),
        np.zeros(size, dtype=bool) if free is None else np.asarray(free, dtype=bool),
        sigma,
        tolerance,
        1e-9,
    )


class TestDualRatioTest:
    def test_harris_prefers_larger_pivot(self):
        """Variable 0 has ratio 1 + 5e-11 but its pivot of 2 beats variable 2 at ratio 1."""
        test = _dual_test(
            alpha=[-2.0, 5.0, 0.5, 10.0],
            dual=[2.0 + 1e-10, 0.0, -0.5, 0.0],
            move=[1, 0, -1, 0],
            nonbasic=[1, 1, 1, 0],
        )
        result = test.run()

        assert result.entering == 0
        assert result.alpha == -2.0
        assert math.isclose(result.step, 1.0 + 5e-11, rel_tol=1e-15)
        assert not result.infeasible

    def test_exact_minimum_without_tolerance_slack(self):
        test = _dual_test(
            alpha=[-2.0, 0.5],
            dual=[2.1, -0.5],
            move=[1, -1],
        )
        result = test.run()
        assert result.entering == 1
        assert result.step == 1.0

    def test_free_variable_blocks_at_zero(self):
        test = _dual_test(
            alpha=[-2.0, 0.3],
            dual=[2.0, 0.7],
            move=[1, 0],
            free=[False, True],
        )
        result = test.run()

        assert result.entering == 1
        assert result.step == 0.0

    def test_no_candidate_proves_infeasibility(self):
        # Both variables would move their reduced costs further into feasibility.
        test = _dual_test(alpha=[2.0, -1.0], dual=[1.0, -1.0], move=[1, -1])
        result = test.run()

        assert result.infeasible
        assert math.isinf(test.pass_one())

    def test_sigma_reverses_blocking_side(self):
        test = _dual_test(alpha=[2.0, -1.0], dual=[1.0, -1.0], move=[1, -1], sigma=-1)
        result = test.run()

        # Ratios 1 / 2 and 1 / 1: variable 0 blocks first.
        assert result.entering == 0
        assert result.step == 0.5

    def test_chunked_passes_match_single_scan(self):
        rng = np.random.default_rng(5)
        size = 300
        move = rng.choice(np.array([-1, 0, 1], dtype=np.int8), size)
        dual = np.abs(rng.normal(size=size)) * move
        alpha = np.round(rng.normal(size=size), 1)
        nonbasic = (rng.random(size) < 0.8).astype(np.int8)
        test = _dual_test(alpha, dual, move, nonbasic=nonbasic)

        chunks = [(0, 70), (70, 71), (71, 200), (200, size)]
        theta_max = min(test.pass_one(a, b) for a, b in chunks)
        chosen = combine_pass_two(test.pass_two(theta_max, a, b) for a, b in chunks)

        assert theta_max == test.pass_one()
        assert test.finish(chosen) == test.run()

    def test_combine_pass_two_tie_rule(self):
        assert combine_pass_two([None, (2.0, 9, 0.1), (2.0, 4, 0.3), (1.0, 1, 0.0)]) == (
            2.0,
            4,
            0.3,
        )
        assert combine_pass_two([None]) is None
