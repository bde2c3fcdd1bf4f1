"""Tests for primal and dual pricing strategies."""

import math
import sys
from pathlib import Path

import numpy as np
import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from revised_simplex.basis import SimplexBasis  # noqa: E402
from revised_simplex.data import build_model  # noqa: E402
from revised_simplex.model_view import StandardFormView  # noqa: E402
from revised_simplex.simplex_pricing import (  # noqa: E402
    DEVEX_WEIGHT_MAX,
    DSE_WEIGHT_MIN,
    BlandPricing,
    DantzigDualPricing,
    DantzigPricing,
    DevexDualPricing,
    DevexPricing,
    SteepestEdgeDualPricing,
    best_row,
    combine_best_rows,
    create_dual_pricing,
    create_primal_pricing,
)


class TestPrimalPricing:
    def test_dantzig_selects_largest_infeasibility(self):
        pricing = DantzigPricing(5)
        assert pricing.select_entering(np.array([0.0, 2.0, 0.5, 3.0, 0.0])) == 3

    def test_ties_go_to_lowest_index(self):
        pricing = DantzigPricing(4)
        assert pricing.select_entering(np.array([0.0, 2.0, 2.0, 2.0])) == 1

    def test_no_candidate_means_optimal(self):
        assert DantzigPricing(3).select_entering(np.zeros(3)) is None
        assert BlandPricing(3).select_entering(np.zeros(3)) is None

    def test_weights_divide_merit(self):
        pricing = DevexPricing(3)
        pricing.weights = np.array([1.0, 16.0, 1.0])
        # merits 1, 9/16, 4
        assert pricing.select_entering(np.array([1.0, 3.0, 2.0])) == 2

    def test_bland_selects_first_candidate(self):
        assert BlandPricing(4).select_entering(np.array([0.0, 0.1, 5.0, 9.0])) == 1

    def test_devex_update(self):
        pricing = DevexPricing(4)
        pricing.weights = np.array([1.0, 2.0, 1.0, 1.0])
        pivotal_row = np.array([0.0, 2.0, 4.0, 1.0])
        pricing.update(entering=1, leaving=3, pivotal_row=pivotal_row, alpha=2.0)

        # w_j = max(w_j, (alpha_j / alpha)^2 * w_q) with w_q = 2.
        assert pricing.weights[0] == 1.0
        assert pricing.weights[2] == 8.0
        assert pricing.weights[1] == 1.0  # entering variable reset
        assert pricing.weights[3] == 1.0  # max(2 / 4, 1)

    def test_devex_weights_capped(self):
        pricing = DevexPricing(2)
        pricing.update(entering=0, leaving=1, pivotal_row=np.array([1e-20, 1e20]), alpha=1e-20)
        assert pricing.weights.max() <= DEVEX_WEIGHT_MAX

    def test_reset(self):
        pricing = DevexPricing(3)
        pricing.weights[:] = 5.0
        pricing.reset()
        np.testing.assert_array_equal(pricing.weights, np.ones(3))

    def test_factory(self):
        assert isinstance(create_primal_pricing("devex", 3), DevexPricing)
        assert isinstance(create_primal_pricing("dantzig", 3), DantzigPricing)
        with pytest.raises(ValueError):
            create_primal_pricing("bland", 3)


class TestBestRow:
    def test_best_row_tie_goes_to_lowest_basic_variable(self):
        merit = np.array([1.0, 4.0, 4.0, 2.0])
        basic_index = np.array([7, 9, 3, 1])
        assert best_row(merit, basic_index) == (4.0, 3, 2)

    def test_best_row_none_when_feasible(self):
        assert best_row(np.zeros(3), np.arange(3)) is None
        assert best_row(np.zeros(0), np.arange(0)) is None

    def test_offset_is_added(self):
        assert best_row(np.array([0.0, 2.0]), np.array([5, 6]), offset=10) == (2.0, 6, 11)

    def test_chunked_reduction_matches_single_scan(self):
        rng = np.random.default_rng(0)
        merit = rng.integers(0, 4, 200).astype(float)
        basic_index = rng.permutation(500)[:200]
        chunks = [(0, 50), (50, 120), (120, 200)]
        combined = combine_best_rows(
            best_row(merit[a:b], basic_index[a:b], a) for a, b in chunks
        )
        assert combined == best_row(merit, basic_index)

    def test_combine_skips_empty_chunks(self):
        assert combine_best_rows([None, None]) is None
        assert combine_best_rows([None, (1.0, 4, 2)]) == (1.0, 4, 2)


def _basis_for(dense, basic_index):
    rows, cols = dense.shape
    a_start = [0]
    a_index = []
    a_value = []
    for j in range(cols):
        nz = np.flatnonzero(dense[:, j])
        a_index.extend(nz.tolist())
        a_value.extend(dense[nz, j].tolist())
        a_start.append(len(a_index))
    view = StandardFormView(
        build_model(
            num_col=cols,
            num_row=rows,
            col_cost=np.zeros(cols),
            col_lower=np.zeros(cols),
            col_upper=np.full(cols, math.inf),
            row_lower=np.full(rows, -math.inf),
            row_upper=np.ones(rows),
            a_start=a_start,
            a_index=a_index,
            a_value=a_value,
        ),
        scale=False,
    )
    basis = SimplexBasis(view)
    basis.set_basic_variables(np.array(basic_index))
    basis.factorize()
    return basis


class TestDualPricing:
    def test_select_leaving_row(self):
        pricing = DantzigDualPricing(3)
        basic_index = np.array([4, 5, 6])
        assert pricing.select_leaving_row(np.array([0.5, 2.0, 1.0]), basic_index) == 1
        assert pricing.select_leaving_row(np.zeros(3), basic_index) is None

    def test_merit_uses_weights(self):
        pricing = DevexDualPricing(2)
        pricing.weights = np.array([1.0, 100.0])
        np.testing.assert_allclose(pricing.merit(np.array([1.0, 5.0])), [1.0, 0.25])
        np.testing.assert_allclose(pricing.merit(np.array([5.0]), 1, 2), [0.25])

    def test_devex_dual_update(self):
        pricing = DevexDualPricing(3)
        aq = np.array([2.0, -1.0, 6.0])
        pricing.update(row=0, aq=aq, alpha=2.0, rho=np.zeros(3), tau=None)

        # ratio aq / alpha = [1, -0.5, 3]; w_r = 1.
        np.testing.assert_allclose(pricing.weights, [1.0, 1.0, 9.0])

    def test_steepest_edge_logical_basis_weights(self):
        basis = _basis_for(np.array([[1.0, 2.0], [0.0, 1.0]]), [2, 3])
        pricing = SteepestEdgeDualPricing(2)
        pricing.initialize(basis)
        np.testing.assert_array_equal(pricing.weights, [1.0, 1.0])

    def test_steepest_edge_initial_weights_are_row_norms(self):
        dense = np.array([[2.0, 1.0], [0.0, 4.0]])
        basis = _basis_for(dense, [0, 1])
        pricing = SteepestEdgeDualPricing(2)
        pricing.initialize(basis)

        inverse = np.linalg.inv(dense)
        np.testing.assert_allclose(pricing.weights, np.sum(inverse * inverse, axis=1))

    def test_steepest_edge_update_is_exact(self):
        """After a pivot the updated weights equal the new row norms of B^-1."""
        dense = np.array([[2.0, 1.0, 0.0], [1.0, 3.0, 1.0], [0.0, 1.0, 4.0]])
        basis = _basis_for(dense, [0, 4, 5])
        pricing = SteepestEdgeDualPricing(3)
        pricing.initialize(basis)

        row, entering = 1, 1
        rho = basis.unit_btran(row)
        aq = basis.column_ftran(entering)
        tau = basis.ftran(rho)
        pricing.update(row, aq, float(aq[row]), rho, tau)
        basis.update(row, entering, aq, leaving_move=-1)

        inverse = np.linalg.inv(basis.view.basis_matrix(basis.basic_index).toarray())
        expected = np.maximum(np.sum(inverse * inverse, axis=1), DSE_WEIGHT_MIN)
        np.testing.assert_allclose(pricing.weights, expected)
        assert not pricing.drift_detected

    def test_steepest_edge_flags_drift(self):
        pricing = SteepestEdgeDualPricing(2)
        pricing.weights = np.array([100.0, 1.0])
        rho = np.array([1.0, 0.0])
        pricing.update(0, np.array([1.0, 0.0]), 1.0, rho, np.array([1.0, 0.0]))
        assert pricing.drift_detected

    def test_steepest_edge_requires_tau(self):
        with pytest.raises(ValueError):
            SteepestEdgeDualPricing(1).update(0, np.ones(1), 1.0, np.ones(1), None)

    def test_factory(self):
        assert isinstance(create_dual_pricing("steepest_edge", 2), SteepestEdgeDualPricing)
        assert isinstance(create_dual_pricing("devex", 2), DevexDualPricing)
        assert isinstance(create_dual_pricing("dantzig", 2), DantzigDualPricing)
        assert create_dual_pricing("steepest_edge", 2).requires_dse_vector
        with pytest.raises(ValueError):
            create_dual_pricing("partial", 2)
