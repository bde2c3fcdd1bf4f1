"""Tests for power-of-two matrix scaling and the scaled model view."""

import math
import sys
from pathlib import Path

import numpy as np
import pytest
from scipy.sparse import csc_matrix

PROJECT_ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from revised_simplex.data import ObjSense, build_model  # noqa: E402
from revised_simplex.model_view import StandardFormView  # noqa: E402
from revised_simplex.scaling import (  # noqa: E402
    MAX_SCALE_EXPONENT,
    ScalingFactors,
    compute_scaling_factors,
    identity_scaling,
    scale_matrix,
)


def _is_power_of_two(values):
    mantissa, _ = np.frexp(values)
    return np.all(mantissa == 0.5)


def _badly_scaled_model(sense=ObjSense.MINIMIZE):
    return build_model(
        num_col=3,
        num_row=2,
        col_cost=[1.0, -2.0, 3.0],
        col_lower=[0.0, -1.0, -math.inf],
        col_upper=[10.0, math.inf, 4.0],
        row_lower=[-math.inf, 1.0],
        row_upper=[1000.0, 2000.0],
        a_start=[0, 2, 3, 5],
        a_index=[0, 1, 0, 0, 1],
        a_value=[1000.0, 0.001, 250.0, 3.0, 0.5],
        sense=sense,
    )


class TestComputeScalingFactors:
    def test_factors_are_powers_of_two(self):
        matrix = csc_matrix(np.array([[1000.0, 250.0, 3.0], [0.001, 0.0, 0.5]]))
        factors = compute_scaling_factors(matrix)

        assert factors.enabled
        assert _is_power_of_two(factors.row_scale)
        assert _is_power_of_two(factors.col_scale)

    def test_scaling_reduces_spread(self):
        dense = np.array([[1000.0, 250.0, 3.0], [0.001, 0.0, 0.5]])
        factors = compute_scaling_factors(csc_matrix(dense))
        scaled = scale_matrix(csc_matrix(dense), factors).toarray()

        def spread(values):
            nonzero = np.abs(values[values != 0.0])
            return nonzero.max() / nonzero.min()

        assert spread(scaled) < spread(dense)

    def test_factors_stay_within_limits(self):
        dense = np.array([[1e30, 1.0], [1.0, 1e-30]])
        factors = compute_scaling_factors(csc_matrix(dense))
        limit = 2.0**MAX_SCALE_EXPONENT

        assert np.all(factors.row_scale <= limit)
        assert np.all(factors.row_scale >= 1.0 / limit)
        assert np.all(factors.col_scale <= limit)
        assert np.all(factors.col_scale >= 1.0 / limit)

    def test_empty_matrix_disables_scaling(self):
        factors = compute_scaling_factors(csc_matrix((3, 2)))

        assert not factors.enabled
        np.testing.assert_array_equal(factors.col_scale, np.ones(2))
        np.testing.assert_array_equal(factors.row_scale, np.ones(3))

    def test_well_scaled_matrix_untouched(self):
        factors = compute_scaling_factors(csc_matrix(np.eye(3)))
        assert not factors.enabled


class TestScalingFactors:
    def test_variable_scale_inverts_row_factors(self):
        factors = ScalingFactors(
            col_scale=np.array([2.0, 0.5]), row_scale=np.array([4.0]), enabled=True
        )
        np.testing.assert_array_equal(factors.variable_scale, [2.0, 0.5, 0.25])

    def test_unscaling_is_exact(self):
        factors = ScalingFactors(
            col_scale=np.array([2.0**7, 2.0**-9]), row_scale=np.array([2.0**3]), enabled=True
        )
        values = np.array([0.1, 1.0 / 3.0, math.pi])

        np.testing.assert_array_equal(factors.unscale_values(factors.scale_bounds(values)), values)
        np.testing.assert_array_equal(factors.unscale_duals(factors.scale_costs(values)), values)

    def test_identity_scaling(self):
        factors = identity_scaling(2, 3)
        assert not factors.enabled
        np.testing.assert_array_equal(factors.variable_scale, np.ones(5))


class TestStandardFormView:
    def test_logical_columns_and_costs(self):
        view = StandardFormView(_badly_scaled_model(), scale=False)

        assert view.num_tot == 5
        np.testing.assert_array_equal(view.column(3), [-1.0, 0.0])
        np.testing.assert_array_equal(view.column(0), [1000.0, 0.001])
        np.testing.assert_array_equal(view.cost, [1.0, -2.0, 3.0, 0.0, 0.0])
        np.testing.assert_array_equal(view.lower, [0.0, -1.0, -math.inf, -math.inf, 1.0])

    def test_maximize_negates_costs(self):
        view = StandardFormView(_badly_scaled_model(ObjSense.MAXIMIZE), scale=False)
        np.testing.assert_array_equal(view.cost[:3], [-1.0, 2.0, -3.0])

    @pytest.mark.parametrize("scale", [False, True])
    def test_price_row_matches_dense_product(self, scale):
        view = StandardFormView(_badly_scaled_model(), scale=scale)
        full = np.column_stack([view.column(k) for k in range(view.num_tot)])
        rho = np.array([0.25, -3.0])

        np.testing.assert_allclose(view.price_row(rho), rho @ full)
        np.testing.assert_allclose(view.price_row(rho, 1, 4), (rho @ full)[1:4])
        np.testing.assert_allclose(view.price_row(rho, 3, 5), (rho @ full)[3:5])

    def test_matvec_is_zero_on_consistent_values(self):
        view = StandardFormView(_badly_scaled_model(), scale=True)
        x = np.array([1.0, 2.0, 3.0, 0.0, 0.0])
        x[3:] = view.matrix @ x[:3]

        np.testing.assert_allclose(view.matvec(x), 0.0, atol=1e-12)

    def test_basis_matrix_selects_columns(self):
        view = StandardFormView(_badly_scaled_model(), scale=False)
        matrix = view.basis_matrix(np.array([2, 4])).toarray()

        np.testing.assert_array_equal(matrix, [[3.0, 0.0], [0.5, -1.0]])

    def test_unscale_round_trip(self):
        view = StandardFormView(_badly_scaled_model(), scale=True)
        scaled_values = view.scaling.scale_bounds(np.array([1.0, 2.0, 3.0, 4.0, 5.0]))
        col_value, row_value = view.unscale_primal(scaled_values)

        np.testing.assert_array_equal(col_value, [1.0, 2.0, 3.0])
        np.testing.assert_array_equal(row_value, [4.0, 5.0])
