# ABOUTME: Tests the dense linear-algebra kernel behind the bandit posterior.
# ABOUTME: Covers Cholesky, SPD inversion, Box-Muller draws, and MVN sampling.

import unittest

import numpy as np
import pytest

from src.common import linalg
from src.common.errors import NotPositiveDefinite


def _random_spd(n, seed=0):
    rng = np.random.default_rng(seed)
    B = rng.normal(size=(n, n))
    return B @ B.T + n * np.eye(n)


class TestCholesky(unittest.TestCase):
    def test_known_factor(self):
        L = linalg.cholesky(np.array([[4.0, 2.0], [2.0, 3.0]]))
        np.testing.assert_array_almost_equal(L, [[2.0, 0.0], [1.0, np.sqrt(2.0)]])

    def test_factor_reconstructs_matrix(self):
        A = _random_spd(6)
        L = linalg.cholesky(A)
        np.testing.assert_array_almost_equal(L @ L.T, A)
        np.testing.assert_array_equal(np.triu(L, k=1), np.zeros((6, 6)))

    def test_zero_pivot_raises(self):
        with self.assertRaises(NotPositiveDefinite) as ctx:
            linalg.cholesky(np.zeros((3, 3)))
        self.assertEqual(ctx.exception.index, 0)

    def test_indefinite_matrix_raises_at_failing_row(self):
        A = np.array([[1.0, 2.0], [2.0, 1.0]])
        with self.assertRaises(NotPositiveDefinite) as ctx:
            linalg.cholesky(A)
        self.assertEqual(ctx.exception.index, 1)
        self.assertLess(ctx.exception.pivot, 0.0)


class TestInvertSpd(unittest.TestCase):
    def test_inverse_times_matrix_is_identity(self):
        A = _random_spd(8, seed=3)
        np.testing.assert_array_almost_equal(A @ linalg.invert_spd(A), np.eye(8))

    def test_inverse_is_symmetric(self):
        inv = linalg.invert_spd(_random_spd(5, seed=7))
        np.testing.assert_array_almost_equal(inv, inv.T)

    def test_try_invert_returns_none_for_singular(self):
        x = np.array([1.0, 2.0, 3.0])
        self.assertIsNone(linalg.try_invert_spd(np.outer(x, x)))

    def test_try_invert_matches_invert(self):
        A = _random_spd(4, seed=11)
        np.testing.assert_array_almost_equal(linalg.try_invert_spd(A), linalg.invert_spd(A))


def test_randn_is_standard_normal():
    draws = linalg.randn(20000, rng=np.random.default_rng(42))
    assert draws.shape == (20000,)
    assert abs(draws.mean()) < 0.05
    assert abs(draws.std() - 1.0) < 0.05
    assert np.all(np.isfinite(draws))


def test_randn_is_reproducible_with_seed():
    a = linalg.randn(5, rng=np.random.default_rng(1))
    b = linalg.randn(5, rng=np.random.default_rng(1))
    np.testing.assert_array_equal(a, b)


def test_sample_mvn_matches_moments():
    rng = np.random.default_rng(5)
    mean = np.array([1.0, -2.0])
    cov = np.array([[2.0, 0.6], [0.6, 1.0]])
    draws = np.array([linalg.sample_mvn(mean, cov, rng=rng) for _ in range(5000)])
    np.testing.assert_allclose(draws.mean(axis=0), mean, atol=0.1)
    np.testing.assert_allclose(np.cov(draws.T), cov, atol=0.15)


def test_sample_mvn_rejects_non_spd_covariance():
    with pytest.raises(NotPositiveDefinite):
        linalg.sample_mvn(np.zeros(2), -np.eye(2), rng=np.random.default_rng(0))


def test_sigmoid_is_stable_at_extremes():
    assert linalg.sigmoid(0.0) == pytest.approx(0.5)
    assert linalg.sigmoid(1000.0) == pytest.approx(1.0)
    assert linalg.sigmoid(-1000.0) == pytest.approx(0.0)
    assert linalg.sigmoid(2.0) + linalg.sigmoid(-2.0) == pytest.approx(1.0)
