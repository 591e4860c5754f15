# ABOUTME: Dense vector and matrix primitives used by the Rasch, embedding, and bandit layers.
# ABOUTME: Provides Box-Muller sampling, row-wise Cholesky, SPD inversion, and MVN draws.

from __future__ import annotations

from typing import Optional

import numpy as np

from .errors import NotPositiveDefinite

# Smallest admissible Cholesky pivot after subtracting accumulated cross terms.
PIVOT_TOLERANCE = 1e-10


def _rng(rng: Optional[np.random.Generator]) -> np.random.Generator:
    return rng if rng is not None else np.random.default_rng()


def dot(a: np.ndarray, b: np.ndarray) -> float:
    return float(np.dot(a, b))


def add_vec(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    return np.asarray(a, dtype=float) + np.asarray(b, dtype=float)


def scale_vec(v: np.ndarray, s: float) -> np.ndarray:
    return np.asarray(v, dtype=float) * s


def outer(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    return np.outer(a, b)


def add_mat(A: np.ndarray, B: np.ndarray) -> np.ndarray:
    return np.asarray(A, dtype=float) + np.asarray(B, dtype=float)


def scale_mat(A: np.ndarray, s: float) -> np.ndarray:
    return np.asarray(A, dtype=float) * s


def identity(n: int) -> np.ndarray:
    return np.eye(n)


def mat_vec(A: np.ndarray, x: np.ndarray) -> np.ndarray:
    return np.asarray(A, dtype=float) @ np.asarray(x, dtype=float)


def randn(size: int = 1, rng: Optional[np.random.Generator] = None) -> np.ndarray:
    """Standard-normal draws via the Box-Muller transform."""

    gen = _rng(rng)
    # 1 - U keeps the log argument in (0, 1].
    u = 1.0 - gen.random(size)
    v = gen.random(size)
    return np.sqrt(-2.0 * np.log(u)) * np.cos(2.0 * np.pi * v)


def cholesky(A: np.ndarray) -> np.ndarray:
    """
    Lower-triangular factor L with A = L Lᵀ, computed row by row.

    Raises NotPositiveDefinite when a diagonal pivot is <= 1e-10.
    """

    A = np.asarray(A, dtype=float)
    n = A.shape[0]
    L = np.zeros((n, n))
    for i in range(n):
        pivot = A[i, i] - float(np.dot(L[i, :i], L[i, :i]))
        if not pivot > PIVOT_TOLERANCE:
            raise NotPositiveDefinite(pivot=float(pivot), index=i)
        L[i, i] = np.sqrt(pivot)
        for j in range(i + 1, n):
            L[j, i] = (A[j, i] - float(np.dot(L[j, :i], L[i, :i]))) / L[i, i]
    return L


def _lower_inverse(L: np.ndarray) -> np.ndarray:
    """Solve L X = I by forward substitution."""

    n = L.shape[0]
    L_inv = np.zeros((n, n))
    for j in range(n):
        L_inv[j, j] = 1.0 / L[j, j]
        for i in range(j + 1, n):
            L_inv[i, j] = -float(np.dot(L[i, j:i], L_inv[j:i, j])) / L[i, i]
    return L_inv


def invert_spd(A: np.ndarray) -> np.ndarray:
    """A⁻¹ = L⁻ᵀ L⁻¹ for symmetric positive definite A."""

    L_inv = _lower_inverse(cholesky(A))
    return L_inv.T @ L_inv


def try_invert_spd(A: np.ndarray) -> Optional[np.ndarray]:
    """Fallible variant of invert_spd: None when A is not positive definite."""

    try:
        return invert_spd(A)
    except NotPositiveDefinite:
        return None


def sample_mvn(
    mean: np.ndarray, cov: np.ndarray, rng: Optional[np.random.Generator] = None
) -> np.ndarray:
    """Draw from N(mean, cov) as mean + L z with z iid standard normal."""

    mean = np.asarray(mean, dtype=float)
    L = cholesky(cov)
    z = randn(mean.shape[0], rng=rng)
    return mean + L @ z


def sigmoid(x: float) -> float:
    if x >= 0:
        z = np.exp(-x)
        return float(1.0 / (1.0 + z))
    z = np.exp(x)
    return float(z / (1.0 + z))
