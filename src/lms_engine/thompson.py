# ABOUTME: Implements linear Thompson Sampling over concatenated student/lesson embeddings.
# ABOUTME: Uses recursive least squares with exponential forgetting for the posterior.

from __future__ import annotations

from typing import Iterable, Optional, Tuple

import numpy as np

from src.common import linalg
from src.common.errors import FeatureDimMismatch, ShapeMismatch

from .embeddings import ensure_lesson_vector, ensure_student_vector
from .state import LMSState

# Weak identity prior, quickly overwritten by observations for dims of 16-64.
PRIOR_REGULARIZATION = 0.01

# Diagonal jitter for the single retry of a failed inversion.
JITTER = 1e-5


def bandit_feature(student_vec: np.ndarray, lesson_vec: np.ndarray) -> np.ndarray:
    """
    x = [student_vec, lesson_vec].

    The only definition of the feature layout; selection and update both use it.
    """

    return np.concatenate([np.asarray(student_vec, dtype=float), np.asarray(lesson_vec, dtype=float)])


def ensure_bandit_initialized(state: LMSState) -> None:
    """
    Validate the posterior shape and lazily build the prior.

    Raises FeatureDimMismatch when featureDim != 2 * embedding dim and
    ShapeMismatch when a persisted A or b has the wrong shape.
    """

    bandit = state.bandit
    expected = state.embedding.dim * 2
    if bandit.feature_dim != expected:
        raise FeatureDimMismatch(
            f"bandit featureDim is {bandit.feature_dim} but 2 * embedding.dim = {expected}; "
            "the feature vector is [student_vec, lesson_vec]"
        )

    dim = bandit.feature_dim
    A = np.asarray(bandit.A, dtype=float)
    if A.size == 0:
        bandit.A = PRIOR_REGULARIZATION * linalg.identity(dim)
        bandit.b = np.zeros(dim)
        bandit.observation_count = 0
        return

    if A.shape != (dim, dim):
        raise ShapeMismatch(
            f"bandit A has shape {A.shape} but featureDim={dim} requires ({dim}, {dim}); "
            "the state file was written with a different embedding dim"
        )
    b = np.asarray(bandit.b, dtype=float)
    if b.shape != (dim,):
        raise ShapeMismatch(f"bandit b has shape {b.shape} but featureDim={dim}")


def posterior_covariance(state: LMSState) -> np.ndarray:
    """A⁻¹, retrying once with diagonal jitter. A second failure propagates."""

    A = state.bandit.A
    cov = linalg.try_invert_spd(A)
    if cov is None:
        cov = linalg.invert_spd(A + JITTER * linalg.identity(A.shape[0]))
    return cov


def posterior_mean(state: LMSState) -> Tuple[np.ndarray, np.ndarray]:
    """Return (mean, covariance) of the weight posterior."""

    cov = posterior_covariance(state)
    return linalg.mat_vec(cov, state.bandit.b), cov


def select_lesson(
    state: LMSState,
    student_id: str,
    candidates: Optional[Iterable[str]] = None,
    rng: Optional[np.random.Generator] = None,
) -> Optional[str]:
    """
    Pick the lesson with the highest score under one posterior sample.

    candidates restricts scoring to that view of the lesson map (missing ids
    get fresh vectors); None scores every known lesson. Ties go to the first
    lesson in iteration order. Returns None when there is nothing to score.
    """

    student_vec = ensure_student_vector(state, student_id, rng=rng)
    ensure_bandit_initialized(state)

    if candidates is None:
        lesson_ids = list(state.embedding.lessons)
    else:
        lesson_ids = list(dict.fromkeys(candidates))
        for lesson_id in lesson_ids:
            ensure_lesson_vector(state, lesson_id, rng=rng)
    if not lesson_ids:
        return None

    mean, cov = posterior_mean(state)
    theta = linalg.sample_mvn(mean, cov, rng=rng)

    best_lesson: Optional[str] = None
    best_score = float("-inf")
    for lesson_id in lesson_ids:
        x = bandit_feature(student_vec, state.embedding.lessons[lesson_id])
        score = linalg.dot(theta, x)
        if score > best_score:
            best_score = score
            best_lesson = lesson_id
    return best_lesson


def update_bandit(
    state: LMSState,
    student_id: str,
    lesson_id: str,
    gain: float,
    rng: Optional[np.random.Generator] = None,
) -> np.ndarray:
    """
    RLS with forgetting: A ← γA + xxᵀ, b ← γb + gain·x.

    γ = 1 recovers the stationary case. Returns the feature vector used.
    """

    student_vec = ensure_student_vector(state, student_id, rng=rng)
    lesson_vec = ensure_lesson_vector(state, lesson_id, rng=rng)
    ensure_bandit_initialized(state)

    bandit = state.bandit
    x = bandit_feature(student_vec, lesson_vec)
    bandit.A = linalg.add_mat(linalg.scale_mat(bandit.A, bandit.forgetting), linalg.outer(x, x))
    bandit.b = linalg.add_vec(linalg.scale_vec(bandit.b, bandit.forgetting), linalg.scale_vec(x, gain))
    bandit.observation_count += 1
    return x
