# ABOUTME: Maintains student and lesson latent vectors via online matrix factorization.
# ABOUTME: Uses exponential forgetting and L2 regularization so z.w tracks observed gain.

from __future__ import annotations

from typing import Optional

import numpy as np

from .state import LMSState, get_or_insert_vector


def ensure_student_vector(
    state: LMSState, student_id: str, rng: Optional[np.random.Generator] = None
) -> np.ndarray:
    return get_or_insert_vector(state.embedding.students, student_id, state.embedding.dim, rng=rng)


def ensure_lesson_vector(
    state: LMSState, lesson_id: str, rng: Optional[np.random.Generator] = None
) -> np.ndarray:
    return get_or_insert_vector(state.embedding.lessons, lesson_id, state.embedding.dim, rng=rng)


def predict_gain(state: LMSState, student_id: str, lesson_id: str) -> Optional[float]:
    z = state.embedding.students.get(student_id)
    w = state.embedding.lessons.get(lesson_id)
    if z is None or w is None:
        return None
    return float(np.dot(z, w))


def update_embedding(
    state: LMSState,
    student_id: str,
    lesson_id: str,
    gain: float,
    rng: Optional[np.random.Generator] = None,
) -> float:
    """
    One symmetric factorization step toward z.w ≈ gain.

        err = gain − z·w
        z ← γz + lr(err·w − reg·z)
        w ← γw + lr(err·z − reg·w)

    Both updates read the pre-update vectors. Returns the prediction error.
    """

    emb = state.embedding
    z_old = ensure_student_vector(state, student_id, rng=rng).copy()
    w_old = ensure_lesson_vector(state, lesson_id, rng=rng).copy()

    err = gain - float(np.dot(z_old, w_old))
    emb.students[student_id] = emb.forgetting * z_old + emb.lr * (err * w_old - emb.reg * z_old)
    emb.lessons[lesson_id] = emb.forgetting * w_old + emb.lr * (err * z_old - emb.reg * w_old)
    return err
