# ABOUTME: Tracks per-student Rasch ability on the logit scale.
# ABOUTME: Applies one regularized Newton step per batch of probe results.

from __future__ import annotations

from typing import Iterable, Tuple

from src.common.linalg import sigmoid
from src.common.schemas import ProbeResult

from .state import LearnerAbility, LMSState

ABILITY_BOUNDS: Tuple[float, float] = (-10.0, 10.0)
HESSIAN_PRIOR = 1e-5
HESSIAN_FLOOR = 1e-8


def logit_difficulty(declared: float) -> float:
    """Map a 1-5 declared difficulty onto the logit scale (3 -> 0)."""

    return float(declared) - 3.0


def update_ability(state: LMSState, student_id: str, probe_results: Iterable[ProbeResult]) -> float:
    """
    Update a student's ability from one batch of probe results.

    Unknown probe ids are skipped. Returns the Newton step, which downstream
    models consume as the learning-gain signal (positive = improved).
    """

    student = state.rasch.students.get(student_id)
    if student is None:
        student = LearnerAbility()
        state.rasch.students[student_id] = student

    grad = 0.0
    hess = 0.0
    for result in probe_results:
        probe = state.rasch.probes.get(result.probe_id)
        if probe is None:
            continue
        p = sigmoid(student.ability - probe.difficulty)
        grad += (1.0 if result.correct else 0.0) - p
        hess += p * (1.0 - p)

    hess += HESSIAN_PRIOR
    hess = max(hess, HESSIAN_FLOOR)

    step = grad / hess
    low, high = ABILITY_BOUNDS
    student.ability = min(high, max(low, student.ability + step))
    student.variance = 1.0 / hess
    return step
