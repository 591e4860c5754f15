# ABOUTME: Tests the per-student Rasch ability update.
# ABOUTME: Checks Newton step direction, skipped probes, clamping, and variance.

import pytest

from src.common.linalg import sigmoid
from src.common.schemas import ProbeResult
from src.lms_engine.rasch import logit_difficulty, update_ability
from src.lms_engine.state import LearnerAbility, Probe, build_default_state


def _state_with_probe(difficulty=-1.0):
    state = build_default_state()
    state.rasch.probes["p1"] = Probe(difficulty=difficulty, skill="add")
    return state


def test_declared_difficulty_maps_to_logits():
    assert logit_difficulty(3) == 0.0
    assert logit_difficulty(1) == -2.0
    assert logit_difficulty(5) == 2.0


def test_correct_answer_on_easy_probe_raises_ability():
    state = _state_with_probe(difficulty=-1.0)

    step = update_ability(state, "px-1", [ProbeResult("p1", True)])

    p = sigmoid(1.0)
    hess = p * (1 - p) + 1e-5
    assert step == pytest.approx((1 - p) / hess)
    student = state.rasch.students["px-1"]
    assert student.ability == pytest.approx(step)
    assert student.variance == pytest.approx(1 / hess)


def test_wrong_answer_lowers_ability():
    state = _state_with_probe(difficulty=0.0)
    step = update_ability(state, "px-1", [ProbeResult("p1", False)])
    assert step < 0
    assert state.rasch.students["px-1"].ability < 0


def test_unknown_probes_are_skipped():
    state = _state_with_probe()

    step = update_ability(state, "px-1", [ProbeResult("missing", True)])

    assert step == 0.0
    student = state.rasch.students["px-1"]
    assert student.ability == 0.0
    assert student.variance == pytest.approx(1e5)


def test_ability_is_clamped_but_step_is_returned():
    state = _state_with_probe(difficulty=0.0)
    state.rasch.students["px-1"] = LearnerAbility(ability=9.5, variance=1.0)

    step = update_ability(state, "px-1", [ProbeResult("p1", True)])

    assert step > 0.5
    assert state.rasch.students["px-1"].ability == 10.0


def test_batch_accumulates_gradient_and_hessian():
    state = _state_with_probe(difficulty=0.0)
    state.rasch.probes["p2"] = Probe(difficulty=0.0, skill="add")

    step = update_ability(state, "px-1", [ProbeResult("p1", True), ProbeResult("p2", False)])

    # One right and one wrong at p = 0.5 cancel out.
    assert step == pytest.approx(0.0)
    assert state.rasch.students["px-1"].variance == pytest.approx(1 / (0.5 + 1e-5))
