# ABOUTME: Tests exporting and merging bandit posterior summaries across hubs.
# ABOUTME: Checks weighting, degenerate sample counts, and write-back to state.

import numpy as np
import pytest

from src.common.config import LmsConfig
from src.common.errors import DimensionMismatch
from src.common.schemas import BanditSummary
from src.lms_engine.federation import apply_summary, export_summary, merge_summaries
from src.lms_engine.state import build_default_state
from src.lms_engine.thompson import ensure_bandit_initialized, posterior_mean, update_bandit


def _summary(mean, precision, n):
    return BanditSummary(mean=np.asarray(mean, dtype=float), precision=np.asarray(precision, dtype=float), sample_size=n)


def _trained_state(seed=0, n=12):
    state = build_default_state(LmsConfig(embedding_dim=2, bandit_forgetting=1.0))
    rng = np.random.default_rng(seed)
    for i in range(n):
        update_bandit(state, f"px-{i % 4}", f"L{i % 3}", gain=float(rng.normal()), rng=rng)
    return state


def test_export_reports_raw_precision_and_count():
    state = _trained_state()
    summary = export_summary(state)
    np.testing.assert_array_equal(summary.precision, state.bandit.A)
    assert summary.sample_size == 12
    summary.precision[0, 0] += 100.0
    assert state.bandit.A[0, 0] != summary.precision[0, 0]


def test_merging_a_summary_with_itself_keeps_mean_and_precision():
    summary = export_summary(_trained_state())
    merged = merge_summaries(summary, summary)
    np.testing.assert_array_almost_equal(merged.mean, summary.mean)
    np.testing.assert_array_almost_equal(merged.precision, summary.precision)
    assert merged.sample_size == 2 * summary.sample_size


def test_merge_weights_each_side_by_the_other_count():
    local = _summary([1.0, 0.0], [[2.0, 0.0], [0.0, 2.0]], 1)
    remote = _summary([0.0, 1.0], [[4.0, 1.0], [1.0, 3.0]], 3)

    merged = merge_summaries(local, remote)

    P_l = 0.75 * local.precision
    P_r = 0.25 * remote.precision
    expected_P = P_l + P_r
    expected_mean = np.linalg.solve(expected_P, P_l @ local.mean + P_r @ remote.mean)
    np.testing.assert_array_almost_equal(merged.precision, expected_P)
    np.testing.assert_array_almost_equal(merged.mean, expected_mean)
    assert merged.sample_size == 4


def test_empty_side_returns_the_other_unchanged():
    local = _summary([0.3, -0.2], [[2.0, 0.5], [0.5, 1.0]], 7)
    empty = _summary([9.0, 9.0], np.eye(2), 0)

    for merged in (merge_summaries(local, empty), merge_summaries(empty, local)):
        np.testing.assert_array_equal(merged.mean, local.mean)
        np.testing.assert_array_equal(merged.precision, local.precision)
        assert merged.sample_size == 7
        assert merged.precision is not local.precision


def test_two_empty_sides_give_neutral_summary():
    merged = merge_summaries(_summary([1.0, 2.0], 5 * np.eye(2), 0), _summary([3.0, 4.0], np.eye(2), 0))
    np.testing.assert_array_equal(merged.mean, np.zeros(2))
    np.testing.assert_array_equal(merged.precision, np.eye(2))
    assert merged.sample_size == 0


def test_dimension_mismatch_is_rejected():
    with pytest.raises(DimensionMismatch):
        merge_summaries(_summary([0.0, 0.0], np.eye(2), 1), _summary([0.0, 0.0, 0.0], np.eye(3), 1))


def test_apply_summary_restores_natural_parameters():
    state = build_default_state(LmsConfig(embedding_dim=1))
    ensure_bandit_initialized(state)
    summary = _summary([0.5, -1.0], [[3.0, 1.0], [1.0, 2.0]], 9)

    apply_summary(state, summary)

    np.testing.assert_array_equal(state.bandit.A, summary.precision)
    np.testing.assert_array_almost_equal(state.bandit.b, summary.precision @ summary.mean)
    assert state.bandit.observation_count == 9
    mean, _ = posterior_mean(state)
    np.testing.assert_array_almost_equal(mean, summary.mean)


def test_summary_dict_roundtrip_and_validation():
    summary = _summary([0.1, 0.2], [[1.0, 0.0], [0.0, 1.0]], 3)
    restored = BanditSummary.from_dict(summary.to_dict())
    np.testing.assert_array_equal(restored.mean, summary.mean)
    assert restored.sample_size == 3
    assert summary.to_dict()["sampleSize"] == 3

    with pytest.raises(ValueError):
        BanditSummary.from_dict({"mean": [0.0, 0.0], "precision": [[1.0]], "sampleSize": 1})
