# ABOUTME: Tests Jaccard cohort discovery over binary mastery vectors.
# ABOUTME: Checks similarity edge cases, greedy assignment, ties, and signatures.

import numpy as np
import pytest

from src.sentry.cohort import (
    cluster_students,
    cohort_signature,
    largest_cohort,
    mastery_vectors,
    weighted_jaccard,
)


def test_weighted_jaccard_matches_set_jaccard_on_binary():
    assert weighted_jaccard(np.array([1.0, 1.0, 0.0]), np.array([1.0, 0.0, 0.0])) == pytest.approx(0.5)
    assert weighted_jaccard(np.array([1.0, 0.0]), np.array([0.0, 1.0])) == 0.0
    assert weighted_jaccard(np.zeros(3), np.zeros(3)) == 1.0


def test_weighted_jaccard_against_fractional_centroid():
    assert weighted_jaccard(np.array([1.0, 1.0]), np.array([0.5, 1.0])) == pytest.approx(0.75)


def test_mastery_vectors_threshold_on_sorted_skills():
    skills, vectors = mastery_vectors({"px-1": {"mul": 0.9, "add": 0.5}, "px-2": {"sub": 0.6}}, threshold=0.6)
    assert skills == ["add", "mul", "sub"]
    np.testing.assert_array_equal(vectors["px-1"], [0.0, 1.0, 0.0])
    np.testing.assert_array_equal(vectors["px-2"], [0.0, 0.0, 1.0])


def test_identical_students_form_one_cohort():
    vectors = {f"px-{i:02d}": np.array([1.0, 1.0, 0.0]) for i in range(20)}
    cohorts = cluster_students(vectors)
    assert len(cohorts) == 1
    assert cohorts[0].size == 20
    np.testing.assert_array_equal(cohorts[0].centroid, [1.0, 1.0, 0.0])
    assert cohorts[0].signature == cohort_signature(np.array([1.0, 1.0, 0.0]))
    assert len(cohorts[0].signature) == 8
    assert all(ch in "0123456789abcdef" for ch in cohorts[0].signature)


def test_disjoint_profiles_split_and_largest_wins():
    vectors = {f"a-{i}": np.array([1.0, 1.0, 0.0, 0.0]) for i in range(5)}
    vectors.update({f"b-{i}": np.array([0.0, 0.0, 1.0, 1.0]) for i in range(7)})

    cohorts = cluster_students(vectors)

    assert [c.size for c in cohorts] == [5, 7]
    assert largest_cohort(cohorts).members[0] == "b-0"


def test_tie_goes_to_first_created_cohort():
    vectors = {"a": np.array([1.0, 0.0]), "b": np.array([0.0, 1.0])}
    cohorts = cluster_students(vectors)
    assert largest_cohort(cohorts).members == ["a"]
    assert largest_cohort([]) is None


def test_signature_is_stable_across_insertion_order():
    forward = {f"px-{i}": np.array([1.0, float(i % 2)]) for i in range(6)}
    backward = dict(reversed(list(forward.items())))
    assert [c.signature for c in cluster_students(forward)] == [c.signature for c in cluster_students(backward)]
