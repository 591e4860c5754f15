# ABOUTME: Tests chi-square edge statistics and graph document assembly.
# ABOUTME: Checks thresholds, confidence scaling, cohort aggregation, and created_date reuse.

from datetime import datetime, timezone

import pytest

from src.sentry.contingency import ContingencyTables
from src.sentry.graph import (
    compute_edges,
    edge_from_counts,
    graph_document,
    pair_statistics,
    yates_chi_square,
)


def test_yates_chi_square_known_value():
    assert yates_chi_square(20, 0, 0, 20) == pytest.approx(36.1)
    assert yates_chi_square(5, 5, 5, 5) == pytest.approx(0.2)


def test_yates_chi_square_empty_marginal_is_zero():
    assert yates_chi_square(10, 10, 0, 0) == 0.0
    assert yates_chi_square(0, 0, 0, 0) == 0.0


def test_strong_transfer_edge():
    edge = edge_from_counts("add", "mul", 20, 0, 0, 20)
    assert edge.weight == 0.0
    assert edge.confidence == pytest.approx(0.4448, abs=1e-4)
    assert edge.sample_size == 40
    assert edge.to_dict() == {"from": "add", "to": "mul", "weight": 0.0, "confidence": edge.confidence, "sample_size": 40}


def test_insignificant_pair_has_zero_confidence():
    edge = edge_from_counts("add", "mul", 5, 5, 5, 5)
    assert edge.confidence == 0.0
    assert edge.weight == 1.0


def test_sparse_or_degenerate_pairs_are_dropped():
    assert edge_from_counts("add", "mul", 10, 0, 0, 9) is None
    assert edge_from_counts("add", "mul", 20, 5, 0, 0) is None
    assert edge_from_counts("add", "mul", 0, 0, 15, 10) is None


def test_sample_size_requirement_scales_with_rarer_group():
    stats = pair_statistics(4, 1, 10, 25)
    assert stats.p_prior == pytest.approx(5 / 40)
    assert stats.n_min == 160
    assert stats.benefit == pytest.approx(0.8 - 10 / 35)


def test_negative_transfer_is_floored():
    edge = edge_from_counts("add", "mul", 0, 20, 20, 0)
    assert edge.weight == 1.0
    assert edge.confidence > 0


def test_compute_edges_sums_cohort_members_only():
    tables = ContingencyTables()
    for i in range(20):
        tables.cell(f"px-{i:02d}", "add", "mul").record(True, True)
        tables.cell(f"px-{i:02d}", "add", "mul").record(False, False)
    tables.cell("outsider", "add", "mul").record(False, True)

    edges = compute_edges(tables, [f"px-{i:02d}" for i in range(20)])

    assert len(edges) == 1
    assert edges[0].sample_size == 40
    assert edges[0].weight == 0.0


def test_compute_edges_with_no_members_is_empty():
    assert compute_edges(ContingencyTables(), []) == []


def test_graph_document_preserves_created_date():
    edges = [edge_from_counts("add", "mul", 20, 0, 0, 20)]
    first = graph_document(edges, "abcd1234", 40, hub_id="hub-7", now=datetime(2026, 1, 1, tzinfo=timezone.utc))
    second = graph_document(edges, "abcd1234", 40, previous=first, now=datetime(2026, 1, 2, tzinfo=timezone.utc))

    assert first["created_date"] == "2026-01-01T00:00:00Z"
    assert second["created_date"] == "2026-01-01T00:00:00Z"
    assert second["last_updated"] == "2026-01-02T00:00:00Z"
    assert first["nodes"] == ["add", "mul"]
    assert first["hub_id"] == "hub-7"
    assert first["discovered_cohort"] == "abcd1234"
    assert first["sample_size"] == 40
    assert first["level"] == "village"
