# ABOUTME: Turns cohort-aggregated contingency counts into a confidence-scored transfer graph.
# ABOUTME: Uses a Yates-corrected chi-square test and a sample-size-aware confidence score.

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd

from src.common.schemas import SkillGraphEdge

from .contingency import ContingencyTables

# Chi-square critical value for p < 0.05 at one degree of freedom.
CHI2_THRESHOLD = 3.841
# Scale of the chi-square excess at which confidence reaches one half.
CHI2_CONFIDENCE_SCALE = 4.0
GRAPH_SCHEMA_VERSION = "1.8.0"
EDGE_DECIMALS = 4


@dataclass(frozen=True)
class PairStatistics:
    n: int
    p_prior: float
    n_min: int
    chi_square: float
    benefit: float


def yates_chi_square(a: int, b: int, c: int, d: int) -> float:
    """Chi-square with continuity correction; zero when any marginal is empty."""

    n = a + b + c + d
    denom = (a + b) * (c + d) * (a + c) * (b + d)
    if denom == 0:
        return 0.0
    return (abs(a * d - b * c) - n / 2.0) ** 2 * n / denom


def pair_statistics(a: int, b: int, c: int, d: int, min_samples: int = 20) -> Optional[PairStatistics]:
    """Return None when the pair carries too little evidence to test."""

    n = a + b + c + d
    if n < min_samples:
        return None
    p_prior = (a + b) / n
    if p_prior <= 0.0 or p_prior >= 1.0:
        return None

    n_min = math.ceil(min_samples / min(p_prior, 1.0 - p_prior))
    pass_with = a / (a + b) if (a + b) else 0.0
    pass_without = c / (c + d) if (c + d) else 0.0
    return PairStatistics(
        n=n,
        p_prior=p_prior,
        n_min=n_min,
        chi_square=yates_chi_square(a, b, c, d),
        benefit=max(0.0, pass_with - pass_without),
    )


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return min(high, max(low, value))


def edge_confidence(stats: PairStatistics) -> float:
    if stats.chi_square < CHI2_THRESHOLD:
        return 0.0
    chi_conf = _clamp(1.0 - 1.0 / (1.0 + (stats.chi_square - CHI2_THRESHOLD) / CHI2_CONFIDENCE_SCALE))
    size_conf = _clamp(min(1.0, stats.n / (2.0 * stats.n_min)))
    return chi_conf * size_conf


def edge_from_counts(
    prior: str, target: str, a: int, b: int, c: int, d: int, min_samples: int = 20
) -> Optional[SkillGraphEdge]:
    stats = pair_statistics(a, b, c, d, min_samples=min_samples)
    if stats is None:
        return None
    return SkillGraphEdge(
        from_skill=prior,
        to_skill=target,
        weight=round(_clamp(1.0 - stats.benefit), EDGE_DECIMALS),
        confidence=round(edge_confidence(stats), EDGE_DECIMALS),
        sample_size=stats.n,
    )


def aggregate_cells(tables: ContingencyTables, members: Iterable[str]) -> pd.DataFrame:
    """Sum a, b, c, d per (prior, target) across cohort members."""

    frame = tables.to_frame(students=members)
    if frame.empty:
        return pd.DataFrame(columns=["prior", "target", "a", "b", "c", "d"])
    return frame.groupby(["prior", "target"], sort=True)[["a", "b", "c", "d"]].sum().reset_index()


def compute_edges(tables: ContingencyTables, members: Iterable[str], min_samples: int = 20) -> List[SkillGraphEdge]:
    """Full recompute of the edge set from current cell totals."""

    edges = []
    for row in aggregate_cells(tables, members).itertuples(index=False):
        edge = edge_from_counts(
            row.prior, row.target, int(row.a), int(row.b), int(row.c), int(row.d), min_samples=min_samples
        )
        if edge is not None:
            edges.append(edge)
    return edges


def graph_document(
    edges: List[SkillGraphEdge],
    cohort_signature: str,
    cohort_size: int,
    level: str = "village",
    hub_id: str = "hub-local",
    previous: Optional[Dict[str, Any]] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Graph JSON consumed by the scheduler; created_date survives republishing."""

    ts = (now or datetime.now(timezone.utc)).isoformat().replace("+00:00", "Z")
    created = (previous or {}).get("created_date") or ts
    nodes = sorted({e.from_skill for e in edges} | {e.to_skill for e in edges})
    return {
        "schema_version": GRAPH_SCHEMA_VERSION,
        "hub_id": hub_id,
        "level": level,
        "discovered_cohort": cohort_signature,
        "sample_size": cohort_size,
        "nodes": nodes,
        "edges": [e.to_dict() for e in edges],
        "created_date": created,
        "last_updated": ts,
    }
