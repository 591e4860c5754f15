# ABOUTME: Folds provided-skill evidence into per-student mastery maps.
# ABOUTME: Mastery per skill only ever rises; full rebuilds take the max over the whole log.

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, MutableMapping, Optional

import pandas as pd

from src.common.schemas import CompletionEvent

from .events import SCHEMA_VERSION

MasteryMap = Dict[str, Dict[str, float]]


def fold_mastery(student_mastery: MutableMapping[str, float], event: CompletionEvent) -> None:
    """Apply max(existing, evidenced) for every skill the event provides."""

    for evidence in event.skills_provided:
        current = student_mastery.get(evidence.skill, 0.0)
        student_mastery[evidence.skill] = max(current, evidence.evidenced_level)


def build_mastery_summary(events: Iterable[CompletionEvent]) -> MasteryMap:
    """
    Recompute every student's mastery from scratch.

    Steps:
    - Explode provided skills into (student, skill, level) rows.
    - Take the max level per (student, skill).
    """

    rows = [
        {"pseudo_id": ev.pseudo_id, "skill": s.skill, "level": s.evidenced_level}
        for ev in events
        for s in ev.skills_provided
    ]
    if not rows:
        return {}

    grouped = pd.DataFrame(rows).groupby(["pseudo_id", "skill"], sort=True)["level"].max().reset_index()
    summary: MasteryMap = {}
    for row in grouped.itertuples(index=False):
        summary.setdefault(row.pseudo_id, {})[row.skill] = float(row.level)
    return summary


def mastery_document(students: MasteryMap, now: Optional[datetime] = None) -> Dict[str, Any]:
    ts = now or datetime.now(timezone.utc)
    return {
        "schemaVersion": SCHEMA_VERSION,
        "updatedAt": ts.isoformat().replace("+00:00", "Z"),
        "students": students,
    }


def mastery_from_document(raw: Optional[Dict[str, Any]]) -> MasteryMap:
    students = (raw or {}).get("students") or {}
    return {str(sid): {str(k): float(v) for k, v in skills.items()} for sid, skills in students.items()}
