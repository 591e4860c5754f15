# ABOUTME: Maintains per-student 2x2 contingency cells for every (prior, target) skill pair.
# ABOUTME: Each event updates cells against pre-event mastery, then folds its own skills.

from __future__ import annotations

from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

import pandas as pd

from src.common.schemas import CompletionEvent, ContingencyCell

from .mastery import MasteryMap, fold_mastery

PAIR_SEPARATOR = "\x00"
CELL_COLUMNS = ["student", "prior", "target", "a", "b", "c", "d"]


def pair_key(prior: str, target: str) -> str:
    return f"{prior}{PAIR_SEPARATOR}{target}"


def split_pair_key(key: str) -> Tuple[str, str]:
    prior, _, target = key.partition(PAIR_SEPARATOR)
    return prior, target


class ContingencyTables:
    """Cells keyed by student id, then by the "prior\\x00target" pair key."""

    def __init__(self, cells: Optional[Dict[str, Dict[str, ContingencyCell]]] = None) -> None:
        self.cells: Dict[str, Dict[str, ContingencyCell]] = cells or {}

    def cell(self, student_id: str, prior: str, target: str) -> ContingencyCell:
        per_student = self.cells.setdefault(student_id, {})
        key = pair_key(prior, target)
        if key not in per_student:
            per_student[key] = ContingencyCell()
        return per_student[key]

    def get(self, student_id: str, prior: str, target: str) -> Optional[ContingencyCell]:
        return self.cells.get(student_id, {}).get(pair_key(prior, target))

    def to_dict(self) -> Dict[str, Dict[str, Dict[str, int]]]:
        return {
            sid: {key: cell.to_dict() for key, cell in pairs.items()} for sid, pairs in self.cells.items()
        }

    @classmethod
    def from_dict(cls, raw: Optional[Mapping[str, Any]]) -> "ContingencyTables":
        return cls(
            {
                str(sid): {str(key): ContingencyCell.from_dict(cell) for key, cell in pairs.items()}
                for sid, pairs in (raw or {}).items()
            }
        )

    def to_frame(self, students: Optional[Iterable[str]] = None) -> pd.DataFrame:
        """Flatten cells into one row per (student, prior, target)."""

        wanted = set(students) if students is not None else None
        rows = []
        for sid, pairs in self.cells.items():
            if wanted is not None and sid not in wanted:
                continue
            for key, cell in pairs.items():
                prior, target = split_pair_key(key)
                rows.append({"student": sid, "prior": prior, "target": target, **cell.to_dict()})
        return pd.DataFrame(rows, columns=CELL_COLUMNS)


def process_event(
    tables: ContingencyTables,
    mastery: MasteryMap,
    event: CompletionEvent,
    mastery_threshold: float = 0.6,
    pass_threshold: float = 0.6,
) -> int:
    """
    Fold one completion event into the tables and the mastery map.

    Every skill already in the student's map is a candidate prior for every
    skill the event provides. Skills provided by the same event are checked
    against the same pre-event snapshot, so they never count as each other's
    prior. Returns the number of cells incremented.
    """

    student_mastery = mastery.setdefault(event.pseudo_id, {})
    snapshot = dict(student_mastery)
    passed_well = event.mastery >= pass_threshold
    targets = list(dict.fromkeys(s.skill for s in event.skills_provided))

    updated = 0
    for prior, level in snapshot.items():
        had_prior = level >= mastery_threshold
        for target in targets:
            if prior == target:
                continue
            tables.cell(event.pseudo_id, prior, target).record(had_prior, passed_well)
            updated += 1

    fold_mastery(student_mastery, event)
    return updated
