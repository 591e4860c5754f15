# ABOUTME: Defines canonical records shared by the adaptive engine and the Sentry miner.
# ABOUTME: Centralizes completion-event, contingency, graph-edge, and bandit-summary layouts.

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

import numpy as np


@dataclass(frozen=True)
class ProbeResult:
    """One post-lesson assessment answer."""

    probe_id: str
    correct: bool

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "ProbeResult":
        return cls(probe_id=str(raw["probeId"]), correct=bool(raw["correct"]))


@dataclass(frozen=True)
class SkillEvidence:
    skill: str
    evidenced_level: float


@dataclass(frozen=True)
class CompletionEvent:
    """Anonymized lesson-completion record read from the event log."""

    pseudo_id: str
    skills_provided: List[SkillEvidence]
    mastery: float
    completed_at: str
    skills_required: List[str] = field(default_factory=list)
    lesson_id: Optional[str] = None

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "CompletionEvent":
        """Parse an event-log record. Raises ValueError when the record is unusable."""

        if not isinstance(raw, Mapping):
            raise ValueError("event must be a JSON object")
        pseudo_id = raw.get("pseudoId")
        if not isinstance(pseudo_id, str) or not pseudo_id:
            raise ValueError("event is missing pseudoId")
        mastery = raw.get("mastery")
        if isinstance(mastery, bool) or not isinstance(mastery, (int, float)):
            raise ValueError("event mastery must be numeric")
        completed_at = raw.get("completedAt")
        if not isinstance(completed_at, str):
            raise ValueError("event is missing completedAt")

        provided = []
        for entry in raw.get("skillsProvided") or []:
            if not isinstance(entry, Mapping) or not entry.get("skill"):
                continue
            level = entry.get("evidencedLevel", 0.0)
            if isinstance(level, bool) or not isinstance(level, (int, float)):
                raise ValueError(f"evidencedLevel for {entry['skill']!r} must be numeric")
            provided.append(SkillEvidence(skill=str(entry["skill"]), evidenced_level=float(level)))

        required = [str(s) for s in (raw.get("skillsRequired") or []) if s]
        lesson_id = raw.get("lessonId")
        return cls(
            pseudo_id=pseudo_id,
            skills_provided=provided,
            mastery=float(mastery),
            completed_at=completed_at,
            skills_required=required,
            lesson_id=str(lesson_id) if lesson_id is not None else None,
        )


@dataclass
class ContingencyCell:
    """
    2x2 table for one (student, prior skill, target skill) triple.

                  passed   not passed
    had prior       a          b
    no prior        c          d
    """

    a: int = 0
    b: int = 0
    c: int = 0
    d: int = 0

    @property
    def n(self) -> int:
        return self.a + self.b + self.c + self.d

    def record(self, had_prior: bool, passed_well: bool) -> None:
        if had_prior and passed_well:
            self.a += 1
        elif had_prior:
            self.b += 1
        elif passed_well:
            self.c += 1
        else:
            self.d += 1

    def to_dict(self) -> Dict[str, int]:
        return {"a": self.a, "b": self.b, "c": self.c, "d": self.d}

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "ContingencyCell":
        return cls(**{k: int(raw.get(k, 0)) for k in ("a", "b", "c", "d")})


@dataclass(frozen=True)
class SkillGraphEdge:
    """Cohort-level transfer edge. Lower weight means stronger transfer."""

    from_skill: str
    to_skill: str
    weight: float
    confidence: float
    sample_size: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from": self.from_skill,
            "to": self.to_skill,
            "weight": self.weight,
            "confidence": self.confidence,
            "sample_size": self.sample_size,
        }


@dataclass
class BanditSummary:
    """Portable posterior summary exchanged between hubs."""

    mean: np.ndarray
    precision: np.ndarray  # raw accumulated units, same as a hub's A
    sample_size: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mean": np.asarray(self.mean, dtype=float).tolist(),
            "precision": np.asarray(self.precision, dtype=float).tolist(),
            "sampleSize": int(self.sample_size),
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "BanditSummary":
        mean = np.asarray(raw["mean"], dtype=float)
        precision = np.asarray(raw["precision"], dtype=float)
        if mean.ndim != 1:
            raise ValueError("summary mean must be a vector")
        if precision.shape != (mean.shape[0], mean.shape[0]):
            raise ValueError(
                f"summary precision shape {precision.shape} does not match mean length {mean.shape[0]}"
            )
        return cls(mean=mean, precision=precision, sample_size=int(raw.get("sampleSize", 0)))
