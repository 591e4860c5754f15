# ABOUTME: Discovers student cohorts by greedy Jaccard clustering on binary mastery vectors.
# ABOUTME: Identifies each cohort by a short content hash of its rounded centroid.

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from .mastery import MasteryMap

SIGNATURE_DECIMALS = 4
SIGNATURE_LENGTH = 8


@dataclass
class Cohort:
    members: List[str] = field(default_factory=list)
    centroid: Optional[np.ndarray] = None
    signature: str = ""

    @property
    def size(self) -> int:
        return len(self.members)

    def add(self, student_id: str, vector: np.ndarray) -> None:
        """Append a member and move the centroid to the running mean."""

        self.members.append(student_id)
        if self.centroid is None:
            self.centroid = vector.astype(float).copy()
        else:
            self.centroid = self.centroid + (vector - self.centroid) / len(self.members)


def mastery_vectors(mastery: MasteryMap, threshold: float) -> Tuple[List[str], Dict[str, np.ndarray]]:
    """Binary vector per student over the sorted union of known skills."""

    skills = sorted({skill for per_student in mastery.values() for skill in per_student})
    vectors = {
        sid: np.array([1.0 if per_student.get(s, 0.0) >= threshold else 0.0 for s in skills])
        for sid, per_student in mastery.items()
    }
    return skills, vectors


def weighted_jaccard(a: np.ndarray, b: np.ndarray) -> float:
    """Σmin / Σmax; identical to set Jaccard on binary vectors. Two empty vectors match."""

    denom = float(np.maximum(a, b).sum())
    if denom == 0.0:
        return 1.0
    return float(np.minimum(a, b).sum()) / denom


def cohort_signature(centroid: np.ndarray) -> str:
    rounded = [round(float(v), SIGNATURE_DECIMALS) for v in centroid]
    digest = hashlib.sha256(json.dumps(rounded).encode("utf-8")).hexdigest()
    return digest[:SIGNATURE_LENGTH]


def cluster_students(vectors: Dict[str, np.ndarray], threshold: float = 0.5) -> List[Cohort]:
    """
    Greedy single pass in student-id order: join the first cohort whose
    centroid is at least `threshold` similar, else open a new one.
    """

    cohorts: List[Cohort] = []
    for sid in sorted(vectors):
        vec = vectors[sid]
        for cohort in cohorts:
            if weighted_jaccard(vec, cohort.centroid) >= threshold:
                cohort.add(sid, vec)
                break
        else:
            cohort = Cohort()
            cohort.add(sid, vec)
            cohorts.append(cohort)

    for cohort in cohorts:
        cohort.signature = cohort_signature(cohort.centroid)
    return cohorts


def largest_cohort(cohorts: Sequence[Cohort]) -> Optional[Cohort]:
    """Largest cohort; ties go to the one created first."""

    best: Optional[Cohort] = None
    for cohort in cohorts:
        if best is None or cohort.size > best.size:
            best = cohort
    return best
