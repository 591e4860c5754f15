# ABOUTME: Owns the persisted LMSState and exposes the selection and observation API.
# ABOUTME: Chains Rasch, embedding, and bandit updates from one gain and saves atomically.

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

import numpy as np

from src.common import logs
from src.common.config import HubConfig, LmsConfig
from src.common.errors import StateSchemaError
from src.common.persistence import atomic_write_json, preserve_corrupt
from src.common.schemas import BanditSummary, ProbeResult

from .embeddings import ensure_lesson_vector, update_embedding
from .federation import apply_summary, export_summary, merge_summaries
from .rasch import logit_difficulty, update_ability
from .state import LMSState, Probe, build_default_state, state_from_dict, state_to_dict
from .thompson import ensure_bandit_initialized, select_lesson, update_bandit

COMPONENT = "lms"

ProbeInput = Union[ProbeResult, Mapping[str, Any]]


def load_state(path: Path, config: Optional[LmsConfig] = None) -> LMSState:
    """
    Read the state file, or build defaults.

    An unreadable file is copied to a .bak sibling before defaults are used.
    """

    path = Path(path)
    if not path.exists():
        logs.log(COMPONENT, f"No state file at {path}; starting fresh")
        return build_default_state(config)

    try:
        state = state_from_dict(json.loads(path.read_text(encoding="utf-8")))
    except (ValueError, OverflowError, StateSchemaError) as exc:
        backup = preserve_corrupt(path)
        logs.error(COMPONENT, f"Failed to parse state file {path}: {exc}; starting fresh. Corrupt copy: {backup}")
        return build_default_state(config)

    logs.log(
        COMPONENT,
        f"State loaded from {path}: students={len(state.rasch.students)} "
        f"lessons={len(state.embedding.lessons)} observations={state.bandit.observation_count}",
    )
    return state


def save_state(path: Path, state: LMSState) -> bool:
    """Persist atomically. A failed write is logged and reported as False."""

    try:
        atomic_write_json(Path(path), state_to_dict(state))
    except OSError as exc:
        logs.error(COMPONENT, f"Failed to save state to {path}: {exc}")
        return False
    return True


def _probe_results(probe_results: Iterable[ProbeInput]) -> List[ProbeResult]:
    return [r if isinstance(r, ProbeResult) else ProbeResult.from_dict(r) for r in probe_results]


class AdaptiveEngine:
    """
    State handle for one hub's adaptive engine.

    The host constructs one instance and serializes calls to it; every
    mutating call persists before returning.
    """

    def __init__(
        self,
        state_path: Path,
        config: Optional[LmsConfig] = None,
        rng: Optional[np.random.Generator] = None,
    ) -> None:
        self.state_path = Path(state_path)
        self.config = config or LmsConfig()
        self.rng = rng
        self.state = load_state(self.state_path, self.config)

    @classmethod
    def from_config(cls, config: HubConfig, rng: Optional[np.random.Generator] = None) -> "AdaptiveEngine":
        return cls(config.lms_state_path, config.lms, rng=rng)

    def save(self) -> bool:
        return save_state(self.state_path, self.state)

    def reload_state(self) -> None:
        """Re-read the state file, e.g. after an operator restored a backup."""

        self.state = load_state(self.state_path, self.config)

    # -- Lesson seeding --------------------------------------------------------

    def seed_lesson(self, lesson_id: str, difficulty: float, skill: str) -> bool:
        """
        Register a lesson embedding and Rasch probe. Idempotent.

        An existing probe keeps its original difficulty since ability
        estimates are calibrated against it. Returns True if the lesson was new.
        """

        is_new = lesson_id not in self.state.embedding.lessons
        ensure_lesson_vector(self.state, lesson_id, rng=self.rng)
        if lesson_id not in self.state.rasch.probes:
            self.state.rasch.probes[lesson_id] = Probe(difficulty=logit_difficulty(difficulty), skill=skill)
        return is_new

    def seed_lessons(self, entries: Iterable[Mapping[str, Any]]) -> int:
        """Seed a batch of {lessonId, difficulty, skill} entries and save once."""

        seeded = 0
        for entry in entries:
            if self.seed_lesson(str(entry["lessonId"]), float(entry["difficulty"]), str(entry["skill"])):
                seeded += 1
        if seeded:
            self.save()
            logs.log(COMPONENT, f"Seeded {seeded} new lesson(s)")
        return seeded

    # -- Core API --------------------------------------------------------------

    def select_best_lesson(self, student_id: str, candidates: Sequence[str]) -> Optional[str]:
        """
        Thompson-sample among the caller's eligible candidates only.

        Unknown candidates get embeddings on the fly; lessons outside the
        candidate list are never scored.
        """

        if not candidates:
            return None
        known = (len(self.state.embedding.students), len(self.state.embedding.lessons))
        selected = select_lesson(self.state, student_id, candidates=candidates, rng=self.rng)
        if (len(self.state.embedding.students), len(self.state.embedding.lessons)) != known:
            self.save()
        return selected

    def record_observation(self, student_id: str, lesson_id: str, probe_results: Iterable[ProbeInput]) -> float:
        """Rasch step, then embedding and bandit updates from the same gain, then save."""

        gain = update_ability(self.state, student_id, _probe_results(probe_results))
        update_embedding(self.state, student_id, lesson_id, gain, rng=self.rng)
        update_bandit(self.state, student_id, lesson_id, gain, rng=self.rng)
        self.save()
        return gain

    def get_student_ability(self, student_id: str) -> Optional[Dict[str, float]]:
        student = self.state.rasch.students.get(student_id)
        if student is None:
            return None
        return {"ability": student.ability, "variance": student.variance}

    def export_bandit_summary(self) -> BanditSummary:
        ensure_bandit_initialized(self.state)
        return export_summary(self.state)

    def merge_remote_summary(self, remote: Union[BanditSummary, Mapping[str, Any]]) -> BanditSummary:
        """Merge a remote hub's summary into the local posterior and save."""

        if not isinstance(remote, BanditSummary):
            remote = BanditSummary.from_dict(remote)
        ensure_bandit_initialized(self.state)
        merged = merge_summaries(export_summary(self.state), remote)
        apply_summary(self.state, merged)
        self.save()
        logs.log(COMPONENT, f"Remote summary merged; total observations: {merged.sample_size}")
        return merged

    def get_status(self) -> Dict[str, Any]:
        return {
            "students": len(self.state.rasch.students),
            "lessons": len(self.state.embedding.lessons),
            "probes": len(self.state.rasch.probes),
            "observations": self.state.bandit.observation_count,
            "embeddingDim": self.state.embedding.dim,
            "featureDim": self.state.bandit.feature_dim,
            "statePath": str(self.state_path),
        }
