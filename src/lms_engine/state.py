# ABOUTME: Defines the persisted LMSState aggregate and its versioned JSON layout.
# ABOUTME: Structural mismatches surface as StateSchemaError instead of silent defaults.

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

import numpy as np

from src.common import linalg
from src.common.config import LmsConfig
from src.common.errors import StateSchemaError

STATE_VERSION = 1

# Scale of the Gaussian noise used to break symmetry in fresh embeddings.
EMBEDDING_INIT_SCALE = 0.05


@dataclass
class LearnerAbility:
    ability: float = 0.0
    variance: float = 1.0


@dataclass(frozen=True)
class Probe:
    difficulty: float
    skill: str


@dataclass
class GlobalAnchor:
    mean_ability: float = 0.0
    std_ability: float = 1.0


@dataclass
class RaschState:
    students: Dict[str, LearnerAbility] = field(default_factory=dict)
    probes: Dict[str, Probe] = field(default_factory=dict)
    global_anchor: GlobalAnchor = field(default_factory=GlobalAnchor)


@dataclass
class EmbeddingState:
    dim: int = 16
    lr: float = 0.01
    reg: float = 0.001
    forgetting: float = 0.98
    students: Dict[str, np.ndarray] = field(default_factory=dict)
    lessons: Dict[str, np.ndarray] = field(default_factory=dict)


@dataclass
class BanditPosterior:
    """
    Bayesian linear-regression state in natural-parameter form.

    A is the precision matrix and b the information vector; the posterior
    over weights is N(A⁻¹b, A⁻¹). An empty A means "not yet initialized".
    """

    feature_dim: int
    forgetting: float = 0.98
    A: np.ndarray = field(default_factory=lambda: np.zeros((0, 0)))
    b: np.ndarray = field(default_factory=lambda: np.zeros(0))
    observation_count: int = 0


@dataclass
class LMSState:
    rasch: RaschState
    embedding: EmbeddingState
    bandit: BanditPosterior
    version: int = STATE_VERSION


def build_default_state(config: Optional[LmsConfig] = None) -> LMSState:
    cfg = config or LmsConfig()
    return LMSState(
        rasch=RaschState(),
        embedding=EmbeddingState(
            dim=cfg.embedding_dim,
            lr=cfg.learning_rate,
            reg=cfg.regularization,
            forgetting=cfg.forgetting,
        ),
        bandit=BanditPosterior(feature_dim=cfg.embedding_dim * 2, forgetting=cfg.bandit_forgetting),
    )


def get_or_insert_vector(
    vectors: Dict[str, np.ndarray], key: str, dim: int, rng: Optional[np.random.Generator] = None
) -> np.ndarray:
    """Return the vector stored under key, creating a small random one if absent."""

    vec = vectors.get(key)
    if vec is None:
        vec = EMBEDDING_INIT_SCALE * linalg.randn(dim, rng=rng)
        vectors[key] = vec
    return vec


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


def state_to_dict(state: LMSState) -> Dict[str, Any]:
    return {
        "version": state.version,
        "rasch": {
            "students": {
                sid: {"ability": s.ability, "variance": s.variance} for sid, s in state.rasch.students.items()
            },
            "probes": {
                pid: {"difficulty": p.difficulty, "skill": p.skill} for pid, p in state.rasch.probes.items()
            },
            "globalAnchor": {
                "meanAbility": state.rasch.global_anchor.mean_ability,
                "stdAbility": state.rasch.global_anchor.std_ability,
            },
        },
        "embedding": {
            "dim": state.embedding.dim,
            "lr": state.embedding.lr,
            "reg": state.embedding.reg,
            "forgetting": state.embedding.forgetting,
            "students": {sid: {"vector": v.tolist()} for sid, v in state.embedding.students.items()},
            "lessons": {lid: {"vector": v.tolist()} for lid, v in state.embedding.lessons.items()},
        },
        "bandit": {
            "A": np.asarray(state.bandit.A, dtype=float).tolist(),
            "b": np.asarray(state.bandit.b, dtype=float).tolist(),
            "featureDim": state.bandit.feature_dim,
            "forgetting": state.bandit.forgetting,
            "observationCount": state.bandit.observation_count,
        },
    }


def _require(raw: Mapping[str, Any], key: str, where: str) -> Any:
    if not isinstance(raw, Mapping):
        raise StateSchemaError(f"{where} must be an object")
    if key not in raw:
        raise StateSchemaError(f"{where} is missing '{key}'")
    return raw[key]


def _mapping(raw: Mapping[str, Any], key: str, where: str) -> Mapping[str, Any]:
    value = _require(raw, key, where)
    if not isinstance(value, Mapping):
        raise StateSchemaError(f"{where}.{key} must be an object")
    return value


def _number(value: Any, where: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise StateSchemaError(f"{where} must be numeric, got {type(value).__name__}")
    try:
        number = float(value)
    except OverflowError:
        raise StateSchemaError(f"{where} is out of range") from None
    if not math.isfinite(number):
        raise StateSchemaError(f"{where} must be finite, got {value!r}")
    return number


def _vectors(raw: Any, dim: int, where: str) -> Dict[str, np.ndarray]:
    if not isinstance(raw, Mapping):
        raise StateSchemaError(f"{where} must be an object")
    out: Dict[str, np.ndarray] = {}
    for key, entry in raw.items():
        try:
            vec = np.asarray(_require(entry, "vector", f"{where}.{key}"), dtype=float)
        except (TypeError, ValueError, OverflowError) as exc:
            raise StateSchemaError(f"{where}.{key} is not a numeric vector") from exc
        if vec.shape != (dim,):
            raise StateSchemaError(f"{where}.{key} has shape {vec.shape}, expected ({dim},)")
        out[key] = vec
    return out


def state_from_dict(raw: Mapping[str, Any]) -> LMSState:
    version = raw.get("version", STATE_VERSION) if isinstance(raw, Mapping) else None
    if version != STATE_VERSION:
        raise StateSchemaError(f"Unsupported state version {version!r}")

    rasch_raw = _mapping(raw, "rasch", "state")
    students = {
        sid: LearnerAbility(
            ability=_number(_require(s, "ability", f"rasch.students.{sid}"), "ability"),
            variance=_number(_require(s, "variance", f"rasch.students.{sid}"), "variance"),
        )
        for sid, s in _mapping(rasch_raw, "students", "rasch").items()
    }
    probes = {
        pid: Probe(
            difficulty=_number(_require(p, "difficulty", f"rasch.probes.{pid}"), "difficulty"),
            skill=str(_require(p, "skill", f"rasch.probes.{pid}")),
        )
        for pid, p in _mapping(rasch_raw, "probes", "rasch").items()
    }
    anchor_raw = rasch_raw.get("globalAnchor") or {}
    if not isinstance(anchor_raw, Mapping):
        raise StateSchemaError("rasch.globalAnchor must be an object")
    anchor = GlobalAnchor(
        mean_ability=_number(anchor_raw.get("meanAbility", 0.0), "meanAbility"),
        std_ability=_number(anchor_raw.get("stdAbility", 1.0), "stdAbility"),
    )

    emb_raw = _mapping(raw, "embedding", "state")
    dim = int(_number(_require(emb_raw, "dim", "embedding"), "embedding.dim"))
    embedding = EmbeddingState(
        dim=dim,
        lr=_number(_require(emb_raw, "lr", "embedding"), "embedding.lr"),
        reg=_number(_require(emb_raw, "reg", "embedding"), "embedding.reg"),
        forgetting=_number(_require(emb_raw, "forgetting", "embedding"), "embedding.forgetting"),
        students=_vectors(_require(emb_raw, "students", "embedding"), dim, "embedding.students"),
        lessons=_vectors(_require(emb_raw, "lessons", "embedding"), dim, "embedding.lessons"),
    )

    bandit_raw = _mapping(raw, "bandit", "state")
    A_raw = _require(bandit_raw, "A", "bandit")
    b_raw = _require(bandit_raw, "b", "bandit")
    # Shape against featureDim is checked by the bandit, not here.
    try:
        A = np.asarray(A_raw, dtype=float)
        b = np.asarray(b_raw, dtype=float)
    except (TypeError, ValueError, OverflowError) as exc:
        raise StateSchemaError(f"bandit matrices are malformed: {exc}") from exc
    if A.size == 0:
        A = np.zeros((0, 0))
    elif A.ndim != 2:
        raise StateSchemaError(f"bandit.A must be a matrix, got {A.ndim} dimension(s)")
    bandit = BanditPosterior(
        feature_dim=int(_number(_require(bandit_raw, "featureDim", "bandit"), "bandit.featureDim")),
        forgetting=_number(_require(bandit_raw, "forgetting", "bandit"), "bandit.forgetting"),
        A=A,
        b=b.reshape(-1),
        observation_count=int(_number(bandit_raw.get("observationCount", 0), "bandit.observationCount")),
    )

    return LMSState(
        rasch=RaschState(students=students, probes=probes, global_anchor=anchor),
        embedding=embedding,
        bandit=bandit,
        version=version,
    )
