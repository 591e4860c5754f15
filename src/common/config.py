# ABOUTME: Loads hub configuration from YAML into typed dataclasses.
# ABOUTME: Applies HUB_* environment overrides and validates numeric ranges.

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional

import yaml

from .errors import ConfigurationError


@dataclass(frozen=True)
class LmsConfig:
    """Adaptive-engine hyperparameters."""

    embedding_dim: int = 16
    learning_rate: float = 0.01
    regularization: float = 0.001
    forgetting: float = 0.98
    bandit_forgetting: float = 0.98
    state_file: str = "lms_state.json"


@dataclass(frozen=True)
class SentryConfig:
    """Skill-collapse miner thresholds and file names."""

    mastery_threshold: float = 0.6
    pass_threshold: float = 0.6
    min_pair_samples: int = 20
    min_cohort_size: int = 20
    jaccard_threshold: float = 0.5
    analyse_after: int = 20
    events_dir: str = "events"
    graph_file: str = "graph_weights.json"
    mastery_file: str = "mastery_summary.json"
    contingency_file: str = "contingency_tables.json"
    cursor_file: str = "event_cursors.json"
    log_file: str = "sentry.log"


@dataclass(frozen=True)
class HubConfig:
    data_dir: Path = Path("data")
    hub_id: str = "hub-local"
    graph_level: str = "village"
    lms: LmsConfig = field(default_factory=LmsConfig)
    sentry: SentryConfig = field(default_factory=SentryConfig)

    @property
    def lms_state_path(self) -> Path:
        return self.data_dir / self.lms.state_file

    @property
    def events_dir(self) -> Path:
        return self.data_dir / self.sentry.events_dir

    def sentry_path(self, name: str) -> Path:
        return self.data_dir / getattr(self.sentry, name)


def _section(cls, raw: Optional[Mapping[str, Any]], name: str):
    raw = dict(raw or {})
    known = {f.name for f in fields(cls)}
    unknown = set(raw) - known
    if unknown:
        raise ConfigurationError(f"Unknown keys in '{name}' config section: {sorted(unknown)}")
    return cls(**raw)


def _coerce(name: str, value: str, cast: Callable[[str], Any]) -> Any:
    try:
        return cast(value)
    except ValueError as exc:
        raise ConfigurationError(f"Environment override {name}={value!r} is not a valid {cast.__name__}") from exc


def _apply_env(cfg: HubConfig, env: Mapping[str, str]) -> HubConfig:
    top: Dict[str, Any] = {}
    lms: Dict[str, Any] = {}
    sentry: Dict[str, Any] = {}

    if env.get("HUB_DATA_DIR"):
        top["data_dir"] = Path(env["HUB_DATA_DIR"])
    if env.get("HUB_ID"):
        top["hub_id"] = env["HUB_ID"]
    if env.get("HUB_EMBEDDING_DIM"):
        lms["embedding_dim"] = _coerce("HUB_EMBEDDING_DIM", env["HUB_EMBEDDING_DIM"], int)
    if env.get("HUB_FORGETTING"):
        gamma = _coerce("HUB_FORGETTING", env["HUB_FORGETTING"], float)
        lms["forgetting"] = gamma
        lms["bandit_forgetting"] = gamma
    if env.get("HUB_EMBEDDING_LR"):
        lms["learning_rate"] = _coerce("HUB_EMBEDDING_LR", env["HUB_EMBEDDING_LR"], float)
    if env.get("HUB_EMBEDDING_REG"):
        lms["regularization"] = _coerce("HUB_EMBEDDING_REG", env["HUB_EMBEDDING_REG"], float)
    if env.get("HUB_ANALYSE_AFTER"):
        sentry["analyse_after"] = _coerce("HUB_ANALYSE_AFTER", env["HUB_ANALYSE_AFTER"], int)

    return replace(
        cfg,
        lms=replace(cfg.lms, **lms),
        sentry=replace(cfg.sentry, **sentry),
        **top,
    )


def validate_config(cfg: HubConfig) -> HubConfig:
    if cfg.lms.embedding_dim < 1:
        raise ConfigurationError(f"embedding_dim must be >= 1, got {cfg.lms.embedding_dim}")
    for name in ("forgetting", "bandit_forgetting"):
        gamma = getattr(cfg.lms, name)
        if not 0.0 < gamma <= 1.0:
            raise ConfigurationError(f"{name} must lie in (0, 1], got {gamma}")
    for name in ("mastery_threshold", "pass_threshold", "jaccard_threshold"):
        value = getattr(cfg.sentry, name)
        if not 0.0 <= value <= 1.0:
            raise ConfigurationError(f"{name} must lie in [0, 1], got {value}")
    if cfg.sentry.analyse_after < 1:
        raise ConfigurationError("analyse_after must be a positive event count")
    return cfg


def load_config(path: Optional[Path] = None, env: Optional[Mapping[str, str]] = None) -> HubConfig:
    """Programmatic entrypoint shared by the engine, the Sentry, and the CLIs."""

    raw: Dict[str, Any] = {}
    if path is not None:
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
        if not isinstance(raw, dict):
            raise ConfigurationError(f"Config file {path} must contain a mapping")

    top = {k: v for k, v in raw.items() if k not in ("lms", "sentry")}
    unknown = set(top) - {"data_dir", "hub_id", "graph_level"}
    if unknown:
        raise ConfigurationError(f"Unknown top-level config keys: {sorted(unknown)}")
    if "data_dir" in top:
        top["data_dir"] = Path(top["data_dir"])

    cfg = HubConfig(
        lms=_section(LmsConfig, raw.get("lms"), "lms"),
        sentry=_section(SentryConfig, raw.get("sentry"), "sentry"),
        **top,
    )
    cfg = _apply_env(cfg, os.environ if env is None else env)
    return validate_config(cfg)
