# ABOUTME: Tests YAML hub configuration loading and HUB_* environment overrides.
# ABOUTME: Ensures unknown keys and out-of-range values fail loudly.

from pathlib import Path

import pytest
import yaml

from src.common.config import HubConfig, LmsConfig, load_config
from src.common.errors import ConfigurationError

SHIPPED_CONFIG = Path(__file__).resolve().parents[1] / "configs" / "hub.yaml"


def _write(tmp_path, payload):
    path = tmp_path / "hub.yaml"
    path.write_text(yaml.safe_dump(payload))
    return path


def test_defaults_without_file():
    cfg = load_config(env={})
    assert cfg == HubConfig()
    assert cfg.lms_state_path == Path("data") / "lms_state.json"
    assert cfg.events_dir == Path("data") / "events"


def test_shipped_config_matches_defaults():
    assert load_config(SHIPPED_CONFIG, env={}) == HubConfig()


def test_yaml_sections_are_loaded(tmp_path):
    path = _write(
        tmp_path,
        {"data_dir": str(tmp_path / "hub"), "hub_id": "hub-7", "lms": {"embedding_dim": 8}, "sentry": {"min_cohort_size": 5}},
    )
    cfg = load_config(path, env={})
    assert cfg.data_dir == tmp_path / "hub"
    assert cfg.hub_id == "hub-7"
    assert cfg.lms == LmsConfig(embedding_dim=8)
    assert cfg.sentry.min_cohort_size == 5
    assert cfg.sentry_path("graph_file") == tmp_path / "hub" / "graph_weights.json"


@pytest.mark.parametrize(
    "payload",
    [{"unexpected": 1}, {"lms": {"embedding_size": 8}}, {"sentry": {"threshold": 0.5}}],
)
def test_unknown_keys_are_rejected(tmp_path, payload):
    with pytest.raises(ConfigurationError):
        load_config(_write(tmp_path, payload), env={})


def test_environment_overrides_file_values(tmp_path):
    path = _write(tmp_path, {"lms": {"embedding_dim": 8}})
    cfg = load_config(
        path,
        env={
            "HUB_DATA_DIR": str(tmp_path),
            "HUB_ID": "hub-env",
            "HUB_EMBEDDING_DIM": "32",
            "HUB_FORGETTING": "1.0",
            "HUB_ANALYSE_AFTER": "5",
        },
    )
    assert cfg.data_dir == tmp_path
    assert cfg.hub_id == "hub-env"
    assert cfg.lms.embedding_dim == 32
    assert cfg.lms.forgetting == 1.0
    assert cfg.lms.bandit_forgetting == 1.0
    assert cfg.sentry.analyse_after == 5


def test_malformed_environment_value_is_rejected():
    with pytest.raises(ConfigurationError):
        load_config(env={"HUB_EMBEDDING_DIM": "sixteen"})


@pytest.mark.parametrize(
    "env",
    [{"HUB_FORGETTING": "0"}, {"HUB_FORGETTING": "1.5"}, {"HUB_EMBEDDING_DIM": "0"}, {"HUB_ANALYSE_AFTER": "-1"}],
)
def test_out_of_range_values_are_rejected(env):
    with pytest.raises(ConfigurationError):
        load_config(env=env)


def test_non_mapping_file_is_rejected(tmp_path):
    path = tmp_path / "hub.yaml"
    path.write_text("- just\n- a list\n")
    with pytest.raises(ConfigurationError):
        load_config(path, env={})
