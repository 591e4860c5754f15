# ABOUTME: Makes the shared common package importable across the engine and the Sentry.
# ABOUTME: Re-exports record types, configuration, and the error taxonomy.

from .config import HubConfig, LmsConfig, SentryConfig, load_config
from .errors import (
    ConfigurationError,
    DimensionMismatch,
    FeatureDimMismatch,
    HubError,
    NotPositiveDefinite,
    ShapeMismatch,
    StateSchemaError,
)
from .schemas import BanditSummary, CompletionEvent, ContingencyCell, ProbeResult, SkillGraphEdge

__all__ = [
    "HubConfig",
    "LmsConfig",
    "SentryConfig",
    "load_config",
    "ConfigurationError",
    "DimensionMismatch",
    "FeatureDimMismatch",
    "HubError",
    "NotPositiveDefinite",
    "ShapeMismatch",
    "StateSchemaError",
    "BanditSummary",
    "CompletionEvent",
    "ContingencyCell",
    "ProbeResult",
    "SkillGraphEdge",
]
