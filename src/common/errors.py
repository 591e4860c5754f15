# ABOUTME: Declares the exception taxonomy shared by the engine and the Sentry miner.
# ABOUTME: Separates loud invariant violations from recoverable numerical failures.

from __future__ import annotations

from typing import Optional


class HubError(Exception):
    """Base class for every error raised by the hub core."""


class ConfigurationError(HubError):
    """Structural invariant violation. Never patched silently."""


class FeatureDimMismatch(ConfigurationError):
    """Bandit feature dimension disagrees with twice the embedding dimension."""


class ShapeMismatch(ConfigurationError):
    """A persisted matrix does not have the shape its owner declares."""


class DimensionMismatch(ConfigurationError):
    """Two federated posteriors live in different feature spaces."""


class NotPositiveDefinite(HubError):
    """Cholesky pivot fell to or below the positive-definite tolerance."""

    def __init__(self, pivot: float, index: int, message: Optional[str] = None) -> None:
        self.pivot = pivot
        self.index = index
        super().__init__(
            message
            or f"Cholesky decomposition failed: matrix is not positive definite (pivot={pivot:.3e} at i={index})"
        )


class StateSchemaError(HubError):
    """A persisted state document does not match the expected record layout."""
