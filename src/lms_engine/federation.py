# ABOUTME: Exports the bandit posterior as a portable summary and merges hub summaries.
# ABOUTME: Combines precisions in per-observation units to avoid double counting.

from __future__ import annotations

import numpy as np

from src.common import linalg
from src.common.errors import DimensionMismatch
from src.common.schemas import BanditSummary

from .state import LMSState
from .thompson import posterior_mean


def export_summary(state: LMSState) -> BanditSummary:
    """
    Summarize the posterior as (mean, precision, sample size).

    precision is A itself, in raw accumulated units, not divided by the
    observation count. Callers must initialize the bandit first.
    """

    mean, _ = posterior_mean(state)
    return BanditSummary(
        mean=mean,
        precision=np.array(state.bandit.A, dtype=float, copy=True),
        sample_size=int(state.bandit.observation_count),
    )


def _copy(summary: BanditSummary) -> BanditSummary:
    return BanditSummary(
        mean=np.array(summary.mean, dtype=float, copy=True),
        precision=np.array(summary.precision, dtype=float, copy=True),
        sample_size=int(summary.sample_size),
    )


def merge_summaries(local: BanditSummary, remote: BanditSummary) -> BanditSummary:
    """
    Precision-weighted merge of two hub posteriors.

    Each precision is taken to per-observation units and rescaled by the
    combined count, which reduces to weighting local by n_remote/N and remote
    by n_local/N:

        P = (n_r/N)·P_local + (n_l/N)·P_remote
        μ = P⁻¹ ((n_r/N)·P_local·μ_local + (n_l/N)·P_remote·μ_remote)

    The result is in the same raw units as a single hub's A with N
    observations. A side with no observations contributes nothing and the
    other side is returned unchanged; two empty sides give a neutral summary.
    """

    local_dim = np.asarray(local.mean).shape[0]
    remote_dim = np.asarray(remote.mean).shape[0]
    if local_dim != remote_dim:
        raise DimensionMismatch(
            f"cannot merge bandit summaries with different feature dimensions: "
            f"local={local_dim}, remote={remote_dim}; both hubs must use the same embedding dim"
        )

    n_local = int(local.sample_size)
    n_remote = int(remote.sample_size)
    total = n_local + n_remote

    if total == 0:
        return BanditSummary(mean=np.zeros(local_dim), precision=linalg.identity(local_dim), sample_size=0)
    if n_remote == 0:
        return _copy(local)
    if n_local == 0:
        return _copy(remote)

    local_prec = linalg.scale_mat(local.precision, n_remote / total)
    remote_prec = linalg.scale_mat(remote.precision, n_local / total)
    merged_prec = linalg.add_mat(local_prec, remote_prec)

    merged_cov = linalg.invert_spd(merged_prec)
    weighted = linalg.add_vec(
        linalg.mat_vec(local_prec, local.mean),
        linalg.mat_vec(remote_prec, remote.mean),
    )
    return BanditSummary(
        mean=linalg.mat_vec(merged_cov, weighted),
        precision=merged_prec,
        sample_size=total,
    )


def apply_summary(state: LMSState, summary: BanditSummary) -> None:
    """Write a summary back as natural parameters: A = precision, b = A·mean."""

    precision = np.array(summary.precision, dtype=float, copy=True)
    state.bandit.A = precision
    state.bandit.b = linalg.mat_vec(precision, summary.mean)
    state.bandit.observation_count = int(summary.sample_size)
