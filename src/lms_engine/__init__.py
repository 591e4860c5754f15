# ABOUTME: Groups the adaptive selection engine: Rasch, embeddings, bandit, federation.
# ABOUTME: Re-exports the engine facade and state helpers used by schedulers and CLIs.

from .engine import AdaptiveEngine, load_state, save_state
from .federation import export_summary, merge_summaries
from .state import LMSState, build_default_state

__all__ = [
    "AdaptiveEngine",
    "load_state",
    "save_state",
    "export_summary",
    "merge_summaries",
    "LMSState",
    "build_default_state",
]
