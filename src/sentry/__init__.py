# ABOUTME: Groups the village Sentry: event log, contingency mining, cohorts, and graph output.
# ABOUTME: Re-exports the analysis pass and the incremental building blocks.

from .analysis import AnalysisReport, analysis_due, run_analysis
from .contingency import ContingencyTables, process_event
from .graph import compute_edges, edge_from_counts, yates_chi_square
from .mastery import build_mastery_summary, fold_mastery

__all__ = [
    "AnalysisReport",
    "analysis_due",
    "run_analysis",
    "ContingencyTables",
    "process_event",
    "compute_edges",
    "edge_from_counts",
    "yates_chi_square",
    "build_mastery_summary",
    "fold_mastery",
]
