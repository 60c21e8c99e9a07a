"""Batch case-judge linking for judgelink.

Pages unlinked cases through the resolver, writes links in retried
batches, recomputes judge case counts and validates the result.
"""

from .batch import BatchLinker, LinkerConfig, LinkerState, RunSummary
from .errors import CaseSourceError, LinkingError, RetryExhaustedError, SetupError
from .integrity import CheckStatus, IntegrityCheck, IntegrityReport, IntegrityValidator
from .pipeline import analyze_current_state, load_index, run_linking_pipeline
from .report import (
    JudgeSuggestion,
    JudgeTally,
    LinkReport,
    StateSnapshot,
    UnmatchedPattern,
    build_report,
    render_report,
    suggest_judges,
)
from .retry import RetryConfig, backoff_delay, with_retry
from .statistics import RecountResult, StatisticsAggregator
from .store import LinkStore, SqlLinkStore

__all__ = [
    # Batch linker
    "BatchLinker",
    "LinkerConfig",
    "LinkerState",
    "RunSummary",
    # Errors
    "CaseSourceError",
    "LinkingError",
    "RetryExhaustedError",
    "SetupError",
    # Integrity
    "CheckStatus",
    "IntegrityCheck",
    "IntegrityReport",
    "IntegrityValidator",
    # Pipeline
    "analyze_current_state",
    "load_index",
    "run_linking_pipeline",
    # Report
    "JudgeSuggestion",
    "JudgeTally",
    "LinkReport",
    "StateSnapshot",
    "UnmatchedPattern",
    "build_report",
    "render_report",
    "suggest_judges",
    # Retry
    "RetryConfig",
    "backoff_delay",
    "with_retry",
    # Statistics
    "RecountResult",
    "StatisticsAggregator",
    # Store
    "LinkStore",
    "SqlLinkStore",
]
