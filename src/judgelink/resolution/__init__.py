"""Judge name resolution for judgelink.

Provides name normalization, the in-memory judge index, and the
strategy cascade that links a case to a judge.
"""

from .index import LastNameEntry, MatchIndex, MatchStrategy, build_index
from .normalizer import (
    NormalizedName,
    extract_judge_from_case_name,
    fold_name,
    normalize,
)
from .resolver import (
    NO_JUDGE_NAME,
    LinkDecision,
    UnmatchedReason,
    disambiguate,
    resolve,
    resolve_batch,
)

__all__ = [
    "LastNameEntry",
    "MatchIndex",
    "MatchStrategy",
    "build_index",
    "NormalizedName",
    "extract_judge_from_case_name",
    "fold_name",
    "normalize",
    "NO_JUDGE_NAME",
    "LinkDecision",
    "UnmatchedReason",
    "disambiguate",
    "resolve",
    "resolve_batch",
]
