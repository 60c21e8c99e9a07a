"""Case-to-judge resolver.

Resolution cascade (first success wins):
1. External ID          -> case's external-system ID
2. Exact                -> trimmed, lowercased raw name
3. Normalized           -> honorific/punctuation-folded name
4. First + last         -> "maria garcia"
5. Initial + last       -> "m. garcia"
6. Last name            -> surname, disambiguated by court/jurisdiction
7. Alias                -> folded name against known aliases
8. Derived name         -> when the case has no judge name, one pulled
                           from the case name, run through steps 2-7

Any lookup returning several judges is narrowed by court, then
jurisdiction. If that does not leave exactly one judge the strategy
abstains and the cascade moves on; ties are never broken by picking
a candidate.

A surname-only name skips steps 2-5 so that it is always subject to
the last-name collision check.
"""

import logging
from enum import Enum
from typing import Sequence

from pydantic import BaseModel, ConfigDict

from ..logging import log_resolution_event
from ..models import CaseRecord, JudgeRecord
from .index import MatchIndex, MatchStrategy
from .normalizer import NormalizedName, extract_judge_from_case_name, normalize

NO_JUDGE_NAME = "no_judge_name"

_resolution_logger = logging.getLogger("judgelink.resolution")


class UnmatchedReason(str, Enum):
    """Why a case could not be linked."""

    NO_JUDGE_NAME = "no_judge_name"
    AMBIGUOUS = "ambiguous"
    NO_MATCH = "no_match"


class LinkDecision(BaseModel):
    """Outcome of resolving one case."""

    case_id: str
    judge_id: str | None = None
    strategy: MatchStrategy | None = None
    name_used: str | None = None
    derived_from_case_name: bool = False
    unmatched_reason: UnmatchedReason | None = None
    bucket: str | None = None
    ambiguous_strategies: tuple[MatchStrategy, ...] = ()

    model_config = ConfigDict(frozen=True)

    @property
    def is_match(self) -> bool:
        """Check if a judge was chosen."""
        return self.judge_id is not None


def _same(a: str | None, b: str | None) -> bool:
    return bool(a) and bool(b) and a.strip().casefold() == b.strip().casefold()


def disambiguate(
    candidate_ids: Sequence[str],
    case: CaseRecord,
    index: MatchIndex,
) -> str | None:
    """Narrow tied candidates to one judge using the case's court and jurisdiction.

    Args:
        candidate_ids: Judges sharing the looked-up key
        case: Case being resolved
        index: Match index (for judge attributes)

    Returns:
        The single remaining judge ID, or None if still ambiguous
    """
    candidates: list[JudgeRecord] = [
        judge for judge in (index.judge(judge_id) for judge_id in candidate_ids) if judge
    ]

    if case.court_id:
        same_court = [j for j in candidates if _same(j.court_id, case.court_id)]
        if len(same_court) == 1:
            return same_court[0].id
        if same_court:
            candidates = same_court

    if case.jurisdiction:
        same_jurisdiction = [
            j for j in candidates if _same(j.jurisdiction, case.jurisdiction)
        ]
        if len(same_jurisdiction) == 1:
            return same_jurisdiction[0].id

    return None


def _lookup(
    index: MatchIndex,
    strategy: MatchStrategy,
    key: str,
    case: CaseRecord,
    ambiguous: list[MatchStrategy],
) -> str | None:
    candidate_ids = index.candidates(strategy, key)
    if not candidate_ids:
        return None
    if len(candidate_ids) == 1:
        return candidate_ids[0]

    chosen = disambiguate(candidate_ids, case, index)
    if chosen is None:
        ambiguous.append(strategy)
    return chosen


def _name_steps(name: NormalizedName) -> list[tuple[MatchStrategy, str]]:
    if name.is_empty:
        return []

    steps = []
    if not name.is_single_token:
        steps += [
            (MatchStrategy.EXACT, name.exact),
            (MatchStrategy.NORMALIZED, name.folded),
            (MatchStrategy.FIRST_LAST, name.first_last),
            (MatchStrategy.INITIAL_LAST, name.initial_last),
        ]
    steps += [
        (MatchStrategy.LAST_NAME, name.last_name),
        (MatchStrategy.ALIAS, name.folded),
    ]
    return steps


def resolve(case: CaseRecord, index: MatchIndex) -> LinkDecision:
    """Resolve a case to at most one judge.

    Args:
        case: Unlinked case record
        index: Match index built for this run

    Returns:
        LinkDecision carrying the judge and winning strategy, or the
        unmatched reason and diagnostic bucket
    """
    ambiguous: list[MatchStrategy] = []

    if case.external_id and case.external_id.strip():
        judge_id = _lookup(
            index, MatchStrategy.EXTERNAL_ID, case.external_id.strip(), case, ambiguous
        )
        if judge_id:
            return LinkDecision(
                case_id=case.id,
                judge_id=judge_id,
                strategy=MatchStrategy.EXTERNAL_ID,
                name_used=case.judge_name,
            )

    raw_name = (case.judge_name or "").strip()
    bucket = raw_name or NO_JUDGE_NAME
    derived = False

    if not raw_name:
        extracted = extract_judge_from_case_name(case.case_name)
        if not extracted:
            return LinkDecision(
                case_id=case.id,
                unmatched_reason=(
                    UnmatchedReason.AMBIGUOUS if ambiguous else UnmatchedReason.NO_JUDGE_NAME
                ),
                bucket=NO_JUDGE_NAME,
                ambiguous_strategies=tuple(ambiguous),
            )
        raw_name = extracted
        derived = True

    for strategy, key in _name_steps(normalize(raw_name)):
        if not key:
            continue
        judge_id = _lookup(index, strategy, key, case, ambiguous)
        if judge_id:
            return LinkDecision(
                case_id=case.id,
                judge_id=judge_id,
                strategy=strategy,
                name_used=raw_name,
                derived_from_case_name=derived,
                ambiguous_strategies=tuple(ambiguous),
            )

    return LinkDecision(
        case_id=case.id,
        name_used=raw_name,
        derived_from_case_name=derived,
        unmatched_reason=UnmatchedReason.AMBIGUOUS if ambiguous else UnmatchedReason.NO_MATCH,
        bucket=bucket,
        ambiguous_strategies=tuple(ambiguous),
    )


def resolve_batch(cases: Sequence[CaseRecord], index: MatchIndex) -> list[LinkDecision]:
    """Resolve a sequence of cases, preserving order."""
    decisions = [resolve(case, index) for case in cases]

    if _resolution_logger.isEnabledFor(logging.DEBUG):
        for decision in decisions:
            log_resolution_event(
                decision.strategy.value if decision.strategy else None,
                decision.case_id,
                decision.judge_id,
                decision.name_used,
            )

    return decisions
