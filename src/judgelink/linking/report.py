"""Final report for a linking run.

Besides the run counts, the report lists the most frequent unmatched
name patterns together with the closest judge by fuzzy name similarity.
Suggestions are advisory: they are never applied as links and exist
to help operators extend judge alias data.
"""

from datetime import datetime
from typing import Iterable

from pydantic import BaseModel, Field
from rapidfuzz import fuzz, process

from ..resolution import NO_JUDGE_NAME, MatchIndex, fold_name
from .batch import RunSummary
from .integrity import IntegrityReport
from .statistics import RecountResult


class StateSnapshot(BaseModel):
    """Case and judge totals at a point in time."""

    total_cases: int = 0
    linked_cases: int = 0
    unlinked_cases: int = 0
    total_judges: int = 0

    @property
    def link_rate(self) -> float:
        """Percentage of cases linked to a judge."""
        if not self.total_cases:
            return 0.0
        return self.linked_cases / self.total_cases * 100


class JudgeTally(BaseModel):
    """Newly linked cases for one judge."""

    judge_id: str
    name: str
    court_name: str | None = None
    cases: int


class JudgeSuggestion(BaseModel):
    """Closest judge to an unmatched name. Never applied automatically."""

    judge_id: str
    name: str
    score: float


class UnmatchedPattern(BaseModel):
    """A recurring name that could not be linked."""

    pattern: str
    count: int
    reason: str | None = None
    suggestion: JudgeSuggestion | None = None


class LinkReport(BaseModel):
    """Everything known about one pipeline run."""

    run_id: str
    generated_at: datetime
    dry_run: bool = False
    cancelled: bool = False
    before: StateSnapshot
    summary: RunSummary
    recount: RecountResult | None = None
    integrity: IntegrityReport | None = None
    index_stats: dict[str, dict[str, int]] = Field(default_factory=dict)
    top_judges: list[JudgeTally] = Field(default_factory=list)
    top_unmatched: list[UnmatchedPattern] = Field(default_factory=list)

    @property
    def link_rate(self) -> float | None:
        """Overall link rate after the run, from the integrity tally."""
        if self.integrity is None:
            return None
        tally = self.integrity.get("tally")
        if tally is None or "link_rate" not in tally.details:
            return None
        return tally.details["link_rate"]


def suggest_judges(
    patterns: Iterable[str],
    index: MatchIndex,
    min_score: float = 85,
) -> dict[str, JudgeSuggestion]:
    """Find the closest judge name for each unmatched pattern.

    Args:
        patterns: Raw unmatched names
        index: Match index (for the judge set)
        min_score: Minimum WRatio score (0-100) for a suggestion

    Returns:
        Dict mapping pattern to its best suggestion (patterns without
        one are omitted)
    """
    choices = {
        judge_id: folded
        for judge_id, folded in (
            (judge.id, fold_name(judge.name)) for judge in index.judges.values()
        )
        if folded
    }
    if not choices:
        return {}

    suggestions = {}
    for pattern in patterns:
        if pattern == NO_JUDGE_NAME:
            continue
        query = fold_name(pattern)
        if not query:
            continue

        match = process.extractOne(
            query,
            choices,
            scorer=fuzz.WRatio,
            score_cutoff=min_score,
        )
        if match is None:
            continue

        _, score, judge_id = match
        suggestions[pattern] = JudgeSuggestion(
            judge_id=judge_id,
            name=index.judge(judge_id).name,
            score=round(score, 1),
        )

    return suggestions


def build_report(
    summary: RunSummary,
    before: StateSnapshot,
    index: MatchIndex,
    recount: RecountResult | None = None,
    integrity: IntegrityReport | None = None,
    top_n: int = 10,
    suggestion_min_score: float = 85,
) -> LinkReport:
    """Assemble the final report from the run's parts."""
    top_judges = []
    for judge_id, count in summary.top_judges(top_n):
        judge = index.judge(judge_id)
        top_judges.append(
            JudgeTally(
                judge_id=judge_id,
                name=judge.name if judge else "",
                court_name=judge.court_name if judge else None,
                cases=count,
            )
        )

    unmatched = summary.top_unmatched(top_n)
    suggestions = suggest_judges(
        (pattern for pattern, _ in unmatched), index, suggestion_min_score
    )
    top_unmatched = [
        UnmatchedPattern(
            pattern=pattern,
            count=count,
            reason=summary.pattern_reasons.get(pattern),
            suggestion=suggestions.get(pattern),
        )
        for pattern, count in unmatched
    ]

    return LinkReport(
        run_id=summary.run_id,
        generated_at=datetime.utcnow(),
        dry_run=summary.dry_run,
        cancelled=summary.cancelled,
        before=before,
        summary=summary,
        recount=recount,
        integrity=integrity,
        index_stats=index.stats(),
        top_judges=top_judges,
        top_unmatched=top_unmatched,
    )


def render_report(report: LinkReport) -> list[str]:
    """Render the report as human-readable lines."""
    summary = report.summary
    lines = [
        "=" * 60,
        f"CASE-JUDGE LINKING REPORT{' (DRY RUN)' if report.dry_run else ''}",
        "=" * 60,
        f"Run ID:            {report.run_id}",
        f"Judges:            {report.before.total_judges}",
        f"Already linked:    {summary.already_linked}",
        f"Processed:         {summary.processed}",
        f"Newly linked:      {summary.newly_linked}",
        f"Unmatched:         {summary.unmatched}",
        f"Failed:            {summary.failed}",
        f"Elapsed:           {summary.elapsed_seconds:.1f}s "
        f"({summary.throughput:.0f} cases/s)",
    ]
    if summary.linked_elsewhere:
        lines.append(f"Linked elsewhere:  {summary.linked_elsewhere}")
    if report.cancelled:
        lines.append("Run was cancelled before all pages were processed")
    if report.link_rate is not None:
        lines.append(f"Link rate:         {report.link_rate:.1f}%")

    if summary.strategy_counts:
        lines.append("")
        lines.append("Matches by strategy:")
        for strategy, count in sorted(
            summary.strategy_counts.items(), key=lambda item: (-item[1], item[0])
        ):
            lines.append(f"  {strategy:<14} {count}")

    if summary.unmatched_reasons:
        lines.append("")
        lines.append("Unmatched by reason:")
        for reason, count in sorted(summary.unmatched_reasons.items()):
            lines.append(f"  {reason:<14} {count}")

    if report.top_judges:
        lines.append("")
        lines.append("Top judges by newly linked cases:")
        for i, tally in enumerate(report.top_judges, 1):
            court = f" ({tally.court_name})" if tally.court_name else ""
            lines.append(f"  {i}. {tally.name or tally.judge_id}{court}: {tally.cases}")

    if report.top_unmatched:
        lines.append("")
        lines.append("Top unmatched names:")
        for i, pattern in enumerate(report.top_unmatched, 1):
            line = f"  {i}. {pattern.pattern!r}: {pattern.count} [{pattern.reason}]"
            if pattern.suggestion:
                line += (
                    f" -> closest judge {pattern.suggestion.name!r} "
                    f"({pattern.suggestion.score:.0f})"
                )
            lines.append(line)

    if report.recount is not None and report.recount.errors:
        lines.append("")
        lines.append(f"Recount failed for {len(report.recount.errors)} judges")

    if report.integrity is not None:
        lines.append("")
        lines.append("Integrity checks:")
        for check in report.integrity.checks:
            lines.append(f"  {check.name:<20} {check.status.value:<8} {check.message}")

    lines.append("=" * 60)
    return lines
