"""Post-run integrity checks on the case-judge relation.

Checks are read-only and independent: each one captures its own
failure so that a broken check never hides the others, and none of
them fails the run.

- dangling_references: sampled links point at judges that exist
- distribution: cases per judge, flagged when one judge is far above average
- tally: linked / unlinked totals and link rate
- count_drift: sampled judges' stored total_cases match the case relation
"""

import asyncio
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable

from pydantic import BaseModel, Field

from ..logging import get_context_logger, log_integrity_check
from .store import LinkStore

logger = get_context_logger(__name__)


class CheckStatus(str, Enum):
    """Outcome of a single integrity check."""

    PASSED = "passed"
    WARNING = "warning"  # Data problem found
    ERROR = "error"  # Check could not run


class IntegrityCheck(BaseModel):
    """Result of one integrity check."""

    name: str
    status: CheckStatus
    message: str = ""
    details: dict[str, Any] = Field(default_factory=dict)
    error: str | None = None

    @property
    def passed(self) -> bool:
        return self.status == CheckStatus.PASSED


class IntegrityReport(BaseModel):
    """All integrity check results from one validation pass."""

    checked_at: datetime
    checks: list[IntegrityCheck] = Field(default_factory=list)

    @property
    def passed(self) -> bool:
        return all(check.passed for check in self.checks)

    def get(self, name: str) -> IntegrityCheck | None:
        for check in self.checks:
            if check.name == name:
                return check
        return None


class IntegrityValidator:
    """Runs read-only integrity checks against the store.

    Args:
        store: Case/judge store
        sample_size: Rows sampled by the sampling checks
        skew_multiple: Distribution is flagged when max > skew_multiple * avg
        io_timeout: Timeout for each store round trip
        top_n: Heaviest judges listed in the distribution details
    """

    def __init__(
        self,
        store: LinkStore,
        sample_size: int = 100,
        skew_multiple: float = 10.0,
        io_timeout: float = 60.0,
        top_n: int = 10,
    ):
        self.store = store
        self.sample_size = sample_size
        self.skew_multiple = skew_multiple
        self.io_timeout = io_timeout
        self.top_n = top_n

    async def validate(self) -> IntegrityReport:
        """Run every check and collect the results."""
        report = IntegrityReport(checked_at=datetime.utcnow())
        checks: list[tuple[str, Callable[[], Awaitable[IntegrityCheck]]]] = [
            ("dangling_references", self.check_dangling_references),
            ("distribution", self.check_distribution),
            ("tally", self.check_tally),
            ("count_drift", self.check_count_drift),
        ]

        for name, check in checks:
            try:
                result = await check()
            except Exception as e:
                logger.error(f"Integrity check {name} could not run: {e!r}")
                result = IntegrityCheck(
                    name=name,
                    status=CheckStatus.ERROR,
                    message="check could not run",
                    error=repr(e),
                )
            log_integrity_check(result.name, result.passed, result.details)
            report.checks.append(result)

        return report

    async def _io(self, awaitable: Awaitable):
        return await asyncio.wait_for(awaitable, timeout=self.io_timeout)

    async def check_dangling_references(self) -> IntegrityCheck:
        """Verify sampled linked cases reference existing judges."""
        sample = await self._io(self.store.sample_linked_cases(self.sample_size))
        existing = await self._io(
            self.store.existing_judge_ids(judge_id for _, judge_id in sample)
        )
        dangling = sorted(case_id for case_id, judge_id in sample if judge_id not in existing)

        return IntegrityCheck(
            name="dangling_references",
            status=CheckStatus.WARNING if dangling else CheckStatus.PASSED,
            message=(
                f"{len(dangling)} of {len(sample)} sampled cases reference missing judges"
                if dangling
                else f"All {len(sample)} sampled links are valid"
            ),
            details={
                "sampled": len(sample),
                "dangling": len(dangling),
                "dangling_case_ids": dangling[: self.top_n],
            },
        )

    async def check_distribution(self) -> IntegrityCheck:
        """Summarize cases per judge and flag heavy skew."""
        distribution = await self._io(self.store.case_distribution())
        if not distribution:
            return IntegrityCheck(
                name="distribution",
                status=CheckStatus.PASSED,
                message="No linked cases",
                details={"judges_with_cases": 0},
            )

        counts = list(distribution.values())
        average = sum(counts) / len(counts)
        maximum = max(counts)
        skewed = maximum > self.skew_multiple * average
        heaviest = sorted(distribution.items(), key=lambda item: (-item[1], item[0]))

        return IntegrityCheck(
            name="distribution",
            status=CheckStatus.WARNING if skewed else CheckStatus.PASSED,
            message=(
                f"Max {maximum} cases for one judge exceeds {self.skew_multiple:g}x "
                f"the average of {average:.1f}"
                if skewed
                else f"{len(counts)} judges with cases, average {average:.1f}"
            ),
            details={
                "judges_with_cases": len(counts),
                "min_cases": min(counts),
                "avg_cases": round(average, 2),
                "max_cases": maximum,
                "skewed": skewed,
                "heaviest": [
                    {"judge_id": judge_id, "cases": count}
                    for judge_id, count in heaviest[: self.top_n]
                ],
            },
        )

    async def check_tally(self) -> IntegrityCheck:
        """Report linked and unlinked totals."""
        linked = await self._io(self.store.count_cases(linked=True))
        unlinked = await self._io(self.store.count_cases(linked=False))
        total = linked + unlinked
        link_rate = linked / total * 100 if total else 0.0

        return IntegrityCheck(
            name="tally",
            status=CheckStatus.PASSED,
            message=f"{linked}/{total} cases linked ({link_rate:.1f}%)",
            details={
                "total_cases": total,
                "linked": linked,
                "unlinked": unlinked,
                "link_rate": round(link_rate, 2),
            },
        )

    async def check_count_drift(self) -> IntegrityCheck:
        """Compare sampled judges' stored case counts with the case relation."""
        sample = await self._io(self.store.sample_judge_counts(self.sample_size))
        drifted = [
            {"judge_id": judge_id, "stored": stored, "actual": actual}
            for judge_id, stored, actual in sample
            if stored != actual
        ]
        negative = sorted(judge_id for judge_id, stored, _ in sample if stored < 0)

        problems = bool(drifted or negative)
        return IntegrityCheck(
            name="count_drift",
            status=CheckStatus.WARNING if problems else CheckStatus.PASSED,
            message=(
                f"{len(drifted)} of {len(sample)} sampled judges have stale case counts"
                if problems
                else f"All {len(sample)} sampled judge counts are current"
            ),
            details={
                "sampled": len(sample),
                "drifted": len(drifted),
                "negative": len(negative),
                "examples": sorted(drifted, key=lambda d: d["judge_id"])[: self.top_n],
            },
        )
