"""End-to-end case-judge linking run.

Phases:
1. Analyze current state (case and judge totals)
2. Load judges and build the match index
3. Link unlinked cases in pages and batches
4. Recompute case counts for judges that received links
5. Validate integrity
6. Report
"""

import asyncio
from typing import Any, Awaitable, Callable

from ..config import Settings, get_settings
from ..logging import get_context_logger
from ..resolution import MatchIndex, build_index
from .batch import BatchLinker, LinkerConfig
from .errors import CaseSourceError, SetupError
from .integrity import IntegrityValidator
from .report import LinkReport, StateSnapshot, build_report
from .statistics import StatisticsAggregator
from .store import LinkStore, SqlLinkStore

logger = get_context_logger(__name__)


async def analyze_current_state(store: LinkStore, io_timeout: float = 60.0) -> StateSnapshot:
    """Count cases and judges before linking.

    Raises:
        SetupError: If the store cannot be read
    """
    try:
        linked = await asyncio.wait_for(store.count_cases(linked=True), timeout=io_timeout)
        unlinked = await asyncio.wait_for(store.count_cases(linked=False), timeout=io_timeout)
        judges = await asyncio.wait_for(store.count_judges(), timeout=io_timeout)
    except Exception as e:
        raise SetupError(f"Cannot read current linking state: {e!r}") from e

    snapshot = StateSnapshot(
        total_cases=linked + unlinked,
        linked_cases=linked,
        unlinked_cases=unlinked,
        total_judges=judges,
    )
    logger.info(
        f"Current state: {snapshot.total_cases} cases, {linked} linked "
        f"({snapshot.link_rate:.1f}%), {unlinked} unlinked, {judges} judges",
        extra={"state": snapshot.model_dump()},
    )
    return snapshot


async def load_index(store: LinkStore, io_timeout: float = 60.0) -> MatchIndex:
    """Load every judge and build the match index.

    Raises:
        SetupError: If the judge set cannot be read
    """
    try:
        judges = await asyncio.wait_for(store.fetch_judges(), timeout=io_timeout)
    except Exception as e:
        raise SetupError(f"Cannot load judges: {e!r}") from e

    if not judges:
        logger.warning("Judge table is empty; only unmatched outcomes are possible")

    return await asyncio.to_thread(build_index, judges)


async def run_linking_pipeline(
    store: LinkStore | None = None,
    settings: Settings | None = None,
    *,
    cancel_event: asyncio.Event | None = None,
    dry_run: bool = False,
    overrides: dict[str, Any] | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> LinkReport:
    """Run a full linking pass.

    Args:
        store: Case/judge store (defaults to PostgreSQL)
        settings: Settings (defaults to environment)
        cancel_event: Stops the run before the next page fetch when set
        dry_run: Resolve and report without writing anything
        overrides: LinkerConfig field overrides (e.g. from CLI flags)
        sleep: Awaitable sleep used for page delays and retry backoff

    Returns:
        LinkReport for the run

    Raises:
        SetupError: If judges or case totals cannot be read
        CaseSourceError: If a case page cannot be fetched mid-run
    """
    settings = settings or get_settings()
    store = store or SqlLinkStore()
    config = LinkerConfig.from_settings(settings, dry_run=dry_run, **(overrides or {}))

    logger.info(
        f"Linking pipeline starting{' (dry run)' if dry_run else ''}",
        extra={"config": config.model_dump()},
    )

    # Phase 1
    before = await analyze_current_state(store, config.io_timeout)

    # Phase 2
    index = await load_index(store, config.io_timeout)

    # Phase 3
    aggregator = StatisticsAggregator(store, io_timeout=config.io_timeout)
    linker = BatchLinker(store, index, config, sleep=sleep)
    try:
        summary = await linker.run(cancel_event)
    except CaseSourceError as e:
        partial = e.summary
        if partial is not None and partial.judge_tally and not dry_run:
            logger.error(
                f"Case source failed after {partial.newly_linked} links; "
                f"recounting {len(partial.judge_tally)} judges before aborting"
            )
            await aggregator.recompute(partial.touched_judges)
        raise

    # Phase 4
    recount = None
    if not dry_run:
        recount = await aggregator.recompute(summary.touched_judges)

    # Phase 5
    validator = IntegrityValidator(
        store,
        sample_size=settings.integrity_sample_size,
        skew_multiple=settings.integrity_skew_multiple,
        io_timeout=config.io_timeout,
        top_n=settings.report_top_n,
    )
    integrity = await validator.validate()

    # Phase 6
    report = build_report(
        summary,
        before,
        index,
        recount=recount,
        integrity=integrity,
        top_n=settings.report_top_n,
        suggestion_min_score=settings.report_suggestion_min_score,
    )
    logger.info(
        "Linking pipeline complete",
        extra={
            "run_id": report.run_id,
            "newly_linked": summary.newly_linked,
            "unmatched": summary.unmatched,
            "failed": summary.failed,
            "link_rate": report.link_rate,
            "integrity_passed": integrity.passed,
        },
    )
    return report
