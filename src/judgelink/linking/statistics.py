"""Judge case-count maintenance.

``judges.total_cases`` is a cache of the case relation. After a run it
is recomputed from the cases table for every judge that received new
links; it is never incremented in place.
"""

import asyncio
from typing import Iterable

from pydantic import BaseModel, Field

from ..logging import get_context_logger
from .store import LinkStore

logger = get_context_logger(__name__)


class RecountResult(BaseModel):
    """Outcome of a case-count recomputation."""

    requested: int = 0
    updated: dict[str, int] = Field(default_factory=dict)
    errors: dict[str, str] = Field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return not self.errors


class StatisticsAggregator:
    """Recomputes per-judge case counts.

    Args:
        store: Case/judge store
        io_timeout: Timeout for each store round trip
    """

    def __init__(self, store: LinkStore, io_timeout: float = 60.0):
        self.store = store
        self.io_timeout = io_timeout

    async def recompute(self, judge_ids: Iterable[str]) -> RecountResult:
        """Overwrite total_cases with the actual count for each judge.

        A judge whose count cannot be refreshed is logged and recorded;
        the rest are still processed.

        Args:
            judge_ids: Judges to refresh

        Returns:
            RecountResult with new counts and per-judge errors
        """
        ids = sorted(set(judge_ids))
        result = RecountResult(requested=len(ids))

        for judge_id in ids:
            try:
                count = await asyncio.wait_for(
                    self.store.count_cases_for_judge(judge_id), timeout=self.io_timeout
                )
                await asyncio.wait_for(
                    self.store.set_case_count(judge_id, count), timeout=self.io_timeout
                )
                result.updated[judge_id] = count
            except Exception as e:
                logger.error(f"Failed to recount cases for judge {judge_id}: {e!r}")
                result.errors[judge_id] = repr(e)

        logger.info(
            f"Recounted {len(result.updated)}/{len(ids)} judges",
            extra={"judges_updated": len(result.updated), "judges_failed": len(result.errors)},
        )
        return result

    async def recompute_all(self) -> RecountResult:
        """Recompute total_cases for every judge."""
        judge_ids = await asyncio.wait_for(
            self.store.list_judge_ids(), timeout=self.io_timeout
        )
        return await self.recompute(judge_ids)
