"""Batch linker: pages unlinked cases through the resolver and writes links.

Run states:

    FETCHING -> RESOLVING -> FLUSHING -> FETCHING ... -> DONE

- FETCHING pulls the next cursor page of cases with a null judge_id.
  Cancellation is honored here and only here. A failed fetch aborts
  the run.
- RESOLVING runs the page through the resolver on a small worker pool.
  The index is read-only, so workers share it freely; their decisions
  are handed back to this coroutine, which owns the update buffer.
- FLUSHING cuts full batches off the buffer. A batch is written in the
  background so the next page can be fetched meanwhile, but flushes
  never overlap and a batch's counts are applied only once its write
  has succeeded. A batch that exhausts its retries is counted as
  failed and the run continues.
- DONE is reached when a page comes back empty (or cancellation was
  requested) and the last partial batch has been written.
"""

import asyncio
import math
import time
from collections import Counter
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable, Sequence
from uuid import uuid4

from pydantic import BaseModel, Field

from ..config import Settings
from ..logging import (
    get_context_logger,
    log_flush_batch,
    log_linking_complete,
    log_linking_progress,
    log_linking_start,
)
from ..models import CaseRecord, CaseUpdate
from ..resolution import LinkDecision, MatchIndex, resolve_batch
from .errors import CaseSourceError, RetryExhaustedError
from .retry import RetryConfig, with_retry
from .store import LinkStore


class LinkerState(str, Enum):
    """Batch linker run states."""

    FETCHING = "fetching"
    RESOLVING = "resolving"
    FLUSHING = "flushing"
    DONE = "done"


class LinkerConfig(BaseModel):
    """Configuration for a linking run."""

    page_size: int = Field(default=1000, ge=1)
    update_batch_size: int = Field(default=500, ge=1)
    max_retries: int = Field(default=3, ge=0)
    retry_base_delay: float = 2.0
    retry_max_delay: float = 60.0
    io_timeout: float = 60.0
    resolver_workers: int = Field(default=4, ge=1)
    page_delay: float = 0.1
    progress_interval: float = 5.0
    dry_run: bool = False

    @classmethod
    def from_settings(cls, settings: Settings, **overrides) -> "LinkerConfig":
        """Build a config from settings, with explicit overrides (None values ignored)."""
        values = {
            "page_size": settings.link_page_size,
            "update_batch_size": settings.link_update_batch_size,
            "max_retries": settings.link_max_retries,
            "retry_base_delay": settings.link_retry_base_delay,
            "retry_max_delay": settings.link_retry_max_delay,
            "io_timeout": settings.link_io_timeout,
            "resolver_workers": settings.link_resolver_workers,
            "page_delay": settings.link_page_delay,
            "progress_interval": settings.link_progress_interval,
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**values)

    def retry_config(self) -> RetryConfig:
        return RetryConfig(
            max_retries=self.max_retries,
            base_delay=self.retry_base_delay,
            max_delay=self.retry_max_delay,
        )


class RunSummary(BaseModel):
    """Counts and tallies from one linking run."""

    run_id: str
    started_at: datetime
    completed_at: datetime | None = None
    dry_run: bool = False
    cancelled: bool = False

    already_linked: int = 0
    unlinked_at_start: int = 0
    processed: int = 0
    newly_linked: int = 0
    unmatched: int = 0
    failed: int = 0
    linked_elsewhere: int = 0  # flushed, but another writer linked the case first

    pages: int = 0
    batches_flushed: int = 0
    batches_failed: int = 0
    elapsed_seconds: float = 0.0

    strategy_counts: dict[str, int] = Field(default_factory=dict)
    unmatched_reasons: dict[str, int] = Field(default_factory=dict)
    unmatched_patterns: dict[str, int] = Field(default_factory=dict)
    pattern_reasons: dict[str, str] = Field(default_factory=dict)
    judge_tally: dict[str, int] = Field(default_factory=dict)

    @property
    def throughput(self) -> float:
        """Cases resolved per second."""
        if self.elapsed_seconds <= 0:
            return 0.0
        return self.processed / self.elapsed_seconds

    @property
    def touched_judges(self) -> set[str]:
        """Judges that received at least one new case."""
        return set(self.judge_tally)

    def top_judges(self, n: int = 10) -> list[tuple[str, int]]:
        """Judges with the most newly linked cases (ties by ID)."""
        return sorted(self.judge_tally.items(), key=lambda item: (-item[1], item[0]))[:n]

    def top_unmatched(self, n: int = 10) -> list[tuple[str, int]]:
        """Most frequent unmatched name patterns (ties by pattern)."""
        return sorted(
            self.unmatched_patterns.items(), key=lambda item: (-item[1], item[0])
        )[:n]


class BatchLinker:
    """Links unlinked cases to judges in pages and batches.

    Args:
        store: Case/judge store
        index: Match index for this run (read-only)
        config: Run configuration
        sleep: Awaitable sleep, injectable for tests
        clock: Monotonic clock, injectable for tests
    """

    def __init__(
        self,
        store: LinkStore,
        index: MatchIndex,
        config: LinkerConfig | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.index = index
        self.config = config or LinkerConfig()
        self.state = LinkerState.DONE
        self._sleep = sleep
        self._clock = clock

        self._strategies: Counter[str] = Counter()
        self._reasons: Counter[str] = Counter()
        self._patterns: Counter[str] = Counter()
        self._pattern_reasons: dict[str, str] = {}
        self._tally: Counter[str] = Counter()

    async def run(self, cancel_event: asyncio.Event | None = None) -> RunSummary:
        """Link every currently unlinked case that can be resolved.

        Args:
            cancel_event: When set, the run stops before the next page fetch

        Returns:
            Run summary

        Raises:
            CaseSourceError: If the case source cannot be read
        """
        summary = RunSummary(
            run_id=str(uuid4()),
            started_at=datetime.utcnow(),
            dry_run=self.config.dry_run,
        )
        self._strategies.clear()
        self._reasons.clear()
        self._patterns.clear()
        self._pattern_reasons.clear()
        self._tally.clear()

        started = self._clock()
        last_progress = started
        self._log = get_context_logger(__name__, run_id=summary.run_id)

        try:
            summary.already_linked = await self._io(self.store.count_cases(linked=True))
            summary.unlinked_at_start = await self._io(self.store.count_cases(linked=False))
        except Exception as e:
            raise CaseSourceError(f"Cannot count cases: {e!r}", summary=summary) from e

        log_linking_start(summary.run_id, summary.unlinked_at_start, self.config.dry_run)

        cursor: str | None = None
        buffer: list[CaseUpdate] = []
        in_flight: asyncio.Task | None = None
        batch_number = 0

        try:
            while True:
                self.state = LinkerState.FETCHING
                if cancel_event is not None and cancel_event.is_set():
                    summary.cancelled = True
                    self._log.warning(
                        f"Cancellation requested; stopping after {summary.pages} pages"
                    )
                    break

                page = await self._fetch_page(cursor)
                if not page:
                    break
                if page[-1].id == cursor:
                    raise CaseSourceError(f"Case cursor did not advance past {cursor!r}")
                cursor = page[-1].id
                summary.pages += 1

                self.state = LinkerState.RESOLVING
                decisions = await self._resolve_page(page)
                buffer.extend(self._record_decisions(decisions, summary))

                while len(buffer) >= self.config.update_batch_size:
                    self.state = LinkerState.FLUSHING
                    batch = buffer[: self.config.update_batch_size]
                    buffer = buffer[self.config.update_batch_size :]
                    batch_number += 1
                    if in_flight is not None:
                        await in_flight
                    in_flight = asyncio.create_task(
                        self._flush(batch, batch_number, summary)
                    )

                now = self._clock()
                if (
                    self.config.progress_interval
                    and now - last_progress >= self.config.progress_interval
                ):
                    self._report_progress(summary, now - started)
                    last_progress = now

                if self.config.page_delay:
                    await self._sleep(self.config.page_delay)

            self.state = LinkerState.FLUSHING
            if in_flight is not None:
                await in_flight
                in_flight = None
            if buffer:
                batch_number += 1
                await self._flush(buffer, batch_number, summary)
                buffer = []

        except CaseSourceError as e:
            e.summary = summary
            raise

        finally:
            # Let a write that already started finish rather than leave it half-applied
            if in_flight is not None and not in_flight.done():
                await in_flight
            self.state = LinkerState.DONE
            summary.completed_at = datetime.utcnow()
            summary.elapsed_seconds = self._clock() - started
            summary.strategy_counts = dict(self._strategies)
            summary.unmatched_reasons = dict(self._reasons)
            summary.unmatched_patterns = dict(self._patterns)
            summary.pattern_reasons = dict(self._pattern_reasons)
            summary.judge_tally = dict(self._tally)

        log_linking_complete(
            summary.run_id,
            summary.newly_linked,
            summary.unmatched,
            summary.failed,
            summary.elapsed_seconds,
        )
        return summary

    async def _io(self, awaitable: Awaitable):
        return await asyncio.wait_for(awaitable, timeout=self.config.io_timeout)

    async def _fetch_page(self, cursor: str | None) -> list[CaseRecord]:
        try:
            return await self._io(
                self.store.fetch_unlinked_cases(after_id=cursor, limit=self.config.page_size)
            )
        except Exception as e:
            raise CaseSourceError(f"Failed to fetch cases after {cursor!r}: {e!r}") from e

    async def _resolve_page(self, page: Sequence[CaseRecord]) -> list[LinkDecision]:
        """Resolve a page on up to ``resolver_workers`` threads, preserving order."""
        workers = min(self.config.resolver_workers, len(page))
        if workers <= 1:
            return await asyncio.to_thread(resolve_batch, page, self.index)

        chunk_size = math.ceil(len(page) / workers)
        chunks = [page[i : i + chunk_size] for i in range(0, len(page), chunk_size)]
        results = await asyncio.gather(
            *(asyncio.to_thread(resolve_batch, chunk, self.index) for chunk in chunks)
        )
        return [decision for chunk in results for decision in chunk]

    def _record_decisions(
        self, decisions: Sequence[LinkDecision], summary: RunSummary
    ) -> list[CaseUpdate]:
        updates = []
        for decision in decisions:
            summary.processed += 1
            if decision.is_match:
                self._strategies[decision.strategy.value] += 1
                updates.append(CaseUpdate(id=decision.case_id, judge_id=decision.judge_id))
            else:
                summary.unmatched += 1
                self._reasons[decision.unmatched_reason.value] += 1
                self._patterns[decision.bucket] += 1
                self._pattern_reasons.setdefault(
                    decision.bucket, decision.unmatched_reason.value
                )
        return updates

    async def _flush(
        self, batch: list[CaseUpdate], batch_number: int, summary: RunSummary
    ) -> None:
        """Write one batch; on success apply its counts, on exhaustion count it failed."""
        if self.config.dry_run:
            applied = {update.id for update in batch}
            attempts = 0
        else:
            attempts = 0

            async def attempt() -> set[str]:
                nonlocal attempts
                attempts += 1
                return await self._io(self.store.apply_links(batch))

            try:
                applied = await with_retry(
                    attempt,
                    self.config.retry_config(),
                    logger=self._log,
                    sleep=self._sleep,
                )
            except RetryExhaustedError as e:
                summary.failed += len(batch)
                summary.batches_failed += 1
                log_flush_batch(summary.run_id, batch_number, len(batch), e.attempts, False)
                return

        for update in batch:
            if update.id in applied:
                summary.newly_linked += 1
                self._tally[update.judge_id] += 1
            else:
                summary.linked_elsewhere += 1
        summary.batches_flushed += 1
        log_flush_batch(summary.run_id, batch_number, len(batch), attempts, True)

    def _report_progress(self, summary: RunSummary, elapsed: float) -> None:
        eta = None
        if elapsed > 0 and summary.processed:
            rate = summary.processed / elapsed
            remaining = max(summary.unlinked_at_start - summary.processed, 0)
            eta = remaining / rate
        log_linking_progress(
            summary.run_id, summary.processed, summary.unlinked_at_start, eta
        )
