"""Unit tests for the batch linker."""

import asyncio

import pytest

from judgelink.config import Settings
from judgelink.linking import (
    BatchLinker,
    CaseSourceError,
    LinkerConfig,
    LinkerState,
    RunSummary,
)
from judgelink.models import JudgeRecord
from judgelink.resolution import build_index

from tests.fixtures import InMemoryLinkStore, make_case


def linked_cases(count: int, judge_name: str = "Robert Chen"):
    return [make_case(f"case-{i:04d}", judge_name=judge_name) for i in range(count)]


def make_config(**overrides) -> LinkerConfig:
    values = {
        "page_size": 100,
        "update_batch_size": 50,
        "max_retries": 3,
        "retry_base_delay": 0.0,
        "retry_max_delay": 0.0,
        "io_timeout": 5.0,
        "resolver_workers": 2,
        "page_delay": 0.0,
        "progress_interval": 0.0,
    }
    values.update(overrides)
    return LinkerConfig(**values)


class TestLinkerConfig:
    """Tests for LinkerConfig."""

    def test_from_settings_with_overrides(self, settings):
        """Test that non-None overrides replace settings values."""
        config = LinkerConfig.from_settings(
            settings, page_size=10, update_batch_size=None, dry_run=True
        )

        assert config.page_size == 10
        assert config.update_batch_size == settings.link_update_batch_size
        assert config.dry_run is True
        assert config.retry_config().max_retries == settings.link_max_retries

    @pytest.mark.parametrize(
        "field, setting",
        [
            ("page_size", "link_page_size"),
            ("update_batch_size", "link_update_batch_size"),
            ("max_retries", "link_max_retries"),
            ("retry_base_delay", "link_retry_base_delay"),
            ("retry_max_delay", "link_retry_max_delay"),
            ("io_timeout", "link_io_timeout"),
            ("resolver_workers", "link_resolver_workers"),
            ("page_delay", "link_page_delay"),
            ("progress_interval", "link_progress_interval"),
        ],
    )
    def test_defaults_match_settings_defaults(self, field, setting):
        """Test that a bare LinkerConfig behaves like default settings."""
        assert LinkerConfig().model_dump()[field] == Settings.model_fields[setting].default

    def test_default_page_delay(self):
        """Test that pages are spaced by a short pause unless configured off."""
        assert LinkerConfig().page_delay == 0.1


class TestBatchLinkerRun:
    """Tests for BatchLinker.run()."""

    @pytest.mark.asyncio
    async def test_links_matched_cases(self, sample_judges, sample_index, no_sleep):
        """Test a run over matched and unmatched cases."""
        cases = [
            make_case("c1", judge_name="Robert Chen"),
            make_case("c2", judge_name="Hon. Maria Garcia"),
            make_case("c3", judge_name="Nobody Known"),
            make_case("c4", judge_name=None),
            make_case("c5", judge_name="Smith"),
        ]
        store = InMemoryLinkStore(sample_judges, cases)

        linker = BatchLinker(store, sample_index, make_config(), sleep=no_sleep)
        summary = await linker.run()

        assert summary.processed == 5
        assert summary.newly_linked == 2
        assert summary.unmatched == 3
        assert summary.failed == 0
        assert summary.strategy_counts == {"exact": 2}
        assert summary.unmatched_reasons == {
            "no_match": 1,
            "no_judge_name": 1,
            "ambiguous": 1,
        }
        assert summary.unmatched_patterns == {
            "Nobody Known": 1,
            "no_judge_name": 1,
            "Smith": 1,
        }
        assert summary.pattern_reasons["Smith"] == "ambiguous"
        assert summary.judge_tally == {"judge-chen": 1, "judge-garcia": 1}
        assert store.cases["c1"].judge_id == "judge-chen"
        assert store.cases["c3"].judge_id is None
        assert linker.state == LinkerState.DONE

    @pytest.mark.asyncio
    async def test_batch_succeeds_on_third_attempt(self, sample_judges, sample_index, no_sleep):
        """Test that a 500-record batch failing twice is fully linked on retry."""
        store = InMemoryLinkStore(sample_judges, linked_cases(500))
        store.fail_apply_attempts = 2

        config = make_config(
            page_size=1000, update_batch_size=500, retry_base_delay=1.0, retry_max_delay=60.0
        )
        summary = await BatchLinker(store, sample_index, config, sleep=no_sleep).run()

        assert summary.newly_linked == 500
        assert summary.failed == 0
        assert summary.batches_flushed == 1
        assert summary.batches_failed == 0
        assert store.apply_calls == 3
        assert no_sleep.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_failed_batch_does_not_stop_run(self, sample_judges, sample_index, no_sleep):
        """Test that an exhausted batch is counted failed and later batches still land."""
        store = InMemoryLinkStore(sample_judges, linked_cases(6))
        store.fail_apply_for = {"case-0002"}

        config = make_config(page_size=2, update_batch_size=2, max_retries=2)
        summary = await BatchLinker(store, sample_index, config, sleep=no_sleep).run()

        assert summary.processed == 6
        assert summary.newly_linked == 4
        assert summary.failed == 2
        assert summary.batches_failed == 1
        assert summary.batches_flushed == 2
        assert summary.judge_tally == {"judge-chen": 4}
        assert store.cases["case-0002"].judge_id is None
        assert store.cases["case-0003"].judge_id is None
        assert store.cases["case-0005"].judge_id == "judge-chen"

    @pytest.mark.asyncio
    async def test_rerun_links_nothing(self, sample_judges, sample_index, no_sleep):
        """Test that a second run over the same data is a no-op."""
        store = InMemoryLinkStore(sample_judges, linked_cases(120))
        config = make_config(page_size=25, update_batch_size=10)

        first = await BatchLinker(store, sample_index, config, sleep=no_sleep).run()
        second = await BatchLinker(store, sample_index, config, sleep=no_sleep).run()

        assert first.newly_linked == 120
        assert second.already_linked == 120
        assert second.processed == 0
        assert second.newly_linked == 0
        assert second.failed == 0

    @pytest.mark.asyncio
    async def test_existing_link_is_never_overwritten(self, sample_judges, sample_index, no_sleep):
        """Test that a case linked by another writer mid-run keeps its judge."""
        store = InMemoryLinkStore(sample_judges, linked_cases(4))
        original_apply = store.apply_links

        async def apply_after_concurrent_link(updates):
            store.link("case-0001", "judge-okafor")
            return await original_apply(updates)

        store.apply_links = apply_after_concurrent_link

        summary = await BatchLinker(
            store, sample_index, make_config(), sleep=no_sleep
        ).run()

        assert store.cases["case-0001"].judge_id == "judge-okafor"
        assert summary.newly_linked == 3
        assert summary.linked_elsewhere == 1
        assert summary.judge_tally == {"judge-chen": 3}

    @pytest.mark.asyncio
    async def test_cancel_before_start(self, sample_judges, sample_index, no_sleep):
        """Test that a pre-set cancel event stops before the first fetch."""
        store = InMemoryLinkStore(sample_judges, linked_cases(10))
        cancel = asyncio.Event()
        cancel.set()

        summary = await BatchLinker(
            store, sample_index, make_config(), sleep=no_sleep
        ).run(cancel)

        assert summary.cancelled
        assert summary.processed == 0
        assert store.fetch_calls == 0

    @pytest.mark.asyncio
    async def test_cancel_between_pages_flushes_buffer(self, sample_judges, sample_index):
        """Test that cancelling mid-run still writes what was resolved."""
        store = InMemoryLinkStore(sample_judges, linked_cases(6))
        cancel = asyncio.Event()

        async def cancel_on_page_delay(delay):
            cancel.set()

        config = make_config(page_size=2, update_batch_size=10, page_delay=0.5)
        summary = await BatchLinker(
            store, sample_index, config, sleep=cancel_on_page_delay
        ).run(cancel)

        assert summary.cancelled
        assert summary.pages == 1
        assert summary.processed == 2
        assert summary.newly_linked == 2
        assert store.cases["case-0001"].judge_id == "judge-chen"
        assert store.cases["case-0002"].judge_id is None

    @pytest.mark.asyncio
    async def test_fetch_failure_aborts_with_partial_summary(
        self, sample_judges, sample_index, no_sleep
    ):
        """Test that a failed page fetch raises and carries the partial counts."""
        store = InMemoryLinkStore(sample_judges, linked_cases(6))
        store.fail_fetch_after = 1

        config = make_config(page_size=2, update_batch_size=2)
        with pytest.raises(CaseSourceError) as exc_info:
            await BatchLinker(store, sample_index, config, sleep=no_sleep).run()

        partial = exc_info.value.summary
        assert isinstance(partial, RunSummary)
        assert partial.processed == 2
        assert partial.newly_linked == 2
        assert partial.judge_tally == {"judge-chen": 2}

    @pytest.mark.asyncio
    async def test_dry_run_writes_nothing(self, sample_judges, sample_index, no_sleep):
        """Test that a dry run tallies without touching the store."""
        store = InMemoryLinkStore(sample_judges, linked_cases(5))

        summary = await BatchLinker(
            store, sample_index, make_config(dry_run=True), sleep=no_sleep
        ).run()

        assert summary.dry_run
        assert summary.newly_linked == 5
        assert store.apply_calls == 0
        assert all(case.judge_id is None for case in store.cases.values())

    @pytest.mark.asyncio
    async def test_many_workers_keep_every_decision(self, no_sleep):
        """Test that splitting a page across workers loses nothing."""
        judges = [JudgeRecord(id=f"j{i}", name=f"Judge{i} Surname{i}") for i in range(7)]
        cases = [
            make_case(f"case-{i:04d}", judge_name=f"Judge{i % 7} Surname{i % 7}")
            for i in range(103)
        ]
        store = InMemoryLinkStore(judges, cases)

        config = make_config(page_size=50, update_batch_size=20, resolver_workers=8)
        summary = await BatchLinker(store, build_index(judges), config, sleep=no_sleep).run()

        assert summary.processed == 103
        assert summary.newly_linked == 103
        assert sum(summary.judge_tally.values()) == 103
        assert summary.pages == 3


class TestRunSummary:
    """Tests for RunSummary helpers."""

    def test_top_lists_are_sorted_with_ties_by_key(self):
        """Test that ranking is by count, then key."""
        summary = RunSummary(
            run_id="r",
            started_at="2026-01-01T00:00:00",
            judge_tally={"b": 3, "a": 3, "c": 5},
            unmatched_patterns={"x": 1, "y": 2},
        )

        assert summary.top_judges(2) == [("c", 5), ("a", 3)]
        assert summary.top_unmatched() == [("y", 2), ("x", 1)]

    def test_throughput(self):
        """Test cases-per-second computation."""
        summary = RunSummary(
            run_id="r", started_at="2026-01-01T00:00:00", processed=100, elapsed_seconds=4.0
        )

        assert summary.throughput == 25.0
        assert RunSummary(run_id="r", started_at="2026-01-01T00:00:00").throughput == 0.0
