"""Unit tests for judge case-count maintenance."""

import pytest

from judgelink.linking import StatisticsAggregator

from tests.fixtures import InMemoryLinkStore, make_case


def store_with_links(sample_judges) -> InMemoryLinkStore:
    cases = [
        make_case("c1", judge_id="judge-chen"),
        make_case("c2", judge_id="judge-chen"),
        make_case("c3", judge_id="judge-garcia"),
        make_case("c4"),
    ]
    store = InMemoryLinkStore(sample_judges, cases)
    store.case_counts["judge-chen"] = 17  # stale
    return store


class TestStatisticsAggregator:
    """Tests for StatisticsAggregator."""

    @pytest.mark.asyncio
    async def test_recompute_overwrites_with_actual_count(self, sample_judges):
        """Test that stored counts are replaced by the case relation count."""
        store = store_with_links(sample_judges)

        result = await StatisticsAggregator(store).recompute(["judge-chen", "judge-garcia"])

        assert result.succeeded
        assert result.updated == {"judge-chen": 2, "judge-garcia": 1}
        assert store.case_counts["judge-chen"] == 2
        assert store.case_counts["judge-garcia"] == 1

    @pytest.mark.asyncio
    async def test_recompute_only_touches_given_judges(self, sample_judges):
        """Test that judges outside the set keep their stored count."""
        store = store_with_links(sample_judges)

        await StatisticsAggregator(store).recompute({"judge-garcia"})

        assert store.case_counts["judge-chen"] == 17

    @pytest.mark.asyncio
    async def test_failing_judge_does_not_stop_others(self, sample_judges):
        """Test that one failed update is recorded and the rest continue."""
        store = store_with_links(sample_judges)
        store.fail_recount_for = {"judge-chen"}

        result = await StatisticsAggregator(store).recompute(["judge-garcia", "judge-chen"])

        assert not result.succeeded
        assert set(result.errors) == {"judge-chen"}
        assert result.updated == {"judge-garcia": 1}
        assert result.requested == 2

    @pytest.mark.asyncio
    async def test_recompute_all(self, sample_judges):
        """Test a full recount, including judges with no cases."""
        store = store_with_links(sample_judges)
        store.case_counts["judge-okafor"] = 5

        result = await StatisticsAggregator(store).recompute_all()

        assert result.requested == len(sample_judges)
        assert store.case_counts["judge-okafor"] == 0
        assert store.case_counts["judge-chen"] == 2

    @pytest.mark.asyncio
    async def test_counts_reconcile_with_relation(self, sample_judges):
        """Test that after a recount every stored count equals the actual count."""
        store = store_with_links(sample_judges)

        await StatisticsAggregator(store).recompute_all()

        for judge_id, stored, actual in await store.sample_judge_counts(100):
            assert stored == actual, judge_id
