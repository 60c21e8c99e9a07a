"""In-memory LinkStore for tests."""

from collections import Counter
from typing import Iterable, Sequence

from judgelink.linking.store import LinkStore
from judgelink.models import CaseRecord, CaseUpdate, JudgeRecord

__all__ = ["InMemoryLinkStore", "StoreUnavailable"]


class StoreUnavailable(ConnectionError):
    """Injected store failure."""


class InMemoryLinkStore(LinkStore):
    """LinkStore over plain dicts.

    Failure injection:
        fail_apply_attempts: number of apply_links calls that fail before
            calls start succeeding
        fail_apply_for: case IDs whose batches always fail to write
        fail_fetch_after: successful page fetches before fetches start failing
        fail_judges: fetch_judges raises
        fail_recount_for: judge IDs whose count cannot be written
        broken: method names that always raise
    """

    def __init__(
        self,
        judges: Iterable[JudgeRecord] = (),
        cases: Iterable[CaseRecord] = (),
    ):
        self.judges: dict[str, JudgeRecord] = {j.id: j for j in judges}
        self.cases: dict[str, CaseRecord] = {c.id: c for c in cases}
        self.case_counts: dict[str, int] = {
            j.id: j.total_cases for j in self.judges.values()
        }

        self.fail_apply_attempts = 0
        self.fail_apply_for: set[str] = set()
        self.fail_fetch_after: int | None = None
        self.fail_judges = False
        self.fail_recount_for: set[str] = set()
        self.broken: set[str] = set()

        self.apply_calls = 0
        self.fetch_calls = 0
        self.written: list[list[CaseUpdate]] = []

    def _check(self, method: str) -> None:
        if method in self.broken:
            raise StoreUnavailable(f"{method} unavailable")

    def link(self, case_id: str, judge_id: str) -> None:
        """Link a case directly, as another writer would."""
        self.cases[case_id] = self.cases[case_id].model_copy(update={"judge_id": judge_id})

    async def count_cases(self, linked: bool | None = None) -> int:
        self._check("count_cases")
        if linked is None:
            return len(self.cases)
        return sum(1 for c in self.cases.values() if c.is_linked == linked)

    async def count_judges(self) -> int:
        self._check("count_judges")
        return len(self.judges)

    async def fetch_judges(self) -> list[JudgeRecord]:
        if self.fail_judges:
            raise StoreUnavailable("judge table unavailable")
        return list(self.judges.values())

    async def list_judge_ids(self) -> list[str]:
        return sorted(self.judges)

    async def fetch_unlinked_cases(
        self, after_id: str | None, limit: int
    ) -> list[CaseRecord]:
        if self.fail_fetch_after is not None and self.fetch_calls >= self.fail_fetch_after:
            raise StoreUnavailable("case source unavailable")
        self.fetch_calls += 1

        page = [
            c
            for case_id, c in sorted(self.cases.items())
            if c.judge_id is None and (after_id is None or case_id > after_id)
        ]
        return page[:limit]

    async def apply_links(self, updates: Sequence[CaseUpdate]) -> set[str]:
        self.apply_calls += 1
        if self.apply_calls <= self.fail_apply_attempts:
            raise StoreUnavailable("write failed")
        if any(u.id in self.fail_apply_for for u in updates):
            raise StoreUnavailable("write failed")

        applied = set()
        for update in updates:
            if self.cases[update.id].judge_id is None:
                self.link(update.id, update.judge_id)
                applied.add(update.id)
        self.written.append(list(updates))
        return applied

    async def count_cases_for_judge(self, judge_id: str) -> int:
        return sum(1 for c in self.cases.values() if c.judge_id == judge_id)

    async def set_case_count(self, judge_id: str, count: int) -> None:
        if judge_id in self.fail_recount_for:
            raise StoreUnavailable(f"cannot update judge {judge_id}")
        self.case_counts[judge_id] = count

    async def sample_linked_cases(self, n: int) -> list[tuple[str, str]]:
        self._check("sample_linked_cases")
        linked = [(c.id, c.judge_id) for c in self.cases.values() if c.judge_id]
        return sorted(linked)[:n]

    async def existing_judge_ids(self, judge_ids: Iterable[str]) -> set[str]:
        return set(judge_ids) & set(self.judges)

    async def case_distribution(self) -> dict[str, int]:
        self._check("case_distribution")
        return dict(Counter(c.judge_id for c in self.cases.values() if c.judge_id))

    async def sample_judge_counts(self, n: int) -> list[tuple[str, int, int]]:
        self._check("sample_judge_counts")
        actual = Counter(c.judge_id for c in self.cases.values() if c.judge_id)
        return [
            (judge_id, self.case_counts.get(judge_id, 0), actual.get(judge_id, 0))
            for judge_id in sorted(self.judges)[:n]
        ]
