"""Persistent store access for the linking pipeline.

The pipeline touches the store only through ``LinkStore``. The
PostgreSQL implementation reads ``judges`` and ``cases`` and writes
``cases.judge_id`` and ``judges.total_cases``; nothing else.

Contract for case pagination: ``fetch_unlinked_cases`` returns rows
ordered by ``id`` strictly after the given cursor. Because the cursor
is a stable sort key rather than an offset, rows linked mid-run (ours
or anyone else's) never shift the window, so no row is skipped or
seen twice.
"""

import json
from abc import ABC, abstractmethod
from typing import Any, AsyncContextManager, Callable, Iterable, Sequence

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import get_db_session
from ..models import CaseRecord, CaseUpdate, JudgeRecord


class LinkStore(ABC):
    """Narrow query/update interface to the judge and case tables."""

    @abstractmethod
    async def count_cases(self, linked: bool | None = None) -> int:
        """Count cases; ``linked`` filters on judge_id being set or null."""
        ...

    @abstractmethod
    async def count_judges(self) -> int:
        ...

    @abstractmethod
    async def fetch_judges(self) -> list[JudgeRecord]:
        """Load the full judge reference set."""
        ...

    @abstractmethod
    async def list_judge_ids(self) -> list[str]:
        ...

    @abstractmethod
    async def fetch_unlinked_cases(
        self, after_id: str | None, limit: int
    ) -> list[CaseRecord]:
        """Fetch the next page of cases with a null judge_id, ordered by id.

        Args:
            after_id: Cursor; only cases with id greater than this are returned
            limit: Page size

        Returns:
            Up to ``limit`` cases (empty when exhausted)
        """
        ...

    @abstractmethod
    async def apply_links(self, updates: Sequence[CaseUpdate]) -> set[str]:
        """Write a batch of judge assignments as one transaction.

        Only cases whose judge_id is still null are updated, so an
        existing link is never overwritten.

        Returns:
            IDs of the cases actually updated
        """
        ...

    @abstractmethod
    async def count_cases_for_judge(self, judge_id: str) -> int:
        ...

    @abstractmethod
    async def set_case_count(self, judge_id: str, count: int) -> None:
        ...

    @abstractmethod
    async def sample_linked_cases(self, n: int) -> list[tuple[str, str]]:
        """Random sample of (case_id, judge_id) for linked cases."""
        ...

    @abstractmethod
    async def existing_judge_ids(self, judge_ids: Iterable[str]) -> set[str]:
        """Subset of the given IDs that exist in the judge table."""
        ...

    @abstractmethod
    async def case_distribution(self) -> dict[str, int]:
        """Case count per referenced judge_id (judges with at least one case)."""
        ...

    @abstractmethod
    async def sample_judge_counts(self, n: int) -> list[tuple[str, int, int]]:
        """Random sample of (judge_id, stored total_cases, actual case count)."""
        ...


SessionFactory = Callable[[], AsyncContextManager[AsyncSession]]


def _parse_aliases(value: Any) -> list[str]:
    if not value:
        return []
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            return []
    if not isinstance(value, list):
        return []
    return [str(alias) for alias in value if alias]


class SqlLinkStore(LinkStore):
    """PostgreSQL store using SQLAlchemy async sessions.

    Case and judge IDs are UUIDs in the database and plain strings
    everywhere else.
    """

    def __init__(self, session_factory: SessionFactory = get_db_session):
        self._session = session_factory

    async def count_cases(self, linked: bool | None = None) -> int:
        query = "SELECT count(*) FROM cases"
        if linked is True:
            query += " WHERE judge_id IS NOT NULL"
        elif linked is False:
            query += " WHERE judge_id IS NULL"

        async with self._session() as db:
            result = await db.execute(text(query))
            return int(result.scalar_one())

    async def count_judges(self) -> int:
        async with self._session() as db:
            result = await db.execute(text("SELECT count(*) FROM judges"))
            return int(result.scalar_one())

    async def fetch_judges(self) -> list[JudgeRecord]:
        async with self._session() as db:
            result = await db.execute(
                text(
                    """
                    SELECT id::text AS id,
                           coalesce(name, '') AS name,
                           court_name,
                           court_id::text AS court_id,
                           jurisdiction,
                           courtlistener_id::text AS external_id,
                           courtlistener_data->'aliases' AS aliases,
                           coalesce(total_cases, 0) AS total_cases
                    FROM judges
                    ORDER BY name, id
                    """
                )
            )
            rows = result.mappings().all()

        return [
            JudgeRecord(
                id=row["id"],
                name=row["name"],
                court_name=row["court_name"],
                court_id=row["court_id"],
                jurisdiction=row["jurisdiction"],
                external_id=row["external_id"],
                aliases=_parse_aliases(row["aliases"]),
                total_cases=row["total_cases"],
            )
            for row in rows
        ]

    async def list_judge_ids(self) -> list[str]:
        async with self._session() as db:
            result = await db.execute(text("SELECT id::text FROM judges ORDER BY id"))
            return [row[0] for row in result.fetchall()]

    async def fetch_unlinked_cases(
        self, after_id: str | None, limit: int
    ) -> list[CaseRecord]:
        filters = ["judge_id IS NULL"]
        params: dict[str, Any] = {"limit": limit}
        if after_id is not None:
            filters.append("id > CAST(:after_id AS uuid)")
            params["after_id"] = after_id

        query = f"""
            SELECT id::text AS id,
                   case_name,
                   case_number,
                   judge_name,
                   courtlistener_id::text AS external_id,
                   court_id::text AS court_id,
                   jurisdiction
            FROM cases
            WHERE {' AND '.join(filters)}
            ORDER BY id
            LIMIT :limit
        """

        async with self._session() as db:
            result = await db.execute(text(query), params)
            return [CaseRecord(**row) for row in result.mappings().all()]

    async def apply_links(self, updates: Sequence[CaseUpdate]) -> set[str]:
        if not updates:
            return set()

        async with self._session() as db:
            result = await db.execute(
                text(
                    """
                    UPDATE cases AS c
                    SET judge_id = u.judge_id
                    FROM unnest(
                        CAST(:case_ids AS uuid[]),
                        CAST(:judge_ids AS uuid[])
                    ) AS u(case_id, judge_id)
                    WHERE c.id = u.case_id
                      AND c.judge_id IS NULL
                    RETURNING c.id::text
                    """
                ),
                {
                    "case_ids": [u.id for u in updates],
                    "judge_ids": [u.judge_id for u in updates],
                },
            )
            return {row[0] for row in result.fetchall()}

    async def count_cases_for_judge(self, judge_id: str) -> int:
        async with self._session() as db:
            result = await db.execute(
                text("SELECT count(*) FROM cases WHERE judge_id = CAST(:judge_id AS uuid)"),
                {"judge_id": judge_id},
            )
            return int(result.scalar_one())

    async def set_case_count(self, judge_id: str, count: int) -> None:
        async with self._session() as db:
            await db.execute(
                text(
                    "UPDATE judges SET total_cases = :count "
                    "WHERE id = CAST(:judge_id AS uuid)"
                ),
                {"judge_id": judge_id, "count": count},
            )

    async def sample_linked_cases(self, n: int) -> list[tuple[str, str]]:
        async with self._session() as db:
            result = await db.execute(
                text(
                    """
                    SELECT id::text, judge_id::text
                    FROM cases
                    WHERE judge_id IS NOT NULL
                    ORDER BY random()
                    LIMIT :n
                    """
                ),
                {"n": n},
            )
            return [(row[0], row[1]) for row in result.fetchall()]

    async def existing_judge_ids(self, judge_ids: Iterable[str]) -> set[str]:
        ids = sorted(set(judge_ids))
        if not ids:
            return set()

        async with self._session() as db:
            result = await db.execute(
                text("SELECT id::text FROM judges WHERE id::text = ANY(CAST(:ids AS text[]))"),
                {"ids": ids},
            )
            return {row[0] for row in result.fetchall()}

    async def case_distribution(self) -> dict[str, int]:
        async with self._session() as db:
            result = await db.execute(
                text(
                    """
                    SELECT judge_id::text, count(*) AS case_count
                    FROM cases
                    WHERE judge_id IS NOT NULL
                    GROUP BY judge_id
                    """
                )
            )
            return {row[0]: int(row[1]) for row in result.fetchall()}

    async def sample_judge_counts(self, n: int) -> list[tuple[str, int, int]]:
        async with self._session() as db:
            result = await db.execute(
                text(
                    """
                    SELECT j.id::text,
                           coalesce(j.total_cases, 0),
                           (SELECT count(*) FROM cases c WHERE c.judge_id = j.id)
                    FROM judges j
                    ORDER BY random()
                    LIMIT :n
                    """
                ),
                {"n": n},
            )
            return [(row[0], int(row[1]), int(row[2])) for row in result.fetchall()]
