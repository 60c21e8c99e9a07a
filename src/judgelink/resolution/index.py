"""In-memory judge lookup index.

Built once per run from the full judge reference set and never
mutated afterwards, so resolver workers can share it without locks.

Every map stores a tuple of candidate judge IDs rather than a single
ID. Two judges sharing a key (same name, same alias, same initial and
surname) are both kept and the resolver decides whether a
discriminator can separate them.
"""

from collections import defaultdict
from enum import Enum
from types import MappingProxyType
from typing import Iterable, Mapping, NamedTuple

from ..logging import get_context_logger
from ..models import JudgeRecord
from .normalizer import fold_name, normalize

logger = get_context_logger(__name__)


class MatchStrategy(str, Enum):
    """Matching strategies, in cascade order. Each owns one index map."""

    EXTERNAL_ID = "external_id"
    EXACT = "exact"
    NORMALIZED = "normalized"
    FIRST_LAST = "first_last"
    INITIAL_LAST = "initial_last"
    LAST_NAME = "last_name"
    ALIAS = "alias"


class LastNameEntry(NamedTuple):
    """A judge filed under a surname."""

    judge_id: str
    full_name: str


class MatchIndex:
    """Read-only lookup maps from normalized keys to judge candidates."""

    def __init__(
        self,
        maps: Mapping[MatchStrategy, Mapping[str, tuple[str, ...]]],
        last_names: Mapping[str, tuple[LastNameEntry, ...]],
        judges: Mapping[str, JudgeRecord],
    ):
        self._maps = MappingProxyType(
            {strategy: MappingProxyType(dict(entries)) for strategy, entries in maps.items()}
        )
        self._last_names = MappingProxyType(dict(last_names))
        self._judges = MappingProxyType(dict(judges))

    def candidates(self, strategy: MatchStrategy, key: str | None) -> tuple[str, ...]:
        """Look up candidate judge IDs for a key in one strategy's map.

        Args:
            strategy: Which map to query
            key: Normalized key (empty keys never match)

        Returns:
            Candidate judge IDs (empty tuple when absent)
        """
        if not key:
            return ()
        if strategy is MatchStrategy.LAST_NAME:
            return tuple(entry.judge_id for entry in self._last_names.get(key, ()))
        return self._maps[strategy].get(key, ())

    def last_name_entries(self, last_name: str) -> tuple[LastNameEntry, ...]:
        """Get every judge filed under a surname."""
        return self._last_names.get(last_name, ())

    def judge(self, judge_id: str) -> JudgeRecord | None:
        """Get a judge record by ID."""
        return self._judges.get(judge_id)

    @property
    def judges(self) -> Mapping[str, JudgeRecord]:
        """All indexed judges by ID."""
        return self._judges

    def __len__(self) -> int:
        return len(self._judges)

    def __contains__(self, judge_id: object) -> bool:
        return judge_id in self._judges

    def size(self, strategy: MatchStrategy) -> int:
        """Number of distinct keys in one map."""
        if strategy is MatchStrategy.LAST_NAME:
            return len(self._last_names)
        return len(self._maps[strategy])

    def collisions(self, strategy: MatchStrategy) -> int:
        """Number of keys in one map shared by more than one judge."""
        if strategy is MatchStrategy.LAST_NAME:
            return sum(1 for entries in self._last_names.values() if len(entries) > 1)
        return sum(1 for ids in self._maps[strategy].values() if len(ids) > 1)

    def stats(self) -> dict[str, dict[str, int]]:
        """Key and collision counts per map."""
        return {
            strategy.value: {
                "keys": self.size(strategy),
                "collisions": self.collisions(strategy),
            }
            for strategy in MatchStrategy
        }


def _register(bucket: dict[str, list[str]], key: str, judge_id: str) -> None:
    ids = bucket[key]
    if judge_id not in ids:
        ids.append(judge_id)


def build_index(judges: Iterable[JudgeRecord]) -> MatchIndex:
    """Build the match index from the judge reference set.

    Args:
        judges: Every judge record

    Returns:
        Immutable MatchIndex
    """
    maps: dict[MatchStrategy, dict[str, list[str]]] = {
        strategy: defaultdict(list)
        for strategy in MatchStrategy
        if strategy is not MatchStrategy.LAST_NAME
    }
    last_names: dict[str, list[LastNameEntry]] = defaultdict(list)
    by_id: dict[str, JudgeRecord] = {}
    unusable = 0

    for judge in judges:
        if judge.id in by_id:
            logger.warning(f"Duplicate judge record {judge.id} ignored")
            continue
        by_id[judge.id] = judge

        name = normalize(judge.name)
        if name.is_empty:
            unusable += 1

        # Every judge is filed under exact and normalized, even when empty
        _register(maps[MatchStrategy.EXACT], name.exact, judge.id)
        _register(maps[MatchStrategy.NORMALIZED], name.folded, judge.id)

        if name.last_name:
            last_names[name.last_name].append(LastNameEntry(judge.id, judge.name))
        if name.first_last:
            _register(maps[MatchStrategy.FIRST_LAST], name.first_last, judge.id)
        if name.initial_last:
            _register(maps[MatchStrategy.INITIAL_LAST], name.initial_last, judge.id)

        if judge.external_id:
            _register(maps[MatchStrategy.EXTERNAL_ID], judge.external_id.strip(), judge.id)

        for alias in judge.aliases:
            alias_key = fold_name(alias)
            if alias_key:
                _register(maps[MatchStrategy.ALIAS], alias_key, judge.id)

    index = MatchIndex(
        maps={
            strategy: {key: tuple(ids) for key, ids in entries.items()}
            for strategy, entries in maps.items()
        },
        last_names={key: tuple(entries) for key, entries in last_names.items()},
        judges=by_id,
    )

    if unusable:
        logger.warning(f"{unusable} judges have no usable name and can only match by external ID")

    logger.info(
        f"Built match index for {len(index)} judges",
        extra={"index_stats": index.stats()},
    )
    return index
