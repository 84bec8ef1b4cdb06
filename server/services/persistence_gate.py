"""
Deduplication and idempotent persistence of achievement candidates.

Calculators already drop what a player owns; this gate removes duplicates
between candidates of the same cycle and then inserts with "ignore if
present" semantics. The store's unique indexes are the final backstop.
"""

import logging
from dataclasses import dataclass
from typing import Iterable

from models.achievement import Achievement
from stores.interfaces import AchievementStore

logger = logging.getLogger(__name__)


def dedupe_candidates(candidates: Iterable[Achievement]) -> list[Achievement]:
    """
    Drop repeated candidates, keeping the first of each.

    Repeatable achievements are keyed by (player, id, achieved_at);
    one-off achievements by (player, id), so two rounds crossing the same
    milestone in one cycle produce a single row.
    """
    seen: set[tuple] = set()
    unique = []
    for candidate in candidates:
        key = candidate.identity
        if key in seen:
            continue
        seen.add(key)
        unique.append(candidate)
    return unique


@dataclass
class PersistResult:
    candidates: int
    unique: int
    inserted: int

    @property
    def duplicates(self) -> int:
        return self.candidates - self.unique


class PersistenceGate:
    """Dedupe then bulk insert."""

    def __init__(self, store: AchievementStore):
        self.store = store

    async def persist(self, candidates: list[Achievement]) -> PersistResult:
        unique = dedupe_candidates(candidates)
        if len(unique) < len(candidates):
            logger.debug(f"Dropped {len(candidates) - len(unique)} duplicate candidates")

        inserted = await self.store.insert_batch(unique) if unique else 0
        return PersistResult(
            candidates=len(candidates),
            unique=len(unique),
            inserted=inserted,
        )
