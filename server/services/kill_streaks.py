"""
Kill-streak detection from periodic snapshots.

Snapshots only give cumulative kills/deaths every few seconds, so a streak is
reconstructed from deltas between consecutive snapshots:
- kills went up and deaths did not: the streak grows by the kill delta
- deaths went up: the streak ends (kills in the same interval are dropped,
  the true ordering inside one interval is unknown)
- any counter went down: the interval is ignored (session restart or bad data)
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Sequence

from constants import KILL_STREAK_THRESHOLDS, STREAK_DUPLICATE_TOLERANCE
from models.achievement import (
    Achievement,
    AchievementType,
    KillStreakMetadata,
    Tier,
)
from models.rounds import PlayerRound, Snapshot
from services.badge_catalog import BadgeCatalog, get_badge_catalog
from stores.interfaces import AchievementStore, SnapshotSource

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StreakCrossing:
    """A streak threshold reached at a snapshot timestamp."""
    threshold: int
    achieved_at: datetime
    streak: int


def detect_streak_crossings(
    snapshots: Sequence[Snapshot],
    thresholds: Sequence[int] = KILL_STREAK_THRESHOLDS,
) -> list[StreakCrossing]:
    """
    Walk consecutive snapshot pairs and report every threshold crossed.

    Args:
        snapshots: A player's snapshots for one round, ordered by timestamp.
        thresholds: Streak lengths to report.

    Returns:
        Crossings in the order they happened. A threshold is reported at
        most once per round, even when a later streak reaches it again.
    """
    if len(snapshots) < 2:
        return []

    ordered_thresholds = sorted(thresholds)
    crossings: list[StreakCrossing] = []
    current_streak = 0
    credited: set[int] = set()

    for prev, nxt in zip(snapshots, snapshots[1:]):
        kills_delta = nxt.kills - prev.kills
        deaths_delta = nxt.deaths - prev.deaths

        if kills_delta < 0 or deaths_delta < 0:
            continue

        if deaths_delta > 0:
            current_streak = 0
            continue

        if kills_delta > 0:
            current_streak += kills_delta
            for threshold in ordered_thresholds:
                if threshold > current_streak:
                    break
                if threshold not in credited:
                    credited.add(threshold)
                    crossings.append(
                        StreakCrossing(
                            threshold=threshold,
                            achieved_at=nxt.timestamp,
                            streak=current_streak,
                        )
                    )

    return crossings


class KillStreakDetector:
    """Turns a player round into kill-streak achievement candidates."""

    def __init__(
        self,
        snapshots: SnapshotSource,
        achievements: AchievementStore,
        catalog: Optional[BadgeCatalog] = None,
        duplicate_tolerance=STREAK_DUPLICATE_TOLERANCE,
    ):
        self.snapshots = snapshots
        self.achievements = achievements
        self.catalog = catalog or get_badge_catalog()
        self.duplicate_tolerance = duplicate_tolerance

    async def calculate_for_round(
        self, player_round: PlayerRound, processed_at: datetime
    ) -> list[Achievement]:
        """
        Detect streak achievements for one player round.

        Candidates matching a stored streak of the same round and id within
        the duplicate tolerance are dropped.
        """
        snapshots = await self.snapshots.get_round_snapshots(player_round)
        if len(snapshots) < 2:
            logger.debug(
                f"Not enough snapshots ({len(snapshots)}) for streaks: "
                f"{player_round.player_name} in round {player_round.round_id}"
            )
            return []

        crossings = detect_streak_crossings(snapshots)
        if not crossings:
            return []

        candidates = [self._build(player_round, c, processed_at) for c in crossings]
        return await self._drop_already_awarded(player_round, candidates)

    def _build(
        self, player_round: PlayerRound, crossing: StreakCrossing, processed_at: datetime
    ) -> Achievement:
        achievement_id = f"kill_streak_{crossing.threshold}"
        badge = self.catalog.get(achievement_id)
        return Achievement(
            player_name=player_round.player_name,
            achievement_type=AchievementType.KILL_STREAK,
            achievement_id=achievement_id,
            achievement_name=badge.name if badge else f"{crossing.threshold} Kill Streak",
            tier=badge.tier if badge else Tier.BRONZE,
            value=crossing.threshold,
            achieved_at=crossing.achieved_at,
            processed_at=processed_at,
            server_guid=player_round.server_guid,
            map_name=player_round.map_name,
            round_id=player_round.round_id,
            metadata=KillStreakMetadata(
                actual_streak=crossing.streak,
                round_kills=player_round.final_kills,
            ),
            game=player_round.game_id,
        )

    async def _drop_already_awarded(
        self, player_round: PlayerRound, candidates: list[Achievement]
    ) -> list[Achievement]:
        existing = await self.achievements.get_round_achievements(
            player_round.player_name,
            player_round.round_id,
            AchievementType.KILL_STREAK,
        )
        if not existing:
            return candidates

        fresh = []
        for candidate in candidates:
            duplicate = any(
                e.achievement_id == candidate.achievement_id
                and abs(e.achieved_at - candidate.achieved_at) < self.duplicate_tolerance
                for e in existing
            )
            if duplicate:
                logger.debug(
                    f"Skipping {candidate.achievement_id} for {candidate.player_name}: "
                    f"already awarded in round {player_round.round_id}"
                )
            else:
                fresh.append(candidate)
        return fresh
