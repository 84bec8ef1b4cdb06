"""
Career milestone detection.

A milestone is crossed by a round when the player's cumulative total just
before the round is below the threshold and the total including the round
reaches it. Pre-round totals come from the monthly rollup table rather than
a scan of raw sessions.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from constants import (
    KILL_MILESTONE_PREFIX,
    KILL_MILESTONES,
    PLAYTIME_MILESTONE_HOURS,
    PLAYTIME_MILESTONE_PREFIX,
    SCORE_MILESTONE_PREFIX,
    SCORE_MILESTONES,
)
from models.achievement import (
    Achievement,
    AchievementType,
    MilestoneMetadata,
    Tier,
)
from models.rounds import PlayerRound, PlayerTotals
from services.badge_catalog import BadgeCatalog, get_badge_catalog
from stores.interfaces import AchievementStore, RollupSource

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MilestoneCrossing:
    """One threshold crossed between two totals."""
    achievement_id: str
    kind: str
    threshold: int
    previous: float
    new: float


def playtime_milestone_id(hours: int) -> str:
    return f"{PLAYTIME_MILESTONE_PREFIX}{hours}h"


def find_crossings(previous: PlayerTotals, new: PlayerTotals) -> list[MilestoneCrossing]:
    """
    Thresholds t with previous < t <= new, for kills, play time and score.

    Play-time thresholds are configured in hours and compared in minutes;
    the crossing reports hours.
    """
    crossings: list[MilestoneCrossing] = []

    for threshold in KILL_MILESTONES:
        if previous.kills < threshold <= new.kills:
            crossings.append(MilestoneCrossing(
                achievement_id=f"{KILL_MILESTONE_PREFIX}{threshold}",
                kind="kills",
                threshold=threshold,
                previous=previous.kills,
                new=new.kills,
            ))

    for hours in PLAYTIME_MILESTONE_HOURS:
        minutes = hours * 60
        if previous.play_time_minutes < minutes <= new.play_time_minutes:
            crossings.append(MilestoneCrossing(
                achievement_id=playtime_milestone_id(hours),
                kind="hours",
                threshold=hours,
                previous=previous.play_time_hours,
                new=new.play_time_hours,
            ))

    for threshold in SCORE_MILESTONES:
        if previous.score < threshold <= new.score:
            crossings.append(MilestoneCrossing(
                achievement_id=f"{SCORE_MILESTONE_PREFIX}{threshold}",
                kind="score",
                threshold=threshold,
                previous=previous.score,
                new=new.score,
            ))

    return crossings


def milestone_threshold(achievement_id: str) -> Optional[tuple[str, float]]:
    """
    Parse a milestone id back into (kind, threshold).

    Play-time thresholds are returned in minutes so they compare directly
    against PlayerTotals.play_time_minutes. Unknown ids return None.
    """
    try:
        if achievement_id.startswith(KILL_MILESTONE_PREFIX):
            return "kills", float(achievement_id[len(KILL_MILESTONE_PREFIX):])
        if achievement_id.startswith(SCORE_MILESTONE_PREFIX):
            return "score", float(achievement_id[len(SCORE_MILESTONE_PREFIX):])
        if achievement_id.startswith(PLAYTIME_MILESTONE_PREFIX) and achievement_id.endswith("h"):
            hours = achievement_id[len(PLAYTIME_MILESTONE_PREFIX):-1]
            return "minutes", float(hours) * 60
    except ValueError:
        return None
    return None


def dedupe_by_id(achievements: Iterable[Achievement]) -> list[Achievement]:
    """Keep the first achievement for each id (case-insensitive)."""
    seen: set[str] = set()
    result = []
    for achievement in achievements:
        key = achievement.achievement_id.lower()
        if key in seen:
            continue
        seen.add(key)
        result.append(achievement)
    return result


class MilestoneCalculator:
    """Kills, play-time and score milestones for completed rounds."""

    def __init__(
        self,
        rollups: RollupSource,
        achievements: AchievementStore,
        catalog: Optional[BadgeCatalog] = None,
    ):
        self.rollups = rollups
        self.achievements = achievements
        self.catalog = catalog or get_badge_catalog()

    async def check_round(
        self, player_round: PlayerRound, processed_at: datetime
    ) -> list[Achievement]:
        """
        Milestones crossed by one round that the player does not own yet.

        achieved_at is the round end time, so reprocessing the same round
        always produces identical rows.
        """
        owned = await self.achievements.existing_achievement_ids(
            player_round.player_name, AchievementType.MILESTONE
        )
        previous = await self.rollups.get_totals_before(
            player_round.player_name, player_round.round_end_time
        )
        new = previous.plus_round(player_round)

        candidates = [
            self._build(player_round, crossing, processed_at)
            for crossing in find_crossings(previous, new)
        ]
        owned_lower = {i.lower() for i in owned}
        return [
            a for a in dedupe_by_id(candidates)
            if a.achievement_id.lower() not in owned_lower
        ]

    def _build(
        self, player_round: PlayerRound, crossing: MilestoneCrossing, processed_at: datetime
    ) -> Achievement:
        badge = self.catalog.get(crossing.achievement_id)
        return Achievement(
            player_name=player_round.player_name,
            achievement_type=AchievementType.MILESTONE,
            achievement_id=crossing.achievement_id,
            achievement_name=badge.name if badge else crossing.achievement_id,
            tier=badge.tier if badge else Tier.BRONZE,
            value=crossing.threshold,
            achieved_at=player_round.round_end_time,
            processed_at=processed_at,
            server_guid=player_round.server_guid,
            map_name=player_round.map_name,
            round_id=player_round.round_id,
            metadata=MilestoneMetadata(
                kind=crossing.kind,
                previous=crossing.previous,
                new=crossing.new,
            ),
            game=player_round.game_id,
        )

    # -------------------------------------------------------------------------
    # Invalidation
    # -------------------------------------------------------------------------

    async def remove_invalid_milestones(self, player_names: Iterable[str]) -> int:
        """
        Delete milestones whose threshold is above the player's current total.

        Used after history was corrected (for example a round was deleted)
        and totals dropped back below thresholds that had been awarded.

        Returns:
            Number of achievements removed.
        """
        names = sorted(set(player_names))
        if not names:
            return 0

        totals = await self.rollups.get_current_totals(names)
        owned = await self.achievements.existing_ids_by_player(
            [AchievementType.MILESTONE], names
        )

        removed = 0
        for name in names:
            current = totals.get(name, PlayerTotals())
            invalid = [
                achievement_id
                for achievement_id in owned.get(name, set())
                if self._exceeds(achievement_id, current)
            ]
            if not invalid:
                continue
            removed += await self.achievements.delete_achievements(
                name, AchievementType.MILESTONE, invalid
            )
            logger.info(f"Removed {len(invalid)} invalid milestones for {name}: {sorted(invalid)}")

        return removed

    @staticmethod
    def _exceeds(achievement_id: str, totals: PlayerTotals) -> bool:
        parsed = milestone_threshold(achievement_id)
        if parsed is None:
            logger.warning(f"Unrecognised milestone id {achievement_id}, keeping it")
            return False
        kind, threshold = parsed
        if kind == "kills":
            return threshold > totals.kills
        if kind == "score":
            return threshold > totals.score
        return threshold > totals.play_time_minutes
