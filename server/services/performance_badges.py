"""
Performance badges from a player's recent form.

Two families, each with four tiers:
- Sharpshooter: kills per minute over recent rounds
- Elite Warrior: kill/death ratio over recent rounds

A tier requires both the metric and a minimum number of analysed rounds.
The highest qualifying tier is awarded unless the player already holds it
or a higher one.
"""

import logging
from datetime import datetime
from typing import Optional, Sequence

from constants import (
    KD_BADGES,
    KD_MIN_ROUNDS,
    KD_SAMPLE_ROUNDS,
    KPM_BADGES,
    KPM_MIN_ROUNDS,
    KPM_SAMPLE_ROUNDS,
)
from models.achievement import (
    Achievement,
    AchievementType,
    PerformanceBadgeMetadata,
)
from models.rounds import PlayerRound
from services.badge_catalog import BadgeCatalog, get_badge_catalog
from stores.interfaces import AchievementStore, RoundSource

logger = logging.getLogger(__name__)


def pick_badge(
    metric: float,
    rounds_analyzed: int,
    ladder: Sequence[tuple[str, float, int]],
    owned: set[str],
) -> Optional[str]:
    """
    Highest qualifying badge in the ladder, or None when the player already
    owns that tier or a higher one. The ladder is ordered highest first.
    """
    for badge_id, minimum, min_rounds in ladder:
        if badge_id in owned:
            return None
        if metric >= minimum and rounds_analyzed >= min_rounds:
            return badge_id
    return None


class PerformanceBadgeCalculator:
    """Kills-per-minute and K/D badges checked after each round."""

    def __init__(
        self,
        rounds: RoundSource,
        achievements: AchievementStore,
        catalog: Optional[BadgeCatalog] = None,
    ):
        self.rounds = rounds
        self.achievements = achievements
        self.catalog = catalog or get_badge_catalog()

    async def check_round(
        self, player_round: PlayerRound, processed_at: datetime
    ) -> list[Achievement]:
        owned = await self.achievements.existing_achievement_ids(
            player_round.player_name, AchievementType.BADGE
        )
        recent = await self.rounds.get_recent_rounds(
            player_round.player_name,
            player_round.round_end_time,
            max(KPM_SAMPLE_ROUNDS, KD_SAMPLE_ROUNDS),
        )

        results = []
        kpm = self._kpm_badge(player_round, recent[:KPM_SAMPLE_ROUNDS], owned, processed_at)
        if kpm:
            results.append(kpm)
        kd = self._kd_badge(player_round, recent[:KD_SAMPLE_ROUNDS], owned, processed_at)
        if kd:
            results.append(kd)
        return results

    def _kpm_badge(
        self,
        player_round: PlayerRound,
        recent: list[PlayerRound],
        owned: set[str],
        processed_at: datetime,
    ) -> Optional[Achievement]:
        if len(recent) < KPM_MIN_ROUNDS:
            return None
        total_kills = sum(r.final_kills for r in recent)
        total_minutes = sum(r.play_time_minutes for r in recent)
        if total_minutes <= 0:
            return None

        kpm = total_kills / total_minutes
        badge_id = pick_badge(kpm, len(recent), KPM_BADGES, owned)
        if badge_id is None:
            return None

        return self._build(
            player_round,
            badge_id,
            kpm,
            PerformanceBadgeMetadata(
                metric="kpm",
                metric_value=kpm,
                rounds_analyzed=len(recent),
                total_kills=total_kills,
                total_minutes=total_minutes,
            ),
            processed_at,
        )

    def _kd_badge(
        self,
        player_round: PlayerRound,
        recent: list[PlayerRound],
        owned: set[str],
        processed_at: datetime,
    ) -> Optional[Achievement]:
        if len(recent) < KD_MIN_ROUNDS:
            return None
        total_kills = sum(r.final_kills for r in recent)
        total_deaths = sum(r.final_deaths for r in recent)
        if total_deaths <= 0:
            return None

        kd = total_kills / total_deaths
        badge_id = pick_badge(kd, len(recent), KD_BADGES, owned)
        if badge_id is None:
            return None

        return self._build(
            player_round,
            badge_id,
            kd,
            PerformanceBadgeMetadata(
                metric="kd_ratio",
                metric_value=kd,
                rounds_analyzed=len(recent),
                total_kills=total_kills,
                total_deaths=total_deaths,
            ),
            processed_at,
        )

    def _build(
        self,
        player_round: PlayerRound,
        badge_id: str,
        metric: float,
        metadata: PerformanceBadgeMetadata,
        processed_at: datetime,
    ) -> Optional[Achievement]:
        badge = self.catalog.get(badge_id)
        if badge is None:
            logger.warning(f"Badge {badge_id} missing from catalog")
            return None

        logger.info(
            f"{player_round.player_name} earned {badge.name} "
            f"({metadata.metric}={metric:.2f} over {metadata.rounds_analyzed} rounds)"
        )
        return Achievement(
            player_name=player_round.player_name,
            achievement_type=AchievementType.BADGE,
            achievement_id=badge_id,
            achievement_name=badge.name,
            tier=badge.tier,
            value=int(metric * 100),
            achieved_at=player_round.round_end_time,
            processed_at=processed_at,
            server_guid=player_round.server_guid,
            map_name=player_round.map_name,
            round_id=player_round.round_id,
            metadata=metadata,
            game=player_round.game_id,
        )
