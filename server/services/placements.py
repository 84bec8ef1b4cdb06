"""
Round placement achievements.

The top three non-bot sessions of every finished round earn a placement:
1st gold, 2nd silver, 3rd bronze. Ordering is score, then kills (both
descending), then session id ascending, so identical input always ranks the
same way.
"""

import logging
from datetime import datetime
from typing import Iterable, Optional

from constants import MAX_PLACEMENT, PLACEMENT_PREFIX
from models.achievement import (
    Achievement,
    AchievementType,
    PlacementMetadata,
    Tier,
)
from models.rounds import RoundResult, SessionResult
from services.badge_catalog import BadgeCatalog, get_badge_catalog
from stores.interfaces import RoundSource

logger = logging.getLogger(__name__)

PLACEMENT_TIERS = {1: Tier.GOLD, 2: Tier.SILVER, 3: Tier.BRONZE}


def rank_sessions(sessions: Iterable[SessionResult]) -> list[SessionResult]:
    """Order non-bot sessions best first."""
    return sorted(
        (s for s in sessions if not s.is_bot),
        key=lambda s: (-s.score, -s.kills, s.session_id),
    )


class PlacementProcessor:
    """Emits placement achievements for rounds completed since a watermark."""

    def __init__(
        self,
        rounds: RoundSource,
        catalog: Optional[BadgeCatalog] = None,
        batch_size: int = 2000,
    ):
        self.rounds = rounds
        self.catalog = catalog or get_badge_catalog()
        self.batch_size = batch_size

    async def process_since(self, since: datetime, processed_at: datetime) -> list[Achievement]:
        """
        Placement achievements for every round with end_time >= since.

        Rounds are paged in batches; each batch needs one ranking query.
        """
        achievements: list[Achievement] = []
        offset = 0
        batches = 0

        while True:
            batch = await self.rounds.get_completed_rounds(since, self.batch_size, offset)
            if not batch:
                break
            batches += 1

            top = await self.rounds.get_top_sessions(
                [r.round_id for r in batch], limit=MAX_PLACEMENT
            )
            for round_result in batch:
                achievements.extend(
                    self.achievements_for_round(
                        round_result, top.get(round_result.round_id, []), processed_at
                    )
                )

            if len(batch) < self.batch_size:
                break
            offset += self.batch_size

        logger.info(f"Placement processing: {len(achievements)} achievements from {batches} batches")
        return achievements

    def achievements_for_round(
        self,
        round_result: RoundResult,
        sessions: Iterable[SessionResult],
        processed_at: datetime,
    ) -> list[Achievement]:
        ranked = rank_sessions(sessions)[:MAX_PLACEMENT]
        return [
            self._build(round_result, session, placement, processed_at)
            for placement, session in enumerate(ranked, start=1)
        ]

    def _build(
        self,
        round_result: RoundResult,
        session: SessionResult,
        placement: int,
        processed_at: datetime,
    ) -> Achievement:
        achievement_id = f"{PLACEMENT_PREFIX}{placement}"
        badge = self.catalog.get(achievement_id)
        return Achievement(
            player_name=session.player_name,
            achievement_type=AchievementType.PLACEMENT,
            achievement_id=achievement_id,
            achievement_name=badge.name if badge else f"Placement {placement}",
            tier=PLACEMENT_TIERS[placement],
            value=placement,
            achieved_at=round_result.end_time or session.last_seen_time,
            processed_at=processed_at,
            server_guid=round_result.server_guid,
            map_name=round_result.map_name,
            round_id=round_result.round_id,
            metadata=PlacementMetadata(
                team=session.team,
                team_label=session.team_label,
                server_name=round_result.server_name,
                score=session.score,
                kills=session.kills,
                deaths=session.deaths,
                total_players=round_result.participant_count,
            ),
        )
