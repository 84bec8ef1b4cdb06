"""
Team victory achievements.

Every player who finished a decisive round on the winning side earns a
team victory; the tier reflects how much of the round they spent on that
team compared to their team mates. Players who spent most of the round on
the winning side but ended it on the losing side earn the "team switched"
variant instead.

Scoring for a winning player:
    participation = winning-team observations / total observations
    contribution  = winning-team observations / median over winners
    final         = contribution * participation
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Sequence

from constants import (
    MEDIAN_OBSERVATION_FLOOR,
    PRESENCE_WINDOW,
    SWITCHED_VICTORY_TIER_CUTOFFS,
    TEAM_VICTORY_ID,
    TEAM_VICTORY_SWITCHED_ID,
    VICTORY_TIER_CUTOFFS,
)
from models.achievement import (
    Achievement,
    AchievementType,
    TeamVictoryMetadata,
    Tier,
)
from models.rounds import RoundResult, SessionTeamStats
from services.badge_catalog import BadgeCatalog, get_badge_catalog
from stores.interfaces import RoundSource

logger = logging.getLogger(__name__)


def median_observations(counts: Sequence[int]) -> float:
    """Median of winning-team observation counts, never below the floor."""
    if not counts:
        return MEDIAN_OBSERVATION_FLOOR
    ordered = sorted(counts)
    mid = len(ordered) // 2
    if len(ordered) % 2:
        median = float(ordered[mid])
    else:
        median = (ordered[mid - 1] + ordered[mid]) / 2.0
    return max(MEDIAN_OBSERVATION_FLOOR, median)


def _tier_from(score: float, cutoffs: Sequence[tuple[float, str]]) -> Tier:
    for minimum, tier in cutoffs:
        if score >= minimum:
            return Tier(tier)
    return Tier.BRONZE


def victory_tier(final_score: float) -> Tier:
    return _tier_from(final_score, VICTORY_TIER_CUTOFFS)


def switched_victory_tier(final_score: float) -> Tier:
    return _tier_from(final_score, SWITCHED_VICTORY_TIER_CUTOFFS)


@dataclass(frozen=True)
class VictoryScore:
    participation: float
    contribution: float
    team_observations: int

    @property
    def final(self) -> float:
        return self.contribution * self.participation

    @property
    def value(self) -> int:
        return int(round(self.final * 100))


def score_player(stats: SessionTeamStats, winning_team: int, median: float) -> VictoryScore:
    team_obs = stats.observations_on(winning_team)
    if stats.total_observations > 0:
        participation = team_obs / stats.total_observations
    else:
        participation = 0.0 if stats.switched_teams else 1.0
    return VictoryScore(
        participation=participation,
        contribution=team_obs / median,
        team_observations=team_obs,
    )


def is_present_at_end(stats: SessionTeamStats, round_end: datetime) -> bool:
    """Seen within the presence window of round end."""
    if stats.last_observation_time is None:
        return False
    return stats.last_observation_time >= round_end - PRESENCE_WINDOW


class TeamVictoryProcessor:
    """Emits team victory achievements for decisive rounds since a watermark."""

    def __init__(
        self,
        rounds: RoundSource,
        catalog: Optional[BadgeCatalog] = None,
        batch_size: int = 1000,
    ):
        self.rounds = rounds
        self.catalog = catalog or get_badge_catalog()
        self.batch_size = batch_size

    async def process_since(self, since: datetime, processed_at: datetime) -> list[Achievement]:
        achievements: list[Achievement] = []
        offset = 0
        rounds_seen = 0

        while True:
            batch = await self.rounds.get_completed_rounds(
                since, self.batch_size, offset, decisive_only=True
            )
            if not batch:
                break
            rounds_seen += len(batch)

            stats = await self.rounds.get_session_team_stats([r.round_id for r in batch])
            for round_result in batch:
                achievements.extend(
                    self.achievements_for_round(
                        round_result, stats.get(round_result.round_id, []), processed_at
                    )
                )

            if len(batch) < self.batch_size:
                break
            offset += self.batch_size

        logger.info(
            f"Team victory processing: {len(achievements)} achievements from {rounds_seen} rounds"
        )
        return achievements

    def achievements_for_round(
        self,
        round_result: RoundResult,
        sessions: Sequence[SessionTeamStats],
        processed_at: datetime,
    ) -> list[Achievement]:
        """Score one round. Draws and rounds without eligible players give nothing."""
        winner = round_result.winning_team
        if winner is None:
            logger.debug(
                f"Round {round_result.round_id} has no winner "
                f"(tickets {round_result.tickets1}-{round_result.tickets2}), skipping"
            )
            return []
        if not sessions:
            return []

        # Rounds closed without an end time are measured against the last player seen
        end_time = round_result.end_time or max(s.last_seen_time for s in sessions)
        eligible = [s for s in sessions if is_present_at_end(s, end_time)]
        winners = [s for s in eligible if s.final_team == winner]
        if not winners:
            logger.debug(f"Round {round_result.round_id} has no eligible winning players")
            return []

        median = median_observations([s.observations_on(winner) for s in winners])
        achievements = []

        for stats in winners:
            if stats.total_observations <= 0:
                continue
            score = score_player(stats, winner, median)
            achievements.append(
                self._build(round_result, stats, winner, score, median, switched=False,
                            processed_at=processed_at)
            )

        for stats in eligible:
            if (
                stats.switched_teams
                and stats.majority_team == winner
                and stats.final_team != winner
            ):
                score = score_player(stats, winner, median)
                achievements.append(
                    self._build(round_result, stats, winner, score, median, switched=True,
                                processed_at=processed_at)
                )

        return achievements

    def _build(
        self,
        round_result: RoundResult,
        stats: SessionTeamStats,
        winner: int,
        score: VictoryScore,
        median: float,
        switched: bool,
        processed_at: datetime,
    ) -> Achievement:
        loser = 2 if winner == 1 else 1
        if switched:
            achievement_type = AchievementType.TEAM_VICTORY_SWITCHED
            achievement_id = TEAM_VICTORY_SWITCHED_ID
            tier = switched_victory_tier(score.final)
        else:
            achievement_type = AchievementType.TEAM_VICTORY
            achievement_id = TEAM_VICTORY_ID
            tier = victory_tier(score.final)

        badge = self.catalog.get(achievement_id)
        return Achievement(
            player_name=stats.player_name,
            achievement_type=achievement_type,
            achievement_id=achievement_id,
            achievement_name=badge.name if badge else achievement_id,
            tier=tier,
            value=score.value,
            achieved_at=round_result.end_time or stats.last_seen_time,
            processed_at=processed_at,
            server_guid=round_result.server_guid,
            map_name=round_result.map_name,
            round_id=round_result.round_id,
            metadata=TeamVictoryMetadata(
                winning_team=winner,
                winning_team_label=round_result.team_label(winner),
                winning_team_tickets=round_result.tickets(winner),
                losing_team=loser,
                losing_team_label=round_result.team_label(loser),
                losing_team_tickets=round_result.tickets(loser),
                server_name=round_result.server_name,
                score=stats.score,
                kills=stats.kills,
                deaths=stats.deaths,
                total_players=round_result.participant_count,
                participation_weight=score.participation,
                team_contribution=score.contribution,
                player_observations=stats.total_observations,
                max_possible_observations=int(round(median)),
                team_observations=score.team_observations,
                was_team_switched=stats.switched_teams,
            ),
        )
