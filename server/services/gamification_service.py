"""
Incremental achievement processing.

One cycle:
1. read the watermark of each family (regular, placement, team victory)
2. fetch player rounds finished since the regular watermark
3. run streak, milestone (and optionally performance badge) detection for
   every player round under the concurrency limiter, waiting for all
4. run placement and team victory processing from their own watermarks
5. dedupe everything and insert with "ignore if present"

Watermarks are not stored separately: each is the latest processed_at of
the family's rows, read fresh every cycle, so the service holds no state
between cycles and can crash at any point without losing work.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Iterable, Optional

from config import ProcessingSettings
from logging_config import bind_round, cycle_context
from models.achievement import MIN_TIMESTAMP, Achievement, WatermarkFamily
from models.rounds import PlayerRound
from services.badge_catalog import BadgeCatalog, get_badge_catalog
from services.errors import CycleError
from services.kill_streaks import KillStreakDetector
from services.limiter import ConcurrencyLimiter
from services.milestones import MilestoneCalculator
from services.performance_badges import PerformanceBadgeCalculator
from services.persistence_gate import PersistenceGate, PersistResult
from services.placements import PlacementProcessor
from services.team_victory import TeamVictoryProcessor
from stores.interfaces import AchievementStore, RollupSource, RoundSource, SnapshotSource

logger = logging.getLogger(__name__)


class CycleState(str, Enum):
    IDLE = "idle"
    FETCHING_ROUNDS = "fetching_rounds"
    DISPATCHING = "dispatching"
    AGGREGATING = "aggregating"
    PERSISTING = "persisting"


@dataclass
class CycleResult:
    """Summary of one processing cycle."""
    cycle_id: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    player_rounds: int = 0
    failed_rounds: list[str] = field(default_factory=list)
    regular_candidates: int = 0
    placement_candidates: int = 0
    team_victory_candidates: int = 0
    persisted: Optional[PersistResult] = None

    @property
    def inserted(self) -> int:
        return self.persisted.inserted if self.persisted else 0

    def to_dict(self) -> dict:
        return {
            "cycle_id": self.cycle_id,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "player_rounds": self.player_rounds,
            "failed_rounds": list(self.failed_rounds),
            "regular_candidates": self.regular_candidates,
            "placement_candidates": self.placement_candidates,
            "team_victory_candidates": self.team_victory_candidates,
            "unique_candidates": self.persisted.unique if self.persisted else 0,
            "inserted": self.inserted,
        }


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GamificationService:
    """
    Orchestrates all achievement calculators over newly completed rounds.

    Dependencies are the storage capabilities, so the same service runs on
    PostgreSQL or on in-memory fakes. The concurrency limiter is passed in
    and shared by every cycle.
    """

    def __init__(
        self,
        rounds: RoundSource,
        snapshots: SnapshotSource,
        rollups: RollupSource,
        achievements: AchievementStore,
        limiter: ConcurrencyLimiter,
        settings: Optional[ProcessingSettings] = None,
        catalog: Optional[BadgeCatalog] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.rounds = rounds
        self.achievements = achievements
        self.limiter = limiter
        self.settings = settings or ProcessingSettings()
        self.catalog = catalog or get_badge_catalog()
        self.clock = clock
        self.state = CycleState.IDLE

        self.kill_streaks = KillStreakDetector(snapshots, achievements, self.catalog)
        self.milestones = MilestoneCalculator(rollups, achievements, self.catalog)
        self.placements = PlacementProcessor(
            rounds, self.catalog, batch_size=self.settings.placement_batch_size
        )
        self.team_victories = TeamVictoryProcessor(
            rounds, self.catalog, batch_size=self.settings.team_victory_batch_size
        )
        self.performance_badges: Optional[PerformanceBadgeCalculator] = None
        if self.settings.performance_badges:
            self.performance_badges = PerformanceBadgeCalculator(rounds, achievements, self.catalog)
        self.gate = PersistenceGate(achievements)

    def _enter(self, state: CycleState) -> None:
        logger.debug(f"Cycle state {self.state.value} -> {state.value}")
        self.state = state

    # -------------------------------------------------------------------------
    # Incremental Cycle
    # -------------------------------------------------------------------------

    async def process_new_achievements(self) -> CycleResult:
        """
        Run one full processing cycle.

        Raises:
            CycleError: Rounds could not be fetched or the batch could not be
                persisted. Nothing from the cycle was written.
        """
        with cycle_context() as cycle_id:
            processed_at = self.clock()
            result = CycleResult(cycle_id=cycle_id, started_at=processed_at)
            try:
                return await self._run_cycle(result, processed_at)
            finally:
                self._enter(CycleState.IDLE)

    async def _run_cycle(self, result: CycleResult, processed_at: datetime) -> CycleResult:
        regular_since = await self.read_watermark(WatermarkFamily.REGULAR)
        placement_since = await self.read_watermark(WatermarkFamily.PLACEMENT)
        victory_since = await self.read_watermark(WatermarkFamily.TEAM_VICTORY)

        self._enter(CycleState.FETCHING_ROUNDS)
        try:
            player_rounds = await self.rounds.get_player_rounds_since(regular_since)
        except Exception as e:
            logger.error(f"Failed to fetch player rounds since {regular_since.isoformat()}: {e}")
            raise CycleError("fetch", e) from e
        result.player_rounds = len(player_rounds)

        self._enter(CycleState.DISPATCHING)
        regular = await self._dispatch(player_rounds, processed_at, result)
        result.regular_candidates = len(regular)

        try:
            placements = await self.placements.process_since(placement_since, processed_at)
            victories = await self.team_victories.process_since(victory_since, processed_at)
        except Exception as e:
            logger.error(f"Failed to process round-level achievements: {e}")
            raise CycleError("fetch", e) from e
        result.placement_candidates = len(placements)
        result.team_victory_candidates = len(victories)

        self._enter(CycleState.AGGREGATING)
        candidates = regular + placements + victories

        self._enter(CycleState.PERSISTING)
        result.persisted = await self._persist(candidates)
        result.finished_at = self.clock()

        logger.info(
            f"Achievement cycle complete: {result.player_rounds} player rounds "
            f"({len(result.failed_rounds)} failed), {len(candidates)} candidates, "
            f"{result.inserted} inserted"
        )
        return result

    async def read_watermark(self, family: WatermarkFamily) -> datetime:
        """Latest processed_at for a family; the minimum timestamp if unreadable."""
        try:
            watermark = await self.achievements.max_processed_at(family)
        except Exception as e:
            logger.warning(
                f"Could not read {family.value} watermark, reprocessing from the beginning: {e}"
            )
            return MIN_TIMESTAMP
        return watermark or MIN_TIMESTAMP

    async def _dispatch(
        self,
        player_rounds: list[PlayerRound],
        processed_at: datetime,
        result: CycleResult,
    ) -> list[Achievement]:
        async def isolated(player_round: PlayerRound) -> list[Achievement]:
            bind_round(player_round.round_id, player_round.player_name)
            try:
                return await self.calculate_player_round(player_round, processed_at)
            except Exception as e:
                logger.error(
                    f"Achievement calculation failed for {player_round.player_name} "
                    f"in round {player_round.round_id}: {e}",
                    exc_info=True,
                )
                result.failed_rounds.append(player_round.round_id)
                return []

        per_round = await self.limiter.map(isolated, player_rounds)
        return [achievement for batch in per_round for achievement in batch]

    async def calculate_player_round(
        self, player_round: PlayerRound, processed_at: datetime
    ) -> list[Achievement]:
        """All per-player-round calculators for one round, without isolation."""
        achievements = await self.kill_streaks.calculate_for_round(player_round, processed_at)
        achievements += await self.milestones.check_round(player_round, processed_at)
        if self.performance_badges:
            achievements += await self.performance_badges.check_round(player_round, processed_at)
        return achievements

    async def _persist(self, candidates: list[Achievement]) -> PersistResult:
        try:
            return await self.gate.persist(candidates)
        except Exception as e:
            logger.error(f"Failed to persist {len(candidates)} achievement candidates: {e}")
            raise CycleError("persist", e) from e

    # -------------------------------------------------------------------------
    # Single Round
    # -------------------------------------------------------------------------

    async def process_round(self, round_id: str) -> CycleResult:
        """
        Recompute every achievement family for one round.

        Used after a round is restored; rows that still exist are ignored
        by the insert.
        """
        with cycle_context() as cycle_id:
            processed_at = self.clock()
            result = CycleResult(cycle_id=cycle_id, started_at=processed_at)
            try:
                self._enter(CycleState.FETCHING_ROUNDS)
                try:
                    player_rounds = await self.rounds.get_player_rounds_for_round(round_id)
                    round_result = await self.rounds.get_round(round_id)
                    top = await self.rounds.get_top_sessions([round_id])
                    team_stats = await self.rounds.get_session_team_stats([round_id])
                except Exception as e:
                    logger.error(f"Failed to load round {round_id}: {e}")
                    raise CycleError("fetch", e) from e
                result.player_rounds = len(player_rounds)

                self._enter(CycleState.DISPATCHING)
                regular = await self._dispatch(player_rounds, processed_at, result)
                result.regular_candidates = len(regular)

                placements: list[Achievement] = []
                victories: list[Achievement] = []
                if round_result is not None:
                    placements = self.placements.achievements_for_round(
                        round_result, top.get(round_id, []), processed_at
                    )
                    victories = self.team_victories.achievements_for_round(
                        round_result, team_stats.get(round_id, []), processed_at
                    )
                result.placement_candidates = len(placements)
                result.team_victory_candidates = len(victories)

                self._enter(CycleState.PERSISTING)
                result.persisted = await self._persist(regular + placements + victories)
                result.finished_at = self.clock()
                logger.info(f"Reprocessed round {round_id}: {result.inserted} achievements inserted")
                return result
            finally:
                self._enter(CycleState.IDLE)

    # -------------------------------------------------------------------------
    # Corrections
    # -------------------------------------------------------------------------

    async def remove_invalid_milestones(self, player_names: Iterable[str]) -> int:
        """Drop milestones that players' corrected totals no longer support."""
        return await self.milestones.remove_invalid_milestones(player_names)


# Global service instance (set by main.py during startup)
_gamification_service: Optional[GamificationService] = None


def get_gamification_service() -> Optional[GamificationService]:
    """Get the global gamification service, if initialized."""
    return _gamification_service


def set_gamification_service(service: GamificationService) -> None:
    """Set the global gamification service instance."""
    global _gamification_service
    _gamification_service = service


def close_gamification_service() -> None:
    """Clear the global gamification service."""
    global _gamification_service
    _gamification_service = None
