"""
Historical backfill of milestones and kill streaks.

Applies the same rules as the incremental pipeline to months of history,
using set-oriented queries (see stores/history_store.py) instead of one
round at a time.

Kill-streak timestamps are estimated. Aggregated history only tells us when
a streak started, when it ended and how many kills it had, so each threshold
is placed by linear interpolation across the streak's duration:

    achieved_at = start + duration * threshold / streak_kills

This is an approximation and is flagged as such in the row metadata.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from constants import (
    CHUNK_OVERLAP,
    KILL_MILESTONE_PREFIX,
    KILL_STREAK_THRESHOLDS,
    SCORE_MILESTONE_PREFIX,
)
from logging_config import cycle_context, get_logger
from models.achievement import (
    Achievement,
    AchievementType,
    BackfillMilestoneMetadata,
    BackfillStreakMetadata,
    Tier,
    as_utc,
)
from services.badge_catalog import BadgeCatalog, get_badge_catalog
from services.errors import BackfillError, BackfillRangeError
from services.milestones import playtime_milestone_id
from services.persistence_gate import PersistenceGate
from stores.history_store import HistoryStore, MilestoneCrossing, StreakGroup
from stores.interfaces import AchievementStore

logger = get_logger(__name__)


@dataclass
class BackfillResult:
    """Counts from one backfill run."""
    start: datetime
    end: datetime
    chunks: int = 0
    milestone_candidates: int = 0
    streak_candidates: int = 0
    skipped_existing: int = 0
    inserted: int = 0

    def to_dict(self) -> dict:
        return {
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "chunks": self.chunks,
            "milestone_candidates": self.milestone_candidates,
            "streak_candidates": self.streak_candidates,
            "skipped_existing": self.skipped_existing,
            "inserted": self.inserted,
        }


def month_chunks(start: datetime, end: datetime) -> list[tuple[datetime, datetime]]:
    """Split [start, end) at calendar month boundaries."""
    chunks = []
    cursor = start
    while cursor < end:
        if cursor.month == 12:
            next_month = cursor.replace(year=cursor.year + 1, month=1, day=1,
                                        hour=0, minute=0, second=0, microsecond=0)
        else:
            next_month = cursor.replace(month=cursor.month + 1, day=1,
                                        hour=0, minute=0, second=0, microsecond=0)
        chunk_end = min(next_month, end)
        chunks.append((cursor, chunk_end))
        cursor = chunk_end
    return chunks


def interpolate_threshold_times(
    group: StreakGroup, thresholds=KILL_STREAK_THRESHOLDS
) -> list[tuple[int, datetime]]:
    """Estimated time each threshold within the streak was reached."""
    if group.streak_kills <= 0:
        return []
    duration = group.streak_end - group.streak_start
    return [
        (threshold, group.streak_start + duration * (threshold / group.streak_kills))
        for threshold in sorted(thresholds)
        if threshold <= group.streak_kills
    ]


def milestone_id_for(crossing: MilestoneCrossing) -> tuple[str, int]:
    """Achievement id and display value for a crossing."""
    if crossing.kind == "kills":
        threshold = int(crossing.threshold)
        return f"{KILL_MILESTONE_PREFIX}{threshold}", threshold
    if crossing.kind == "score":
        threshold = int(crossing.threshold)
        return f"{SCORE_MILESTONE_PREFIX}{threshold}", threshold
    hours = int(round(crossing.threshold / 60))
    return playtime_milestone_id(hours), hours


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class HistoricalProcessor:
    """Backfills milestones and kill streaks over a date range."""

    def __init__(
        self,
        history: HistoryStore,
        achievements: AchievementStore,
        catalog: Optional[BadgeCatalog] = None,
        default_months: int = 6,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.history = history
        self.achievements = achievements
        self.catalog = catalog or get_badge_catalog()
        self.gate = PersistenceGate(achievements)
        self.default_months = default_months
        self.clock = clock

    async def process_historical(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> BackfillResult:
        """
        Backfill [start, end). Defaults to the last `default_months` months.

        Raises:
            BackfillRangeError: The range is empty.
            BackfillError: A query or insert failed.
        """
        now = self.clock()
        end = as_utc(end) if end else now
        start = as_utc(start) if start else end - timedelta(days=30 * self.default_months)
        if start >= end:
            raise BackfillRangeError(f"Backfill start {start.isoformat()} is not before end {end.isoformat()}")

        # Rows are stamped no later than the range end so the incremental
        # watermark never jumps past rounds the backfill did not cover
        processed_at = min(now, end)
        result = BackfillResult(start=start, end=end)
        with cycle_context(f"backfill-{uuid.uuid4().hex[:12]}"):
            logger.info(f"Historical backfill from {start.isoformat()} to {end.isoformat()}")
            try:
                owned_milestones = await self.achievements.existing_ids_by_player(
                    [AchievementType.MILESTONE]
                )
                owned_streaks = await self.achievements.existing_round_keys(
                    AchievementType.KILL_STREAK
                )

                await self._backfill_milestones(start, end, processed_at, owned_milestones, result)
                for chunk_start, chunk_end in month_chunks(start, end):
                    await self._backfill_streak_chunk(
                        chunk_start, chunk_end, processed_at, owned_streaks, result
                    )
                    result.chunks += 1
            except BackfillError:
                raise
            except Exception as e:
                logger.error(f"Historical backfill failed: {e}", exc_info=True)
                raise BackfillError(f"Historical backfill failed: {e}") from e

            logger.info(
                f"Historical backfill complete: {result.milestone_candidates} milestones, "
                f"{result.streak_candidates} streaks, {result.inserted} inserted"
            )
        return result

    # -------------------------------------------------------------------------
    # Milestones
    # -------------------------------------------------------------------------

    async def _backfill_milestones(
        self,
        start: datetime,
        end: datetime,
        processed_at: datetime,
        owned: dict[str, set[str]],
        result: BackfillResult,
    ) -> None:
        crossings = await self.history.get_milestone_crossings(start, end)
        candidates = []
        for crossing in crossings:
            achievement_id, value = milestone_id_for(crossing)
            if achievement_id in owned.get(crossing.player_name, set()):
                logger.with_context(player_name=crossing.player_name).debug(
                    f"Already owns {achievement_id}, skipping"
                )
                result.skipped_existing += 1
                continue
            candidates.append(self._milestone(crossing, achievement_id, value, processed_at))

        result.milestone_candidates += len(candidates)
        persisted = await self.gate.persist(candidates)
        result.inserted += persisted.inserted

    def _milestone(
        self,
        crossing: MilestoneCrossing,
        achievement_id: str,
        value: int,
        processed_at: datetime,
    ) -> Achievement:
        badge = self.catalog.get(achievement_id)
        return Achievement(
            player_name=crossing.player_name,
            achievement_type=AchievementType.MILESTONE,
            achievement_id=achievement_id,
            achievement_name=badge.name if badge else achievement_id,
            tier=badge.tier if badge else Tier.BRONZE,
            value=value,
            achieved_at=crossing.achieved_at,
            processed_at=processed_at,
            server_guid=crossing.server_guid,
            map_name=crossing.map_name,
            round_id=crossing.round_id,
            metadata=BackfillMilestoneMetadata(
                kind=crossing.kind,
                cumulative=round(crossing.cumulative, 1),
            ),
        )

    # -------------------------------------------------------------------------
    # Kill Streaks
    # -------------------------------------------------------------------------

    async def _backfill_streak_chunk(
        self,
        chunk_start: datetime,
        chunk_end: datetime,
        processed_at: datetime,
        owned: dict[str, set[tuple[str, str]]],
        result: BackfillResult,
    ) -> None:
        """
        Streaks for one month.

        The query reads from CHUNK_OVERLAP before the chunk so a streak that
        started in the previous month is seen whole; only thresholds reached
        inside [chunk_start, chunk_end) are kept.
        """
        groups = await self.history.get_streak_groups(
            chunk_start - CHUNK_OVERLAP, chunk_end, min_streak=min(KILL_STREAK_THRESHOLDS)
        )

        candidates = []
        for group in groups:
            player_owned = owned.setdefault(group.player_name, set())
            for threshold, achieved_at in interpolate_threshold_times(group):
                if not (chunk_start <= achieved_at < chunk_end):
                    continue
                achievement_id = f"kill_streak_{threshold}"
                if group.round_id and (achievement_id, group.round_id) in player_owned:
                    result.skipped_existing += 1
                    continue
                if group.round_id:
                    player_owned.add((achievement_id, group.round_id))
                candidates.append(self._streak(group, threshold, achieved_at, processed_at))

        logger.info(
            f"Streak chunk {chunk_start.date()}..{chunk_end.date()}: "
            f"{len(groups)} streaks, {len(candidates)} candidates"
        )
        result.streak_candidates += len(candidates)
        persisted = await self.gate.persist(candidates)
        result.inserted += persisted.inserted

    def _streak(
        self,
        group: StreakGroup,
        threshold: int,
        achieved_at: datetime,
        processed_at: datetime,
    ) -> Achievement:
        achievement_id = f"kill_streak_{threshold}"
        badge = self.catalog.get(achievement_id)
        return Achievement(
            player_name=group.player_name,
            achievement_type=AchievementType.KILL_STREAK,
            achievement_id=achievement_id,
            achievement_name=badge.name if badge else f"{threshold} Kill Streak",
            tier=badge.tier if badge else Tier.BRONZE,
            value=threshold,
            achieved_at=achieved_at,
            processed_at=processed_at,
            server_guid=group.server_guid,
            map_name=group.map_name,
            round_id=group.round_id,
            metadata=BackfillStreakMetadata(
                max_streak=group.streak_kills,
                streak_duration_seconds=group.duration_seconds,
            ),
        )
