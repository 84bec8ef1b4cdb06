"""
Storage capabilities the achievement pipeline depends on.

Calculators and the orchestrator are typed against these protocols, never
against a concrete store, so the same rule engine runs over PostgreSQL in
production and over in-memory fakes in tests.
"""

from datetime import datetime
from typing import Iterable, Optional, Protocol

from models.achievement import Achievement, AchievementType, WatermarkFamily
from models.rounds import (
    PlayerRound,
    PlayerTotals,
    RoundResult,
    SessionResult,
    SessionTeamStats,
    Snapshot,
)


class RoundSource(Protocol):
    """Completed rounds and per-session results."""

    async def get_player_rounds_since(self, since: datetime) -> list[PlayerRound]:
        """Closed player sessions that ended at or after `since`."""
        ...

    async def get_player_rounds_for_round(self, round_id: str) -> list[PlayerRound]:
        ...

    async def get_completed_rounds(
        self,
        since: datetime,
        limit: int,
        offset: int = 0,
        decisive_only: bool = False,
    ) -> list[RoundResult]:
        """Rounds with end_time >= since ordered by end_time, one page."""
        ...

    async def get_round(self, round_id: str) -> Optional[RoundResult]:
        ...

    async def get_top_sessions(
        self, round_ids: list[str], limit: int = 3
    ) -> dict[str, list[SessionResult]]:
        """Top non-bot sessions per round, best first."""
        ...

    async def get_session_team_stats(
        self, round_ids: list[str]
    ) -> dict[str, list[SessionTeamStats]]:
        ...

    async def get_recent_rounds(
        self, player_name: str, before: datetime, limit: int
    ) -> list[PlayerRound]:
        ...


class SnapshotSource(Protocol):
    """Ordered observation snapshots."""

    async def get_round_snapshots(self, player_round: PlayerRound) -> list[Snapshot]:
        ...


class RollupSource(Protocol):
    """Pre-aggregated per-player totals."""

    async def get_totals_before(self, player_name: str, before: datetime) -> PlayerTotals:
        ...

    async def get_current_totals(self, player_names: Iterable[str]) -> dict[str, PlayerTotals]:
        ...


class AchievementStore(Protocol):
    """Persisted achievements."""

    async def insert_batch(self, achievements: list[Achievement]) -> int:
        """Insert, ignoring rows that already exist. Returns rows inserted."""
        ...

    async def existing_achievement_ids(
        self, player_name: str, achievement_type: AchievementType
    ) -> set[str]:
        ...

    async def existing_ids_by_player(
        self,
        achievement_types: Iterable[AchievementType],
        player_names: Optional[Iterable[str]] = None,
    ) -> dict[str, set[str]]:
        ...

    async def existing_round_keys(
        self, achievement_type: AchievementType
    ) -> dict[str, set[tuple[str, str]]]:
        """(achievement_id, round_id) pairs per player."""
        ...

    async def get_round_achievements(
        self, player_name: str, round_id: str, achievement_type: AchievementType
    ) -> list[Achievement]:
        ...

    async def max_processed_at(self, family: WatermarkFamily) -> Optional[datetime]:
        ...

    async def delete_achievements(
        self,
        player_name: str,
        achievement_type: AchievementType,
        achievement_ids: Iterable[str],
    ) -> int:
        ...
