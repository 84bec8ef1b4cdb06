"""
In-memory stand-ins for the storage capabilities, plus row builders.

The fakes follow the same contracts as the PostgreSQL stores: the
achievement fake enforces the same uniqueness keys and returns inserted
counts the way ON CONFLICT DO NOTHING does.
"""

from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

from models.achievement import Achievement, AchievementType, WatermarkFamily
from models.rounds import (
    PlayerRound,
    PlayerTotals,
    RoundResult,
    SessionResult,
    SessionTeamStats,
    Snapshot,
)
from stores.history_store import MilestoneCrossing, StreakGroup

T0 = datetime(2024, 3, 1, 20, 0, tzinfo=timezone.utc)


# =============================================================================
# Builders
# =============================================================================


def make_player_round(
    player_name: str = "Alice",
    round_id: str = "round-1",
    start: datetime = T0,
    minutes: float = 30,
    kills: int = 10,
    deaths: int = 5,
    score: int = 100,
    server_guid: str = "server-1",
    map_name: str = "wake_island",
    is_bot: bool = False,
) -> PlayerRound:
    return PlayerRound(
        player_name=player_name,
        round_id=round_id,
        server_guid=server_guid,
        map_name=map_name,
        round_start_time=start,
        round_end_time=start + timedelta(minutes=minutes),
        final_kills=kills,
        final_deaths=deaths,
        final_score=score,
        play_time_minutes=minutes,
        is_bot=is_bot,
    )


def make_snapshots(
    kills: list[int],
    deaths: list[int],
    start: datetime = T0,
    step: timedelta = timedelta(seconds=30),
) -> list[Snapshot]:
    return [
        Snapshot(timestamp=start + step * i, kills=k, deaths=d)
        for i, (k, d) in enumerate(zip(kills, deaths))
    ]


def make_round(
    round_id: str = "round-1",
    end: Optional[datetime] = T0 + timedelta(minutes=30),
    tickets1: Optional[int] = 120,
    tickets2: Optional[int] = 0,
    start: datetime = T0,
    participants: int = 8,
) -> RoundResult:
    return RoundResult(
        round_id=round_id,
        server_guid="server-1",
        map_name="wake_island",
        start_time=start,
        end_time=end,
        tickets1=tickets1,
        tickets2=tickets2,
        team1_label="Axis",
        team2_label="Allies",
        participant_count=participants,
        server_name="Frontline Wake",
    )


def make_session(
    session_id: int,
    player_name: str,
    score: int,
    kills: int = 0,
    round_id: str = "round-1",
    is_bot: bool = False,
) -> SessionResult:
    return SessionResult(
        session_id=session_id,
        player_name=player_name,
        round_id=round_id,
        score=score,
        kills=kills,
        deaths=1,
        last_seen_time=T0 + timedelta(minutes=30),
        team=1,
        team_label="Axis",
        is_bot=is_bot,
    )


def make_team_stats(
    player_name: str,
    team1: int,
    team2: int,
    final_team: int,
    session_id: int = 1,
    round_id: str = "round-1",
    last_observation: Optional[datetime] = T0 + timedelta(minutes=30),
) -> SessionTeamStats:
    return SessionTeamStats(
        session_id=session_id,
        player_name=player_name,
        round_id=round_id,
        total_observations=team1 + team2,
        team1_observations=team1,
        team2_observations=team2,
        final_team=final_team,
        final_team_label="Axis" if final_team == 1 else "Allies",
        last_observation_time=last_observation,
        last_seen_time=T0 + timedelta(minutes=30),
        score=50,
        kills=5,
        deaths=2,
    )


# =============================================================================
# Fakes
# =============================================================================


class FakeRoundSource:
    def __init__(self):
        self.player_rounds: list[PlayerRound] = []
        self.rounds: dict[str, RoundResult] = {}
        self.sessions: dict[str, list[SessionResult]] = {}
        self.team_stats: dict[str, list[SessionTeamStats]] = {}
        self.recent: dict[str, list[PlayerRound]] = {}
        self.fail_player_rounds = False
        self.completed_calls: list[tuple] = []

    async def get_player_rounds_since(self, since: datetime) -> list[PlayerRound]:
        if self.fail_player_rounds:
            raise ConnectionError("tracking database unavailable")
        return sorted(
            (pr for pr in self.player_rounds if pr.round_end_time >= since),
            key=lambda pr: pr.round_end_time,
        )

    async def get_player_rounds_for_round(self, round_id: str) -> list[PlayerRound]:
        return [pr for pr in self.player_rounds if pr.round_id == round_id]

    async def get_completed_rounds(
        self, since: datetime, limit: int, offset: int = 0, decisive_only: bool = False
    ) -> list[RoundResult]:
        self.completed_calls.append((since, limit, offset, decisive_only))
        rounds = [
            r for r in self.rounds.values()
            if r.end_time is not None and r.end_time >= since and not r.is_active
        ]
        if decisive_only:
            rounds = [r for r in rounds if r.winning_team is not None]
        rounds.sort(key=lambda r: (r.end_time, r.round_id))
        return rounds[offset:offset + limit]

    async def get_round(self, round_id: str) -> Optional[RoundResult]:
        return self.rounds.get(round_id)

    async def get_top_sessions(
        self, round_ids: list[str], limit: int = 3
    ) -> dict[str, list[SessionResult]]:
        result = {}
        for round_id in round_ids:
            sessions = sorted(
                (s for s in self.sessions.get(round_id, []) if not s.is_bot),
                key=lambda s: (-s.score, -s.kills, s.session_id),
            )
            if sessions:
                result[round_id] = sessions[:limit]
        return result

    async def get_session_team_stats(
        self, round_ids: list[str]
    ) -> dict[str, list[SessionTeamStats]]:
        return {rid: self.team_stats[rid] for rid in round_ids if rid in self.team_stats}

    async def get_recent_rounds(
        self, player_name: str, before: datetime, limit: int
    ) -> list[PlayerRound]:
        rounds = sorted(
            (r for r in self.recent.get(player_name, []) if r.round_end_time <= before),
            key=lambda r: r.round_end_time,
            reverse=True,
        )
        return rounds[:limit]


class FakeSnapshotSource:
    def __init__(self):
        self.snapshots: dict[tuple[str, str], list[Snapshot]] = {}
        self.failing_rounds: set[str] = set()

    def add(self, player_name: str, round_id: str, snapshots: list[Snapshot]) -> None:
        self.snapshots[(player_name, round_id)] = snapshots

    async def get_round_snapshots(self, player_round: PlayerRound) -> list[Snapshot]:
        if player_round.round_id in self.failing_rounds:
            raise RuntimeError(f"snapshot query failed for {player_round.round_id}")
        return list(self.snapshots.get((player_round.player_name, player_round.round_id), []))


class FakeRollupSource:
    def __init__(self):
        self.before: dict[str, PlayerTotals] = {}
        self.current: dict[str, PlayerTotals] = {}

    async def get_totals_before(self, player_name: str, before: datetime) -> PlayerTotals:
        return self.before.get(player_name, PlayerTotals())

    async def get_current_totals(self, player_names: Iterable[str]) -> dict[str, PlayerTotals]:
        return {name: self.current.get(name, PlayerTotals()) for name in player_names}


class FakeAchievementStore:
    def __init__(self):
        self.rows: list[Achievement] = []
        self.insert_calls = 0
        self.fail_insert = False
        self.fail_watermark = False

    @staticmethod
    def _key(achievement: Achievement) -> tuple:
        if achievement.achievement_type.is_repeatable:
            return (achievement.player_name, achievement.achievement_id, achievement.achieved_at)
        return (achievement.player_name, achievement.achievement_id)

    async def insert_batch(self, achievements: list[Achievement]) -> int:
        self.insert_calls += 1
        if self.fail_insert:
            raise ConnectionError("insert failed")
        existing = {self._key(a) for a in self.rows}
        inserted = 0
        for achievement in achievements:
            key = self._key(achievement)
            if key in existing:
                continue
            existing.add(key)
            self.rows.append(achievement)
            inserted += 1
        return inserted

    async def existing_achievement_ids(
        self, player_name: str, achievement_type: AchievementType
    ) -> set[str]:
        return {
            a.achievement_id for a in self.rows
            if a.player_name == player_name and a.achievement_type == achievement_type
        }

    async def existing_ids_by_player(
        self,
        achievement_types: Iterable[AchievementType],
        player_names: Optional[Iterable[str]] = None,
    ) -> dict[str, set[str]]:
        types = set(achievement_types)
        names = set(player_names) if player_names is not None else None
        result: dict[str, set[str]] = {}
        for a in self.rows:
            if a.achievement_type not in types:
                continue
            if names is not None and a.player_name not in names:
                continue
            result.setdefault(a.player_name, set()).add(a.achievement_id)
        return result

    async def existing_round_keys(
        self, achievement_type: AchievementType
    ) -> dict[str, set[tuple[str, str]]]:
        result: dict[str, set[tuple[str, str]]] = {}
        for a in self.rows:
            if a.achievement_type == achievement_type and a.round_id:
                result.setdefault(a.player_name, set()).add((a.achievement_id, a.round_id))
        return result

    async def get_round_achievements(
        self, player_name: str, round_id: str, achievement_type: AchievementType
    ) -> list[Achievement]:
        return [
            a for a in self.rows
            if a.player_name == player_name
            and a.round_id == round_id
            and a.achievement_type == achievement_type
        ]

    async def max_processed_at(self, family: WatermarkFamily) -> Optional[datetime]:
        if self.fail_watermark:
            raise ConnectionError("watermark query failed")
        stamps = [
            a.processed_at for a in self.rows if a.achievement_type in family.achievement_types
        ]
        return max(stamps) if stamps else None

    async def delete_achievements(
        self,
        player_name: str,
        achievement_type: AchievementType,
        achievement_ids: Iterable[str],
    ) -> int:
        ids = set(achievement_ids)
        before = len(self.rows)
        self.rows = [
            a for a in self.rows
            if not (
                a.player_name == player_name
                and a.achievement_type == achievement_type
                and a.achievement_id in ids
            )
        ]
        return before - len(self.rows)

    def ids_for(self, player_name: str) -> list[str]:
        return sorted(a.achievement_id for a in self.rows if a.player_name == player_name)


class FakeHistoryStore:
    def __init__(self):
        self.crossings: list[MilestoneCrossing] = []
        self.groups: list[StreakGroup] = []
        self.streak_queries: list[tuple[datetime, datetime]] = []
        self.fail = False

    async def get_milestone_crossings(
        self, start: datetime, end: datetime
    ) -> list[MilestoneCrossing]:
        if self.fail:
            raise ConnectionError("history query failed")
        return [c for c in self.crossings if start <= c.achieved_at < end]

    async def get_streak_groups(
        self,
        start: datetime,
        end: datetime,
        min_streak: int,
        gap_seconds: Optional[int] = None,
    ) -> list[StreakGroup]:
        self.streak_queries.append((start, end))
        return [
            g for g in self.groups
            if start <= g.streak_start < end and g.streak_kills >= min_streak
        ]
