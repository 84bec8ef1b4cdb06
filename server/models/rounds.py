"""
Read-only views of tracked match data.

These are built by the stores from session, observation and round rows owned
by the tracking subsystem. They are never written back.
"""

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Optional

from models.achievement import as_utc


@dataclass(frozen=True)
class PlayerRound:
    """One player's completed session in a round."""

    player_name: str
    round_id: str
    server_guid: str
    map_name: str
    round_start_time: datetime
    round_end_time: datetime
    final_kills: int
    final_deaths: int
    final_score: int
    play_time_minutes: float
    team_label: str = ""
    game_id: str = "bf1942"
    is_bot: bool = False

    @classmethod
    def from_row(cls, row: Any) -> "PlayerRound":
        return cls(
            player_name=row["player_name"],
            round_id=row["round_id"],
            server_guid=row["server_guid"],
            map_name=row["map_name"] or "",
            round_start_time=as_utc(row["start_time"]),
            round_end_time=as_utc(row["last_seen_time"]),
            final_kills=row["total_kills"],
            final_deaths=row["total_deaths"],
            final_score=row["total_score"],
            play_time_minutes=float(row["play_time_minutes"] or 0),
            team_label=row["team_label"] or "",
            game_id=row["game_id"] or "bf1942",
            is_bot=bool(row["is_bot"]),
        )


@dataclass(frozen=True)
class Snapshot:
    """Point-in-time capture of a player's live counters."""

    timestamp: datetime
    kills: int
    deaths: int
    score: int = 0
    team: int = 0
    team_label: str = ""


@dataclass(frozen=True)
class PlayerTotals:
    """Cumulative career totals."""

    kills: int = 0
    score: int = 0
    play_time_minutes: float = 0.0

    @property
    def play_time_hours(self) -> float:
        return self.play_time_minutes / 60.0

    def plus_round(self, player_round: PlayerRound) -> "PlayerTotals":
        return replace(
            self,
            kills=self.kills + player_round.final_kills,
            score=self.score + player_round.final_score,
            play_time_minutes=self.play_time_minutes + player_round.play_time_minutes,
        )


@dataclass(frozen=True)
class RoundResult:
    """Round header: outcome and team labels."""

    round_id: str
    server_guid: str
    map_name: str
    start_time: datetime
    end_time: Optional[datetime]
    tickets1: Optional[int] = None
    tickets2: Optional[int] = None
    team1_label: str = ""
    team2_label: str = ""
    participant_count: int = 0
    server_name: str = ""
    is_active: bool = False

    @property
    def winning_team(self) -> Optional[int]:
        """1 or 2 when one side has strictly more tickets, else None."""
        if self.tickets1 is None or self.tickets2 is None:
            return None
        if self.tickets1 == self.tickets2:
            return None
        return 1 if self.tickets1 > self.tickets2 else 2

    def team_label(self, team: int) -> str:
        return self.team1_label if team == 1 else self.team2_label

    def tickets(self, team: int) -> int:
        value = self.tickets1 if team == 1 else self.tickets2
        return value or 0

    @classmethod
    def from_row(cls, row: Any) -> "RoundResult":
        end_time = row["end_time"]
        return cls(
            round_id=row["round_id"],
            server_guid=row["server_guid"],
            map_name=row["map_name"] or "",
            start_time=as_utc(row["start_time"]),
            end_time=as_utc(end_time) if end_time else None,
            tickets1=row["tickets1"],
            tickets2=row["tickets2"],
            team1_label=row["team1_label"] or "",
            team2_label=row["team2_label"] or "",
            participant_count=row["participant_count"] or 0,
            server_name=row["server_name"] or "",
            is_active=bool(row["is_active"]),
        )


@dataclass(frozen=True)
class SessionResult:
    """A player's final line in a round, used for placements."""

    session_id: int
    player_name: str
    round_id: str
    score: int
    kills: int
    deaths: int
    last_seen_time: datetime
    team: Optional[int] = None
    team_label: str = ""
    is_bot: bool = False

    @classmethod
    def from_row(cls, row: Any) -> "SessionResult":
        return cls(
            session_id=row["session_id"],
            player_name=row["player_name"],
            round_id=row["round_id"],
            score=row["total_score"],
            kills=row["total_kills"],
            deaths=row["total_deaths"],
            last_seen_time=as_utc(row["last_seen_time"]),
            team=row["team"],
            team_label=row["team_label"] or "",
            is_bot=bool(row["is_bot"]),
        )


@dataclass(frozen=True)
class SessionTeamStats:
    """Per-session observation counts by team, used for team victories."""

    session_id: int
    player_name: str
    round_id: str
    total_observations: int
    team1_observations: int
    team2_observations: int
    final_team: Optional[int]
    final_team_label: str
    last_observation_time: Optional[datetime]
    last_seen_time: datetime
    score: int = 0
    kills: int = 0
    deaths: int = 0

    @property
    def switched_teams(self) -> bool:
        return self.team1_observations > 0 and self.team2_observations > 0

    @property
    def majority_team(self) -> Optional[int]:
        """Team with the most observations; ties go to the final team."""
        if self.team1_observations > self.team2_observations:
            return 1
        if self.team2_observations > self.team1_observations:
            return 2
        return self.final_team

    def observations_on(self, team: int) -> int:
        return self.team1_observations if team == 1 else self.team2_observations

    @classmethod
    def from_row(cls, row: Any) -> "SessionTeamStats":
        last_obs = row["last_observation_time"]
        return cls(
            session_id=row["session_id"],
            player_name=row["player_name"],
            round_id=row["round_id"],
            total_observations=row["total_observations"],
            team1_observations=row["team1_observations"],
            team2_observations=row["team2_observations"],
            final_team=row["final_team"],
            final_team_label=row["final_team_label"] or "",
            last_observation_time=as_utc(last_obs) if last_obs else None,
            last_seen_time=as_utc(row["last_seen_time"]),
            score=row["total_score"],
            kills=row["total_kills"],
            deaths=row["total_deaths"],
        )
