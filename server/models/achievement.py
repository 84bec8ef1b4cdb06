"""
Achievement records and their typed metadata.

An Achievement is the unit of output of every calculator. Records are never
updated in place: they are inserted with "ignore duplicate" semantics and
only milestone rows are ever deleted (by the invalidation pass).

Enums subclass str so `.value` is exactly what the database stores.
"""

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Union


def as_utc(value: datetime) -> datetime:
    """Return value as an aware UTC datetime (naive values are assumed UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# Lowest possible watermark; used when the stored one cannot be read
MIN_TIMESTAMP = datetime.min.replace(tzinfo=timezone.utc)


class AchievementType(str, Enum):
    """Kinds of achievement rows."""

    KILL_STREAK = "kill_streak"
    MILESTONE = "milestone"
    PLACEMENT = "placement"
    BADGE = "badge"
    TEAM_VICTORY = "team_victory"
    TEAM_VICTORY_SWITCHED = "team_victory_switched"

    @property
    def is_repeatable(self) -> bool:
        """Repeatable types can be earned again in every round."""
        return self in (
            AchievementType.KILL_STREAK,
            AchievementType.PLACEMENT,
            AchievementType.TEAM_VICTORY,
            AchievementType.TEAM_VICTORY_SWITCHED,
        )


class Tier(str, Enum):
    """Significance of an achievement, lowest first."""

    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"
    LEGEND = "legend"

    @property
    def rank(self) -> int:
        return list(Tier).index(self)


class BadgeCategory(str, Enum):
    """Catalog grouping of badge definitions."""

    PERFORMANCE = "performance"
    MILESTONE = "milestone"
    SOCIAL = "social"
    MAP_MASTERY = "map_mastery"
    CONSISTENCY = "consistency"
    TEAM_PLAY = "team_play"


class WatermarkFamily(str, Enum):
    """
    Achievement families whose processing progress is tracked separately.

    Placements and team victories are derived from whole rounds and run on
    their own schedule; everything else is derived per player round.
    """

    REGULAR = "regular"
    PLACEMENT = "placement"
    TEAM_VICTORY = "team_victory"

    @property
    def achievement_types(self) -> tuple[AchievementType, ...]:
        if self is WatermarkFamily.PLACEMENT:
            return (AchievementType.PLACEMENT,)
        if self is WatermarkFamily.TEAM_VICTORY:
            return (AchievementType.TEAM_VICTORY, AchievementType.TEAM_VICTORY_SWITCHED)
        return (
            AchievementType.KILL_STREAK,
            AchievementType.MILESTONE,
            AchievementType.BADGE,
        )


# =============================================================================
# Typed Metadata
# =============================================================================


class AchievementMetadata:
    """Base for typed metadata; serialized to JSON at the storage boundary."""

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class KillStreakMetadata(AchievementMetadata):
    actual_streak: int
    round_kills: int


@dataclass(frozen=True)
class MilestoneMetadata(AchievementMetadata):
    """Running totals either side of the round that crossed a threshold."""
    kind: str  # "kills", "hours" or "score"
    previous: float
    new: float

    def to_dict(self) -> dict:
        previous, new = self.previous, self.new
        if self.kind == "hours":
            previous, new = round(previous, 1), round(new, 1)
        else:
            previous, new = int(previous), int(new)
        return {f"previous_{self.kind}": previous, f"new_{self.kind}": new}


@dataclass(frozen=True)
class PlacementMetadata(AchievementMetadata):
    team: Optional[int]
    team_label: str
    server_name: str
    score: int
    kills: int
    deaths: int
    total_players: int


@dataclass(frozen=True)
class TeamVictoryMetadata(AchievementMetadata):
    winning_team: int
    winning_team_label: str
    winning_team_tickets: int
    losing_team: int
    losing_team_label: str
    losing_team_tickets: int
    server_name: str
    score: int
    kills: int
    deaths: int
    total_players: int
    participation_weight: float
    team_contribution: float
    player_observations: int
    max_possible_observations: int
    team_observations: int
    was_team_switched: bool

    def to_dict(self) -> dict:
        data = asdict(self)
        data["participation_weight"] = round(self.participation_weight, 3)
        data["team_contribution"] = round(self.team_contribution, 3)
        return data


@dataclass(frozen=True)
class PerformanceBadgeMetadata(AchievementMetadata):
    metric: str  # "kpm" or "kd_ratio"
    metric_value: float
    rounds_analyzed: int
    total_kills: int
    total_deaths: Optional[int] = None
    total_minutes: Optional[float] = None

    def to_dict(self) -> dict:
        data = {
            self.metric: round(self.metric_value, 2),
            "rounds_analyzed": self.rounds_analyzed,
            "total_kills": self.total_kills,
        }
        if self.total_deaths is not None:
            data["total_deaths"] = self.total_deaths
        if self.total_minutes is not None:
            data["total_minutes"] = round(self.total_minutes, 1)
        return data


@dataclass(frozen=True)
class BackfillMilestoneMetadata(AchievementMetadata):
    kind: str
    cumulative: float
    source: str = "historical_backfill"


@dataclass(frozen=True)
class BackfillStreakMetadata(AchievementMetadata):
    max_streak: int
    streak_duration_seconds: float
    interpolated: bool = True
    source: str = "historical_backfill"


MetadataValue = Union[AchievementMetadata, dict, None]


# =============================================================================
# Achievement
# =============================================================================


@dataclass
class Achievement:
    """
    A computed (candidate) or persisted achievement.

    Attributes:
        achieved_at: When the triggering event happened, not when processed.
        processed_at: When the cycle that produced the row ran.
        metadata: Typed record for new candidates, plain dict when loaded.
    """

    player_name: str
    achievement_type: AchievementType
    achievement_id: str
    achievement_name: str
    tier: Tier
    value: int
    achieved_at: datetime
    processed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    server_guid: str = ""
    map_name: str = ""
    round_id: str = ""
    metadata: MetadataValue = None
    game: str = "bf1942"

    @property
    def version(self) -> datetime:
        """Upsert version stamp; derived from achieved_at so reprocessing is stable."""
        return self.achieved_at

    @property
    def identity(self) -> tuple:
        """
        Key matching the store's uniqueness constraints.

        Repeatable types are unique per (player, id, achieved_at); everything
        else is unique per (player, id).
        """
        if self.achievement_type.is_repeatable:
            return (self.player_name, self.achievement_id, self.achieved_at)
        return (self.player_name, self.achievement_id)

    def metadata_dict(self) -> dict:
        if self.metadata is None:
            return {}
        if isinstance(self.metadata, AchievementMetadata):
            return self.metadata.to_dict()
        return dict(self.metadata)

    def metadata_json(self) -> str:
        return json.dumps(self.metadata_dict(), default=str)

    def to_dict(self) -> dict:
        """Serialize for JSON responses."""
        return {
            "player_name": self.player_name,
            "achievement_type": self.achievement_type.value,
            "achievement_id": self.achievement_id,
            "achievement_name": self.achievement_name,
            "tier": self.tier.value,
            "value": self.value,
            "achieved_at": self.achieved_at.isoformat(),
            "processed_at": self.processed_at.isoformat(),
            "server_guid": self.server_guid,
            "map_name": self.map_name,
            "round_id": self.round_id,
            "metadata": self.metadata_dict(),
            "game": self.game,
            "version": self.version.isoformat(),
        }

    @classmethod
    def from_row(cls, row: Any) -> "Achievement":
        """Build from a database row (asyncpg.Record or mapping)."""
        raw = row["metadata"]
        if isinstance(raw, str):
            metadata = json.loads(raw) if raw else {}
        else:
            metadata = dict(raw) if raw else {}

        return cls(
            player_name=row["player_name"],
            achievement_type=AchievementType(row["achievement_type"]),
            achievement_id=row["achievement_id"],
            achievement_name=row["achievement_name"],
            tier=Tier(row["tier"]),
            value=row["value"],
            achieved_at=as_utc(row["achieved_at"]),
            processed_at=as_utc(row["processed_at"]),
            server_guid=row["server_guid"] or "",
            map_name=row["map_name"] or "",
            round_id=row["round_id"] or "",
            metadata=metadata,
            game=row["game"] or "bf1942",
        )
