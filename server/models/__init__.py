"""Models package for the gamification server."""

from .achievement import (
    Achievement,
    AchievementMetadata,
    AchievementType,
    BackfillMilestoneMetadata,
    BackfillStreakMetadata,
    BadgeCategory,
    KillStreakMetadata,
    MilestoneMetadata,
    MIN_TIMESTAMP,
    PerformanceBadgeMetadata,
    PlacementMetadata,
    TeamVictoryMetadata,
    Tier,
    WatermarkFamily,
    as_utc,
)
from .badges import BadgeDefinition
from .rounds import (
    PlayerRound,
    PlayerTotals,
    RoundResult,
    SessionResult,
    SessionTeamStats,
    Snapshot,
)

__all__ = [
    "Achievement",
    "AchievementMetadata",
    "AchievementType",
    "BackfillMilestoneMetadata",
    "BackfillStreakMetadata",
    "BadgeCategory",
    "KillStreakMetadata",
    "MilestoneMetadata",
    "MIN_TIMESTAMP",
    "PerformanceBadgeMetadata",
    "PlacementMetadata",
    "TeamVictoryMetadata",
    "Tier",
    "WatermarkFamily",
    "as_utc",
    "BadgeDefinition",
    "PlayerRound",
    "PlayerTotals",
    "RoundResult",
    "SessionResult",
    "SessionTeamStats",
    "Snapshot",
]
