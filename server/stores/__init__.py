"""Stores package for gamification persistence."""

from .achievement_store import PostgresAchievementStore
from .history_store import HistoryStore, MilestoneCrossing, StreakGroup
from .interfaces import AchievementStore, RollupSource, RoundSource, SnapshotSource
from .tracking_store import TrackingStore

__all__ = [
    # Capabilities
    "AchievementStore",
    "RollupSource",
    "RoundSource",
    "SnapshotSource",
    # PostgreSQL implementations
    "PostgresAchievementStore",
    "TrackingStore",
    # Backfill queries
    "HistoryStore",
    "MilestoneCrossing",
    "StreakGroup",
]
