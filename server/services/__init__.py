"""Services package for achievement calculation and processing."""

from .badge_catalog import BadgeCatalog, get_badge_catalog
from .errors import BackfillError, BackfillRangeError, CycleError, GamificationError
from .gamification_service import (
    CycleResult,
    CycleState,
    GamificationService,
    close_gamification_service,
    get_gamification_service,
    set_gamification_service,
)
from .gamification_worker import CycleInProgressError, GamificationWorker
from .historical_processor import BackfillResult, HistoricalProcessor
from .limiter import ConcurrencyLimiter
from .persistence_gate import PersistenceGate, PersistResult

__all__ = [
    "BadgeCatalog",
    "get_badge_catalog",
    "BackfillError",
    "BackfillRangeError",
    "CycleError",
    "GamificationError",
    "CycleResult",
    "CycleState",
    "GamificationService",
    "close_gamification_service",
    "get_gamification_service",
    "set_gamification_service",
    "CycleInProgressError",
    "GamificationWorker",
    "BackfillResult",
    "HistoricalProcessor",
    "ConcurrencyLimiter",
    "PersistenceGate",
    "PersistResult",
]
