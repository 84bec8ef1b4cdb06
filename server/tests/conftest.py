"""Shared fixtures for achievement pipeline tests."""

from datetime import timedelta

import pytest

from config import ProcessingSettings
from services.badge_catalog import get_badge_catalog
from services.gamification_service import GamificationService
from services.limiter import ConcurrencyLimiter

from fakes import (
    T0,
    FakeAchievementStore,
    FakeHistoryStore,
    FakeRollupSource,
    FakeRoundSource,
    FakeSnapshotSource,
)


@pytest.fixture
def catalog():
    return get_badge_catalog()


@pytest.fixture
def round_source():
    return FakeRoundSource()


@pytest.fixture
def snapshot_source():
    return FakeSnapshotSource()


@pytest.fixture
def rollup_source():
    return FakeRollupSource()


@pytest.fixture
def achievement_store():
    return FakeAchievementStore()


@pytest.fixture
def history_store():
    return FakeHistoryStore()


@pytest.fixture
def processed_at():
    return T0 + timedelta(hours=2)


@pytest.fixture
def service(round_source, snapshot_source, rollup_source, achievement_store, processed_at):
    """Orchestrator over the in-memory fakes with a fixed clock."""
    return GamificationService(
        rounds=round_source,
        snapshots=snapshot_source,
        rollups=rollup_source,
        achievements=achievement_store,
        limiter=ConcurrencyLimiter(10),
        settings=ProcessingSettings(),
        clock=lambda: processed_at,
    )
