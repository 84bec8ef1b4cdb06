"""Tests for the background achievement worker."""

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from services.errors import CycleError
from services.gamification_service import CycleResult, CycleState
from services.gamification_worker import CycleInProgressError, GamificationWorker


@pytest.fixture
def mock_service():
    service = MagicMock()
    service.state = CycleState.IDLE
    service.process_new_achievements = AsyncMock(
        return_value=CycleResult(cycle_id="abc", started_at=datetime.now(timezone.utc))
    )
    return service


class TestGamificationWorker:
    @pytest.mark.asyncio
    async def test_run_once_records_result(self, mock_service):
        worker = GamificationWorker(mock_service, interval_seconds=60)

        result = await worker.run_once()

        assert result.cycle_id == "abc"
        assert worker.cycles_completed == 1
        assert worker.last_result is result
        assert worker.status()["last_result"]["cycle_id"] == "abc"

    @pytest.mark.asyncio
    async def test_run_once_records_failure(self, mock_service):
        mock_service.process_new_achievements.side_effect = CycleError("fetch", ConnectionError("down"))
        worker = GamificationWorker(mock_service)

        with pytest.raises(CycleError):
            await worker.run_once()

        assert worker.cycles_failed == 1
        assert "fetch" in worker.last_error
        assert not worker.in_cycle

    @pytest.mark.asyncio
    async def test_overlapping_run_is_refused(self, mock_service):
        release = asyncio.Event()

        async def slow_cycle():
            await release.wait()
            return CycleResult(cycle_id="slow", started_at=datetime.now(timezone.utc))

        mock_service.process_new_achievements.side_effect = slow_cycle
        worker = GamificationWorker(mock_service)

        first = asyncio.create_task(worker.run_once())
        await asyncio.sleep(0)
        with pytest.raises(CycleInProgressError):
            await worker.run_once()

        release.set()
        assert (await first).cycle_id == "slow"

    @pytest.mark.asyncio
    async def test_loop_survives_failures_and_stops(self, mock_service):
        mock_service.process_new_achievements.side_effect = [
            CycleError("persist", RuntimeError("db")),
            CycleResult(cycle_id="ok", started_at=datetime.now(timezone.utc)),
        ] + [CycleResult(cycle_id="ok", started_at=datetime.now(timezone.utc))] * 100
        worker = GamificationWorker(mock_service, interval_seconds=0)

        await worker.start()
        for _ in range(20):
            await asyncio.sleep(0)
            if worker.cycles_completed:
                break
        await worker.stop()

        assert worker.cycles_failed == 1
        assert worker.cycles_completed >= 1
        assert not worker.running
