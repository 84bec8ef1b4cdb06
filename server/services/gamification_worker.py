"""
Background scheduler for achievement processing.

A single asyncio task runs one cycle, sleeps for the interval, and repeats.
Because every cycle runs inside that one task, cycles never overlap; a cycle
that outlasts the interval simply delays the next one. Manual triggers go
through run_once and are refused while a cycle is in flight.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional

from services.errors import GamificationError
from services.gamification_service import CycleResult, GamificationService

logger = logging.getLogger(__name__)


class CycleInProgressError(GamificationError):
    """A cycle is already running."""
    pass


class GamificationWorker:
    """Runs GamificationService.process_new_achievements on a fixed interval."""

    def __init__(self, service: GamificationService, interval_seconds: int = 300):
        self.service = service
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None
        self._running = False
        self._in_cycle = False

        self.cycles_completed = 0
        self.cycles_failed = 0
        self.last_run_at: Optional[datetime] = None
        self.last_result: Optional[CycleResult] = None
        self.last_error: Optional[str] = None

    @property
    def running(self) -> bool:
        return self._running

    @property
    def in_cycle(self) -> bool:
        return self._in_cycle

    async def start(self) -> None:
        """Start the background task."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._loop())
        logger.info(f"Gamification worker started (interval={self.interval_seconds}s)")

    async def stop(self) -> None:
        """Stop the background task, cancelling any cycle in flight."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Gamification worker stopped")

    async def run_once(self) -> CycleResult:
        """
        Run one cycle now.

        Raises:
            CycleInProgressError: Another cycle has not finished yet.
            CycleError: The cycle failed; see GamificationService.
        """
        if self._in_cycle:
            raise CycleInProgressError("An achievement cycle is already running")

        self._in_cycle = True
        self.last_run_at = datetime.now(timezone.utc)
        try:
            result = await self.service.process_new_achievements()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.cycles_failed += 1
            self.last_error = str(e)
            raise
        finally:
            self._in_cycle = False

        self.cycles_completed += 1
        self.last_result = result
        self.last_error = None
        return result

    async def _loop(self) -> None:
        """Run a cycle, then wait for the interval; errors wait for the next tick."""
        while self._running:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                break
            except CycleInProgressError:
                logger.info("Skipping scheduled cycle, a manual cycle is still running")
            except Exception as e:
                logger.error(f"Achievement processing cycle failed: {e}", exc_info=True)

            try:
                await asyncio.sleep(self.interval_seconds)
            except asyncio.CancelledError:
                break

    def status(self) -> dict:
        return {
            "running": self._running,
            "in_cycle": self._in_cycle,
            "interval_seconds": self.interval_seconds,
            "cycles_completed": self.cycles_completed,
            "cycles_failed": self.cycles_failed,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "last_result": self.last_result.to_dict() if self.last_result else None,
            "last_error": self.last_error,
            "service_state": self.service.state.value,
        }
