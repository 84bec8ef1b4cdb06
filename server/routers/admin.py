"""
Admin API router for achievement processing.

Provides endpoints to run a processing cycle on demand, backfill history,
reprocess a single round and remove milestones invalidated by corrected
data. All endpoints require the X-Admin-Token header.
"""

import hmac
import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import BaseModel, Field

from config import config
from services.errors import BackfillError, BackfillRangeError, CycleError
from services.gamification_service import GamificationService
from services.gamification_worker import CycleInProgressError, GamificationWorker
from services.historical_processor import HistoricalProcessor

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin/gamification", tags=["admin"])


# =============================================================================
# Request/Response Models
# =============================================================================


class BackfillRequest(BaseModel):
    """Backfill request; omitted bounds default to the last six months."""
    start: Optional[datetime] = None
    end: Optional[datetime] = None


class InvalidateMilestonesRequest(BaseModel):
    """Players whose milestones should be re-validated."""
    player_names: list[str] = Field(min_length=1)


class InvalidateMilestonesResponse(BaseModel):
    players: int
    removed: int


# =============================================================================
# Dependencies
# =============================================================================

# These will be set by main.py during startup
_service: Optional[GamificationService] = None
_worker: Optional[GamificationWorker] = None
_historical: Optional[HistoricalProcessor] = None


def set_gamification_dependencies(
    service: Optional[GamificationService] = None,
    worker: Optional[GamificationWorker] = None,
    historical: Optional[HistoricalProcessor] = None,
) -> None:
    """Set service instances (called from main.py)."""
    global _service, _worker, _historical
    _service = service
    _worker = worker
    _historical = historical


def get_service_dep() -> GamificationService:
    if _service is None:
        raise HTTPException(status_code=503, detail="Gamification service not initialized")
    return _service


def get_historical_dep() -> HistoricalProcessor:
    if _historical is None:
        raise HTTPException(status_code=503, detail="Historical processor not initialized")
    return _historical


async def require_admin_token(x_admin_token: Optional[str] = Header(None)) -> None:
    """Reject requests without the configured admin token."""
    if not config.ADMIN_TOKEN:
        raise HTTPException(status_code=403, detail="Admin endpoints are disabled")
    if not x_admin_token or not hmac.compare_digest(x_admin_token, config.ADMIN_TOKEN):
        raise HTTPException(status_code=403, detail="Invalid admin token")


# =============================================================================
# Processing Endpoints
# =============================================================================


@router.post("/run", dependencies=[Depends(require_admin_token)])
async def run_cycle(service: GamificationService = Depends(get_service_dep)):
    """Run one incremental processing cycle and return its summary."""
    try:
        if _worker is not None:
            result = await _worker.run_once()
        else:
            result = await service.process_new_achievements()
    except CycleInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except CycleError as e:
        logger.error(f"Manual achievement cycle failed: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    return result.to_dict()


@router.post("/backfill", dependencies=[Depends(require_admin_token)])
async def backfill(
    request: BackfillRequest,
    historical: HistoricalProcessor = Depends(get_historical_dep),
):
    """Backfill milestones and kill streaks for a date range."""
    try:
        result = await historical.process_historical(request.start, request.end)
    except BackfillRangeError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except BackfillError as e:
        logger.error(f"Manual backfill failed: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    return result.to_dict()


@router.post("/rounds/{round_id}/reprocess", dependencies=[Depends(require_admin_token)])
async def reprocess_round(
    round_id: str,
    service: GamificationService = Depends(get_service_dep),
):
    """Recompute every achievement family for one round."""
    try:
        result = await service.process_round(round_id)
    except CycleError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return result.to_dict()


@router.post(
    "/milestones/invalidate",
    response_model=InvalidateMilestonesResponse,
    dependencies=[Depends(require_admin_token)],
)
async def invalidate_milestones(
    request: InvalidateMilestonesRequest,
    service: GamificationService = Depends(get_service_dep),
):
    """Remove milestones the players' current totals no longer reach."""
    removed = await service.remove_invalid_milestones(request.player_names)
    return InvalidateMilestonesResponse(
        players=len(set(request.player_names)),
        removed=removed,
    )


@router.get("/status", dependencies=[Depends(require_admin_token)])
async def status():
    """Worker status."""
    if _worker is None:
        return {"worker": "disabled"}
    return _worker.status()
