"""
Health check endpoints for production deployment.

Provides:
- /health - Basic liveness check (is the app running?)
- /ready - Readiness check (can the app reach PostgreSQL?)
- /metrics - Achievement worker status for monitoring
"""

import json
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Response

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])

# Service references (set during app initialization)
_db_pool = None
_worker = None


def set_health_dependencies(db_pool=None, worker=None):
    """Set dependencies for health checks."""
    global _db_pool, _worker
    _db_pool = db_pool
    _worker = worker


@router.get("/health")
async def health_check():
    """
    Basic liveness check - is the app running?

    Always 200 while the process is alive.
    """
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/ready")
async def readiness_check():
    """
    Readiness check - can the app process achievements?

    Returns 503 if PostgreSQL is unreachable.
    """
    checks = {}
    overall_healthy = True

    if _db_pool is not None:
        try:
            async with _db_pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
            checks["database"] = {"status": "ok"}
        except Exception as e:
            logger.warning(f"Database health check failed: {e}")
            checks["database"] = {"status": "error", "message": str(e)}
            overall_healthy = False
    else:
        checks["database"] = {"status": "not_configured"}
        overall_healthy = False

    if _worker is not None:
        checks["worker"] = {"status": "running" if _worker.running else "stopped"}
    else:
        checks["worker"] = {"status": "disabled"}

    return Response(
        content=json.dumps({
            "status": "ok" if overall_healthy else "degraded",
            "checks": checks,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }),
        status_code=200 if overall_healthy else 503,
        media_type="application/json",
    )


@router.get("/metrics")
async def metrics():
    """Processing metrics for dashboards and alerting."""
    metrics_data = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if _worker is not None:
        metrics_data["gamification"] = _worker.status()
    return metrics_data
