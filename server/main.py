"""FastAPI service for BF1942 achievement processing."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import asyncpg
import sentry_sdk
from fastapi import FastAPI
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration

from config import config
from logging_config import setup_logging
from routers.admin import router as admin_router, set_gamification_dependencies
from routers.health import router as health_router, set_health_dependencies
from services.badge_catalog import get_badge_catalog
from services.gamification_service import (
    GamificationService,
    close_gamification_service,
    set_gamification_service,
)
from services.gamification_worker import GamificationWorker
from services.historical_processor import HistoricalProcessor
from services.limiter import ConcurrencyLimiter
from stores.achievement_store import PostgresAchievementStore
from stores.history_store import HistoryStore
from stores.tracking_store import TrackingStore

# Initialize Sentry if configured
if config.SENTRY_DSN:
    sentry_sdk.init(
        dsn=config.SENTRY_DSN,
        environment=config.ENVIRONMENT,
        traces_sample_rate=0.1 if config.ENVIRONMENT == "production" else 1.0,
        integrations=[
            StarletteIntegration(transaction_style="endpoint"),
            FastApiIntegration(transaction_style="endpoint"),
        ],
    )
    logging.getLogger(__name__).info("Sentry error tracking initialized")

# Configure logging based on environment
setup_logging(
    level=config.LOG_LEVEL,
    environment=config.ENVIRONMENT,
)
logger = logging.getLogger(__name__)


# =============================================================================
# Services (initialized in lifespan)
# =============================================================================

_db_pool: Optional[asyncpg.Pool] = None
_worker: Optional[GamificationWorker] = None


async def _init_services():
    """Create the pool, stores and processors, and wire the routers."""
    global _db_pool, _worker

    _db_pool = await asyncpg.create_pool(
        config.POSTGRES_URL,
        min_size=config.DB_POOL_MIN_SIZE,
        max_size=config.DB_POOL_MAX_SIZE,
        command_timeout=config.DB_COMMAND_TIMEOUT,
    )
    logger.info("Database pool created")

    settings = config.processing
    tracking = TrackingStore(_db_pool)
    if config.ENVIRONMENT != "production":
        # Tracker tables are owned by the stats tracker in production
        await tracking.initialize_schema()
    achievements = PostgresAchievementStore(_db_pool, batch_size=settings.insert_batch_size)
    await achievements.initialize_schema()

    catalog = get_badge_catalog()
    service = GamificationService(
        rounds=tracking,
        snapshots=tracking,
        rollups=tracking,
        achievements=achievements,
        limiter=ConcurrencyLimiter(settings.max_concurrent_rounds),
        settings=settings,
        catalog=catalog,
    )
    set_gamification_service(service)

    historical = HistoricalProcessor(
        HistoryStore(_db_pool),
        achievements,
        catalog=catalog,
        default_months=settings.backfill_default_months,
    )
    logger.info(f"Gamification services initialized ({len(catalog)} badges)")

    if settings.enabled:
        _worker = GamificationWorker(service, interval_seconds=settings.interval_seconds)
        await _worker.start()
    else:
        logger.info("Scheduled achievement processing disabled")

    set_gamification_dependencies(service=service, worker=_worker, historical=historical)


async def _shutdown_services():
    """Gracefully shut down all services."""
    global _db_pool, _worker

    if _worker:
        await _worker.stop()
        _worker = None

    set_gamification_dependencies()
    close_gamification_service()

    if _db_pool:
        await _db_pool.close()
        _db_pool = None
        logger.info("Database pool closed")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for async service initialization."""
    if config.POSTGRES_URL:
        try:
            await _init_services()
        except Exception as e:
            logger.error(f"Failed to initialize services: {e}")
            raise
    else:
        logger.warning("POSTGRES_URL not configured - achievement processing disabled")

    set_health_dependencies(db_pool=_db_pool, worker=_worker)

    logger.info(f"Gamification server started (environment={config.ENVIRONMENT})")

    yield

    logger.info("Shutdown initiated...")
    await _shutdown_services()
    set_health_dependencies()
    logger.info("Shutdown complete")


app = FastAPI(
    title="BF Stats Gamification",
    debug=config.DEBUG,
    version="1.0.0",
    lifespan=lifespan,
)

app.include_router(admin_router)
app.include_router(health_router)


def run():
    """Run the server using uvicorn."""
    import uvicorn

    logger.info(f"Starting gamification server on {config.HOST}:{config.PORT}")
    logger.info(f"Debug mode: {config.DEBUG}")

    uvicorn.run(
        "main:app",
        host=config.HOST,
        port=config.PORT,
        reload=config.DEBUG,
        log_level=config.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    run()
