from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import uvicorn
import time
from datetime import datetime
import logging
import sys
from pathlib import Path

# Configure logging first
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent))

from app.core.config import settings
from app.db.database import Database, get_document_store

# Run migrations before the first request can touch the store
from migrations.run_migrations import run_all_migrations
run_all_migrations()

app = FastAPI(
    title=f"{settings.app_name} API",
    description="Farming game economy engine",
    version=settings.app_version
)

from app.api.farm import router as farm_router
from app.api.market import router as market_router
from app.api.rewards import router as rewards_router
from app.api.finance import router as finance_router
from app.api.admin import router as admin_router
from app.auth import router as auth_router
from app.services.game_engine import get_engine

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
async def health_check():
    start_time = time.time()
    backend_status = {"status": "up", "latency_ms": round((time.time() - start_time) * 1000, 2)}

    store = get_document_store()
    store_start_time = time.time()
    if isinstance(store, Database):
        try:
            with store._get_connection() as conn:
                cursor = conn.cursor()
                cursor.execute("SELECT 1")
                cursor.fetchone()
            store_status = {
                "status": "up",
                "kind": "postgres",
                "latency_ms": round((time.time() - store_start_time) * 1000, 2)
            }
        except Exception as e:
            logger.error(f"[DB] Health check failed: {e}")
            store_status = {"status": "down", "kind": "postgres", "latency_ms": None}
    else:
        store_status = {"status": "up", "kind": "memory", "latency_ms": 0}

    overall_status = "healthy"
    if store_status["status"] == "down":
        overall_status = "degraded"
    elif store_status["latency_ms"] and store_status["latency_ms"] > 500:
        overall_status = "degraded"

    return {
        "status": overall_status,
        "version": settings.app_version,
        "timestamp": datetime.utcnow().isoformat() + "Z",
        "checks": {
            "backend": backend_status,
            "store": store_status
        }
    }


# Include API routes
app.include_router(auth_router, prefix="/api/v1")
app.include_router(farm_router)
app.include_router(market_router)
app.include_router(rewards_router)
app.include_router(finance_router)
app.include_router(admin_router)

# Periodic engine ticks
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

scheduler = AsyncIOScheduler()


def run_growth_tick():
    """Ripen crops and settle paid spins whose reveal time has passed."""
    try:
        changed = get_engine().tick_growth()
        if changed:
            logger.debug(f"[SCHEDULER] Growth tick updated {changed} farm(s)")
    except Exception as e:
        logger.error(f"[SCHEDULER] Growth tick error: {e}")


def run_buff_sweep():
    try:
        get_engine().tick_buff_sweep()
    except Exception as e:
        logger.error(f"[SCHEDULER] Buff sweep error: {e}")


def run_daily_reset_check():
    try:
        changed = get_engine().tick_daily_reset()
        if changed:
            logger.info(f"[SCHEDULER] Daily tasks reset for {changed} farm(s)")
    except Exception as e:
        logger.error(f"[SCHEDULER] Daily reset error: {e}")


@app.on_event("startup")
async def startup_event():
    """Start the scheduler on app startup."""
    get_engine()

    if not settings.enable_scheduler:
        logger.info("[SCHEDULER] Disabled by configuration")
        return

    jobs = [
        (run_growth_tick, settings.growth_tick_seconds, "growth_tick", "Crop growth and paid spin settlement"),
        (run_buff_sweep, settings.buff_sweep_seconds, "buff_sweep", "Expired buff sweep"),
        (run_daily_reset_check, settings.daily_reset_check_seconds, "daily_reset", "Daily task reset check"),
    ]
    for func, seconds, job_id, name in jobs:
        scheduler.add_job(
            func,
            IntervalTrigger(seconds=seconds),
            id=job_id,
            name=name,
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )
    scheduler.start()
    logger.info("[SCHEDULER] APScheduler started - growth, buff sweep and daily reset jobs scheduled")


@app.on_event("shutdown")
async def shutdown_event():
    """Shutdown the scheduler on app shutdown."""
    if scheduler.running:
        scheduler.shutdown()
        logger.info("[SCHEDULER] APScheduler shutdown complete")

    store = get_document_store()
    if isinstance(store, Database):
        store.close()


@app.get("/")
async def root():
    return {"message": f"{settings.app_name} API is running"}

if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
