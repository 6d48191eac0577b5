"""
Health check endpoints - used by load balancers, Docker healthcheck, and monitoring.

- GET /health       - basic liveness (always 200 if app running)
- GET /health/ready - readiness check (DB + Redis)
- GET /health/deep  - DB + Redis + lease reaper heartbeat + lease counts
"""
import logging
from datetime import datetime, timezone
from fastapi import APIRouter, Depends
from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import AsyncSession
from leadqueue import __version__
from leadqueue.config import get_settings
from leadqueue.database import get_db
from leadqueue.models.lead import Lead
from leadqueue.services.lease_manager import lease_cutoff
from leadqueue.utils.redis_client import HEARTBEAT_KEY_PREFIX, get_redis
from leadqueue.workers.lease_reaper import WORKER_NAME as REAPER_WORKER

logger = logging.getLogger(__name__)
router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """Basic liveness check - returns 200 if the app is running."""
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": __version__,
    }


@router.get("/health/ready")
async def readiness_check(
    db: AsyncSession = Depends(get_db),
):
    """
    Readiness check - verifies database and Redis connectivity.
    Redis only carries heartbeats, so losing it degrades but never blocks leasing.
    """
    checks = {
        "database": (await _check_database(db))["healthy"],
        "redis": (await _check_redis())["healthy"],
    }
    return {
        "status": "ready" if all(checks.values()) else "degraded",
        "checks": checks,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/health/deep")
async def deep_health_check(
    db: AsyncSession = Depends(get_db),
):
    """Deep check: dependencies, reaper heartbeat and current lease counts."""
    checks = {
        "database": await _check_database(db),
        "redis": await _check_redis(),
        "lease_reaper": await _check_reaper(),
    }
    if checks["database"]["healthy"]:
        checks["leases"] = await _lease_counts(db)

    critical_healthy = checks["database"]["healthy"]
    all_healthy = all(c.get("healthy", True) for c in checks.values())
    if all_healthy:
        status = "healthy"
    elif critical_healthy:
        status = "degraded"
    else:
        status = "unhealthy"

    return {
        "status": status,
        "checks": checks,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": __version__,
    }


async def _check_database(db: AsyncSession) -> dict:
    try:
        result = await db.execute(text("SELECT 1"))
        result.scalar()
        return {"healthy": True}
    except Exception as e:
        logger.error("Database health check failed: %s", str(e))
        return {"healthy": False, "error": str(e)}


async def _check_redis() -> dict:
    try:
        redis = await get_redis()
        await redis.ping()
        return {"healthy": True}
    except Exception as e:
        logger.warning("Redis health check failed: %s", str(e))
        return {"healthy": False, "error": str(e)}


async def _check_reaper() -> dict:
    """Heartbeat freshness of the background reaper, when it is enabled."""
    if not get_settings().lease_reaper_enabled:
        return {"healthy": True, "enabled": False}
    try:
        redis = await get_redis()
        heartbeat = await redis.get(f"{HEARTBEAT_KEY_PREFIX}{REAPER_WORKER}")
        return {"healthy": heartbeat is not None, "enabled": True, "last_heartbeat": heartbeat}
    except Exception:
        return {"healthy": True, "enabled": True, "note": "Unable to check reaper heartbeat"}


async def _lease_counts(db: AsyncSession) -> dict:
    cutoff = lease_cutoff()
    active = await db.scalar(
        select(func.count(Lead.id)).where(
            Lead.current_agent_id.is_not(None), Lead.locked_at >= cutoff
        )
    )
    stale = await db.scalar(
        select(func.count(Lead.id)).where(
            Lead.current_agent_id.is_not(None), Lead.locked_at < cutoff
        )
    )
    return {"active": active or 0, "stale": stale or 0}
