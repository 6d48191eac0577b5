"""
Lease reaper - optional background sweep of stale leases.
Every pull already sweeps first; this keeps the pool tidy between pulls
(dashboards showing "being worked" counts). Disabled unless
LEASE_REAPER_ENABLED=true.
"""
import asyncio
import logging

from leadqueue.config import get_settings
from leadqueue.database import async_session_factory
from leadqueue.services.stale_reaper import reap_stale_leases
from leadqueue.utils.redis_client import write_heartbeat

logger = logging.getLogger(__name__)

WORKER_NAME = "lease_reaper"


async def run_lease_reaper():
    """Main reaper loop. Runs until cancelled."""
    interval = get_settings().lease_reaper_interval_seconds
    logger.info("Lease reaper started (interval=%ds)", interval)

    while True:
        try:
            await reap_cycle()
        except Exception as e:
            logger.error("Lease reaper error: %s", str(e), exc_info=True)

        await write_heartbeat(WORKER_NAME, ttl_seconds=interval * 3)
        await asyncio.sleep(interval)


async def reap_cycle() -> int:
    """One sweep in its own session. Returns leases released."""
    async with async_session_factory() as db:
        released = await reap_stale_leases(db)
        await db.commit()
    return released
