"""
Stale lease reaper - bulk-clear leases whose holder went quiet.

Two sweeps share one conditional update:
- reap_stale_leases: lease TTL (default 10 min), run before every pull and
  optionally by the background worker.
- unlock_stuck_leases: manager-triggered, much longer threshold (default 4 h).

Only the lease fields are cleared. Ownership (assigned_to) and status are
never touched. Idempotent: a second run over the same rows matches nothing.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from leadqueue.config import get_settings
from leadqueue.models.lead import Lead
from leadqueue.services.lease_manager import lease_cutoff, utcnow

logger = logging.getLogger(__name__)


async def _clear_leases_acquired_before(db: AsyncSession, cutoff: datetime) -> int:
    result = await db.execute(
        update(Lead)
        .where(
            Lead.current_agent_id.is_not(None),
            Lead.locked_at < cutoff,
        )
        .values(current_agent_id=None, locked_at=None)
        .returning(Lead.id)
        .execution_options(synchronize_session="fetch")
    )
    return len(result.scalars().all())


async def reap_stale_leases(
    db: AsyncSession,
    *,
    now: Optional[datetime] = None,
    ttl: Optional[timedelta] = None,
) -> int:
    """Clear every lease older than the TTL. Returns the number released. Does not commit."""
    released = await _clear_leases_acquired_before(db, lease_cutoff(now, ttl))
    if released:
        logger.info("Released %d stale lead lease(s)", released)
    return released


async def unlock_stuck_leases(
    db: AsyncSession,
    *,
    now: Optional[datetime] = None,
    threshold: Optional[timedelta] = None,
) -> int:
    """Manager sweep for leases held longer than the stuck threshold. Does not commit."""
    if threshold is None:
        threshold = timedelta(hours=get_settings().stuck_threshold_hours)
    cutoff = (now or utcnow()) - threshold
    released = await _clear_leases_acquired_before(db, cutoff)
    logger.info(
        "Unlocked %d lead(s) stuck longer than %s",
        released, threshold,
        extra={"action": "unlock_stuck"},
    )
    return released
