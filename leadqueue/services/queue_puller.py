"""
Queue puller - hand an agent the next lead they own.

1. Best-effort sweep of stale leases (failure is logged, never blocks the pull).
2. Read a window of candidate ids: pending, assigned to the agent, lease free,
   ordered FIFO by created_at (or priority first when queue_order=priority).
3. Try to claim each candidate in order. A conflict means someone else won the
   race; move to the next id and never retry one that already conflicted.
4. First successful claim is logged as 'viewed' and committed.

Returns None when the agent has nothing left to work.
"""
import logging
import uuid
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from leadqueue.config import get_settings
from leadqueue.models.lead import Lead, LEASABLE_STATUS
from leadqueue.services.activity_log import record_activity
from leadqueue.services.lease_manager import claim, lease_cutoff, lease_is_free, utcnow
from leadqueue.services.stale_reaper import reap_stale_leases

logger = logging.getLogger(__name__)


def _queue_ordering(queue_order: str) -> tuple:
    if queue_order == "priority":
        return (Lead.priority.desc(), Lead.created_at.asc(), Lead.id.asc())
    return (Lead.created_at.asc(), Lead.id.asc())


async def _sweep_before_pull(db: AsyncSession, now: datetime, ttl: Optional[timedelta]) -> None:
    try:
        await reap_stale_leases(db, now=now, ttl=ttl)
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.warning("Stale lease sweep failed, pulling anyway: %s", str(e))


async def _candidate_ids(
    db: AsyncSession,
    agent_id: uuid.UUID,
    cutoff: datetime,
    exclude: set,
    limit: int,
    queue_order: str,
) -> list[uuid.UUID]:
    query = select(Lead.id).where(
        Lead.assigned_to == agent_id,
        Lead.status == LEASABLE_STATUS,
        lease_is_free(cutoff),
    )
    if exclude:
        query = query.where(Lead.id.notin_(exclude))
    query = query.order_by(*_queue_ordering(queue_order)).limit(limit)
    result = await db.execute(query)
    return list(result.scalars().all())


async def pull_next(
    db: AsyncSession,
    agent_id: uuid.UUID,
    *,
    now: Optional[datetime] = None,
    ttl: Optional[timedelta] = None,
) -> Optional[Lead]:
    """Claim and return the agent's next lead, or None if the queue is empty."""
    settings = get_settings()
    now = now or utcnow()
    cutoff = lease_cutoff(now, ttl)

    await _sweep_before_pull(db, now, ttl)

    tried: set[uuid.UUID] = set()
    conflicts = 0
    while True:
        candidates = await _candidate_ids(
            db, agent_id, cutoff, tried,
            settings.pull_candidate_window, settings.queue_order,
        )
        if not candidates:
            logger.debug(
                "Queue empty for agent %s after %d conflict(s)",
                str(agent_id)[:8], conflicts,
            )
            return None

        for lead_id in candidates:
            tried.add(lead_id)
            lead = await claim(db, lead_id, agent_id, now=now, ttl=ttl)
            if lead is None:
                conflicts += 1
                logger.debug("Claim conflict on lead %s, trying next", str(lead_id)[:8])
                continue

            record_activity(
                db, lead.id, agent_id, "viewed",
                {"source": "queue_pull", "conflicts": conflicts},
            )
            await db.commit()
            logger.info(
                "Lead %s leased to agent %s",
                str(lead.id)[:8], str(agent_id)[:8],
                extra={"lead_id": str(lead.id), "agent_id": str(agent_id), "action": "viewed"},
            )
            return lead
