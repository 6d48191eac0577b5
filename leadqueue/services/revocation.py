"""
Revocation service - manager overrides that pull leads back from agents.

revoke_all: every pending lead assigned to one agent, or leased by them,
loses its lease ("unlock"). "unassign" also returns the agent's own leads
to the pool. Leads owned by someone else keep their owner.

reassign_stuck_leads: pending leads that have sat with an agent longer than
N hours (created_at as the age proxy) move to another agent or the pool.

Both run as windows of independent conditional updates, each committed on its
own, so a failure part-way leaves earlier windows applied and a rerun picks up
the rest. Each write re-checks the selection predicate, so the count returned
is rows actually changed and a second call reports 0.
"""
import logging
import uuid
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import case, null, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from leadqueue.config import get_settings
from leadqueue.models.lead import Lead, LEASABLE_STATUS
from leadqueue.services.activity_log import record_activity
from leadqueue.services.lease_manager import utcnow

logger = logging.getLogger(__name__)

REVOKE_MODES = ("unlock", "unassign")


async def _apply_in_windows(
    db: AsyncSession,
    conditions: list,
    values: dict,
    action: str,
    actor_id: Optional[uuid.UUID],
    metadata: dict,
) -> int:
    batch_size = get_settings().revoke_batch_size
    total = 0
    while True:
        ids = (await db.execute(
            select(Lead.id)
            .where(*conditions)
            .order_by(Lead.created_at.asc(), Lead.id.asc())
            .limit(batch_size)
        )).scalars().all()
        if not ids:
            break

        changed = (await db.execute(
            update(Lead)
            .where(Lead.id.in_(ids), *conditions)
            .values(**values)
            .returning(Lead.id)
            .execution_options(synchronize_session="fetch")
        )).scalars().all()
        for lead_id in changed:
            record_activity(db, lead_id, actor_id, action, metadata)
        await db.commit()

        total += len(changed)
        if len(ids) < batch_size:
            break
    return total


async def revoke_all(
    db: AsyncSession,
    agent_id: uuid.UUID,
    mode: str = "unlock",
    *,
    actor_id: Optional[uuid.UUID] = None,
) -> int:
    """Clear leases the agent owns or holds. Returns rows changed. Commits."""
    if mode not in REVOKE_MODES:
        raise ValueError(f"Unknown revoke mode: {mode}")

    owned_or_held = or_(Lead.assigned_to == agent_id, Lead.current_agent_id == agent_id)
    conditions = [Lead.status == LEASABLE_STATUS, owned_or_held]
    values = {"current_agent_id": None, "locked_at": None}
    if mode == "unassign":
        # leases held on other agents' leads are cleared, ownership stays
        values["assigned_to"] = case(
            (Lead.assigned_to == agent_id, null()), else_=Lead.assigned_to
        )
    else:
        conditions.append(or_(Lead.current_agent_id.is_not(None), Lead.locked_at.is_not(None)))

    affected = await _apply_in_windows(
        db, conditions, values,
        action="lease_revoked",
        actor_id=actor_id,
        metadata={"mode": mode, "agent_id": str(agent_id)},
    )
    logger.info(
        "Revoked %d lead(s) from agent %s (mode=%s)",
        affected, str(agent_id)[:8], mode,
        extra={"agent_id": str(agent_id), "actor_id": str(actor_id) if actor_id else None, "action": "lease_revoked"},
    )
    return affected


async def reassign_stuck_leads(
    db: AsyncSession,
    *,
    hours: Optional[int] = None,
    target_agent_id: Optional[uuid.UUID] = None,
    actor_id: Optional[uuid.UUID] = None,
    now: Optional[datetime] = None,
) -> int:
    """
    Move pending, assigned leads older than `hours` to target_agent_id
    (None = unassigned pool), clearing any lease. Returns rows changed. Commits.
    """
    if hours is None:
        hours = get_settings().stuck_reassign_hours
    threshold = (now or utcnow()) - timedelta(hours=hours)

    conditions = [
        Lead.status == LEASABLE_STATUS,
        Lead.assigned_to.is_not(None),
        Lead.created_at < threshold,
    ]
    if target_agent_id is not None:
        conditions.append(Lead.assigned_to != target_agent_id)

    affected = await _apply_in_windows(
        db, conditions,
        {"assigned_to": target_agent_id, "current_agent_id": None, "locked_at": None},
        action="lead_reassigned",
        actor_id=actor_id,
        metadata={
            "target_agent_id": str(target_agent_id) if target_agent_id else "pool",
            "hours": hours,
        },
    )
    logger.info(
        "Reassigned %d stuck lead(s) older than %dh to %s",
        affected, hours, str(target_agent_id)[:8] if target_agent_id else "pool",
        extra={"actor_id": str(actor_id) if actor_id else None, "action": "lead_reassigned"},
    )
    return affected
