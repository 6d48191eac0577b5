"""
Lease manager - atomic claim / renew / release on a single lead.

Every primitive is one conditional UPDATE ... RETURNING. The precondition
(lease free, lease held by the caller) lives in the WHERE clause, so the row
is inspected and mutated in the same statement. A None result is a Conflict:
the precondition no longer held at write time.

Primitives never commit - the operation that calls them owns the transaction.
"""
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import and_, or_, update
from sqlalchemy.ext.asyncio import AsyncSession

from leadqueue.config import get_settings
from leadqueue.models.lead import Lead, LEASABLE_STATUS

logger = logging.getLogger(__name__)


class LeaseConflictError(Exception):
    """The caller no longer holds the lease it is acting on."""

    def __init__(self, lead_id, agent_id, reason: str = "lease_not_held"):
        self.lead_id = lead_id
        self.agent_id = agent_id
        self.reason = reason
        super().__init__(
            f"Lead {str(lead_id)[:8]} is not leased by agent {str(agent_id)[:8]} ({reason})"
        )


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def get_lease_ttl() -> timedelta:
    return timedelta(seconds=get_settings().lease_ttl_seconds)


def lease_cutoff(now: Optional[datetime] = None, ttl: Optional[timedelta] = None) -> datetime:
    """Leases acquired before this instant are stale."""
    now = now or utcnow()
    ttl = ttl if ttl is not None else get_lease_ttl()
    return now - ttl


def lease_is_free(cutoff: datetime):
    """SQL predicate: nobody holds the lead, or the holder's lease is stale."""
    return or_(
        Lead.current_agent_id.is_(None),
        Lead.locked_at.is_(None),
        Lead.locked_at < cutoff,
    )


def lease_held_by(agent_id: uuid.UUID, cutoff: datetime):
    """SQL predicate: agent_id holds a fresh lease."""
    return and_(
        Lead.current_agent_id == agent_id,
        Lead.locked_at >= cutoff,
    )


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite returns naive datetimes; everything we store is UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def lease_expires_at(lead: Lead, ttl: Optional[timedelta] = None) -> Optional[datetime]:
    if lead.current_agent_id is None or lead.locked_at is None:
        return None
    ttl = ttl if ttl is not None else get_lease_ttl()
    return as_utc(lead.locked_at) + ttl


def is_lease_stale(
    lead: Lead,
    now: Optional[datetime] = None,
    ttl: Optional[timedelta] = None,
) -> bool:
    """True when a lease is recorded on the row but has outlived its TTL."""
    expires = lease_expires_at(lead, ttl)
    if expires is None:
        return False
    return (now or utcnow()) >= expires


async def _conditional_update(
    db: AsyncSession,
    lead_id: uuid.UUID,
    conditions: list,
    values: dict,
) -> Optional[Lead]:
    result = await db.execute(
        update(Lead)
        .where(Lead.id == lead_id, *conditions)
        .values(**values)
        .returning(Lead)
        .execution_options(synchronize_session="fetch")
    )
    return result.scalar_one_or_none()


async def claim(
    db: AsyncSession,
    lead_id: uuid.UUID,
    agent_id: uuid.UUID,
    *,
    now: Optional[datetime] = None,
    ttl: Optional[timedelta] = None,
) -> Optional[Lead]:
    """
    Take the lease on a pending lead if nobody holds it or the holder's
    lease is stale. Returns the leased lead, or None on conflict.
    """
    now = now or utcnow()
    lead = await _conditional_update(
        db,
        lead_id,
        [Lead.status == LEASABLE_STATUS, lease_is_free(lease_cutoff(now, ttl))],
        {"current_agent_id": agent_id, "locked_at": now},
    )
    if lead is None:
        logger.debug(
            "Claim conflict on lead %s for agent %s",
            str(lead_id)[:8], str(agent_id)[:8],
            extra={"lead_id": str(lead_id), "agent_id": str(agent_id)},
        )
    return lead


async def renew(
    db: AsyncSession,
    lead_id: uuid.UUID,
    agent_id: uuid.UUID,
    *,
    now: Optional[datetime] = None,
    ttl: Optional[timedelta] = None,
) -> Optional[Lead]:
    """Bump locked_at on a fresh lease the caller already holds. None on conflict."""
    now = now or utcnow()
    lead = await _conditional_update(
        db,
        lead_id,
        [Lead.status == LEASABLE_STATUS, lease_held_by(agent_id, lease_cutoff(now, ttl))],
        {"locked_at": now},
    )
    if lead is None:
        logger.debug(
            "Renew conflict on lead %s for agent %s",
            str(lead_id)[:8], str(agent_id)[:8],
            extra={"lead_id": str(lead_id), "agent_id": str(agent_id)},
        )
    return lead


async def release(
    db: AsyncSession,
    lead_id: uuid.UUID,
    agent_id: uuid.UUID,
) -> bool:
    """
    Clear the lease if agent_id holds it. Idempotent: a second call, or a
    call from anyone else, matches no row and changes nothing.
    """
    lead = await _conditional_update(
        db,
        lead_id,
        [Lead.current_agent_id == agent_id],
        {"current_agent_id": None, "locked_at": None},
    )
    return lead is not None


async def transition_held_lead(
    db: AsyncSession,
    lead_id: uuid.UUID,
    agent_id: uuid.UUID,
    values: dict,
    *,
    now: Optional[datetime] = None,
    ttl: Optional[timedelta] = None,
) -> Optional[Lead]:
    """
    Apply `values` (a status change out of pending) and drop the lease in the
    same statement, only while agent_id still holds a fresh lease.
    """
    now = now or utcnow()
    return await _conditional_update(
        db,
        lead_id,
        [Lead.status == LEASABLE_STATUS, lease_held_by(agent_id, lease_cutoff(now, ttl))],
        {**values, "current_agent_id": None, "locked_at": None},
    )
