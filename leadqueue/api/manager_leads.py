"""
Manager lead endpoints - revoke, transfer and the stale/stuck sweeps.
"""
import logging
from datetime import timedelta
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from leadqueue.api.helpers import parse_optional_uuid, parse_uuid
from leadqueue.database import get_db
from leadqueue.schemas.queue import (
    ReassignStuckRequest,
    RevokeRequest,
    RevokeResponse,
    SweepResponse,
    TransferRequest,
    TransferResponse,
    UnlockStuckRequest,
)
from leadqueue.services.revocation import REVOKE_MODES, reassign_stuck_leads, revoke_all
from leadqueue.services.stale_reaper import reap_stale_leases, unlock_stuck_leases
from leadqueue.services.transfer import (
    POOL_TARGET,
    TargetAgentNotFoundError,
    resolve_transfer_target,
    transfer,
)

logger = logging.getLogger(__name__)
router = APIRouter(tags=["manager-leads"])


@router.post("/api/v1/manager/leads/revoke", response_model=RevokeResponse)
async def revoke_agent_leads(
    payload: RevokeRequest,
    db: AsyncSession = Depends(get_db),
):
    """Pull every pending lead back from one agent (unlock, or unassign+unlock)."""
    agent_uuid = parse_uuid(payload.agent_id, "agent ID")
    actor_uuid = parse_optional_uuid(payload.actor_id, "actor ID")
    if payload.mode not in REVOKE_MODES:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid mode. Must be one of: {', '.join(REVOKE_MODES)}",
        )

    affected = await revoke_all(db, agent_uuid, payload.mode, actor_id=actor_uuid)
    return RevokeResponse(agent_id=payload.agent_id, mode=payload.mode, affected=affected)


@router.post("/api/v1/manager/leads/transfer", response_model=TransferResponse)
async def transfer_leads(
    payload: TransferRequest,
    db: AsyncSession = Depends(get_db),
):
    """Reassign specific leads to another agent or the pool. Results are per lead."""
    actor_uuid = parse_optional_uuid(payload.actor_id, "actor ID")
    try:
        results = await transfer(
            db, payload.lead_ids, payload.target_agent_id,
            actor_id=actor_uuid, requeue=payload.requeue,
        )
    except TargetAgentNotFoundError:
        raise HTTPException(status_code=404, detail="Target agent not found")

    return TransferResponse(
        target_agent_id=None if payload.target_agent_id == POOL_TARGET else payload.target_agent_id,
        transferred=sum(1 for r in results if r.outcome == "transferred"),
        results=results,
    )


@router.post("/api/v1/manager/leads/unlock-stale", response_model=SweepResponse)
async def unlock_stale_leads(
    db: AsyncSession = Depends(get_db),
):
    """Run the lease TTL sweep now."""
    affected = await reap_stale_leases(db)
    await db.commit()
    return SweepResponse(affected=affected)


@router.post("/api/v1/manager/leads/unlock-stuck", response_model=SweepResponse)
async def unlock_stuck(
    payload: UnlockStuckRequest,
    db: AsyncSession = Depends(get_db),
):
    """Clear leases held longer than the stuck threshold (default 4h)."""
    threshold: Optional[timedelta] = (
        timedelta(hours=payload.hours) if payload.hours is not None else None
    )
    affected = await unlock_stuck_leases(db, threshold=threshold)
    await db.commit()
    return SweepResponse(affected=affected)


@router.post("/api/v1/manager/leads/reassign-stuck", response_model=SweepResponse)
async def reassign_stuck(
    payload: ReassignStuckRequest,
    db: AsyncSession = Depends(get_db),
):
    """Move old pending leads to another agent, or back to the pool when no target is given."""
    actor_uuid = parse_optional_uuid(payload.actor_id, "actor ID")
    try:
        target = await resolve_transfer_target(db, payload.target_agent_id)
    except TargetAgentNotFoundError:
        raise HTTPException(status_code=404, detail="Target agent not found")

    affected = await reassign_stuck_leads(
        db, hours=payload.hours, target_agent_id=target, actor_id=actor_uuid,
    )
    return SweepResponse(affected=affected)
