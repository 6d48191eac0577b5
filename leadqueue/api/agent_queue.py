"""
Agent queue endpoints - pull, resume, renew, release and commit.

Contention and staleness come back as 409 so the client routes the agent to
their next lead; validation failures come back as 400 with the unmet field.
"""
import logging
import uuid
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from leadqueue.api.helpers import lead_view, parse_optional_uuid, parse_uuid
from leadqueue.database import get_db
from leadqueue.models.agent import Agent
from leadqueue.schemas.queue import (
    CommitOutcome,
    CommitResponse,
    PullResponse,
    ReleaseResponse,
    RenewResponse,
    ResumeRequest,
    ResumeResponse,
)
from leadqueue.services.commit_processor import CommitValidationError, commit_outcome
from leadqueue.services.continuity import resume
from leadqueue.services.lease_manager import LeaseConflictError, release, renew
from leadqueue.services.queue_puller import pull_next

logger = logging.getLogger(__name__)
router = APIRouter(tags=["agent-queue"])


async def _get_agent_id(db: AsyncSession, agent_id: str) -> uuid.UUID:
    """Parse and check the agent is active and eligible to work leads."""
    agent_uuid = parse_uuid(agent_id, "agent ID")
    agent = await db.get(Agent, agent_uuid)
    if not agent or not agent.is_active or agent.role != "agent":
        raise HTTPException(status_code=404, detail="Agent not found")
    return agent_uuid


@router.post("/api/v1/agents/{agent_id}/queue/pull", response_model=PullResponse)
async def pull_lead(
    agent_id: str,
    db: AsyncSession = Depends(get_db),
):
    """Lease the agent's next pending lead (oldest first)."""
    agent_uuid = await _get_agent_id(db, agent_id)
    lead = await pull_next(db, agent_uuid)
    return PullResponse(lead=lead_view(lead), queue_empty=lead is None)


@router.post("/api/v1/agents/{agent_id}/queue/resume", response_model=ResumeResponse)
async def resume_lead(
    agent_id: str,
    payload: ResumeRequest,
    db: AsyncSession = Depends(get_db),
):
    """
    Reattach to the lead the client remembers. resumed=false means the agent
    got a different lead (or none) and must be told.
    """
    agent_uuid = await _get_agent_id(db, agent_id)
    remembered = parse_optional_uuid(payload.lead_id, "lead ID")
    outcome = await resume(db, agent_uuid, remembered)
    return ResumeResponse(
        lead=lead_view(outcome.lead),
        resumed=outcome.resumed,
        fallback_reason=outcome.fallback_reason,
        queue_empty=outcome.queue_empty,
    )


@router.post("/api/v1/agents/{agent_id}/leads/{lead_id}/renew", response_model=RenewResponse)
async def renew_lease(
    agent_id: str,
    lead_id: str,
    db: AsyncSession = Depends(get_db),
):
    """Heartbeat: extend a lease the agent still holds."""
    agent_uuid = parse_uuid(agent_id, "agent ID")
    lead_uuid = parse_uuid(lead_id, "lead ID")

    lead = await renew(db, lead_uuid, agent_uuid)
    if lead is None:
        raise HTTPException(status_code=409, detail="Lease no longer held")
    await db.commit()
    return RenewResponse(lead=lead_view(lead))


@router.post("/api/v1/agents/{agent_id}/leads/{lead_id}/release", response_model=ReleaseResponse)
async def release_lease(
    agent_id: str,
    lead_id: str,
    db: AsyncSession = Depends(get_db),
):
    """Give the lead back without an outcome. Safe to repeat."""
    agent_uuid = parse_uuid(agent_id, "agent ID")
    lead_uuid = parse_uuid(lead_id, "lead ID")

    released = await release(db, lead_uuid, agent_uuid)
    await db.commit()
    return ReleaseResponse(released=released)


@router.post("/api/v1/agents/{agent_id}/leads/{lead_id}/commit", response_model=CommitResponse)
async def commit_lead(
    agent_id: str,
    lead_id: str,
    payload: CommitOutcome,
    db: AsyncSession = Depends(get_db),
):
    """
    Submit the outcome for the held lead, then lease the next one. The outcome
    is already committed when the next pull runs; if that pull fails the
    response says so and the client calls /queue/pull itself.
    """
    agent_uuid = await _get_agent_id(db, agent_id)
    lead_uuid = parse_uuid(lead_id, "lead ID")

    try:
        lead = await commit_outcome(db, lead_uuid, agent_uuid, payload)
    except CommitValidationError as e:
        raise HTTPException(
            status_code=400,
            detail={"field": e.field, "message": e.reason},
        )
    except LeaseConflictError:
        raise HTTPException(
            status_code=409,
            detail="Lead was reclaimed or reassigned - pull your next lead",
        )

    committed = lead_view(lead)

    try:
        next_lead = await pull_next(db, agent_uuid)
    except SQLAlchemyError as e:
        await db.rollback()
        logger.warning(
            "Outcome saved for lead %s but next pull failed: %s",
            str(lead_uuid)[:8], str(e),
            extra={"lead_id": str(lead_uuid), "agent_id": str(agent_uuid)},
        )
        return CommitResponse(
            lead=committed,
            queue_empty=False,
            next_pull_failed=True,
        )
    return CommitResponse(
        lead=committed,
        next_lead=lead_view(next_lead),
        queue_empty=next_lead is None,
    )
