"""
Commit processor - apply an agent's outcome to the lead they hold.

Validation runs first and mutates nothing, so a rejected outcome leaves the
lease in place for the agent to correct and resubmit. The status change and
the lease release are a single conditional update: either the agent still
held a fresh lease and both happen, or neither does (LeaseConflictError).
"""
import logging
import uuid
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from leadqueue.config import get_settings
from leadqueue.models.lead import Lead, POTENTIAL_LEVELS
from leadqueue.models.lead_note import LeadNote
from leadqueue.schemas.queue import CommitOutcome
from leadqueue.services.activity_log import record_activity
from leadqueue.services.lease_manager import LeaseConflictError, transition_held_lead, utcnow

logger = logging.getLogger(__name__)

COMMIT_STATUSES = ("contacted", "appointment")


class CommitValidationError(Exception):
    """An outcome precondition is unmet. Nothing was written."""

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"{field}: {reason}")


def validate_outcome(outcome: CommitOutcome, min_note_length: Optional[int] = None) -> None:
    """Raise CommitValidationError for the first unmet condition."""
    if min_note_length is None:
        min_note_length = get_settings().min_note_length

    if outcome.status not in COMMIT_STATUSES:
        raise CommitValidationError(
            "status", f"must be one of {', '.join(COMMIT_STATUSES)}"
        )
    if (
        not outcome.potential_level
        or outcome.potential_level == "not_assessed"
        or outcome.potential_level not in POTENTIAL_LEVELS
    ):
        raise CommitValidationError(
            "potential_level", "potential level must be assessed (high, medium or low)"
        )
    if len(outcome.note.strip()) < min_note_length:
        raise CommitValidationError(
            "note", f"note must be at least {min_note_length} characters"
        )


async def commit_outcome(
    db: AsyncSession,
    lead_id: uuid.UUID,
    agent_id: uuid.UUID,
    outcome: CommitOutcome,
    *,
    now: Optional[datetime] = None,
    ttl: Optional[timedelta] = None,
) -> Lead:
    """
    Transition a held pending lead to contacted/appointment, release the lease,
    store the note and append a 'completed' activity entry. Commits.

    Raises CommitValidationError before touching the row, and
    LeaseConflictError when the agent no longer holds a fresh lease.
    """
    validate_outcome(outcome)
    now = now or utcnow()

    values = {
        "status": outcome.status,
        "potential_level": outcome.potential_level,
        "processed_at": now,
    }
    if outcome.status == "appointment" and outcome.appointment_date is not None:
        values["appointment_date"] = outcome.appointment_date

    lead = await transition_held_lead(db, lead_id, agent_id, values, now=now, ttl=ttl)
    if lead is None:
        logger.info(
            "Commit rejected: agent %s no longer holds lead %s",
            str(agent_id)[:8], str(lead_id)[:8],
            extra={"lead_id": str(lead_id), "agent_id": str(agent_id), "error_code": "lease_not_held"},
        )
        raise LeaseConflictError(lead_id, agent_id)

    db.add(LeadNote(
        lead_id=lead.id,
        agent_id=agent_id,
        note=outcome.note.strip(),
        action_taken=outcome.action_taken,
        recording_url=outcome.recording_url,
    ))
    record_activity(db, lead.id, agent_id, "completed", {
        "status": outcome.status,
        "potential_level": outcome.potential_level,
        "action_taken": outcome.action_taken,
        "has_recording": bool(outcome.recording_url),
    })
    await db.commit()

    logger.info(
        "Lead %s committed as %s by agent %s",
        str(lead.id)[:8], outcome.status, str(agent_id)[:8],
        extra={"lead_id": str(lead.id), "agent_id": str(agent_id), "action": "completed"},
    )
    return lead
