"""
Client continuity - reattach an agent to the lead they were working before a
page reload. The client remembers the lead id; the server only trusts it if
the agent still holds a fresh lease on that lead.
"""
import logging
import uuid
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from leadqueue.models.lead import Lead
from leadqueue.services.activity_log import record_activity
from leadqueue.services.lease_manager import renew
from leadqueue.services.queue_puller import pull_next

logger = logging.getLogger(__name__)


class ResumeOutcome:
    """Result of a resume attempt."""

    def __init__(
        self,
        lead: Optional[Lead],
        resumed: bool,
        fallback_reason: Optional[str] = None,
    ):
        self.lead = lead
        self.resumed = resumed
        self.fallback_reason = fallback_reason  # no_remembered_lead, lease_not_held

    @property
    def queue_empty(self) -> bool:
        return self.lead is None


async def resume(
    db: AsyncSession,
    agent_id: uuid.UUID,
    remembered_lead_id: Optional[uuid.UUID],
    *,
    now: Optional[datetime] = None,
    ttl: Optional[timedelta] = None,
) -> ResumeOutcome:
    """Renew the remembered lead if still held, else fall back to a fresh pull."""
    if remembered_lead_id is None:
        lead = await pull_next(db, agent_id, now=now, ttl=ttl)
        return ResumeOutcome(lead, resumed=False, fallback_reason="no_remembered_lead")

    lead = await renew(db, remembered_lead_id, agent_id, now=now, ttl=ttl)
    if lead is not None:
        record_activity(db, lead.id, agent_id, "resumed", {"source": "continuity"})
        await db.commit()
        return ResumeOutcome(lead, resumed=True)

    logger.info(
        "Agent %s lost lease on lead %s, pulling next",
        str(agent_id)[:8], str(remembered_lead_id)[:8],
        extra={"agent_id": str(agent_id), "lead_id": str(remembered_lead_id)},
    )
    lead = await pull_next(db, agent_id, now=now, ttl=ttl)
    return ResumeOutcome(lead, resumed=False, fallback_reason="lease_not_held")
