"""
Activity log sink - the only writer of lead_activity_log.
Entries are added to the caller's session so they commit (or roll back)
together with the lease change they describe.
"""
import uuid
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from leadqueue.models.activity_log import LeadActivityLog


def record_activity(
    db: AsyncSession,
    lead_id: Optional[uuid.UUID],
    agent_id: Optional[uuid.UUID],
    action: str,
    metadata: Optional[dict] = None,
) -> LeadActivityLog:
    """Append an activity entry. Does not flush or commit."""
    entry = LeadActivityLog(
        lead_id=lead_id,
        agent_id=agent_id,
        action=action,
        extra_data=metadata or {},
    )
    db.add(entry)
    return entry
