"""
Lead activity log - append-only audit trail of every possession change and
outcome (viewed, resumed, completed, lease_revoked, lead_transferred, ...).
Rows are inserted through services.activity_log and never updated or deleted.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import String, DateTime, ForeignKey, Index
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column
from leadqueue.database import Base


class LeadActivityLog(Base):
    __tablename__ = "lead_activity_log"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    lead_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("leads.id")
    )
    agent_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True)
    )  # acting agent, or the manager for administrative actions
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    extra_data: Mapped[Optional[dict]] = mapped_column("metadata", JSONB, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    __table_args__ = (
        Index("ix_activity_lead_id", "lead_id"),
        Index("ix_activity_agent_id", "agent_id"),
        Index("ix_activity_action", "action"),
        Index("ix_activity_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<LeadActivityLog {self.action} lead={str(self.lead_id)[:8]}>"
