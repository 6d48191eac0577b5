"""
Lead model - one callable business record and the source of truth for who
owns it (assigned_to) and who is working it right now (current_agent_id).

Status flow: pending -> contacted | appointment (agent commit),
completed / rejected / unreachable (downstream). Only pending leads can be
leased; leaving pending clears current_agent_id and locked_at.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import String, Text, Float, Integer, DateTime, ForeignKey, Index, CheckConstraint
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column
from leadqueue.database import Base

LEAD_STATUSES = ("pending", "contacted", "appointment", "completed", "rejected", "unreachable")
LEASABLE_STATUS = "pending"
POTENTIAL_LEVELS = ("high", "medium", "low", "not_assessed")


class Lead(Base):
    __tablename__ = "leads"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    batch_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True))

    # Business contact data (from the uploaded sheet)
    business_name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone_number: Mapped[Optional[str]] = mapped_column(String(30))
    address: Mapped[Optional[str]] = mapped_column(Text)
    category: Mapped[Optional[str]] = mapped_column(String(100))
    website: Mapped[Optional[str]] = mapped_column(String(255))
    rating: Mapped[Optional[float]] = mapped_column(Float)
    raw_data: Mapped[Optional[dict]] = mapped_column(JSONB, default=dict)

    # Workflow
    status: Mapped[str] = mapped_column(String(20), default=LEASABLE_STATUS, nullable=False)
    potential_level: Mapped[str] = mapped_column(String(20), default="not_assessed", nullable=False)
    priority: Mapped[int] = mapped_column(Integer, default=0)  # only read when queue_order=priority
    appointment_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    # Ownership vs. possession
    assigned_to: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("agents.id")
    )
    current_agent_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("agents.id")
    )
    locked_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc)
    )
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        Index("ix_leads_queue", "assigned_to", "status", "created_at"),
        Index("ix_leads_current_agent", "current_agent_id"),
        Index("ix_leads_locked_at", "locked_at"),
        Index("ix_leads_batch_id", "batch_id"),
        CheckConstraint(
            "status = 'pending' OR (current_agent_id IS NULL AND locked_at IS NULL)",
            name="ck_leads_lease_only_when_pending",
        ),
    )

    def __repr__(self) -> str:
        holder = str(self.current_agent_id)[:8] if self.current_agent_id else "none"
        return f"<Lead {str(self.id)[:8]} status={self.status} holder={holder}>"
