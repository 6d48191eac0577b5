"""
Shared helpers for the queue and manager route modules.
"""
import uuid
from typing import Optional
from fastapi import HTTPException
from leadqueue.models.lead import Lead
from leadqueue.schemas.queue import LeadView
from leadqueue.services.lease_manager import as_utc, is_lease_stale, lease_expires_at


def parse_uuid(value: str, label: str = "ID") -> uuid.UUID:
    try:
        return uuid.UUID(value)
    except (ValueError, TypeError):
        raise HTTPException(status_code=400, detail=f"Invalid {label} format")


def parse_optional_uuid(value: Optional[str], label: str = "ID") -> Optional[uuid.UUID]:
    if value is None:
        return None
    return parse_uuid(value, label)


def _str_or_none(value) -> Optional[str]:
    return str(value) if value is not None else None


def lead_view(lead: Optional[Lead]) -> Optional[LeadView]:
    if lead is None:
        return None
    return LeadView(
        id=str(lead.id),
        business_name=lead.business_name,
        phone_number=lead.phone_number,
        address=lead.address,
        category=lead.category,
        website=lead.website,
        rating=lead.rating,
        status=lead.status,
        potential_level=lead.potential_level,
        priority=lead.priority or 0,
        batch_id=_str_or_none(lead.batch_id),
        assigned_to=_str_or_none(lead.assigned_to),
        current_agent_id=_str_or_none(lead.current_agent_id),
        locked_at=as_utc(lead.locked_at),
        lease_expires_at=lease_expires_at(lead),
        lease_stale=is_lease_stale(lead),
        appointment_date=as_utc(lead.appointment_date),
        created_at=as_utc(lead.created_at),
        processed_at=as_utc(lead.processed_at),
    )
