"""
Request/response schemas for the agent queue and manager lead endpoints.
"""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class LeadView(BaseModel):
    id: str
    business_name: str
    phone_number: Optional[str] = None
    address: Optional[str] = None
    category: Optional[str] = None
    website: Optional[str] = None
    rating: Optional[float] = None
    status: str
    potential_level: str
    priority: int = 0
    batch_id: Optional[str] = None
    assigned_to: Optional[str] = None
    current_agent_id: Optional[str] = None
    locked_at: Optional[datetime] = None
    lease_expires_at: Optional[datetime] = None
    lease_stale: bool = False
    appointment_date: Optional[datetime] = None
    created_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None


class PullResponse(BaseModel):
    lead: Optional[LeadView] = None
    queue_empty: bool


class ResumeRequest(BaseModel):
    lead_id: Optional[str] = None  # the lead the client last remembered working


class ResumeResponse(BaseModel):
    lead: Optional[LeadView] = None
    resumed: bool
    fallback_reason: Optional[str] = None
    queue_empty: bool


class RenewResponse(BaseModel):
    lead: LeadView


class ReleaseResponse(BaseModel):
    released: bool


class CommitOutcome(BaseModel):
    """Agent outcome for the lead they hold. Field rules are checked by the commit processor."""
    status: str  # contacted, appointment
    note: str = ""
    potential_level: Optional[str] = None
    action_taken: Optional[str] = None  # whatsapp_sent, appointment_scheduled, ...
    appointment_date: Optional[datetime] = None
    recording_url: Optional[str] = None


class CommitResponse(BaseModel):
    lead: LeadView
    next_lead: Optional[LeadView] = None
    queue_empty: bool
    next_pull_failed: bool = False  # outcome saved; client should pull again


class RevokeRequest(BaseModel):
    agent_id: str
    mode: str = "unlock"  # unlock, unassign
    actor_id: Optional[str] = None


class RevokeResponse(BaseModel):
    agent_id: str
    mode: str
    affected: int


class TransferRequest(BaseModel):
    lead_ids: list[str] = Field(min_length=1)
    target_agent_id: str  # agent id, or "pool"
    requeue: bool = False
    actor_id: Optional[str] = None


class TransferResult(BaseModel):
    lead_id: str
    outcome: str  # transferred, not_found, invalid_id, failed
    error: Optional[str] = None


class TransferResponse(BaseModel):
    target_agent_id: Optional[str] = None
    transferred: int
    results: list[TransferResult]


class UnlockStuckRequest(BaseModel):
    hours: Optional[int] = Field(default=None, ge=1)


class ReassignStuckRequest(BaseModel):
    hours: Optional[int] = Field(default=None, ge=1)
    target_agent_id: Optional[str] = None  # None returns leads to the pool
    actor_id: Optional[str] = None


class SweepResponse(BaseModel):
    affected: int
