"""Initial schema - agents, leads, lead notes and the activity log.

Revision ID: 001
Revises:
Create Date: 2026-10-17
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Agents (agents work leads; managers/admins/founders do not)
    op.create_table(
        "agents",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("full_name", sa.String(150), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default="agent"),
        sa.Column("is_active", sa.Boolean, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_agents_role", "agents", ["role"])

    # Leads - ownership (assigned_to) and lease (current_agent_id, locked_at)
    op.create_table(
        "leads",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("batch_id", postgresql.UUID(as_uuid=True)),
        sa.Column("business_name", sa.String(255), nullable=False),
        sa.Column("phone_number", sa.String(30)),
        sa.Column("address", sa.Text),
        sa.Column("category", sa.String(100)),
        sa.Column("website", sa.String(255)),
        sa.Column("rating", sa.Float),
        sa.Column("raw_data", postgresql.JSONB, server_default="{}"),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("potential_level", sa.String(20), nullable=False, server_default="not_assessed"),
        sa.Column("priority", sa.Integer, server_default="0"),
        sa.Column("appointment_date", sa.DateTime(timezone=True)),
        sa.Column("assigned_to", postgresql.UUID(as_uuid=True), sa.ForeignKey("agents.id")),
        sa.Column("current_agent_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("agents.id")),
        sa.Column("locked_at", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("processed_at", sa.DateTime(timezone=True)),
        sa.CheckConstraint(
            "status = 'pending' OR (current_agent_id IS NULL AND locked_at IS NULL)",
            name="ck_leads_lease_only_when_pending",
        ),
    )
    op.create_index("ix_leads_queue", "leads", ["assigned_to", "status", "created_at"])
    op.create_index("ix_leads_current_agent", "leads", ["current_agent_id"])
    op.create_index("ix_leads_locked_at", "leads", ["locked_at"])
    op.create_index("ix_leads_batch_id", "leads", ["batch_id"])

    # Lead notes
    op.create_table(
        "lead_notes",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("lead_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("leads.id"), nullable=False),
        sa.Column("agent_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("note", sa.Text, nullable=False),
        sa.Column("action_taken", sa.String(50)),
        sa.Column("recording_url", sa.Text),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_lead_notes_lead_id", "lead_notes", ["lead_id"])

    # Activity log (append-only)
    op.create_table(
        "lead_activity_log",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("lead_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("leads.id")),
        sa.Column("agent_id", postgresql.UUID(as_uuid=True)),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("metadata", postgresql.JSONB, server_default="{}"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_activity_lead_id", "lead_activity_log", ["lead_id"])
    op.create_index("ix_activity_agent_id", "lead_activity_log", ["agent_id"])
    op.create_index("ix_activity_action", "lead_activity_log", ["action"])
    op.create_index("ix_activity_created_at", "lead_activity_log", ["created_at"])


def downgrade() -> None:
    op.drop_table("lead_activity_log")
    op.drop_table("lead_notes")
    op.drop_table("leads")
    op.drop_table("agents")
