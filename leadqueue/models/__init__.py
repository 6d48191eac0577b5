"""
Database models - import all models here so Alembic can discover them.
"""
from leadqueue.models.agent import Agent
from leadqueue.models.lead import Lead
from leadqueue.models.lead_note import LeadNote
from leadqueue.models.activity_log import LeadActivityLog

__all__ = [
    "Agent",
    "Lead",
    "LeadNote",
    "LeadActivityLog",
]
