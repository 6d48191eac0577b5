"""
Tests for leadqueue/services/revocation.py - revoke_all and reassign_stuck_leads.
"""
from datetime import timedelta
from unittest.mock import patch

import pytest
from sqlalchemy import func, select

from leadqueue.config import get_settings
from leadqueue.models.activity_log import LeadActivityLog
from leadqueue.models.lead import Lead
from leadqueue.services.lease_manager import utcnow
from leadqueue.services.revocation import reassign_stuck_leads, revoke_all


async def _pending_leases_for(db, agent_id) -> int:
    return await db.scalar(
        select(func.count(Lead.id)).where(
            Lead.assigned_to == agent_id,
            Lead.status == "pending",
            Lead.current_agent_id.is_not(None),
        )
    )


# ---------------------------------------------------------------------------
# revoke_all
# ---------------------------------------------------------------------------

class TestRevokeAll:
    """Manager override: clear every pending lease on one agent's leads."""

    async def test_unlock_clears_all_pending_leases(self, db, make_agent, make_lead):
        x = await make_agent("Agent X")
        y = await make_agent("Agent Y")
        await make_lead(assigned_to=x.id, current_agent_id=x.id, locked_at=utcnow())
        await make_lead(assigned_to=x.id, current_agent_id=y.id, locked_at=utcnow())
        await make_lead(assigned_to=x.id)
        untouched = await make_lead(assigned_to=y.id, current_agent_id=y.id, locked_at=utcnow())

        affected = await revoke_all(db, x.id, "unlock")

        assert affected == 2
        assert await _pending_leases_for(db, x.id) == 0
        await db.refresh(untouched)
        assert untouched.current_agent_id == y.id

    async def test_unlock_keeps_ownership(self, db, make_agent, make_lead):
        agent = await make_agent()
        lead = await make_lead(assigned_to=agent.id, current_agent_id=agent.id, locked_at=utcnow())

        await revoke_all(db, agent.id, "unlock")

        await db.refresh(lead)
        assert lead.assigned_to == agent.id
        assert lead.locked_at is None

    async def test_unassign_returns_leads_to_pool(self, db, make_agent, make_lead):
        agent = await make_agent()
        leased = await make_lead(assigned_to=agent.id, current_agent_id=agent.id, locked_at=utcnow())
        idle = await make_lead(assigned_to=agent.id)
        done = await make_lead(assigned_to=agent.id, status="contacted")

        affected = await revoke_all(db, agent.id, "unassign")

        assert affected == 2
        for lead in (leased, idle):
            await db.refresh(lead)
            assert lead.assigned_to is None
            assert lead.current_agent_id is None
        await db.refresh(done)
        assert done.assigned_to == agent.id

    async def test_unlock_covers_lease_held_on_another_agents_lead(self, db, make_agent, make_lead):
        x = await make_agent("Agent X")
        y = await make_agent("Agent Y")
        borrowed = await make_lead(assigned_to=y.id, current_agent_id=x.id, locked_at=utcnow())

        affected = await revoke_all(db, x.id, "unlock")

        assert affected == 1
        await db.refresh(borrowed)
        assert borrowed.current_agent_id is None
        assert borrowed.locked_at is None
        assert borrowed.assigned_to == y.id

    async def test_unassign_keeps_other_owner_but_clears_held_lease(self, db, make_agent, make_lead):
        x = await make_agent("Agent X")
        y = await make_agent("Agent Y")
        own = await make_lead(assigned_to=x.id)
        borrowed = await make_lead(assigned_to=y.id, current_agent_id=x.id, locked_at=utcnow())

        assert await revoke_all(db, x.id, "unassign") == 2
        assert await revoke_all(db, x.id, "unassign") == 0

        await db.refresh(own)
        await db.refresh(borrowed)
        assert own.assigned_to is None
        assert borrowed.assigned_to == y.id
        assert borrowed.current_agent_id is None

    @pytest.mark.parametrize("mode", ["unlock", "unassign"])
    async def test_second_call_reports_zero(self, db, make_agent, make_lead, mode):
        agent = await make_agent()
        await make_lead(assigned_to=agent.id, current_agent_id=agent.id, locked_at=utcnow())

        assert await revoke_all(db, agent.id, mode) == 1
        assert await revoke_all(db, agent.id, mode) == 0

    async def test_runs_in_windows(self, db, make_agent, make_lead):
        agent = await make_agent()
        for _ in range(5):
            await make_lead(assigned_to=agent.id, current_agent_id=agent.id, locked_at=utcnow())

        with patch(
            "leadqueue.services.revocation.get_settings",
            return_value=get_settings().model_copy(update={"revoke_batch_size": 2}),
        ):
            affected = await revoke_all(db, agent.id, "unlock")

        assert affected == 5
        assert await _pending_leases_for(db, agent.id) == 0

    async def test_logs_one_entry_per_lead(self, db, make_agent, make_lead):
        agent = await make_agent()
        manager = await make_agent("Manager", role="manager")
        for _ in range(3):
            await make_lead(assigned_to=agent.id, current_agent_id=agent.id, locked_at=utcnow())

        await revoke_all(db, agent.id, "unlock", actor_id=manager.id)

        entries = (await db.execute(
            select(LeadActivityLog).where(LeadActivityLog.action == "lease_revoked")
        )).scalars().all()
        assert len(entries) == 3
        assert all(e.agent_id == manager.id for e in entries)
        assert all(e.extra_data["mode"] == "unlock" for e in entries)

    async def test_unknown_mode_rejected(self, db, make_agent):
        agent = await make_agent()
        with pytest.raises(ValueError):
            await revoke_all(db, agent.id, "delete")


# ---------------------------------------------------------------------------
# reassign_stuck_leads
# ---------------------------------------------------------------------------

class TestReassignStuckLeads:
    """Old pending leads move to another agent or back to the pool."""

    async def test_old_leads_return_to_pool(self, db, make_agent, make_lead):
        agent = await make_agent()
        old = await make_lead(
            assigned_to=agent.id,
            created_at=utcnow() - timedelta(hours=30),
            current_agent_id=agent.id,
            locked_at=utcnow(),
        )
        recent = await make_lead(assigned_to=agent.id, created_at=utcnow() - timedelta(hours=2))

        affected = await reassign_stuck_leads(db, hours=24)

        assert affected == 1
        await db.refresh(old)
        await db.refresh(recent)
        assert old.assigned_to is None
        assert old.current_agent_id is None
        assert recent.assigned_to == agent.id

    async def test_old_leads_move_to_target(self, db, make_agent, make_lead):
        x = await make_agent("Agent X")
        y = await make_agent("Agent Y")
        old = await make_lead(assigned_to=x.id, created_at=utcnow() - timedelta(hours=30))
        already_y = await make_lead(assigned_to=y.id, created_at=utcnow() - timedelta(hours=30))

        affected = await reassign_stuck_leads(db, hours=24, target_agent_id=y.id)

        assert affected == 1
        await db.refresh(old)
        assert old.assigned_to == y.id
        await db.refresh(already_y)
        assert already_y.assigned_to == y.id

    async def test_non_pending_and_unassigned_ignored(self, db, make_agent, make_lead):
        agent = await make_agent()
        await make_lead(assigned_to=agent.id, status="appointment", created_at=utcnow() - timedelta(days=3))
        await make_lead(assigned_to=None, created_at=utcnow() - timedelta(days=3))

        assert await reassign_stuck_leads(db, hours=24) == 0

    async def test_logs_reassignment(self, db, make_agent, make_lead):
        agent = await make_agent()
        await make_lead(assigned_to=agent.id, created_at=utcnow() - timedelta(hours=30))

        await reassign_stuck_leads(db, hours=24)

        entry = (await db.execute(
            select(LeadActivityLog).where(LeadActivityLog.action == "lead_reassigned")
        )).scalar_one()
        assert entry.extra_data["target_agent_id"] == "pool"
        assert entry.extra_data["hours"] == 24
