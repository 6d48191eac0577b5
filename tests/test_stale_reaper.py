"""
Tests for leadqueue/services/stale_reaper.py and leadqueue/workers/lease_reaper.py.
"""
import asyncio
from contextlib import asynccontextmanager
from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest

from leadqueue.services.lease_manager import utcnow
from leadqueue.services.stale_reaper import reap_stale_leases, unlock_stuck_leases

TTL = timedelta(minutes=10)


# ---------------------------------------------------------------------------
# reap_stale_leases
# ---------------------------------------------------------------------------

class TestReapStaleLeases:
    """TTL sweep - clears only expired leases, never ownership or status."""

    async def test_clears_only_stale_leases(self, db, make_agent, make_lead):
        agent = await make_agent()
        stale = await make_lead(
            assigned_to=agent.id,
            current_agent_id=agent.id,
            locked_at=utcnow() - timedelta(minutes=15),
        )
        fresh = await make_lead(
            assigned_to=agent.id,
            current_agent_id=agent.id,
            locked_at=utcnow() - timedelta(minutes=2),
        )

        released = await reap_stale_leases(db, ttl=TTL)
        await db.commit()

        assert released == 1
        await db.refresh(stale)
        await db.refresh(fresh)
        assert stale.current_agent_id is None
        assert stale.locked_at is None
        assert stale.assigned_to == agent.id
        assert stale.status == "pending"
        assert fresh.current_agent_id == agent.id

    async def test_second_run_is_noop(self, db, make_agent, make_lead):
        agent = await make_agent()
        await make_lead(
            assigned_to=agent.id,
            current_agent_id=agent.id,
            locked_at=utcnow() - timedelta(hours=1),
        )

        assert await reap_stale_leases(db, ttl=TTL) == 1
        await db.commit()
        assert await reap_stale_leases(db, ttl=TTL) == 0

    async def test_empty_table(self, db):
        assert await reap_stale_leases(db, ttl=TTL) == 0


# ---------------------------------------------------------------------------
# unlock_stuck_leases
# ---------------------------------------------------------------------------

class TestUnlockStuckLeases:
    """Manager sweep uses its own, much longer threshold."""

    async def test_ttl_stale_but_not_stuck_is_kept(self, db, make_agent, make_lead):
        agent = await make_agent()
        lead = await make_lead(
            assigned_to=agent.id,
            current_agent_id=agent.id,
            locked_at=utcnow() - timedelta(hours=1),
        )

        assert await unlock_stuck_leases(db, threshold=timedelta(hours=4)) == 0
        await db.refresh(lead)
        assert lead.current_agent_id == agent.id

    async def test_clears_leases_past_threshold(self, db, make_agent, make_lead):
        agent = await make_agent()
        lead = await make_lead(
            assigned_to=agent.id,
            current_agent_id=agent.id,
            locked_at=utcnow() - timedelta(hours=5),
        )

        assert await unlock_stuck_leases(db, threshold=timedelta(hours=4)) == 1
        await db.commit()
        await db.refresh(lead)
        assert lead.current_agent_id is None
        assert lead.assigned_to == agent.id

    async def test_default_threshold_from_settings(self, db, make_agent, make_lead):
        agent = await make_agent()
        await make_lead(
            assigned_to=agent.id,
            current_agent_id=agent.id,
            locked_at=utcnow() - timedelta(hours=3),
        )
        await make_lead(
            assigned_to=agent.id,
            current_agent_id=agent.id,
            locked_at=utcnow() - timedelta(hours=6),
        )

        assert await unlock_stuck_leases(db) == 1


# ---------------------------------------------------------------------------
# Background worker
# ---------------------------------------------------------------------------

class TestLeaseReaperWorker:
    """reap_cycle() and run_lease_reaper() loop."""

    async def test_reap_cycle_commits_in_own_session(self, db, make_agent, make_lead):
        agent = await make_agent()
        lead = await make_lead(
            assigned_to=agent.id,
            current_agent_id=agent.id,
            locked_at=utcnow() - timedelta(minutes=30),
        )

        @asynccontextmanager
        async def session_factory():
            yield db

        with patch("leadqueue.workers.lease_reaper.async_session_factory", side_effect=session_factory):
            from leadqueue.workers.lease_reaper import reap_cycle
            released = await reap_cycle()

        assert released == 1
        await db.refresh(lead)
        assert lead.current_agent_id is None

    async def test_loop_reaps_then_heartbeats_then_sleeps(self):
        call_order = []

        async def fake_cycle():
            call_order.append("reap")
            return 0

        async def fake_heartbeat(name, ttl_seconds):
            call_order.append(("heartbeat", name))

        async def fake_sleep(seconds):
            call_order.append("sleep")
            raise asyncio.CancelledError()

        with (
            patch("leadqueue.workers.lease_reaper.reap_cycle", side_effect=fake_cycle),
            patch("leadqueue.workers.lease_reaper.write_heartbeat", side_effect=fake_heartbeat),
            patch("leadqueue.workers.lease_reaper.asyncio.sleep", side_effect=fake_sleep),
        ):
            from leadqueue.workers.lease_reaper import run_lease_reaper
            with pytest.raises(asyncio.CancelledError):
                await run_lease_reaper()

        assert call_order == ["reap", ("heartbeat", "lease_reaper"), "sleep"]

    async def test_loop_survives_cycle_error(self):
        heartbeat = AsyncMock()

        async def fake_sleep(seconds):
            raise asyncio.CancelledError()

        with (
            patch("leadqueue.workers.lease_reaper.reap_cycle", new_callable=AsyncMock, side_effect=RuntimeError("db down")),
            patch("leadqueue.workers.lease_reaper.write_heartbeat", heartbeat),
            patch("leadqueue.workers.lease_reaper.asyncio.sleep", side_effect=fake_sleep),
        ):
            from leadqueue.workers.lease_reaper import run_lease_reaper
            with pytest.raises(asyncio.CancelledError):
                await run_lease_reaper()

        heartbeat.assert_awaited_once()

    async def test_heartbeat_written_to_redis(self, mock_redis):
        from leadqueue.utils.redis_client import write_heartbeat

        await write_heartbeat("lease_reaper", ttl_seconds=180)

        args, kwargs = mock_redis.set.call_args
        assert args[0] == "leadqueue:worker_health:lease_reaper"
        assert kwargs.get("ex") == 180

    async def test_heartbeat_swallows_redis_errors(self):
        with patch(
            "leadqueue.utils.redis_client.get_redis",
            new_callable=AsyncMock,
            side_effect=ConnectionError("no redis"),
        ):
            from leadqueue.utils.redis_client import write_heartbeat
            await write_heartbeat("lease_reaper", ttl_seconds=180)  # must not raise
