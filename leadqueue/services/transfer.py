"""
Transfer service - move specific leads to another agent (or the pool).

Ownership changes regardless of lease state, and any active lease is cleared
in the same update: the previous holder's session no longer owns the lead and
its next commit/renew will conflict. Each id is its own transaction; results
are reported per id, so a large batch can partially succeed.
"""
import logging
import uuid
from typing import Iterable, Optional, Union

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from leadqueue.models.agent import Agent
from leadqueue.models.lead import Lead, LEASABLE_STATUS
from leadqueue.schemas.queue import TransferResult
from leadqueue.services.activity_log import record_activity

logger = logging.getLogger(__name__)

POOL_TARGET = "pool"


class TargetAgentNotFoundError(Exception):
    """Transfer target is not an active agent."""

    def __init__(self, target):
        self.target = target
        super().__init__(f"Target agent not found: {target}")


async def resolve_transfer_target(
    db: AsyncSession,
    target: Union[str, uuid.UUID, None],
) -> Optional[uuid.UUID]:
    """Return the target agent id, or None for the unassigned pool."""
    if target is None or target == POOL_TARGET:
        return None
    try:
        agent_id = target if isinstance(target, uuid.UUID) else uuid.UUID(str(target))
    except ValueError:
        raise TargetAgentNotFoundError(target)

    agent = await db.get(Agent, agent_id)
    if not agent or agent.role != "agent" or not agent.is_active:
        raise TargetAgentNotFoundError(target)
    return agent.id


async def transfer(
    db: AsyncSession,
    lead_ids: Iterable[Union[str, uuid.UUID]],
    target_agent_id: Union[str, uuid.UUID, None],
    *,
    actor_id: Optional[uuid.UUID] = None,
    requeue: bool = False,
) -> list[TransferResult]:
    """
    Reassign each lead to the target and clear its lease. With requeue=True
    the lead also goes back to pending (processed_at cleared).
    Raises TargetAgentNotFoundError before touching any lead.
    """
    target = await resolve_transfer_target(db, target_agent_id)

    values = {"assigned_to": target, "current_agent_id": None, "locked_at": None}
    if requeue:
        values["status"] = LEASABLE_STATUS
        values["processed_at"] = None

    results: list[TransferResult] = []
    for raw_id in dict.fromkeys(str(i) for i in lead_ids):
        try:
            lead_id = uuid.UUID(raw_id)
        except ValueError:
            results.append(TransferResult(lead_id=raw_id, outcome="invalid_id"))
            continue

        try:
            moved = (await db.execute(
                update(Lead)
                .where(Lead.id == lead_id)
                .values(**values)
                .returning(Lead.id)
                .execution_options(synchronize_session="fetch")
            )).scalar_one_or_none()
            if moved is None:
                results.append(TransferResult(lead_id=raw_id, outcome="not_found"))
                continue

            record_activity(db, lead_id, actor_id, "lead_transferred", {
                "target_agent_id": str(target) if target else POOL_TARGET,
                "requeue": requeue,
            })
            await db.commit()
            results.append(TransferResult(lead_id=raw_id, outcome="transferred"))
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(
                "Transfer of lead %s failed: %s", raw_id[:8], str(e),
                extra={"lead_id": raw_id, "error_code": "transfer_failed"},
            )
            results.append(TransferResult(lead_id=raw_id, outcome="failed", error=str(e)))

    transferred = sum(1 for r in results if r.outcome == "transferred")
    logger.info(
        "Transferred %d/%d lead(s) to %s",
        transferred, len(results), str(target)[:8] if target else POOL_TARGET,
        extra={"actor_id": str(actor_id) if actor_id else None, "action": "lead_transferred"},
    )
    return results
