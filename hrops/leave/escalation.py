"""Escalation router — picks the management reviewer and keeps the
escalation record that sits beside an escalated request."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from hrops.common.constants import EscalationStatus, FinalAction, LeaveStatus, UserRole
from hrops.common.exceptions import NoEscalationTargetFound, PersistenceFailure
from hrops.core_hr.models import Employee
from hrops.leave.models import LeaveEscalation, LeaveRequest

logger = logging.getLogger(__name__)


async def select_escalation_target(
    db: AsyncSession,
    company_id: uuid.UUID,
    exclude: Iterable[Optional[uuid.UUID]] = (),
) -> Employee:
    """First active management user of the company, lowest id wins."""
    excluded = [e for e in exclude if e is not None]
    query = (
        select(Employee)
        .where(
            Employee.company_id == company_id,
            Employee.role == UserRole.management,
            Employee.is_active.is_(True),
        )
        .order_by(Employee.id)
        .limit(1)
    )
    if excluded:
        query = query.where(Employee.id.not_in(excluded))
    target = (await db.execute(query)).scalars().first()
    if target is None:
        logger.warning("No escalation target in company %s", company_id)
        raise NoEscalationTargetFound(company_id)
    return target


async def open_escalation(
    db: AsyncSession,
    leave_request: LeaveRequest,
    *,
    target: Employee,
    reason: str,
    escalated_by: Optional[uuid.UUID],
) -> LeaveEscalation:
    escalation = LeaveEscalation(
        leave_request=leave_request,
        escalated_by=escalated_by,
        escalated_to=target.id,
        reason=reason,
        status=EscalationStatus.pending,
    )
    db.add(escalation)
    await db.flush()
    return escalation


async def close_escalation(
    db: AsyncSession,
    escalation: LeaveEscalation,
    *,
    resolution_notes: str,
    final_action: FinalAction,
) -> None:
    result = await db.execute(
        update(LeaveEscalation)
        .where(
            LeaveEscalation.id == escalation.id,
            LeaveEscalation.status == EscalationStatus.pending,
        )
        .values(
            status=EscalationStatus.resolved,
            resolution_notes=resolution_notes,
            final_action=final_action,
            resolved_at=datetime.now(timezone.utc),
        )
        .execution_options(synchronize_session="fetch")
    )
    if result.rowcount != 1:
        # The request row was still `escalated`, so its escalation must be open.
        logger.error("Escalation %s was not open while resolving", escalation.id)
        raise PersistenceFailure("The escalation record is not open.")


async def find_stale_requests(
    db: AsyncSession,
    older_than_hours: int,
    *,
    now: Optional[datetime] = None,
) -> Sequence[uuid.UUID]:
    """Ids of requests left `pending` for longer than the threshold, oldest first."""
    cutoff = (now or datetime.now(timezone.utc)) - timedelta(hours=older_than_hours)
    result = await db.execute(
        select(LeaveRequest.id)
        .where(
            LeaveRequest.status == LeaveStatus.pending,
            LeaveRequest.created_at < cutoff,
        )
        .order_by(LeaveRequest.created_at)
    )
    return result.scalars().all()
