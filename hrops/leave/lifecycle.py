"""Request lifecycle state machine.

    pending ──approve──▶ approved
    pending ──reject───▶ rejected
    pending ──cancel───▶ cancelled
    pending ──escalate─▶ escalated ──resolve(approve|reject)──▶ approved | rejected

Each transition runs inside one unit of work (see ``unit_of_work``) and
moves the request with a guarded UPDATE that only matches while the row is
still in the expected status. A concurrent actor that lost the race gets
``InvalidStateTransition`` and the ledger is touched exactly once. All reads
and target selection happen before the first write.
"""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from typing import AsyncIterator, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from hrops.auth.capabilities import (
    Capability,
    RequestResource,
    authorize,
    ensure_same_company,
)
from hrops.common.audit import create_audit_entry
from hrops.common.constants import (
    ACTIVE_LEAVE_STATUSES,
    FinalAction,
    LeaveStatus,
)
from hrops.common.exceptions import (
    InvalidStateTransition,
    NotFoundException,
    PersistenceFailure,
    ValidationException,
)
from hrops.core_hr.models import Employee
from hrops.leave import escalation as escalations
from hrops.leave import ledger
from hrops.leave.documents import build_documents
from hrops.leave.models import LeaveRequest
from hrops.leave.registry import get_visible_leave_type, rules_for
from hrops.leave.schemas import LeaveRequestCreate
from hrops.leave.validator import (
    EligibilityContext,
    ExistingRequest,
    LeaveDraft,
    Requester,
    evaluate,
)

logger = logging.getLogger(__name__)

AUDIT_ENTITY = "leave_request"


# ── Unit of work ────────────────────────────────────────────────────


@asynccontextmanager
async def unit_of_work(db: AsyncSession) -> AsyncIterator[AsyncSession]:
    """Commit everything written in the block, or nothing.

    Driver/constraint errors surface as ``PersistenceFailure``; domain
    errors propagate unchanged after the rollback.
    """
    try:
        yield db
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.exception("Unit of work rolled back")
        raise PersistenceFailure() from exc
    except Exception:
        await db.rollback()
        raise


# ── Loading ─────────────────────────────────────────────────────────


async def load_request(db: AsyncSession, request_id: uuid.UUID) -> LeaveRequest:
    result = await db.execute(
        select(LeaveRequest)
        .where(LeaveRequest.id == request_id)
        .options(
            selectinload(LeaveRequest.employee),
            selectinload(LeaveRequest.leave_type),
            selectinload(LeaveRequest.documents),
            selectinload(LeaveRequest.escalation),
        )
        .execution_options(populate_existing=True)
    )
    leave_request = result.scalars().first()
    if leave_request is None:
        raise NotFoundException("LeaveRequest", str(request_id))
    return leave_request


def resource_for(leave_request: LeaveRequest) -> RequestResource:
    escalation = leave_request.escalation
    return RequestResource(
        id=leave_request.id,
        company_id=leave_request.employee.company_id,
        employee_id=leave_request.employee_id,
        group_admin_id=leave_request.group_admin_id,
        escalated_to=escalation.escalated_to if escalation is not None else None,
    )


def _require_status(leave_request: LeaveRequest, action: str, expected: LeaveStatus) -> None:
    if leave_request.status != expected:
        raise InvalidStateTransition(action, leave_request.status.value, expected.value)


async def _transition(
    db: AsyncSession,
    leave_request: LeaveRequest,
    *,
    action: str,
    expected: LeaveStatus,
    target: LeaveStatus,
    **values,
) -> None:
    """Move the request ``expected → target`` or raise if someone got there first."""
    result = await db.execute(
        update(LeaveRequest)
        .where(
            LeaveRequest.id == leave_request.id,
            LeaveRequest.status == expected,
        )
        .values(status=target, updated_at=datetime.now(timezone.utc), **values)
        .execution_options(synchronize_session="fetch")
    )
    if result.rowcount != 1:
        current = (
            await db.execute(
                select(LeaveRequest.status).where(LeaveRequest.id == leave_request.id)
            )
        ).scalar()
        logger.info(
            "Lost race on %s of request %s: status is now %s",
            action, leave_request.id, current,
        )
        raise InvalidStateTransition(
            action, current.value if current is not None else None, expected.value,
        )


async def _audit(
    db: AsyncSession,
    leave_request: LeaveRequest,
    action: str,
    actor_id: Optional[uuid.UUID],
    old_status: Optional[LeaveStatus],
    company_id: uuid.UUID,
    **extra,
) -> None:
    new_values = {"status": leave_request.status.value}
    new_values.update({k: v for k, v in extra.items() if v is not None})
    await create_audit_entry(
        db,
        action=action,
        entity_type=AUDIT_ENTITY,
        entity_id=leave_request.id,
        company_id=company_id,
        actor_id=actor_id,
        old_values={"status": old_status.value} if old_status else None,
        new_values=new_values,
    )


# ═════════════════════════════════════════════════════════════════════
# Transitions
# ═════════════════════════════════════════════════════════════════════


async def submit(
    db: AsyncSession,
    actor: Employee,
    data: LeaveRequestCreate,
    *,
    today: date,
) -> LeaveRequest:
    """Validate a draft, reserve its working days and persist it as pending."""
    documents = build_documents(data.documents)

    # Serialise submissions of one employee (no-op on SQLite).
    await db.execute(
        select(Employee.id).where(Employee.id == actor.id).with_for_update()
    )

    leave_type = await get_visible_leave_type(db, actor.company_id, data.leave_type_id)
    rules = rules_for(leave_type) if leave_type is not None else None
    year = ledger.charged_year(data.start_date)

    existing: list[ExistingRequest] = []
    available = 0
    if rules is not None:
        result = await db.execute(
            select(LeaveRequest.id, LeaveRequest.start_date, LeaveRequest.end_date, LeaveRequest.status)
            .where(
                LeaveRequest.employee_id == actor.id,
                LeaveRequest.status.in_(ACTIVE_LEAVE_STATUSES),
                LeaveRequest.start_date <= data.end_date,
                LeaveRequest.end_date >= data.start_date,
            )
        )
        existing = [ExistingRequest(*row) for row in result.all()]

        balances = await ledger.get_or_init_balances(db, actor.id, actor.company_id, year)
        available = next(
            (b.available_days for b in balances if b.leave_type_id == leave_type.id), 0,
        )

    eligibility = evaluate(
        LeaveDraft(
            leave_type_id=data.leave_type_id,
            start_date=data.start_date,
            end_date=data.end_date,
            document_count=len(documents),
        ),
        EligibilityContext(
            today=today,
            requester=Requester(
                id=actor.id,
                company_id=actor.company_id,
                gender=actor.gender,
                date_of_joining=actor.date_of_joining,
            ),
            rules=rules,
            existing=existing,
            available_days=available,
        ),
    )

    await ledger.reserve(db, actor.id, leave_type.id, year, eligibility.working_days)

    leave_request = LeaveRequest(
        id=uuid.uuid4(),
        employee_id=actor.id,
        leave_type_id=leave_type.id,
        start_date=data.start_date,
        end_date=data.end_date,
        days_requested=eligibility.working_days,
        reason=data.reason,
        contact_number=data.contact_number,
        status=LeaveStatus.pending,
        group_admin_id=actor.group_admin_id,
        documents=documents,
    )
    db.add(leave_request)
    await db.flush()

    await _audit(
        db, leave_request, "submit", actor.id, None, actor.company_id,
        leave_type=leave_type.name,
        start_date=data.start_date.isoformat(),
        end_date=data.end_date.isoformat(),
        days=eligibility.working_days,
        documents=len(documents),
    )
    logger.info(
        "Leave request %s submitted by %s: %d day(s) of %r",
        leave_request.id, actor.id, eligibility.working_days, leave_type.name,
    )
    return leave_request


async def approve(db: AsyncSession, actor: Employee, request_id: uuid.UUID) -> LeaveRequest:
    leave_request = await load_request(db, request_id)
    authorize(actor, Capability.approve, resource_for(leave_request))
    _require_status(leave_request, "approve", LeaveStatus.pending)

    await _transition(
        db, leave_request,
        action="approve",
        expected=LeaveStatus.pending,
        target=LeaveStatus.approved,
        reviewed_by=actor.id,
        reviewed_at=datetime.now(timezone.utc),
    )
    await ledger.commit(
        db, leave_request.employee_id, leave_request.leave_type_id,
        leave_request.charged_year, leave_request.days_requested,
    )
    await _audit(
        db, leave_request, "approve", actor.id, LeaveStatus.pending,
        leave_request.employee.company_id,
    )
    logger.info("Leave request %s approved by %s", leave_request.id, actor.id)
    return leave_request


async def reject(
    db: AsyncSession,
    actor: Employee,
    request_id: uuid.UUID,
    reason: Optional[str],
) -> LeaveRequest:
    leave_request = await load_request(db, request_id)
    authorize(actor, Capability.reject, resource_for(leave_request))
    _require_status(leave_request, "reject", LeaveStatus.pending)
    if not reason or not reason.strip():
        raise ValidationException({"reason": ["A reason is required to reject a request."]})

    await _transition(
        db, leave_request,
        action="reject",
        expected=LeaveStatus.pending,
        target=LeaveStatus.rejected,
        rejection_reason=reason.strip(),
        reviewed_by=actor.id,
        reviewed_at=datetime.now(timezone.utc),
    )
    await ledger.release(
        db, leave_request.employee_id, leave_request.leave_type_id,
        leave_request.charged_year, leave_request.days_requested,
    )
    await _audit(
        db, leave_request, "reject", actor.id, LeaveStatus.pending,
        leave_request.employee.company_id, reason=reason.strip(),
    )
    logger.info("Leave request %s rejected by %s", leave_request.id, actor.id)
    return leave_request


async def escalate(
    db: AsyncSession,
    actor: Optional[Employee],
    request_id: uuid.UUID,
    reason: Optional[str],
) -> LeaveRequest:
    """Hand a pending request to management.

    ``actor`` None means the stale-request sweep is escalating; no
    capability check applies and the escalation records no ``escalated_by``.
    """
    leave_request = await load_request(db, request_id)
    if actor is not None:
        authorize(actor, Capability.escalate, resource_for(leave_request))
    _require_status(leave_request, "escalate", LeaveStatus.pending)
    if not reason or not reason.strip():
        raise ValidationException({"reason": ["A reason is required to escalate a request."]})

    actor_id = actor.id if actor is not None else None
    target = await escalations.select_escalation_target(
        db,
        leave_request.employee.company_id,
        exclude=(leave_request.employee_id, actor_id),
    )

    await _transition(
        db, leave_request,
        action="escalate",
        expected=LeaveStatus.pending,
        target=LeaveStatus.escalated,
    )
    await escalations.open_escalation(
        db, leave_request,
        target=target,
        reason=reason.strip(),
        escalated_by=actor_id,
    )
    await _audit(
        db, leave_request, "escalate", actor_id, LeaveStatus.pending,
        leave_request.employee.company_id,
        escalated_to=str(target.id), reason=reason.strip(),
    )
    logger.info(
        "Leave request %s escalated to %s by %s",
        leave_request.id, target.id, actor_id or "system",
    )
    return leave_request


async def resolve(
    db: AsyncSession,
    actor: Employee,
    request_id: uuid.UUID,
    resolution_notes: str,
    final_action: FinalAction,
) -> LeaveRequest:
    """Close the escalation and apply its final approve/reject decision."""
    leave_request = await load_request(db, request_id)
    resource = resource_for(leave_request)
    ensure_same_company(actor, resource)
    _require_status(leave_request, "resolve", LeaveStatus.escalated)
    authorize(actor, Capability.resolve, resource)
    if not resolution_notes or not resolution_notes.strip():
        raise ValidationException({"resolution_notes": ["Resolution notes are required."]})

    notes = resolution_notes.strip()
    now = datetime.now(timezone.utc)
    if final_action == FinalAction.approve:
        await _transition(
            db, leave_request,
            action="resolve",
            expected=LeaveStatus.escalated,
            target=LeaveStatus.approved,
            reviewed_by=actor.id,
            reviewed_at=now,
        )
    else:
        await _transition(
            db, leave_request,
            action="resolve",
            expected=LeaveStatus.escalated,
            target=LeaveStatus.rejected,
            rejection_reason=notes,
            reviewed_by=actor.id,
            reviewed_at=now,
        )

    await escalations.close_escalation(
        db, leave_request.escalation,
        resolution_notes=notes,
        final_action=final_action,
    )

    if final_action == FinalAction.approve:
        await ledger.commit(
            db, leave_request.employee_id, leave_request.leave_type_id,
            leave_request.charged_year, leave_request.days_requested,
        )
    else:
        await ledger.release(
            db, leave_request.employee_id, leave_request.leave_type_id,
            leave_request.charged_year, leave_request.days_requested,
        )

    await _audit(
        db, leave_request, "resolve", actor.id, LeaveStatus.escalated,
        leave_request.employee.company_id,
        final_action=final_action.value, resolution_notes=notes,
    )
    logger.info(
        "Escalated request %s resolved (%s) by %s",
        leave_request.id, final_action.value, actor.id,
    )
    return leave_request


async def cancel(db: AsyncSession, actor: Employee, request_id: uuid.UUID) -> LeaveRequest:
    """Owner withdraws a request that nobody has decided on yet."""
    leave_request = await load_request(db, request_id)
    authorize(actor, Capability.cancel, resource_for(leave_request))
    _require_status(leave_request, "cancel", LeaveStatus.pending)

    await _transition(
        db, leave_request,
        action="cancel",
        expected=LeaveStatus.pending,
        target=LeaveStatus.cancelled,
        cancelled_at=datetime.now(timezone.utc),
    )
    await ledger.release(
        db, leave_request.employee_id, leave_request.leave_type_id,
        leave_request.charged_year, leave_request.days_requested,
    )
    await _audit(
        db, leave_request, "cancel", actor.id, LeaveStatus.pending,
        leave_request.employee.company_id,
    )
    logger.info("Leave request %s cancelled by its owner", leave_request.id)
    return leave_request
