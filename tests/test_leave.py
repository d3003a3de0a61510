"""Leave lifecycle test suite: submission, review, escalation, cancellation,
balances, the stale-request sweep and the team views, through LeaveService.

Every service call commits its own unit of work. A refused call rolls the
session back, which expires every loaded object, so seeded rows are
reloaded (``_reload``) before they are used again.

2026-10-19 is a Monday; it is "today" for every submission.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Optional

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from hrops.common.audit import AuditTrail
from hrops.common.constants import (
    EscalationStatus,
    FinalAction,
    GenderType,
    LeaveStatus,
    ReviewAction,
    UserRole,
)
from hrops.common.exceptions import (
    DocumentationRequired,
    ForbiddenException,
    InsufficientBalance,
    InvalidStateTransition,
    NoEscalationTargetFound,
    NotEligibleException,
    NotFoundException,
    NoticePeriodViolation,
    OverlappingRequest,
    ValidationException,
)
from hrops.leave import lifecycle
from hrops.leave.models import LeaveRequest
from hrops.leave.schemas import (
    LeaveDocumentIn,
    LeaveRequestCreate,
    ResolveEscalationRequest,
)
from hrops.leave.service import LeaveService
from hrops.notifications.models import Notification
from tests.conftest import (
    Org,
    _get_balance,
    _seed_balance,
    _seed_company,
    _seed_employee,
    _seed_leave_type,
    _seed_org,
)

TODAY = date(2026, 10, 19)          # Monday
MON = date(2026, 11, 2)
WED = date(2026, 11, 4)
FRI = date(2026, 11, 6)

PDF_B64 = "JVBERi0xLjQKJcTl8uXrp/Og0MTGCg=="


# ═════════════════════════════════════════════════════════════════════
# Helpers
# ═════════════════════════════════════════════════════════════════════


def _payload(
    leave_type_id: uuid.UUID,
    start: date = MON,
    end: date = FRI,
    *,
    documents: Optional[list[LeaveDocumentIn]] = None,
) -> LeaveRequestCreate:
    return LeaveRequestCreate(
        leave_type_id=leave_type_id,
        start_date=start,
        end_date=end,
        reason="Family trip",
        contact_number="+91 98200 00000",
        documents=documents or [],
    )


async def _reload(db: AsyncSession, org: Org) -> None:
    """Refresh seeded rows after a rolled-back unit of work."""
    for obj in (org.company, org.manager, org.group_admin, org.employee, org.colleague, org.casual):
        if obj is not None:
            await db.refresh(obj)


async def _submit(db: AsyncSession, org: Org, start: date = MON, end: date = FRI, **kw):
    return await LeaveService.submit_request(
        db, org.employee, _payload(org.casual.id, start, end, **kw), today=TODAY,
    )


async def _notifications(db: AsyncSession, recipient_id: uuid.UUID) -> list[Notification]:
    result = await db.execute(
        select(Notification)
        .where(Notification.recipient_id == recipient_id)
        .order_by(Notification.title)
    )
    return list(result.scalars().all())


async def _request_count(db: AsyncSession) -> int:
    return (await db.execute(select(func.count()).select_from(LeaveRequest))).scalar()


# ═════════════════════════════════════════════════════════════════════
# 1. Submission
# ═════════════════════════════════════════════════════════════════════


class TestSubmit:
    """Tests for LeaveService.submit_request()."""

    async def test_reserves_working_days(self, db: AsyncSession):
        """12 total, 2 used; Mon–Fri → 5 pending, 5 available."""
        org = await _seed_org(db)
        await _seed_balance(db, org.employee.id, org.casual.id, total=12, used=2)
        await db.commit()

        out = await _submit(db, org)

        assert out.status == LeaveStatus.pending
        assert out.days_requested == 5
        assert out.group_admin_id == org.group_admin.id
        assert out.employee.full_name == "Esha User"
        assert out.leave_type.name == "Casual Leave"

        bal = await _get_balance(db, org.employee.id, org.casual.id)
        assert (bal.used_days, bal.pending_days, bal.available_days) == (2, 5, 5)

    async def test_initialises_ledger_on_first_submission(self, db: AsyncSession):
        org = await _seed_org(db)

        await _submit(db, org, MON, WED)

        bal = await _get_balance(db, org.employee.id, org.casual.id)
        assert (bal.total_days, bal.pending_days) == (12, 3)

    async def test_notifies_group_admin_and_audits(self, db: AsyncSession):
        org = await _seed_org(db)

        out = await _submit(db, org)

        notes = await _notifications(db, org.group_admin.id)
        assert len(notes) == 1
        assert notes[0].leave_request_id == out.id
        audit = (await db.execute(
            select(AuditTrail).where(AuditTrail.entity_id == out.id)
        )).scalars().one()
        assert audit.action == "submit"
        assert audit.company_id == org.company.id
        assert audit.new_values["days"] == 5

    async def test_documentation_required_changes_nothing(self, db: AsyncSession):
        org = await _seed_org(db)
        sick = await _seed_leave_type(
            db, org.company.id, name="Sick Leave", requires_documentation=True,
        )
        sick_id, employee_id = sick.id, org.employee.id
        await _seed_balance(db, employee_id, sick_id, total=12)
        await db.commit()

        with pytest.raises(DocumentationRequired):
            await LeaveService.submit_request(
                db, org.employee, _payload(sick_id), today=TODAY,
            )

        assert await _request_count(db) == 0
        bal = await _get_balance(db, employee_id, sick_id)
        assert (bal.used_days, bal.pending_days) == (0, 0)

    async def test_documents_are_stored_with_the_request(self, db: AsyncSession):
        org = await _seed_org(db)
        sick = await _seed_leave_type(
            db, org.company.id, name="Sick Leave", requires_documentation=True,
        )
        await db.commit()

        doc = LeaveDocumentIn(file_name="note.pdf", file_type="application/pdf", file_data=PDF_B64)
        out = await LeaveService.submit_request(
            db, org.employee, _payload(sick.id, documents=[doc]), today=TODAY,
        )

        assert [d.file_name for d in out.documents] == ["note.pdf"]
        docs = await LeaveService.get_request_documents(db, org.group_admin, out.id)
        assert docs[0].file_data == PDF_B64

    async def test_documents_hidden_from_colleagues(self, db: AsyncSession):
        org = await _seed_org(db)
        doc = LeaveDocumentIn(file_name="ticket.png", file_type="image/png", file_data=PDF_B64)
        out = await _submit(db, org, documents=[doc])

        with pytest.raises(ForbiddenException):
            await LeaveService.get_request_documents(db, org.colleague, out.id)

    async def test_unsupported_document_type(self, db: AsyncSession):
        org = await _seed_org(db)
        doc = LeaveDocumentIn(file_name="note.exe", file_type="application/x-msdownload", file_data=PDF_B64)

        with pytest.raises(ValidationException) as exc_info:
            await _submit(db, org, documents=[doc])
        assert "documents.0" in exc_info.value.errors

    async def test_notice_period_violation(self, db: AsyncSession):
        org = await _seed_org(db)
        planned = await _seed_leave_type(
            db, org.company.id, name="Planned Leave", policy=dict(notice_period_days=3),
        )
        planned_id, employee_id = planned.id, org.employee.id
        await _seed_balance(db, employee_id, planned_id, total=12)
        await db.commit()

        with pytest.raises(NoticePeriodViolation) as exc_info:
            await LeaveService.submit_request(
                db, org.employee,
                _payload(planned_id, date(2026, 10, 20), date(2026, 10, 20)),
                today=TODAY,
            )

        assert exc_info.value.extensions["earliest_possible_date"] == "2026-10-22"
        assert await _request_count(db) == 0
        bal = await _get_balance(db, employee_id, planned_id)
        assert bal.pending_days == 0

    async def test_overlap_then_cancel_frees_the_dates(self, db: AsyncSession):
        org = await _seed_org(db)
        first = await _submit(db, org, MON, WED)

        with pytest.raises(OverlappingRequest) as exc_info:
            await _submit(db, org, WED, FRI)
        assert exc_info.value.extensions["conflicting_request_id"] == str(first.id)

        await _reload(db, org)
        await LeaveService.cancel_request(db, org.employee, first.id)
        second = await _submit(db, org, WED, FRI)

        assert second.status == LeaveStatus.pending
        bal = await _get_balance(db, org.employee.id, org.casual.id)
        assert bal.pending_days == 3

    async def test_insufficient_balance(self, db: AsyncSession):
        org = await _seed_org(db)
        await _seed_balance(db, org.employee.id, org.casual.id, total=12, used=10)
        await db.commit()

        with pytest.raises(InsufficientBalance) as exc_info:
            await _submit(db, org)
        assert exc_info.value.extensions == {"available_days": 2, "requested_days": 5}

    async def test_gender_restricted_type(self, db: AsyncSession):
        org = await _seed_org(db)
        maternity = await _seed_leave_type(
            db, org.company.id, name="Maternity Leave", max_days=90,
            policy=dict(gender_specific=GenderType.female),
        )
        await db.commit()

        with pytest.raises(NotEligibleException):
            await LeaveService.submit_request(
                db, org.colleague, _payload(maternity.id), today=TODAY,
            )

    async def test_other_company_type_not_found(self, db: AsyncSession):
        org = await _seed_org(db)
        other = await _seed_company(db)
        foreign = await _seed_leave_type(db, other.id, name="Foreign Leave")
        await db.commit()

        with pytest.raises(NotFoundException):
            await LeaveService.submit_request(
                db, org.employee, _payload(foreign.id), today=TODAY,
            )


# ═════════════════════════════════════════════════════════════════════
# 2. Review: approve / reject
# ═════════════════════════════════════════════════════════════════════


class TestReview:

    async def test_approve_moves_pending_to_used(self, db: AsyncSession):
        org = await _seed_org(db)
        await _seed_balance(db, org.employee.id, org.casual.id, total=12, used=2)
        await db.commit()
        out = await _submit(db, org)

        ack = await LeaveService.process_request(
            db, org.group_admin, out.id, ReviewAction.approve,
        )

        assert ack.status == LeaveStatus.approved
        bal = await _get_balance(db, org.employee.id, org.casual.id)
        assert (bal.used_days, bal.pending_days, bal.available_days) == (7, 0, 5)
        notes = await _notifications(db, org.employee.id)
        assert [n.title for n in notes] == ["Leave Request Approved"]

        lr = await lifecycle.load_request(db, out.id)
        assert lr.reviewed_by == org.group_admin.id

    async def test_approve_twice_touches_ledger_once(self, db: AsyncSession):
        org = await _seed_org(db)
        out = await _submit(db, org)
        await LeaveService.process_request(db, org.group_admin, out.id, ReviewAction.approve)

        with pytest.raises(InvalidStateTransition) as exc_info:
            await LeaveService.process_request(db, org.group_admin, out.id, ReviewAction.approve)

        assert exc_info.value.extensions["current_status"] == "approved"
        assert exc_info.value.extensions["expected_status"] == "pending"
        await _reload(db, org)
        bal = await _get_balance(db, org.employee.id, org.casual.id)
        assert (bal.used_days, bal.pending_days) == (5, 0)

    async def test_reject_requires_reason(self, db: AsyncSession):
        org = await _seed_org(db)
        out = await _submit(db, org)

        with pytest.raises(ValidationException) as exc_info:
            await LeaveService.process_request(
                db, org.group_admin, out.id, ReviewAction.reject, "  ",
            )
        assert "reason" in exc_info.value.errors

    async def test_reject_without_reason_on_approved_request(self, db: AsyncSession):
        org = await _seed_org(db)
        out = await _submit(db, org)
        await LeaveService.process_request(db, org.group_admin, out.id, ReviewAction.approve)

        with pytest.raises(InvalidStateTransition) as exc_info:
            await LeaveService.process_request(db, org.group_admin, out.id, ReviewAction.reject)
        assert exc_info.value.extensions["current_status"] == "approved"
        assert exc_info.value.extensions["action"] == "reject"

    async def test_reject_releases_reservation(self, db: AsyncSession):
        org = await _seed_org(db)
        out = await _submit(db, org)

        ack = await LeaveService.process_request(
            db, org.group_admin, out.id, ReviewAction.reject, "Release crunch",
        )

        assert ack.status == LeaveStatus.rejected
        bal = await _get_balance(db, org.employee.id, org.casual.id)
        assert (bal.used_days, bal.pending_days, bal.available_days) == (0, 0, 12)
        lr = await lifecycle.load_request(db, out.id)
        assert lr.rejection_reason == "Release crunch"
        notes = await _notifications(db, org.employee.id)
        assert "Release crunch" in notes[0].message

    async def test_colleague_cannot_approve(self, db: AsyncSession):
        org = await _seed_org(db)
        out = await _submit(db, org)

        with pytest.raises(ForbiddenException):
            await LeaveService.process_request(db, org.colleague, out.id, ReviewAction.approve)

    async def test_group_admin_cannot_approve_own_request(self, db: AsyncSession):
        org = await _seed_org(db)
        out = await LeaveService.submit_request(
            db, org.group_admin, _payload(org.casual.id), today=TODAY,
        )

        with pytest.raises(ForbiddenException):
            await LeaveService.process_request(db, org.group_admin, out.id, ReviewAction.approve)

        await _reload(db, org)
        ack = await LeaveService.process_request(db, org.manager, out.id, ReviewAction.approve)
        assert ack.status == LeaveStatus.approved

    async def test_other_company_reviewer_gets_not_found(self, db: AsyncSession):
        org = await _seed_org(db)
        out = await _submit(db, org)
        other = await _seed_company(db)
        outsider = await _seed_employee(db, other.id, role=UserRole.management, first_name="Otto")
        await db.commit()

        with pytest.raises(NotFoundException):
            await LeaveService.process_request(db, outsider, out.id, ReviewAction.approve)

    async def test_unknown_request(self, db: AsyncSession):
        org = await _seed_org(db)
        with pytest.raises(NotFoundException):
            await LeaveService.process_request(
                db, org.group_admin, uuid.uuid4(), ReviewAction.approve,
            )

    async def test_pending_listing(self, db: AsyncSession):
        org = await _seed_org(db)
        emp_req = await _submit(db, org)
        ga_req = await LeaveService.submit_request(
            db, org.group_admin, _payload(org.casual.id), today=TODAY,
        )

        ga_queue = await LeaveService.list_pending_for_review(db, org.group_admin)
        mgmt_queue = await LeaveService.list_pending_for_review(db, org.manager)

        assert [r.id for r in ga_queue] == [emp_req.id]
        assert [r.id for r in mgmt_queue] == [ga_req.id]

    async def test_list_my_requests_carries_balance(self, db: AsyncSession):
        org = await _seed_org(db)
        out = await _submit(db, org, MON, WED)

        mine = await LeaveService.list_my_requests(db, org.employee)

        assert [r.id for r in mine] == [out.id]
        assert mine[0].balance.available_days == 9
        assert await LeaveService.list_my_requests(
            db, org.employee, status=LeaveStatus.approved,
        ) == []


# ═════════════════════════════════════════════════════════════════════
# 3. Escalation
# ═════════════════════════════════════════════════════════════════════


class TestEscalation:

    async def test_escalate_then_resolve_approve(self, db: AsyncSession):
        org = await _seed_org(db)
        out = await _submit(db, org)

        ack = await LeaveService.process_request(
            db, org.group_admin, out.id, ReviewAction.escalate, "Team is short-staffed",
        )
        assert ack.status == LeaveStatus.escalated

        queue = await LeaveService.list_pending_for_review(db, org.manager)
        assert [r.id for r in queue] == [out.id]
        assert queue[0].escalation.escalated_to == org.manager.id

        ack = await LeaveService.resolve_escalation(
            db, org.manager, out.id,
            ResolveEscalationRequest(resolution_notes="Approved, cover arranged", final_action=FinalAction.approve),
        )

        assert ack.status == LeaveStatus.approved
        lr = await lifecycle.load_request(db, out.id)
        assert lr.escalation.status == EscalationStatus.resolved
        assert lr.escalation.final_action == FinalAction.approve
        assert lr.escalation.escalated_by == org.group_admin.id
        bal = await _get_balance(db, org.employee.id, org.casual.id)
        assert (bal.used_days, bal.pending_days) == (5, 0)

    async def test_resolve_reject_releases(self, db: AsyncSession):
        org = await _seed_org(db)
        out = await _submit(db, org)
        await LeaveService.process_request(
            db, org.group_admin, out.id, ReviewAction.escalate, "Needs a decision",
        )

        ack = await LeaveService.resolve_escalation(
            db, org.manager, out.id,
            ResolveEscalationRequest(resolution_notes="Not this quarter", final_action=FinalAction.reject),
        )

        assert ack.status == LeaveStatus.rejected
        lr = await lifecycle.load_request(db, out.id)
        assert lr.rejection_reason == "Not this quarter"
        bal = await _get_balance(db, org.employee.id, org.casual.id)
        assert (bal.used_days, bal.pending_days) == (0, 0)

    async def test_escalation_notifies_target_and_employee(self, db: AsyncSession):
        org = await _seed_org(db)
        out = await _submit(db, org)

        await LeaveService.process_request(
            db, org.group_admin, out.id, ReviewAction.escalate, "Needs a decision",
        )

        assert [n.title for n in await _notifications(db, org.manager.id)] == ["Leave Request Escalated"]
        assert [n.title for n in await _notifications(db, org.employee.id)] == ["Leave Request Escalated"]

    async def test_escalate_requires_reason(self, db: AsyncSession):
        org = await _seed_org(db)
        out = await _submit(db, org)

        with pytest.raises(ValidationException):
            await LeaveService.process_request(db, org.group_admin, out.id, ReviewAction.escalate)

        lr = await lifecycle.load_request(db, out.id)
        assert lr.status == LeaveStatus.pending

    async def test_lowest_management_id_is_chosen(self, db: AsyncSession):
        org = await _seed_org(db)
        second = await _seed_employee(
            db, org.company.id, role=UserRole.management, first_name="Mira",
        )
        await _seed_employee(
            db, org.company.id, role=UserRole.management, first_name="Ivan", is_active=False,
        )
        expected = min((org.manager.id, second.id), key=lambda u: u.hex)
        await db.commit()
        out = await _submit(db, org)

        await LeaveService.process_request(
            db, org.group_admin, out.id, ReviewAction.escalate, "Needs a decision",
        )

        lr = await lifecycle.load_request(db, out.id)
        assert lr.escalation.escalated_to == expected

    async def test_no_escalation_target(self, db: AsyncSession):
        org = await _seed_org(db, with_manager=False)
        out = await _submit(db, org)

        with pytest.raises(NoEscalationTargetFound):
            await LeaveService.process_request(
                db, org.group_admin, out.id, ReviewAction.escalate, "Needs a decision",
            )

        lr = await lifecycle.load_request(db, out.id)
        assert lr.status == LeaveStatus.pending
        assert lr.escalation is None
        await _reload(db, org)
        bal = await _get_balance(db, org.employee.id, org.casual.id)
        assert bal.pending_days == 5

    async def test_resolve_pending_request_is_invalid(self, db: AsyncSession):
        org = await _seed_org(db)
        out = await _submit(db, org)

        with pytest.raises(InvalidStateTransition) as exc_info:
            await LeaveService.resolve_escalation(
                db, org.manager, out.id,
                ResolveEscalationRequest(resolution_notes="Approving", final_action=FinalAction.approve),
            )
        assert exc_info.value.extensions["current_status"] == "pending"

    async def test_only_the_escalation_target_resolves(self, db: AsyncSession):
        org = await _seed_org(db)
        out = await _submit(db, org)
        await LeaveService.process_request(
            db, org.group_admin, out.id, ReviewAction.escalate, "Needs a decision",
        )
        # Joins after the escalation, so it cannot be the target.
        other_manager = await _seed_employee(
            db, org.company.id, role=UserRole.management, first_name="Zed",
        )
        await db.commit()

        with pytest.raises(ForbiddenException):
            await LeaveService.resolve_escalation(
                db, other_manager, out.id,
                ResolveEscalationRequest(resolution_notes="Approving", final_action=FinalAction.approve),
            )

    async def test_escalated_request_cannot_be_approved_directly(self, db: AsyncSession):
        org = await _seed_org(db)
        out = await _submit(db, org)
        await LeaveService.process_request(
            db, org.group_admin, out.id, ReviewAction.escalate, "Needs a decision",
        )

        with pytest.raises(InvalidStateTransition):
            await LeaveService.process_request(db, org.manager, out.id, ReviewAction.approve)

    async def test_escalated_request_keeps_its_dates(self, db: AsyncSession):
        org = await _seed_org(db)
        first = await _submit(db, org, MON, FRI)
        await LeaveService.process_request(
            db, org.group_admin, first.id, ReviewAction.escalate, "Needs a decision",
        )

        with pytest.raises(OverlappingRequest) as exc_info:
            await _submit(db, org, WED, FRI)
        assert exc_info.value.extensions["conflicting_request_id"] == str(first.id)

        await _reload(db, org)
        await LeaveService.resolve_escalation(
            db, org.manager, first.id,
            ResolveEscalationRequest(resolution_notes="Approved", final_action=FinalAction.approve),
        )
        assert await _request_count(db) == 1
        bal = await _get_balance(db, org.employee.id, org.casual.id)
        assert (bal.used_days, bal.pending_days) == (5, 0)

    async def test_escalate_without_reason_on_decided_request(self, db: AsyncSession):
        org = await _seed_org(db)
        out = await _submit(db, org)
        await LeaveService.process_request(
            db, org.group_admin, out.id, ReviewAction.reject, "Busy week",
        )

        with pytest.raises(InvalidStateTransition) as exc_info:
            await LeaveService.process_request(db, org.group_admin, out.id, ReviewAction.escalate)
        assert exc_info.value.extensions["current_status"] == "rejected"


# ═════════════════════════════════════════════════════════════════════
# 4. Cancellation
# ═════════════════════════════════════════════════════════════════════


class TestCancel:

    async def test_owner_cancels_pending(self, db: AsyncSession):
        org = await _seed_org(db)
        out = await _submit(db, org)

        ack = await LeaveService.cancel_request(db, org.employee, out.id)

        assert ack.status == LeaveStatus.cancelled
        bal = await _get_balance(db, org.employee.id, org.casual.id)
        assert bal.pending_days == 0
        lr = await lifecycle.load_request(db, out.id)
        assert lr.cancelled_at is not None

    async def test_only_owner_cancels(self, db: AsyncSession):
        org = await _seed_org(db)
        out = await _submit(db, org)

        with pytest.raises(ForbiddenException):
            await LeaveService.cancel_request(db, org.group_admin, out.id)

    async def test_approved_request_cannot_be_cancelled(self, db: AsyncSession):
        org = await _seed_org(db)
        out = await _submit(db, org)
        await LeaveService.process_request(db, org.group_admin, out.id, ReviewAction.approve)

        with pytest.raises(InvalidStateTransition):
            await LeaveService.cancel_request(db, org.employee, out.id)


# ═════════════════════════════════════════════════════════════════════
# 5. Balances & year-end
# ═════════════════════════════════════════════════════════════════════


class TestBalances:

    async def test_own_balances_are_initialised(self, db: AsyncSession):
        org = await _seed_org(db)

        balances = await LeaveService.get_balances(db, org.employee, year=2026)

        assert [(b.leave_type.name, b.available_days) for b in balances] == [("Casual Leave", 12)]

    async def test_initialize_is_idempotent(self, db: AsyncSession):
        org = await _seed_org(db)

        first = await LeaveService.initialize_balances(db, org.employee, year=2026)
        second = await LeaveService.initialize_balances(db, org.employee, year=2026)

        assert [b.id for b in first] == [b.id for b in second]

    async def test_group_admin_sees_report_balances(self, db: AsyncSession):
        org = await _seed_org(db)

        balances = await LeaveService.get_balances(
            db, org.group_admin, user_id=org.employee.id, year=2026,
        )
        assert balances[0].employee_id == org.employee.id

    async def test_colleague_cannot_see_balances(self, db: AsyncSession):
        org = await _seed_org(db)
        with pytest.raises(ForbiddenException):
            await LeaveService.get_balances(db, org.colleague, user_id=org.employee.id)

    async def test_other_company_employee_not_found(self, db: AsyncSession):
        org = await _seed_org(db)
        other = await _seed_org(db)
        with pytest.raises(NotFoundException):
            await LeaveService.get_balances(db, other.manager, user_id=org.employee.id)

    async def test_year_end_opens_next_year(self, db: AsyncSession):
        org = await _seed_org(db)

        result = await LeaveService.process_year_end(db, org.manager, year=2027)

        assert result.year == 2027
        assert result.employees == 4
        assert result.balances_created == 4
        again = await LeaveService.process_year_end(db, org.manager, year=2027)
        assert again.balances_created == 0

    async def test_year_end_is_management_only(self, db: AsyncSession):
        org = await _seed_org(db)
        with pytest.raises(ForbiddenException):
            await LeaveService.process_year_end(db, org.group_admin, year=2027)


# ═════════════════════════════════════════════════════════════════════
# 6. Stale-request sweep
# ═════════════════════════════════════════════════════════════════════


class TestSweep:

    async def test_disabled_by_default(self, db: AsyncSession):
        org = await _seed_org(db)
        await _submit(db, org)

        assert await LeaveService.sweep_stale_requests(db) == []

    async def test_fresh_requests_are_left_alone(self, db: AsyncSession):
        org = await _seed_org(db)
        await _submit(db, org)

        assert await LeaveService.sweep_stale_requests(db, 48) == []

    async def test_escalates_stale_requests_as_system(self, db: AsyncSession):
        org = await _seed_org(db)
        out = await _submit(db, org)
        later = datetime.now(timezone.utc) + timedelta(days=3)

        escalated = await LeaveService.sweep_stale_requests(db, 48, now=later)

        assert escalated == [out.id]
        lr = await lifecycle.load_request(db, out.id)
        assert lr.status == LeaveStatus.escalated
        assert lr.escalation.escalated_by is None
        assert lr.escalation.escalated_to == org.manager.id
        assert "48 hours" in lr.escalation.reason
        audit = (await db.execute(
            select(AuditTrail).where(
                AuditTrail.entity_id == out.id, AuditTrail.action == "escalate",
            )
        )).scalars().one()
        assert audit.actor_id is None

    async def test_skips_requests_without_target(self, db: AsyncSession):
        org = await _seed_org(db, with_manager=False)
        out = await _submit(db, org)
        later = datetime.now(timezone.utc) + timedelta(days=3)

        assert await LeaveService.sweep_stale_requests(db, 48, now=later) == []
        lr = await lifecycle.load_request(db, out.id)
        assert lr.status == LeaveStatus.pending


# ═════════════════════════════════════════════════════════════════════
# 7. Team calendar, statistics, history
# ═════════════════════════════════════════════════════════════════════


class TestTeamViews:

    async def test_calendar_shows_open_and_approved_leave_of_the_team(self, db: AsyncSession):
        org = await _seed_org(db)
        mine = await _submit(db, org, MON, FRI)
        theirs = await LeaveService.submit_request(
            db, org.colleague, _payload(org.casual.id, WED, WED), today=TODAY,
        )
        dropped = await LeaveService.submit_request(
            db, org.colleague, _payload(org.casual.id, FRI, FRI), today=TODAY,
        )
        await LeaveService.process_request(
            db, org.group_admin, mine.id, ReviewAction.escalate, "Needs a decision",
        )
        await LeaveService.cancel_request(db, org.colleague, dropped.id)

        calendar = await LeaveService.get_team_calendar(db, org.group_admin, MON, FRI)

        assert [e.id for e in calendar.entries] == [mine.id, theirs.id]
        assert [e.status for e in calendar.entries] == [LeaveStatus.escalated, LeaveStatus.pending]
        assert calendar.total_entries == 2
        assert calendar.entries[1].employee.id == org.colleague.id

    async def test_employee_sees_colleagues_under_the_same_group_admin(self, db: AsyncSession):
        org = await _seed_org(db)
        theirs = await LeaveService.submit_request(
            db, org.colleague, _payload(org.casual.id, WED, WED), today=TODAY,
        )

        calendar = await LeaveService.get_team_calendar(db, org.employee, MON, FRI)

        assert [e.id for e in calendar.entries] == [theirs.id]

    async def test_calendar_range_must_intersect(self, db: AsyncSession):
        org = await _seed_org(db)
        await _submit(db, org, MON, WED)

        calendar = await LeaveService.get_team_calendar(
            db, org.manager, FRI, FRI + timedelta(days=7),
        )
        assert calendar.entries == []

    async def test_calendar_is_scoped_to_the_company(self, db: AsyncSession):
        org = await _seed_org(db)
        other = await _seed_org(db)
        await _submit(db, org)

        calendar = await LeaveService.get_team_calendar(db, other.manager, MON, FRI)

        assert calendar.entries == []

    async def test_calendar_rejects_reversed_range(self, db: AsyncSession):
        org = await _seed_org(db)
        with pytest.raises(ValidationException) as exc_info:
            await LeaveService.get_team_calendar(db, org.manager, FRI, MON)
        assert "end_date" in exc_info.value.errors

    async def test_stats_for_group_admin(self, db: AsyncSession):
        org = await _seed_org(db)
        mine = await _submit(db, org)
        await LeaveService.submit_request(
            db, org.colleague, _payload(org.casual.id, MON + timedelta(days=7), FRI + timedelta(days=7)),
            today=TODAY,
        )
        await LeaveService.process_request(db, org.group_admin, mine.id, ReviewAction.approve)
        await _seed_leave_type(db, org.company.id, name="Retired Leave", is_active=False)
        await db.commit()

        stats = await LeaveService.get_leave_stats(db, org.group_admin)

        assert stats.window_days == 30
        assert (stats.pending_requests, stats.approved_requests) == (1, 1)
        assert (stats.rejected_requests, stats.escalated_requests) == (0, 0)
        assert stats.approved_days == 5
        assert stats.active_leave_types == 1

    async def test_stats_window_excludes_older_requests(self, db: AsyncSession):
        org = await _seed_org(db)
        await _submit(db, org)
        later = datetime.now(timezone.utc) + timedelta(days=60)

        stats = await LeaveService.get_leave_stats(db, org.manager, now=later)

        assert stats.pending_requests == 0
        assert stats.active_leave_types == 1

    async def test_stats_need_a_reviewer(self, db: AsyncSession):
        org = await _seed_org(db)
        with pytest.raises(ForbiddenException):
            await LeaveService.get_leave_stats(db, org.employee)

    async def test_history_lists_every_transition(self, db: AsyncSession):
        org = await _seed_org(db)
        out = await _submit(db, org)
        await LeaveService.process_request(
            db, org.group_admin, out.id, ReviewAction.escalate, "Needs a decision",
        )
        await LeaveService.resolve_escalation(
            db, org.manager, out.id,
            ResolveEscalationRequest(resolution_notes="Cover arranged", final_action=FinalAction.approve),
        )

        history = await LeaveService.get_request_history(db, org.employee, out.id)

        assert [h.action for h in history] == ["submit", "escalate", "resolve"]
        assert [(h.old_status, h.new_status) for h in history] == [
            (None, LeaveStatus.pending),
            (LeaveStatus.pending, LeaveStatus.escalated),
            (LeaveStatus.escalated, LeaveStatus.approved),
        ]
        assert [h.actor.id for h in history] == [org.employee.id, org.group_admin.id, org.manager.id]
        assert history[1].details["reason"] == "Needs a decision"
        assert "status" not in history[0].details

    async def test_history_hidden_from_colleagues(self, db: AsyncSession):
        org = await _seed_org(db)
        out = await _submit(db, org)
        with pytest.raises(ForbiddenException):
            await LeaveService.get_request_history(db, org.colleague, out.id)

    async def test_history_of_other_company_request_not_found(self, db: AsyncSession):
        org = await _seed_org(db)
        other = await _seed_org(db)
        out = await _submit(db, org)
        with pytest.raises(NotFoundException):
            await LeaveService.get_request_history(db, other.manager, out.id)
