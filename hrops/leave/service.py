"""Leave service layer — the operations exposed to the three caller roles.

Business logic:
  - Submission through the eligibility validator with a ledger reservation
  - Review (approve / reject / escalate), escalation resolution, cancellation
  - Team calendar, reviewer statistics and per-request history reads
  - Balance reads with lazy ledger initialisation and year-end rollover
  - Registry maintenance for management (types, policies, default catalogue)
  - Optional sweep escalating requests nobody decided on in time

Every write runs in one ``unit_of_work``; notifications go out after it
commits.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Optional, Sequence

from sqlalchemy import and_, case, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from hrops.auth.capabilities import (
    Capability,
    EmployeeResource,
    authorize,
)
from hrops.common.audit import AuditTrail
from hrops.common.constants import (
    ACTIVE_LEAVE_STATUSES,
    MAX_CALENDAR_RANGE_DAYS,
    STATS_WINDOW_DAYS,
    SYSTEM_ESCALATION_REASON,
    FinalAction,
    LeaveStatus,
    ReviewAction,
    UserRole,
)
from hrops.common.exceptions import (
    AppException,
    NotFoundException,
    ValidationException,
)
from hrops.config import settings
from hrops.core_hr.models import Employee
from hrops.leave import escalation as escalations
from hrops.leave import ledger, lifecycle, registry
from hrops.leave.documents import get_documents
from hrops.leave.lifecycle import unit_of_work
from hrops.leave.models import LeaveBalance, LeaveEscalation, LeaveRequest
from hrops.leave.schemas import (
    ActionAck,
    EmployeeBrief,
    LeaveBalanceOut,
    LeaveDocumentOut,
    LeaveHistoryEntry,
    LeavePolicyUpsert,
    LeaveRequestCreate,
    LeaveRequestOut,
    LeaveStatsOut,
    LeaveTypeBrief,
    LeaveTypeCreate,
    LeaveTypeOut,
    LeaveTypeUpdate,
    ResolveEscalationRequest,
    TeamCalendarEntry,
    TeamCalendarOut,
    YearEndOut,
)
from hrops.notifications.service import (
    notify_leave_approved,
    notify_leave_escalated,
    notify_leave_rejected,
    notify_leave_request,
    send_after_commit,
)

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════
# LeaveService
# ═════════════════════════════════════════════════════════════════════


class LeaveService:
    """Async leave operations: submission, review, balances, registry."""

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    def _today() -> date:
        return datetime.now(timezone.utc).date()

    @staticmethod
    def _request_query():
        return select(LeaveRequest).options(
            selectinload(LeaveRequest.employee),
            selectinload(LeaveRequest.leave_type),
            selectinload(LeaveRequest.documents),
            selectinload(LeaveRequest.escalation),
        )

    @staticmethod
    def _build_request_response(
        leave_request: LeaveRequest,
        balance: Optional[LeaveBalance] = None,
    ) -> LeaveRequestOut:
        out = LeaveRequestOut.model_validate(leave_request)
        if balance is not None:
            out.balance = LeaveBalanceOut.model_validate(balance)
        return out

    @staticmethod
    def _ack(leave_request: LeaveRequest, message: str) -> ActionAck:
        return ActionAck(id=leave_request.id, status=leave_request.status, message=message)

    @staticmethod
    async def _notify_outcome(db: AsyncSession, leave_request: LeaveRequest) -> None:
        if leave_request.status == LeaveStatus.approved:
            await send_after_commit(db, lambda s: notify_leave_approved(s, leave_request))
        elif leave_request.status == LeaveStatus.rejected:
            await send_after_commit(db, lambda s: notify_leave_rejected(s, leave_request))

    # ─────────────────────────────────────────────────────────────────
    # Submit
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def submit_request(
        db: AsyncSession,
        actor: Employee,
        data: LeaveRequestCreate,
        *,
        today: Optional[date] = None,
    ) -> LeaveRequestOut:
        """Validate, reserve the working days and store the request as pending."""
        actor_id = actor.id
        try:
            async with unit_of_work(db):
                created = await lifecycle.submit(
                    db, actor, data, today=today or LeaveService._today(),
                )
        except AppException as exc:
            logger.info(
                "Leave submission by %s refused: %s", actor_id, exc.error_type,
            )
            raise

        leave_request = await lifecycle.load_request(db, created.id)
        reviewer_id = leave_request.group_admin_id
        if reviewer_id is not None:
            await send_after_commit(
                db, lambda s: notify_leave_request(s, leave_request, reviewer_id),
            )
        return LeaveService._build_request_response(leave_request)

    # ─────────────────────────────────────────────────────────────────
    # Listings
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def list_my_requests(
        db: AsyncSession,
        actor: Employee,
        *,
        status: Optional[LeaveStatus] = None,
    ) -> list[LeaveRequestOut]:
        """The caller's own requests, newest first, each with its balance row."""
        query = (
            LeaveService._request_query()
            .where(LeaveRequest.employee_id == actor.id)
            .order_by(LeaveRequest.created_at.desc(), LeaveRequest.start_date.desc())
        )
        if status is not None:
            query = query.where(LeaveRequest.status == status)
        requests = (await db.execute(query)).scalars().all()
        if not requests:
            return []

        years = {r.charged_year for r in requests}
        bal_result = await db.execute(
            select(LeaveBalance)
            .where(LeaveBalance.employee_id == actor.id, LeaveBalance.year.in_(years))
            .options(selectinload(LeaveBalance.leave_type))
        )
        balances = {
            (b.leave_type_id, b.year): b for b in bal_result.scalars().all()
        }
        return [
            LeaveService._build_request_response(
                r, balances.get((r.leave_type_id, r.charged_year)),
            )
            for r in requests
        ]

    @staticmethod
    async def list_pending_for_review(
        db: AsyncSession,
        actor: Employee,
    ) -> list[LeaveRequestOut]:
        """Requests waiting on the caller.

        Group admins see pending requests of their direct reports. Management
        additionally sees pending requests filed by group admins of their
        company and the escalations routed to them.
        """
        conditions = [
            and_(
                LeaveRequest.group_admin_id == actor.id,
                LeaveRequest.status == LeaveStatus.pending,
            ),
        ]
        if actor.role == UserRole.management:
            conditions.append(
                and_(
                    LeaveRequest.status == LeaveStatus.pending,
                    Employee.role == UserRole.group_admin,
                    LeaveRequest.employee_id != actor.id,
                )
            )
            conditions.append(
                and_(
                    LeaveRequest.status == LeaveStatus.escalated,
                    LeaveEscalation.escalated_to == actor.id,
                )
            )

        query = (
            LeaveService._request_query()
            .join(Employee, LeaveRequest.employee_id == Employee.id)
            .outerjoin(LeaveEscalation, LeaveEscalation.request_id == LeaveRequest.id)
            .where(Employee.company_id == actor.company_id, or_(*conditions))
            .order_by(LeaveRequest.created_at, LeaveRequest.start_date)
        )
        requests = (await db.execute(query)).scalars().unique().all()
        return [LeaveService._build_request_response(r) for r in requests]

    # ─────────────────────────────────────────────────────────────────
    # Review
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def process_request(
        db: AsyncSession,
        actor: Employee,
        request_id: uuid.UUID,
        action: ReviewAction,
        reason: Optional[str] = None,
    ) -> ActionAck:
        """Approve, reject or escalate a pending request."""
        async with unit_of_work(db):
            if action == ReviewAction.approve:
                leave_request = await lifecycle.approve(db, actor, request_id)
            elif action == ReviewAction.reject:
                leave_request = await lifecycle.reject(db, actor, request_id, reason)
            else:
                leave_request = await lifecycle.escalate(db, actor, request_id, reason)

        if action == ReviewAction.escalate:
            escalated_to = leave_request.escalation.escalated_to
            await send_after_commit(
                db, lambda s: notify_leave_escalated(s, leave_request, escalated_to),
            )
            return LeaveService._ack(leave_request, "Leave request escalated to management.")

        await LeaveService._notify_outcome(db, leave_request)
        return LeaveService._ack(
            leave_request, f"Leave request {leave_request.status.value}.",
        )

    @staticmethod
    async def resolve_escalation(
        db: AsyncSession,
        actor: Employee,
        request_id: uuid.UUID,
        body: ResolveEscalationRequest,
    ) -> ActionAck:
        async with unit_of_work(db):
            leave_request = await lifecycle.resolve(
                db, actor, request_id, body.resolution_notes, body.final_action,
            )
        await LeaveService._notify_outcome(db, leave_request)
        verb = "approved" if body.final_action == FinalAction.approve else "rejected"
        return LeaveService._ack(leave_request, f"Escalation resolved; leave {verb}.")

    @staticmethod
    async def cancel_request(
        db: AsyncSession,
        actor: Employee,
        request_id: uuid.UUID,
    ) -> ActionAck:
        async with unit_of_work(db):
            leave_request = await lifecycle.cancel(db, actor, request_id)
        return LeaveService._ack(leave_request, "Leave request cancelled.")

    @staticmethod
    async def get_request_documents(
        db: AsyncSession,
        actor: Employee,
        request_id: uuid.UUID,
    ) -> list[LeaveDocumentOut]:
        leave_request = await lifecycle.load_request(db, request_id)
        authorize(actor, Capability.view_documents, lifecycle.resource_for(leave_request))
        documents = await get_documents(db, request_id)
        return [LeaveDocumentOut.model_validate(d) for d in documents]

    @staticmethod
    async def get_request_history(
        db: AsyncSession,
        actor: Employee,
        request_id: uuid.UUID,
    ) -> list[LeaveHistoryEntry]:
        """Every recorded transition of a request, oldest first."""
        leave_request = await lifecycle.load_request(db, request_id)
        authorize(actor, Capability.view_history, lifecycle.resource_for(leave_request))

        result = await db.execute(
            select(AuditTrail, Employee)
            .outerjoin(Employee, Employee.id == AuditTrail.actor_id)
            .where(
                AuditTrail.entity_type == lifecycle.AUDIT_ENTITY,
                AuditTrail.entity_id == request_id,
            )
            .order_by(AuditTrail.created_at)
        )

        history: list[LeaveHistoryEntry] = []
        for entry, entry_actor in result.all():
            details = dict(entry.new_values or {})
            new_status = details.pop("status", None)
            history.append(
                LeaveHistoryEntry(
                    id=entry.id,
                    action=entry.action,
                    actor=EmployeeBrief.model_validate(entry_actor) if entry_actor else None,
                    old_status=(entry.old_values or {}).get("status"),
                    new_status=new_status,
                    details=details,
                    created_at=entry.created_at,
                )
            )
        return history

    # ─────────────────────────────────────────────────────────────────
    # Team calendar & statistics
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    def _calendar_scope(actor: Employee):
        """Employees whose leave ``actor`` sees on the team calendar.

        Management sees the whole company, a group admin their reports and
        themselves, an employee everyone sharing their group admin.
        """
        same_company = Employee.company_id == actor.company_id
        if actor.role == UserRole.management:
            return same_company
        team_lead_id = actor.id if actor.role == UserRole.group_admin else actor.group_admin_id
        if team_lead_id is None:
            return Employee.id == actor.id
        return and_(
            same_company,
            or_(Employee.group_admin_id == team_lead_id, Employee.id == actor.id),
        )

    @staticmethod
    def _review_scope(actor: Employee):
        """Employees whose requests ``actor`` reviews."""
        if actor.role == UserRole.management:
            return and_(
                Employee.company_id == actor.company_id,
                Employee.role.in_((UserRole.employee, UserRole.group_admin)),
            )
        return and_(
            Employee.company_id == actor.company_id,
            Employee.group_admin_id == actor.id,
        )

    @staticmethod
    async def get_team_calendar(
        db: AsyncSession,
        actor: Employee,
        start_date: date,
        end_date: date,
    ) -> TeamCalendarOut:
        """Pending, escalated and approved leave intersecting ``[start_date, end_date]``."""
        authorize(actor, Capability.view_team_calendar)
        if end_date < start_date:
            raise ValidationException({"end_date": ["end_date must not be before start_date."]})
        if (end_date - start_date).days >= MAX_CALENDAR_RANGE_DAYS:
            raise ValidationException({
                "end_date": [f"The calendar spans at most {MAX_CALENDAR_RANGE_DAYS} days."],
            })

        result = await db.execute(
            select(LeaveRequest)
            .join(Employee, LeaveRequest.employee_id == Employee.id)
            .where(
                LeaveService._calendar_scope(actor),
                LeaveRequest.status.in_(ACTIVE_LEAVE_STATUSES),
                LeaveRequest.start_date <= end_date,
                LeaveRequest.end_date >= start_date,
            )
            .options(
                selectinload(LeaveRequest.employee),
                selectinload(LeaveRequest.leave_type),
            )
            .order_by(LeaveRequest.start_date, Employee.employee_code)
        )

        entries = [
            TeamCalendarEntry(
                id=r.id,
                employee=EmployeeBrief.model_validate(r.employee),
                leave_type=LeaveTypeBrief.model_validate(r.leave_type),
                start_date=r.start_date,
                end_date=r.end_date,
                days_requested=r.days_requested,
                status=r.status,
            )
            for r in result.scalars().all()
        ]
        return TeamCalendarOut(
            start_date=start_date,
            end_date=end_date,
            entries=entries,
            total_entries=len(entries),
        )

    @staticmethod
    async def get_leave_stats(
        db: AsyncSession,
        actor: Employee,
        *,
        days: int = STATS_WINDOW_DAYS,
        now: Optional[datetime] = None,
    ) -> LeaveStatsOut:
        """Request counts over the caller's review scope, created in the last ``days``."""
        authorize(actor, Capability.view_statistics)
        since = (now or datetime.now(timezone.utc)) - timedelta(days=days)

        def _count(status: LeaveStatus):
            return func.count(case((LeaveRequest.status == status, 1)))

        result = await db.execute(
            select(
                _count(LeaveStatus.pending).label("pending"),
                _count(LeaveStatus.approved).label("approved"),
                _count(LeaveStatus.rejected).label("rejected"),
                _count(LeaveStatus.escalated).label("escalated"),
                func.coalesce(
                    func.sum(
                        case(
                            (LeaveRequest.status == LeaveStatus.approved, LeaveRequest.days_requested),
                            else_=0,
                        )
                    ),
                    0,
                ).label("approved_days"),
            )
            .select_from(LeaveRequest)
            .join(Employee, LeaveRequest.employee_id == Employee.id)
            .where(LeaveService._review_scope(actor), LeaveRequest.created_at >= since)
        )
        row = result.one()
        active_types = await registry.count_active_leave_types(db, actor.company_id)

        return LeaveStatsOut(
            window_days=days,
            pending_requests=row.pending or 0,
            approved_requests=row.approved or 0,
            rejected_requests=row.rejected or 0,
            escalated_requests=row.escalated or 0,
            approved_days=row.approved_days or 0,
            active_leave_types=active_types,
        )

    # ─────────────────────────────────────────────────────────────────
    # Balances
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_balances(
        db: AsyncSession,
        actor: Employee,
        *,
        user_id: Optional[uuid.UUID] = None,
        year: Optional[int] = None,
    ) -> list[LeaveBalanceOut]:
        """Ledger of the caller (or of an employee they oversee) for ``year``."""
        target = actor
        if user_id is not None and user_id != actor.id:
            target = await db.get(Employee, user_id)
            if target is None:
                raise NotFoundException("Employee", str(user_id))
            authorize(
                actor,
                Capability.view_balances,
                EmployeeResource(
                    id=target.id,
                    company_id=target.company_id,
                    group_admin_id=target.group_admin_id,
                ),
            )

        target_year = year or LeaveService._today().year
        async with unit_of_work(db):
            balances = await ledger.get_or_init_balances(
                db, target.id, target.company_id, target_year,
            )
        return [LeaveBalanceOut.model_validate(b) for b in balances]

    @staticmethod
    async def initialize_balances(
        db: AsyncSession,
        actor: Employee,
        *,
        year: Optional[int] = None,
    ) -> list[LeaveBalanceOut]:
        """Create the caller's missing ledger rows. Safe to call repeatedly."""
        return await LeaveService.get_balances(db, actor, year=year)

    @staticmethod
    async def process_year_end(
        db: AsyncSession,
        actor: Employee,
        *,
        year: Optional[int] = None,
    ) -> YearEndOut:
        """Open ``year`` (default: next year) for every active employee of the company."""
        authorize(actor, Capability.manage_registry)
        target_year = year or LeaveService._today().year + 1

        result = await db.execute(
            select(Employee.id).where(
                Employee.company_id == actor.company_id,
                Employee.is_active.is_(True),
            )
        )
        employee_ids = result.scalars().all()

        async with unit_of_work(db):
            created = await ledger.init_company_year(
                db, actor.company_id, employee_ids, target_year,
            )
        return YearEndOut(
            year=target_year, employees=len(employee_ids), balances_created=created,
        )

    # ─────────────────────────────────────────────────────────────────
    # Registry
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def list_leave_types(
        db: AsyncSession,
        actor: Employee,
        *,
        include_inactive: bool = False,
    ) -> list[LeaveTypeOut]:
        if include_inactive:
            authorize(actor, Capability.manage_registry)
        leave_types = await registry.list_leave_types(
            db, actor.company_id, include_inactive=include_inactive,
        )
        return [LeaveTypeOut.model_validate(lt) for lt in leave_types]

    @staticmethod
    async def create_leave_type(
        db: AsyncSession,
        actor: Employee,
        body: LeaveTypeCreate,
    ) -> LeaveTypeOut:
        authorize(actor, Capability.manage_registry)
        async with unit_of_work(db):
            leave_type = await registry.create_leave_type(db, actor, body.model_dump())
        return LeaveTypeOut.model_validate(leave_type)

    @staticmethod
    async def update_leave_type(
        db: AsyncSession,
        actor: Employee,
        leave_type_id: uuid.UUID,
        body: LeaveTypeUpdate,
    ) -> LeaveTypeOut:
        authorize(actor, Capability.manage_registry)
        async with unit_of_work(db):
            leave_type = await registry.update_leave_type(
                db, actor, leave_type_id, body.model_dump(exclude_unset=True),
            )
        return LeaveTypeOut.model_validate(leave_type)

    @staticmethod
    async def upsert_policy(
        db: AsyncSession,
        actor: Employee,
        leave_type_id: uuid.UUID,
        body: LeavePolicyUpsert,
    ) -> LeaveTypeOut:
        authorize(actor, Capability.manage_registry)
        async with unit_of_work(db):
            leave_type = await registry.upsert_policy(
                db, actor, leave_type_id, body.model_dump(),
            )
        return LeaveTypeOut.model_validate(leave_type)

    @staticmethod
    async def seed_default_leave_types(
        db: AsyncSession,
        actor: Employee,
    ) -> list[LeaveTypeOut]:
        authorize(actor, Capability.manage_registry)
        async with unit_of_work(db):
            leave_types = await registry.seed_default_catalogue(db, actor)
        return [LeaveTypeOut.model_validate(lt) for lt in leave_types]

    # ─────────────────────────────────────────────────────────────────
    # Stale-request sweep
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def sweep_stale_requests(
        db: AsyncSession,
        older_than_hours: Optional[int] = None,
        *,
        now: Optional[datetime] = None,
    ) -> list[uuid.UUID]:
        """Escalate pending requests older than the threshold as the system.

        Each request is its own unit of work; one that cannot be escalated
        (already decided, no management user) is logged and skipped.
        Returns the ids that were escalated.
        """
        hours = older_than_hours or settings.LEAVE_ESCALATION_SWEEP_HOURS
        if not hours:
            logger.info("Escalation sweep disabled (LEAVE_ESCALATION_SWEEP_HOURS unset)")
            return []

        stale_ids: Sequence[uuid.UUID] = await escalations.find_stale_requests(
            db, hours, now=now,
        )
        escalated: list[uuid.UUID] = []
        for request_id in stale_ids:
            try:
                async with unit_of_work(db):
                    leave_request = await lifecycle.escalate(
                        db, None, request_id, SYSTEM_ESCALATION_REASON.format(hours=hours),
                    )
            except AppException as exc:
                logger.warning(
                    "Sweep could not escalate request %s: %s", request_id, exc.detail,
                )
                continue

            escalated.append(request_id)
            escalated_to = leave_request.escalation.escalated_to
            await send_after_commit(
                db,
                lambda s, lr=leave_request, to=escalated_to: notify_leave_escalated(s, lr, to),
            )

        logger.info(
            "Escalation sweep escalated %d of %d stale request(s)",
            len(escalated), len(stale_ids),
        )
        return escalated
