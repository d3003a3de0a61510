"""Leave router — submission, review, escalation, team views, balances, registry.

All endpoints require authentication. Review endpoints need at least the
group_admin role, registry maintenance needs management; per-request
ownership is decided in the service layer.
"""


import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from hrops.auth.dependencies import get_current_user, require_role
from hrops.common.constants import (
    STATS_WINDOW_DAYS,
    LeaveStatus,
    ReviewAction,
    UserRole,
)
from hrops.common.rate_limit import limiter, submit_limit
from hrops.core_hr.models import Employee
from hrops.database import get_db
from hrops.leave.schemas import (
    ActionAck,
    LeaveBalanceOut,
    LeaveDocumentOut,
    LeaveHistoryEntry,
    LeavePolicyUpsert,
    LeaveRequestCreate,
    LeaveRequestOut,
    LeaveStatsOut,
    LeaveTypeCreate,
    LeaveTypeOut,
    LeaveTypeUpdate,
    ProcessRequestBody,
    ResolveEscalationRequest,
    TeamCalendarOut,
    YearEndOut,
)
from hrops.leave.service import LeaveService

router = APIRouter(prefix="", tags=["leave"])


# ── POST /requests ──────────────────────────────────────────────────

@router.post("/requests", response_model=LeaveRequestOut, status_code=201)
@limiter.limit(submit_limit)
async def submit_request(
    request: Request,
    body: LeaveRequestCreate,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Submit a leave request. Runs every eligibility check and reserves the days."""
    return await LeaveService.submit_request(db, employee, body)


# ── GET /requests/mine ──────────────────────────────────────────────

@router.get("/requests/mine", response_model=list[LeaveRequestOut])
async def list_my_requests(
    status: Optional[LeaveStatus] = Query(None),
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """The caller's requests with documents and balance snapshot."""
    return await LeaveService.list_my_requests(db, employee, status=status)


# ── GET /requests/pending ───────────────────────────────────────────

@router.get("/requests/pending", response_model=list[LeaveRequestOut])
async def list_pending_for_review(
    employee: Employee = Depends(
        require_role(UserRole.group_admin, UserRole.management)
    ),
    db: AsyncSession = Depends(get_db),
):
    """Requests waiting for the caller's decision."""
    return await LeaveService.list_pending_for_review(db, employee)


# ── GET /requests/{id}/documents ────────────────────────────────────

@router.get("/requests/{request_id}/documents", response_model=list[LeaveDocumentOut])
async def get_request_documents(
    request_id: uuid.UUID,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Supporting documents; visible to the owner, their group admin and management."""
    return await LeaveService.get_request_documents(db, employee, request_id)


# ── GET /requests/{id}/history ──────────────────────────────────────

@router.get("/requests/{request_id}/history", response_model=list[LeaveHistoryEntry])
async def get_request_history(
    request_id: uuid.UUID,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Audit trail of one request: who moved it, from which status to which."""
    return await LeaveService.get_request_history(db, employee, request_id)


# ── POST /requests/{id}/resolve ─────────────────────────────────────

@router.post("/requests/{request_id}/resolve", response_model=ActionAck)
async def resolve_escalation(
    request_id: uuid.UUID,
    body: ResolveEscalationRequest,
    employee: Employee = Depends(require_role(UserRole.management)),
    db: AsyncSession = Depends(get_db),
):
    """Close an escalation with a final approve / reject decision."""
    return await LeaveService.resolve_escalation(db, employee, request_id, body)


# ── POST /requests/{id}/cancel ──────────────────────────────────────

@router.post("/requests/{request_id}/cancel", response_model=ActionAck)
async def cancel_request(
    request_id: uuid.UUID,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Withdraw one of your own pending requests."""
    return await LeaveService.cancel_request(db, employee, request_id)


# ── POST /requests/{id}/{approve|reject|escalate} ───────────────────

@router.post("/requests/{request_id}/{action}", response_model=ActionAck)
async def process_request(
    request_id: uuid.UUID,
    action: ReviewAction,
    body: Optional[ProcessRequestBody] = None,
    employee: Employee = Depends(
        require_role(UserRole.group_admin, UserRole.management)
    ),
    db: AsyncSession = Depends(get_db),
):
    """Approve, reject (reason required) or escalate (reason required) a pending request."""
    reason = body.reason if body is not None else None
    return await LeaveService.process_request(db, employee, request_id, action, reason)


# ── GET /calendar ───────────────────────────────────────────────────

@router.get("/calendar", response_model=TeamCalendarOut)
async def team_calendar(
    start_date: date = Query(..., description="First day of the range (inclusive)"),
    end_date: date = Query(..., description="Last day of the range (inclusive)"),
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Pending, escalated and approved leave of the caller's team in a date range."""
    return await LeaveService.get_team_calendar(db, employee, start_date, end_date)


# ── GET /stats ──────────────────────────────────────────────────────

@router.get("/stats", response_model=LeaveStatsOut)
async def leave_stats(
    days: int = Query(STATS_WINDOW_DAYS, ge=1, le=365, description="Look-back window in days"),
    employee: Employee = Depends(
        require_role(UserRole.group_admin, UserRole.management)
    ),
    db: AsyncSession = Depends(get_db),
):
    """Request counts for the people the caller reviews, plus active leave types."""
    return await LeaveService.get_leave_stats(db, employee, days=days)


# ── GET /balances ───────────────────────────────────────────────────

@router.get("/balances", response_model=list[LeaveBalanceOut])
async def get_balances(
    user_id: Optional[uuid.UUID] = Query(None, description="Defaults to the caller"),
    year: Optional[int] = Query(None, ge=2000, le=2100, description="Defaults to the current year"),
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Ledger rows for one employee and year; missing rows are created on first read."""
    return await LeaveService.get_balances(db, employee, user_id=user_id, year=year)


# ── POST /balances/initialize ───────────────────────────────────────

@router.post("/balances/initialize", response_model=list[LeaveBalanceOut])
async def initialize_balances(
    year: Optional[int] = Query(None, ge=2000, le=2100),
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Idempotently create the caller's ledger rows for ``year``."""
    return await LeaveService.initialize_balances(db, employee, year=year)


# ── POST /balances/year-end ─────────────────────────────────────────

@router.post("/balances/year-end", response_model=YearEndOut)
async def process_year_end(
    year: Optional[int] = Query(None, ge=2000, le=2100, description="Defaults to next year"),
    employee: Employee = Depends(require_role(UserRole.management)),
    db: AsyncSession = Depends(get_db),
):
    """Open the ledger of ``year`` for every active employee, carrying days forward."""
    return await LeaveService.process_year_end(db, employee, year=year)


# ── GET /types ──────────────────────────────────────────────────────

@router.get("/types", response_model=list[LeaveTypeOut])
async def list_leave_types(
    include_inactive: bool = Query(False),
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Leave types visible to the caller's company, with their policies."""
    return await LeaveService.list_leave_types(
        db, employee, include_inactive=include_inactive,
    )


# ── POST /types ─────────────────────────────────────────────────────

@router.post("/types", response_model=LeaveTypeOut, status_code=201)
async def create_leave_type(
    body: LeaveTypeCreate,
    employee: Employee = Depends(require_role(UserRole.management)),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.create_leave_type(db, employee, body)


# ── POST /types/defaults ────────────────────────────────────────────

@router.post("/types/defaults", response_model=list[LeaveTypeOut])
async def seed_default_leave_types(
    employee: Employee = Depends(require_role(UserRole.management)),
    db: AsyncSession = Depends(get_db),
):
    """Add the standard leave catalogue to the company; existing names are kept."""
    return await LeaveService.seed_default_leave_types(db, employee)


# ── PUT /types/{id} ─────────────────────────────────────────────────

@router.put("/types/{leave_type_id}", response_model=LeaveTypeOut)
async def update_leave_type(
    leave_type_id: uuid.UUID,
    body: LeaveTypeUpdate,
    employee: Employee = Depends(require_role(UserRole.management)),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.update_leave_type(db, employee, leave_type_id, body)


# ── PUT /types/{id}/policy ──────────────────────────────────────────

@router.put("/types/{leave_type_id}/policy", response_model=LeaveTypeOut)
async def upsert_policy(
    leave_type_id: uuid.UUID,
    body: LeavePolicyUpsert,
    employee: Employee = Depends(require_role(UserRole.management)),
    db: AsyncSession = Depends(get_db),
):
    """Create or replace the policy of one of the company's leave types."""
    return await LeaveService.upsert_policy(db, employee, leave_type_id, body)
