"""Leave Pydantic v2 schemas — request / response validation.

Naming conventions:
  - *Create / *Request / *Upsert  → request bodies (write)
  - *Out                         → response bodies (read)
  - *Brief                       → compact embedded representations
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from hrops.common.constants import (
    EscalationStatus,
    FinalAction,
    GenderType,
    LeaveStatus,
    UploadMethod,
    UserRole,
)


# ═════════════════════════════════════════════════════════════════════
# Embedded / shared
# ═════════════════════════════════════════════════════════════════════


class EmployeeBrief(BaseModel):
    """Minimal employee info embedded in leave responses."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_code: str
    full_name: str
    role: UserRole


class LeaveTypeBrief(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    is_paid: bool = True
    requires_documentation: bool = False


# ═════════════════════════════════════════════════════════════════════
# Leave Type & Policy
# ═════════════════════════════════════════════════════════════════════


class LeavePolicyOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    notice_period_days: int = 0
    max_consecutive_days: Optional[int] = None
    min_service_days: int = 0
    gender_specific: Optional[GenderType] = None
    default_days: Optional[int] = None
    carry_forward_days: int = 0


class LeaveTypeOut(BaseModel):
    """Full leave type representation with its policy, if any."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    company_id: Optional[uuid.UUID] = None
    name: str
    description: Optional[str] = None
    max_days: int
    is_paid: bool = True
    requires_documentation: bool = False
    is_active: bool = True
    policy: Optional[LeavePolicyOut] = None


class LeaveTypeCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)
    max_days: int = Field(0, ge=0, le=366)
    is_paid: bool = True
    requires_documentation: bool = False
    is_active: bool = True


class LeaveTypeUpdate(BaseModel):
    """Partial update; only fields present in the body are changed."""

    name: Optional[str] = Field(None, min_length=2, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)
    max_days: Optional[int] = Field(None, ge=0, le=366)
    is_paid: Optional[bool] = None
    requires_documentation: Optional[bool] = None
    is_active: Optional[bool] = None


class LeavePolicyUpsert(BaseModel):
    """Full replacement of a leave type's policy."""

    notice_period_days: int = Field(0, ge=0, le=365)
    max_consecutive_days: Optional[int] = Field(None, ge=1, le=366)
    min_service_days: int = Field(0, ge=0)
    gender_specific: Optional[GenderType] = None
    default_days: Optional[int] = Field(None, ge=0, le=366)
    carry_forward_days: int = Field(0, ge=0, le=366)


# ═════════════════════════════════════════════════════════════════════
# Leave Balance
# ═════════════════════════════════════════════════════════════════════


class LeaveBalanceOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    leave_type_id: uuid.UUID
    year: int
    total_days: int
    used_days: int
    pending_days: int
    carry_forward_days: int
    available_days: int

    leave_type: Optional[LeaveTypeBrief] = None


class YearEndOut(BaseModel):
    year: int
    employees: int
    balances_created: int


# ═════════════════════════════════════════════════════════════════════
# Documents
# ═════════════════════════════════════════════════════════════════════


class LeaveDocumentIn(BaseModel):
    file_name: str = Field(..., min_length=1, max_length=255)
    file_type: str = Field(..., description="MIME type: application/pdf, image/jpeg or image/png")
    file_data: str = Field(..., min_length=1, description="Base64-encoded file content")
    upload_method: UploadMethod = UploadMethod.file


class LeaveDocumentBrief(BaseModel):
    """Document metadata embedded in request listings (content omitted)."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    file_name: str
    file_type: str
    upload_method: UploadMethod
    created_at: Optional[datetime] = None


class LeaveDocumentOut(LeaveDocumentBrief):
    file_data: str


# ═════════════════════════════════════════════════════════════════════
# Leave Request: write
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestCreate(BaseModel):
    """Payload for submitting a leave request."""

    leave_type_id: uuid.UUID
    start_date: date = Field(..., description="Leave start date (inclusive)")
    end_date: date = Field(..., description="Leave end date (inclusive)")
    reason: str = Field(..., min_length=3, max_length=1000)
    contact_number: Optional[str] = Field(None, max_length=20)
    documents: list[LeaveDocumentIn] = Field(default_factory=list, max_length=10)

    @model_validator(mode="after")
    def validate_span(self) -> "LeaveRequestCreate":
        if (self.end_date - self.start_date).days > 365:
            raise ValueError("Leave request cannot span more than 365 days.")
        return self


class ProcessRequestBody(BaseModel):
    """Body for approve / reject / escalate. Reject and escalate need a reason."""

    reason: Optional[str] = Field(None, max_length=1000)


class ResolveEscalationRequest(BaseModel):
    resolution_notes: str = Field(..., min_length=3, max_length=2000)
    final_action: FinalAction


# ═════════════════════════════════════════════════════════════════════
# Leave Request: read
# ═════════════════════════════════════════════════════════════════════


class LeaveEscalationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    escalated_by: Optional[uuid.UUID] = None
    escalated_to: uuid.UUID
    reason: str
    status: EscalationStatus
    resolution_notes: Optional[str] = None
    final_action: Optional[FinalAction] = None
    created_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None


class LeaveRequestOut(BaseModel):
    """Full leave request response."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    leave_type_id: uuid.UUID
    start_date: date
    end_date: date
    days_requested: int
    reason: Optional[str] = None
    contact_number: Optional[str] = None
    status: LeaveStatus
    rejection_reason: Optional[str] = None
    group_admin_id: Optional[uuid.UUID] = None
    reviewed_by: Optional[uuid.UUID] = None
    reviewed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    # Enriched by service
    employee: Optional[EmployeeBrief] = None
    leave_type: Optional[LeaveTypeBrief] = None
    documents: list[LeaveDocumentBrief] = Field(default_factory=list)
    escalation: Optional[LeaveEscalationOut] = None
    balance: Optional[LeaveBalanceOut] = None


class ActionAck(BaseModel):
    """Acknowledgement of a lifecycle transition."""

    id: uuid.UUID
    status: LeaveStatus
    message: str


# ═════════════════════════════════════════════════════════════════════
# Team calendar, statistics, history
# ═════════════════════════════════════════════════════════════════════


class TeamCalendarEntry(BaseModel):
    """One request on the team calendar."""

    id: uuid.UUID
    employee: EmployeeBrief
    leave_type: LeaveTypeBrief
    start_date: date
    end_date: date
    days_requested: int
    status: LeaveStatus


class TeamCalendarOut(BaseModel):
    start_date: date
    end_date: date
    entries: list[TeamCalendarEntry]
    total_entries: int = 0


class LeaveStatsOut(BaseModel):
    """Request counts over the reviewer's scope for the last ``window_days``."""

    window_days: int
    pending_requests: int = 0
    approved_requests: int = 0
    rejected_requests: int = 0
    escalated_requests: int = 0
    approved_days: int = 0
    active_leave_types: int = 0


class LeaveHistoryEntry(BaseModel):
    """One audit-trail row of a request, oldest first."""

    id: uuid.UUID
    action: str
    actor: Optional[EmployeeBrief] = None
    old_status: Optional[LeaveStatus] = None
    new_status: Optional[LeaveStatus] = None
    details: dict = Field(default_factory=dict)
    created_at: Optional[datetime] = None
