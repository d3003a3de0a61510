"""Leave ORM models: LeaveType, LeavePolicy, LeaveBalance, LeaveRequest,
LeaveDocument, LeaveEscalation."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.ext.hybrid import hybrid_property
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hrops.common.constants import (
    EscalationStatus,
    FinalAction,
    GenderType,
    LeaveStatus,
    UploadMethod,
)
from hrops.database import Base


# ═════════════════════════════════════════════════════════════════════
# Registry
# ═════════════════════════════════════════════════════════════════════


class LeaveType(Base):
    """Leave category. ``company_id`` NULL means visible to every company."""

    __tablename__ = "leave_types"
    __table_args__ = (
        sa.UniqueConstraint("company_id", "name", name="uq_leave_type_company_name"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    company_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("companies.id"),
    )
    name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(sa.Text)
    max_days: Mapped[int] = mapped_column(
        sa.Integer, nullable=False, default=0, server_default=sa.text("0"),
    )
    is_paid: Mapped[bool] = mapped_column(
        sa.Boolean, default=True, server_default=sa.text("TRUE"),
    )
    requires_documentation: Mapped[bool] = mapped_column(
        sa.Boolean, default=False, server_default=sa.text("FALSE"),
    )
    is_active: Mapped[bool] = mapped_column(
        sa.Boolean, default=True, server_default=sa.text("TRUE"),
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )

    # Relationships
    policy: Mapped[Optional[LeavePolicy]] = relationship(
        back_populates="leave_type", uselist=False, lazy="selectin",
    )
    balances: Mapped[list[LeaveBalance]] = relationship(back_populates="leave_type")
    requests: Mapped[list[LeaveRequest]] = relationship(back_populates="leave_type")


class LeavePolicy(Base):
    """Rule set for one leave type (at most one per type)."""

    __tablename__ = "leave_policies"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    leave_type_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("leave_types.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    notice_period_days: Mapped[int] = mapped_column(
        sa.Integer, default=0, server_default=sa.text("0")
    )
    max_consecutive_days: Mapped[Optional[int]] = mapped_column(sa.Integer)
    min_service_days: Mapped[int] = mapped_column(
        sa.Integer, default=0, server_default=sa.text("0")
    )
    gender_specific: Mapped[Optional[GenderType]] = mapped_column(
        sa.Enum(GenderType, name="gender_type")
    )
    default_days: Mapped[Optional[int]] = mapped_column(sa.Integer)
    carry_forward_days: Mapped[int] = mapped_column(
        sa.Integer, default=0, server_default=sa.text("0")
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )

    leave_type: Mapped[LeaveType] = relationship(back_populates="policy")


# ═════════════════════════════════════════════════════════════════════
# Ledger
# ═════════════════════════════════════════════════════════════════════


class LeaveBalance(Base):
    __tablename__ = "leave_balances"
    __table_args__ = (
        sa.UniqueConstraint(
            "employee_id", "leave_type_id", "year", name="uq_leave_balance"
        ),
        sa.CheckConstraint(
            "used_days + pending_days <= total_days + carry_forward_days",
            name="ck_leave_balance_within_entitlement",
        ),
        sa.CheckConstraint(
            "total_days >= 0 AND used_days >= 0 AND pending_days >= 0 "
            "AND carry_forward_days >= 0",
            name="ck_leave_balance_non_negative",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id"), nullable=False
    )
    leave_type_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("leave_types.id"), nullable=False
    )
    year: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    total_days: Mapped[int] = mapped_column(
        sa.Integer, nullable=False, default=0, server_default=sa.text("0")
    )
    used_days: Mapped[int] = mapped_column(
        sa.Integer, nullable=False, default=0, server_default=sa.text("0")
    )
    pending_days: Mapped[int] = mapped_column(
        sa.Integer, nullable=False, default=0, server_default=sa.text("0")
    )
    carry_forward_days: Mapped[int] = mapped_column(
        sa.Integer, nullable=False, default=0, server_default=sa.text("0")
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )

    # Relationships
    employee: Mapped["hrops.core_hr.models.Employee"] = relationship(
        back_populates="leave_balances"
    )
    leave_type: Mapped[LeaveType] = relationship(back_populates="balances")

    @hybrid_property
    def available_days(self) -> int:
        return (
            self.total_days + self.carry_forward_days
            - self.used_days - self.pending_days
        )


# ═════════════════════════════════════════════════════════════════════
# Requests
# ═════════════════════════════════════════════════════════════════════


class LeaveRequest(Base):
    __tablename__ = "leave_requests"
    __table_args__ = (
        sa.CheckConstraint("end_date >= start_date", name="ck_leave_request_dates"),
        sa.Index("ix_leave_requests_employee_status", "employee_id", "status"),
        sa.Index("ix_leave_requests_group_admin_status", "group_admin_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id"), nullable=False
    )
    leave_type_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("leave_types.id"), nullable=False
    )
    start_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    end_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    days_requested: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(sa.Text)
    contact_number: Mapped[Optional[str]] = mapped_column(sa.String(20))
    status: Mapped[LeaveStatus] = mapped_column(
        sa.Enum(LeaveStatus, name="leave_status"),
        nullable=False,
        default=LeaveStatus.pending,
        server_default="pending",
    )
    rejection_reason: Mapped[Optional[str]] = mapped_column(sa.Text)
    group_admin_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id")
    )
    reviewed_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id")
    )
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True)
    )
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True)
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )

    # Relationships
    employee: Mapped["hrops.core_hr.models.Employee"] = relationship(
        back_populates="leave_requests", foreign_keys=[employee_id]
    )
    leave_type: Mapped[LeaveType] = relationship(back_populates="requests")
    documents: Mapped[list[LeaveDocument]] = relationship(
        back_populates="leave_request",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="LeaveDocument.created_at",
    )
    escalation: Mapped[Optional[LeaveEscalation]] = relationship(
        back_populates="leave_request", uselist=False,
    )

    @property
    def charged_year(self) -> int:
        return self.start_date.year


class LeaveDocument(Base):
    """Supporting document owned by exactly one request."""

    __tablename__ = "leave_documents"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    request_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("leave_requests.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    file_name: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    file_type: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    # Base64 text, opaque to the engine.
    file_data: Mapped[str] = mapped_column(sa.Text, nullable=False)
    upload_method: Mapped[UploadMethod] = mapped_column(
        sa.Enum(UploadMethod, name="upload_method"),
        default=UploadMethod.file,
        server_default="file",
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )

    leave_request: Mapped[LeaveRequest] = relationship(back_populates="documents")


# ═════════════════════════════════════════════════════════════════════
# Escalations
# ═════════════════════════════════════════════════════════════════════


class LeaveEscalation(Base):
    __tablename__ = "leave_escalations"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    request_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("leave_requests.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    # NULL when escalated by the stale-request sweep.
    escalated_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id")
    )
    escalated_to: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id"), nullable=False, index=True
    )
    reason: Mapped[str] = mapped_column(sa.Text, nullable=False)
    status: Mapped[EscalationStatus] = mapped_column(
        sa.Enum(EscalationStatus, name="escalation_status"),
        nullable=False,
        default=EscalationStatus.pending,
        server_default="pending",
    )
    resolution_notes: Mapped[Optional[str]] = mapped_column(sa.Text)
    final_action: Mapped[Optional[FinalAction]] = mapped_column(
        sa.Enum(FinalAction, name="final_action")
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )
    resolved_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True)
    )

    leave_request: Mapped[LeaveRequest] = relationship(back_populates="escalation")
