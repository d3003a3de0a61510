"""Core HR ORM models: Company, Employee.

Every employee belongs to exactly one company (tenant) and, unless they are
management, reports to a group admin who reviews their leave.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import TYPE_CHECKING, Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hrops.common.constants import GenderType, UserRole
from hrops.database import Base

if TYPE_CHECKING:
    from hrops.leave.models import LeaveBalance, LeaveRequest
    from hrops.notifications.models import Notification


# ═════════════════════════════════════════════════════════════════════
# Company
# ═════════════════════════════════════════════════════════════════════


class Company(Base):
    """Tenant. Leave types may be scoped to one company or global."""

    __tablename__ = "companies"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    name: Mapped[str] = mapped_column(sa.String(150), unique=True, nullable=False)
    is_active: Mapped[bool] = mapped_column(
        sa.Boolean, default=True, server_default=sa.text("TRUE"),
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now(),
    )

    # ── Relationships ───────────────────────────────────────────────
    employees: Mapped[list[Employee]] = relationship(back_populates="company")

    def __repr__(self) -> str:
        return f"<Company {self.name!r}>"


# ═════════════════════════════════════════════════════════════════════
# Employee
# ═════════════════════════════════════════════════════════════════════


class Employee(Base):
    """A user of the system in one of three roles."""

    __tablename__ = "employees"
    __table_args__ = (
        sa.Index("ix_employees_company_role", "company_id", "role"),
        sa.Index("ix_employees_group_admin", "group_admin_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    company_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("companies.id"), nullable=False,
    )
    employee_code: Mapped[str] = mapped_column(
        sa.String(20), unique=True, nullable=False,
    )
    first_name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    last_name: Mapped[Optional[str]] = mapped_column(sa.String(100))
    email: Mapped[str] = mapped_column(sa.String(255), unique=True, nullable=False)
    role: Mapped[UserRole] = mapped_column(
        sa.Enum(UserRole, name="user_role"),
        nullable=False,
        default=UserRole.employee,
        server_default="employee",
    )
    gender: Mapped[Optional[GenderType]] = mapped_column(
        sa.Enum(GenderType, name="gender_type"),
    )
    group_admin_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id"),
    )
    date_of_joining: Mapped[Optional[date]] = mapped_column(sa.Date)
    is_active: Mapped[bool] = mapped_column(
        sa.Boolean, default=True, server_default=sa.text("TRUE"),
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now(),
    )

    # ── Relationships ───────────────────────────────────────────────

    company: Mapped[Company] = relationship(back_populates="employees")
    group_admin: Mapped[Optional[Employee]] = relationship(
        remote_side=[id],
        back_populates="direct_reports",
        foreign_keys=[group_admin_id],
    )
    direct_reports: Mapped[list[Employee]] = relationship(
        back_populates="group_admin",
        foreign_keys=[group_admin_id],
    )

    # Leave
    leave_balances: Mapped[list["LeaveBalance"]] = relationship(
        back_populates="employee",
    )
    leave_requests: Mapped[list["LeaveRequest"]] = relationship(
        back_populates="employee",
        foreign_keys="LeaveRequest.employee_id",
    )

    # Notifications
    notifications: Mapped[list["Notification"]] = relationship(
        back_populates="recipient",
    )

    # ── Helpers ─────────────────────────────────────────────────────

    @property
    def full_name(self) -> str:
        """Build display name from name parts."""
        parts = [self.first_name, self.last_name]
        return " ".join(p for p in parts if p)

    def __repr__(self) -> str:
        return f"<Employee {self.employee_code} {self.full_name}>"
