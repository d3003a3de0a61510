"""Enums and constants for HR Ops — matching PostgreSQL ENUM types."""

from __future__ import annotations

import enum


# ── Employee / Core HR ──────────────────────────────────────────────

class GenderType(str, enum.Enum):
    male = "male"
    female = "female"
    other = "other"


# ── Auth / Roles ────────────────────────────────────────────────────

class UserRole(str, enum.Enum):
    employee = "employee"
    group_admin = "group_admin"
    management = "management"


# ── Leave ───────────────────────────────────────────────────────────

class LeaveStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    escalated = "escalated"
    cancelled = "cancelled"


class EscalationStatus(str, enum.Enum):
    pending = "pending"
    resolved = "resolved"


class ReviewAction(str, enum.Enum):
    approve = "approve"
    reject = "reject"
    escalate = "escalate"


class FinalAction(str, enum.Enum):
    approve = "approve"
    reject = "reject"


class UploadMethod(str, enum.Enum):
    file = "file"
    camera = "camera"


# Statuses that hold a claim on the calendar for overlap checks. An escalated
# request can still be approved through resolve, so it keeps its claim.
ACTIVE_LEAVE_STATUSES = (
    LeaveStatus.pending, LeaveStatus.approved, LeaveStatus.escalated,
)

# Widest date range the team calendar returns in one read.
MAX_CALENDAR_RANGE_DAYS = 366

# Default look-back of the leave statistics, by request creation time.
STATS_WINDOW_DAYS = 30

ALLOWED_DOCUMENT_TYPES = (
    "application/pdf",
    "image/jpeg",
    "image/png",
)


# ── Notifications ───────────────────────────────────────────────────

class NotificationType(str, enum.Enum):
    info = "info"
    action_required = "action_required"
    approval = "approval"
    alert = "alert"


# ── Misc constants ──────────────────────────────────────────────────

DATE_FORMAT = "%d-%b-%Y"
SYSTEM_ESCALATION_REASON = "Auto-escalated: no decision within {hours} hours."
