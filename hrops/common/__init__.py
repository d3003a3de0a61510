"""Common module — shared utilities for HR Ops."""

from hrops.common.audit import AuditTrail, create_audit_entry
from hrops.common.constants import (
    ACTIVE_LEAVE_STATUSES,
    ALLOWED_DOCUMENT_TYPES,
    DATE_FORMAT,
    EscalationStatus,
    FinalAction,
    GenderType,
    LeaveStatus,
    NotificationType,
    ReviewAction,
    UploadMethod,
    UserRole,
)
from hrops.common.exceptions import (
    AppException,
    ConflictError,
    DocumentationRequired,
    ForbiddenException,
    InsufficientBalance,
    InvalidStateTransition,
    MaxDaysExceeded,
    NoEscalationTargetFound,
    NotEligibleException,
    NotFoundException,
    NoticePeriodViolation,
    OverlappingRequest,
    PersistenceFailure,
    ValidationException,
    register_exception_handlers,
)

__all__ = [
    # Audit
    "AuditTrail",
    "create_audit_entry",
    # Constants / Enums
    "ACTIVE_LEAVE_STATUSES",
    "ALLOWED_DOCUMENT_TYPES",
    "DATE_FORMAT",
    "EscalationStatus",
    "FinalAction",
    "GenderType",
    "LeaveStatus",
    "NotificationType",
    "ReviewAction",
    "UploadMethod",
    "UserRole",
    # Exceptions
    "AppException",
    "ConflictError",
    "DocumentationRequired",
    "ForbiddenException",
    "InsufficientBalance",
    "InvalidStateTransition",
    "MaxDaysExceeded",
    "NoEscalationTargetFound",
    "NotEligibleException",
    "NotFoundException",
    "NoticePeriodViolation",
    "OverlappingRequest",
    "PersistenceFailure",
    "ValidationException",
    "register_exception_handlers",
]
