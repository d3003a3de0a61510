"""Eligibility validator — a pure decision over a draft request.

Everything the checks need (policy rules, the requester's other requests,
the current available balance, today's date) is gathered by the caller and
passed in, so the rules can be tested without a database. Checks run in a
fixed order and the first failure is raised.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Optional, Sequence

from hrops.common.constants import ACTIVE_LEAVE_STATUSES, GenderType, LeaveStatus
from hrops.common.exceptions import (
    DocumentationRequired,
    InsufficientBalance,
    MaxDaysExceeded,
    NotEligibleException,
    NotFoundException,
    NoticePeriodViolation,
    OverlappingRequest,
    ValidationException,
)
from hrops.leave.registry import PolicyRules

_WEEKEND = {5, 6}


@dataclass(frozen=True)
class Requester:
    id: uuid.UUID
    company_id: uuid.UUID
    gender: Optional[GenderType] = None
    date_of_joining: Optional[date] = None


@dataclass(frozen=True)
class LeaveDraft:
    leave_type_id: uuid.UUID
    start_date: date
    end_date: date
    document_count: int = 0


@dataclass(frozen=True)
class ExistingRequest:
    id: uuid.UUID
    start_date: date
    end_date: date
    status: LeaveStatus


@dataclass(frozen=True)
class EligibilityContext:
    today: date
    requester: Requester
    # None when the type is inactive or belongs to another company.
    rules: Optional[PolicyRules]
    existing: Sequence[ExistingRequest] = field(default_factory=tuple)
    available_days: int = 0


@dataclass(frozen=True)
class Eligibility:
    working_days: int


def working_days(start_date: date, end_date: date) -> int:
    """Count Monday–Friday dates in the closed interval."""
    if end_date < start_date:
        return 0
    total = (end_date - start_date).days + 1
    full_weeks, remainder = divmod(total, 7)
    count = full_weeks * 5
    for offset in range(remainder):
        if (start_date + timedelta(days=offset)).weekday() not in _WEEKEND:
            count += 1
    return count


def overlaps(a_start: date, a_end: date, b_start: date, b_end: date) -> bool:
    return a_start <= b_end and b_start <= a_end


def evaluate(draft: LeaveDraft, ctx: EligibilityContext) -> Eligibility:
    """Run every eligibility check; raise the first failure."""
    today = ctx.today
    rules = ctx.rules

    # 1. type exists, active and visible to the requester's company
    if rules is None:
        raise NotFoundException("LeaveType", str(draft.leave_type_id))

    # 2. who may take this leave
    if rules.gender_specific is not None and ctx.requester.gender != rules.gender_specific:
        raise NotEligibleException(
            f"{rules.name} is only available to {rules.gender_specific.value} employees.",
            gender_specific=rules.gender_specific.value,
        )
    joined = ctx.requester.date_of_joining
    if rules.min_service_days > 0 and joined is not None:
        eligible_from = joined + timedelta(days=rules.min_service_days)
        if today < eligible_from:
            raise NotEligibleException(
                f"{rules.name} requires {rules.min_service_days} days of service.",
                min_service_days=rules.min_service_days,
                eligible_from=eligible_from.isoformat(),
            )

    # 3. date sanity
    errors: dict[str, list[str]] = {}
    if draft.start_date < today:
        errors["start_date"] = ["Start date cannot be in the past."]
    if draft.end_date < draft.start_date:
        errors["end_date"] = ["End date must be on or after the start date."]
    if errors:
        raise ValidationException(errors)

    # 4. working days
    days = working_days(draft.start_date, draft.end_date)
    if days == 0:
        raise ValidationException(
            {"dates": ["The selected range contains no working days."]}
        )

    # 5. notice period
    if (draft.start_date - today).days < rules.notice_period_days:
        raise NoticePeriodViolation(
            rules.notice_period_days,
            today + timedelta(days=rules.notice_period_days),
        )

    # 6. consecutive-day cap
    if rules.max_consecutive_days is not None and days > rules.max_consecutive_days:
        raise MaxDaysExceeded(rules.max_consecutive_days, days)

    # 7. overlap against the full calendar interval, weekends included
    for other in ctx.existing:
        if other.status in ACTIVE_LEAVE_STATUSES and overlaps(
            draft.start_date, draft.end_date, other.start_date, other.end_date,
        ):
            raise OverlappingRequest(other.id)

    # 8. supporting documents
    if rules.requires_documentation and draft.document_count < 1:
        raise DocumentationRequired(rules.name)

    # 9. balance
    if ctx.available_days < days:
        raise InsufficientBalance(ctx.available_days, days)

    return Eligibility(working_days=days)
