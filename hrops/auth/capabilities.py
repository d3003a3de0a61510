"""Capability checks — the one authorization decision each operation makes.

Route dependencies (``require_role``) only gate by role. Whether *this*
actor may act on *this* request or employee is decided here, from a table
of predicates over the actor's role and the resource's ownership.
"""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass
from typing import Callable, Optional, Union

from hrops.common.constants import UserRole
from hrops.common.exceptions import ForbiddenException, NotFoundException
from hrops.core_hr.models import Employee


class Capability(str, enum.Enum):
    approve = "approve"
    reject = "reject"
    escalate = "escalate"
    resolve = "resolve"
    cancel = "cancel"
    view_documents = "view_documents"
    view_balances = "view_balances"
    manage_registry = "manage_registry"
    view_history = "view_history"
    view_team_calendar = "view_team_calendar"
    view_statistics = "view_statistics"


@dataclass(frozen=True)
class RequestResource:
    id: uuid.UUID
    company_id: uuid.UUID
    employee_id: uuid.UUID
    group_admin_id: Optional[uuid.UUID]
    escalated_to: Optional[uuid.UUID] = None


@dataclass(frozen=True)
class EmployeeResource:
    id: uuid.UUID
    company_id: uuid.UUID
    group_admin_id: Optional[uuid.UUID]


Resource = Union[RequestResource, EmployeeResource, None]


def _is_reviewer(actor: Employee, res: RequestResource) -> bool:
    if actor.id == res.employee_id:
        return False
    return actor.id == res.group_admin_id or actor.role == UserRole.management


def _is_assigned_group_admin(actor: Employee, res: RequestResource) -> bool:
    return (
        actor.id == res.group_admin_id
        and actor.role in (UserRole.group_admin, UserRole.management)
    )


def _is_escalation_target(actor: Employee, res: RequestResource) -> bool:
    return res.escalated_to is not None and actor.id == res.escalated_to


def _is_owner(actor: Employee, res: RequestResource) -> bool:
    return actor.id == res.employee_id


def _can_see_request(actor: Employee, res: RequestResource) -> bool:
    return (
        actor.id in (res.employee_id, res.group_admin_id)
        or actor.role == UserRole.management
    )


def _can_see_employee(actor: Employee, res: EmployeeResource) -> bool:
    return (
        actor.id in (res.id, res.group_admin_id)
        or actor.role == UserRole.management
    )


def _is_management(actor: Employee, res: Resource) -> bool:
    return actor.role == UserRole.management


def _is_reviewer_role(actor: Employee, res: Resource) -> bool:
    return actor.role in (UserRole.group_admin, UserRole.management)


def _is_active_member(actor: Employee, res: Resource) -> bool:
    return actor.is_active


_PREDICATES: dict[Capability, Callable[[Employee, Resource], bool]] = {
    Capability.approve: _is_reviewer,
    Capability.reject: _is_reviewer,
    Capability.escalate: _is_assigned_group_admin,
    Capability.resolve: _is_escalation_target,
    Capability.cancel: _is_owner,
    Capability.view_documents: _can_see_request,
    Capability.view_balances: _can_see_employee,
    Capability.manage_registry: _is_management,
    Capability.view_history: _can_see_request,
    Capability.view_team_calendar: _is_active_member,
    Capability.view_statistics: _is_reviewer_role,
}

_ENTITY_NAMES = {
    RequestResource: "LeaveRequest",
    EmployeeResource: "Employee",
}


def ensure_same_company(actor: Employee, resource: Resource) -> None:
    """A resource in another company is reported as not found, never forbidden."""
    if resource is not None and resource.company_id != actor.company_id:
        raise NotFoundException(_ENTITY_NAMES[type(resource)], str(resource.id))


def authorize(actor: Employee, capability: Capability, resource: Resource = None) -> None:
    """Raise unless ``actor`` holds ``capability`` on ``resource``."""
    ensure_same_company(actor, resource)

    if not _PREDICATES[capability](actor, resource):
        raise ForbiddenException(
            f"You are not allowed to {capability.value.replace('_', ' ')} this resource."
        )
