"""Leave type & policy registry.

Resolves which leave types a company can see (its own plus global ones) and
the effective rules of each type, falling back to the type's own columns
where no policy row exists. Management can maintain their company's types
and seed the standard catalogue.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional, Sequence

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from hrops.common.audit import create_audit_entry
from hrops.common.constants import GenderType
from hrops.common.exceptions import (
    ConflictError,
    ForbiddenException,
    NotFoundException,
)
from hrops.core_hr.models import Employee
from hrops.database import upsert_insert
from hrops.leave.defaults import DEFAULT_LEAVE_CATALOGUE
from hrops.leave.models import LeavePolicy, LeaveType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PolicyRules:
    """Effective rules of one leave type, policy row merged over type defaults."""

    leave_type_id: uuid.UUID
    name: str
    requires_documentation: bool
    default_days: int
    carry_forward_days: int
    notice_period_days: int
    max_consecutive_days: Optional[int]  # None → uncapped
    min_service_days: int
    gender_specific: Optional[GenderType]


def rules_for(leave_type: LeaveType) -> PolicyRules:
    policy = leave_type.policy
    type_cap = leave_type.max_days if leave_type.max_days and leave_type.max_days > 0 else None

    if policy is None:
        return PolicyRules(
            leave_type_id=leave_type.id,
            name=leave_type.name,
            requires_documentation=leave_type.requires_documentation,
            default_days=leave_type.max_days or 0,
            carry_forward_days=0,
            notice_period_days=0,
            max_consecutive_days=type_cap,
            min_service_days=0,
            gender_specific=None,
        )

    return PolicyRules(
        leave_type_id=leave_type.id,
        name=leave_type.name,
        requires_documentation=leave_type.requires_documentation,
        default_days=(
            policy.default_days if policy.default_days is not None
            else leave_type.max_days or 0
        ),
        carry_forward_days=policy.carry_forward_days or 0,
        notice_period_days=policy.notice_period_days or 0,
        max_consecutive_days=policy.max_consecutive_days or type_cap,
        min_service_days=policy.min_service_days or 0,
        gender_specific=policy.gender_specific,
    )


# ── Visibility ──────────────────────────────────────────────────────


def _visible_to(company_id: uuid.UUID):
    return or_(LeaveType.company_id == company_id, LeaveType.company_id.is_(None))


async def list_leave_types(
    db: AsyncSession,
    company_id: uuid.UUID,
    *,
    include_inactive: bool = False,
) -> Sequence[LeaveType]:
    query = (
        select(LeaveType)
        .where(_visible_to(company_id))
        .options(selectinload(LeaveType.policy))
        .order_by(LeaveType.name)
    )
    if not include_inactive:
        query = query.where(LeaveType.is_active.is_(True))
    result = await db.execute(query)
    return result.scalars().all()


async def count_active_leave_types(db: AsyncSession, company_id: uuid.UUID) -> int:
    result = await db.execute(
        select(func.count(LeaveType.id)).where(
            LeaveType.is_active.is_(True), _visible_to(company_id),
        )
    )
    return result.scalar() or 0


async def get_visible_leave_type(
    db: AsyncSession,
    company_id: uuid.UUID,
    leave_type_id: uuid.UUID,
) -> Optional[LeaveType]:
    """Active type visible to ``company_id``, or None."""
    result = await db.execute(
        select(LeaveType)
        .where(
            LeaveType.id == leave_type_id,
            LeaveType.is_active.is_(True),
            _visible_to(company_id),
        )
        .options(selectinload(LeaveType.policy))
    )
    return result.scalars().first()


async def _get_owned_leave_type(
    db: AsyncSession,
    company_id: uuid.UUID,
    leave_type_id: uuid.UUID,
) -> LeaveType:
    result = await db.execute(
        select(LeaveType)
        .where(LeaveType.id == leave_type_id, _visible_to(company_id))
        .options(selectinload(LeaveType.policy))
    )
    leave_type = result.scalars().first()
    if leave_type is None:
        raise NotFoundException("LeaveType", str(leave_type_id))
    if leave_type.company_id is None:
        raise ForbiddenException("Global leave types cannot be modified by a company.")
    return leave_type


# ── Maintenance (management) ────────────────────────────────────────


async def create_leave_type(
    db: AsyncSession,
    actor: Employee,
    data: dict[str, Any],
) -> LeaveType:
    existing = await db.execute(
        select(LeaveType.id).where(
            LeaveType.company_id == actor.company_id,
            LeaveType.name == data["name"],
        )
    )
    if existing.scalar() is not None:
        raise ConflictError("name", data["name"])

    leave_type = LeaveType(company_id=actor.company_id, **data)
    leave_type.policy = None
    db.add(leave_type)
    await db.flush()

    await create_audit_entry(
        db,
        action="create",
        entity_type="leave_type",
        entity_id=leave_type.id,
        company_id=actor.company_id,
        actor_id=actor.id,
        new_values={k: _jsonable(v) for k, v in data.items()},
    )
    logger.info("Leave type %r created for company %s", leave_type.name, actor.company_id)
    return leave_type


async def update_leave_type(
    db: AsyncSession,
    actor: Employee,
    leave_type_id: uuid.UUID,
    data: dict[str, Any],
) -> LeaveType:
    leave_type = await _get_owned_leave_type(db, actor.company_id, leave_type_id)

    if "name" in data and data["name"] != leave_type.name:
        clash = await db.execute(
            select(LeaveType.id).where(
                LeaveType.company_id == actor.company_id,
                LeaveType.name == data["name"],
            )
        )
        if clash.scalar() is not None:
            raise ConflictError("name", data["name"])

    old_values = {k: _jsonable(getattr(leave_type, k)) for k in data}
    for field, value in data.items():
        setattr(leave_type, field, value)
    leave_type.updated_at = datetime.now(timezone.utc)
    await db.flush()

    await create_audit_entry(
        db,
        action="update",
        entity_type="leave_type",
        entity_id=leave_type.id,
        company_id=actor.company_id,
        actor_id=actor.id,
        old_values=old_values,
        new_values={k: _jsonable(v) for k, v in data.items()},
    )
    return leave_type


async def upsert_policy(
    db: AsyncSession,
    actor: Employee,
    leave_type_id: uuid.UUID,
    data: dict[str, Any],
) -> LeaveType:
    """Create or replace the single policy row of a company-owned type."""
    leave_type = await _get_owned_leave_type(db, actor.company_id, leave_type_id)

    values = dict(data, leave_type_id=leave_type.id)
    stmt = upsert_insert(db, LeavePolicy).values(id=uuid.uuid4(), **values)
    stmt = stmt.on_conflict_do_update(
        index_elements=["leave_type_id"],
        set_={k: stmt.excluded[k] for k in data},
    )
    await db.execute(stmt)

    await create_audit_entry(
        db,
        action="update_policy",
        entity_type="leave_type",
        entity_id=leave_type.id,
        company_id=actor.company_id,
        actor_id=actor.id,
        new_values={k: _jsonable(v) for k, v in data.items()},
    )

    # Bypass the identity map: the row was written by a core statement.
    await db.execute(
        select(LeavePolicy)
        .where(LeavePolicy.leave_type_id == leave_type.id)
        .execution_options(populate_existing=True)
    )
    await db.refresh(leave_type, attribute_names=["policy"])
    return leave_type


async def seed_default_catalogue(
    db: AsyncSession,
    actor: Employee,
) -> Sequence[LeaveType]:
    """Insert the standard types + policies for the actor's company.

    Existing types with the same name are left untouched, so the call is
    idempotent and never overwrites a company's customisations.
    """
    company_id = actor.company_id

    type_rows = [
        dict(id=uuid.uuid4(), company_id=company_id, is_active=True, **type_cols)
        for type_cols, _ in DEFAULT_LEAVE_CATALOGUE
    ]
    await db.execute(
        upsert_insert(db, LeaveType)
        .values(type_rows)
        .on_conflict_do_nothing(index_elements=["company_id", "name"])
    )

    names = [type_cols["name"] for type_cols, _ in DEFAULT_LEAVE_CATALOGUE]
    result = await db.execute(
        select(LeaveType.id, LeaveType.name).where(
            LeaveType.company_id == company_id,
            LeaveType.name.in_(names),
        )
    )
    ids_by_name = {name: type_id for type_id, name in result.all()}

    policy_rows = [
        dict(id=uuid.uuid4(), leave_type_id=ids_by_name[type_cols["name"]], **policy_cols)
        for type_cols, policy_cols in DEFAULT_LEAVE_CATALOGUE
    ]
    # Rows must share one column set for a multi-VALUES insert.
    for row in policy_rows:
        row.setdefault("gender_specific", None)
    await db.execute(
        upsert_insert(db, LeavePolicy)
        .values(policy_rows)
        .on_conflict_do_nothing(index_elements=["leave_type_id"])
    )

    await create_audit_entry(
        db,
        action="seed_defaults",
        entity_type="company",
        entity_id=company_id,
        company_id=company_id,
        actor_id=actor.id,
        new_values={"leave_types": names},
    )
    logger.info("Default leave catalogue seeded for company %s", company_id)

    return await list_leave_types(db, company_id, include_inactive=True)


def _jsonable(value: Any) -> Any:
    if isinstance(value, GenderType):
        return value.value
    return value
