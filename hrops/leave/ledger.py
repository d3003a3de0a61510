"""Balance ledger — one row per (employee, leave type, year).

Rows are created lazily with a single batched insert-if-absent, so two
first reads racing for the same employee cannot duplicate a row. Every
mutation is a conditional UPDATE whose WHERE clause re-checks the invariant
``used + pending <= total + carry_forward``; the CHECK constraint on the
table backs it up.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timezone
from typing import Iterable, Sequence

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from hrops.common.exceptions import InsufficientBalance, PersistenceFailure
from hrops.database import upsert_insert
from hrops.leave.models import LeaveBalance, LeaveType
from hrops.leave.registry import list_leave_types, rules_for

logger = logging.getLogger(__name__)

# Keeps a multi-row VALUES under SQLite's bound-parameter limit.
_INSERT_CHUNK = 500


def charged_year(start_date: date) -> int:
    """Ledger year a request starting on ``start_date`` draws from."""
    return start_date.year


async def _init_rows(
    db: AsyncSession,
    company_id: uuid.UUID,
    employee_ids: Sequence[uuid.UUID],
    year: int,
) -> int:
    """Insert any missing ledger rows; returns how many were created."""
    if not employee_ids:
        return 0
    leave_types = await list_leave_types(db, company_id)
    if not leave_types:
        return 0

    prev_result = await db.execute(
        select(LeaveBalance).where(
            LeaveBalance.employee_id.in_(employee_ids),
            LeaveBalance.year == year - 1,
        )
    )
    previous = {
        (b.employee_id, b.leave_type_id): b for b in prev_result.scalars().all()
    }

    rows = []
    for employee_id in employee_ids:
        for leave_type in leave_types:
            rules = rules_for(leave_type)
            carry = 0
            prev = previous.get((employee_id, leave_type.id))
            if prev is not None:
                carry = max(0, min(prev.available_days, rules.carry_forward_days))
            rows.append(dict(
                id=uuid.uuid4(),
                employee_id=employee_id,
                leave_type_id=leave_type.id,
                year=year,
                total_days=max(0, rules.default_days),
                used_days=0,
                pending_days=0,
                carry_forward_days=carry,
            ))

    created = 0
    for start in range(0, len(rows), _INSERT_CHUNK):
        result = await db.execute(
            upsert_insert(db, LeaveBalance)
            .values(rows[start:start + _INSERT_CHUNK])
            .on_conflict_do_nothing(
                index_elements=["employee_id", "leave_type_id", "year"],
            )
        )
        created += max(result.rowcount or 0, 0)
    return created


async def load_balances(
    db: AsyncSession,
    employee_id: uuid.UUID,
    year: int,
) -> Sequence[LeaveBalance]:
    result = await db.execute(
        select(LeaveBalance)
        .join(LeaveType, LeaveBalance.leave_type_id == LeaveType.id)
        .where(LeaveBalance.employee_id == employee_id, LeaveBalance.year == year)
        .options(selectinload(LeaveBalance.leave_type))
        .order_by(LeaveType.name)
        .execution_options(populate_existing=True)
    )
    return result.scalars().all()


async def get_or_init_balances(
    db: AsyncSession,
    employee_id: uuid.UUID,
    company_id: uuid.UUID,
    year: int,
) -> Sequence[LeaveBalance]:
    """Return the employee's ledger for ``year``, creating missing rows.

    ``total_days`` comes from the policy's default allocation and
    ``carry_forward_days`` is the previous year's available balance capped by
    the policy's carry-forward limit. Idempotent.
    """
    created = await _init_rows(db, company_id, [employee_id], year)
    if created:
        logger.info(
            "Initialized %d ledger row(s) for employee %s, year %d",
            created, employee_id, year,
        )
    return await load_balances(db, employee_id, year)


async def init_company_year(
    db: AsyncSession,
    company_id: uuid.UUID,
    employee_ids: Iterable[uuid.UUID],
    year: int,
) -> int:
    """Year-end rollover: open ``year`` for every given employee at once."""
    created = await _init_rows(db, company_id, list(employee_ids), year)
    logger.info(
        "Year %d opened for company %s: %d ledger row(s) created",
        year, company_id, created,
    )
    return created


async def get_available_days(
    db: AsyncSession,
    employee_id: uuid.UUID,
    leave_type_id: uuid.UUID,
    year: int,
) -> int:
    result = await db.execute(
        select(LeaveBalance.available_days).where(
            LeaveBalance.employee_id == employee_id,
            LeaveBalance.leave_type_id == leave_type_id,
            LeaveBalance.year == year,
        )
    )
    available = result.scalar()
    return available if available is not None else 0


# ── Mutations ───────────────────────────────────────────────────────


async def reserve(
    db: AsyncSession,
    employee_id: uuid.UUID,
    leave_type_id: uuid.UUID,
    year: int,
    days: int,
) -> None:
    """pending += days, only if available stays >= 0."""
    result = await db.execute(
        update(LeaveBalance)
        .where(
            LeaveBalance.employee_id == employee_id,
            LeaveBalance.leave_type_id == leave_type_id,
            LeaveBalance.year == year,
            LeaveBalance.available_days >= days,
        )
        .values(
            pending_days=LeaveBalance.pending_days + days,
            updated_at=datetime.now(timezone.utc),
        )
        .execution_options(synchronize_session="fetch")
    )
    if result.rowcount != 1:
        available = await get_available_days(db, employee_id, leave_type_id, year)
        raise InsufficientBalance(available, days)


async def commit(
    db: AsyncSession,
    employee_id: uuid.UUID,
    leave_type_id: uuid.UUID,
    year: int,
    days: int,
) -> None:
    """Approval: move ``days`` from pending to used."""
    result = await db.execute(
        update(LeaveBalance)
        .where(
            LeaveBalance.employee_id == employee_id,
            LeaveBalance.leave_type_id == leave_type_id,
            LeaveBalance.year == year,
            LeaveBalance.pending_days >= days,
        )
        .values(
            used_days=LeaveBalance.used_days + days,
            pending_days=LeaveBalance.pending_days - days,
            updated_at=datetime.now(timezone.utc),
        )
        .execution_options(synchronize_session="fetch")
    )
    if result.rowcount != 1:
        logger.error(
            "Ledger commit found no reservation: employee=%s type=%s year=%d days=%d",
            employee_id, leave_type_id, year, days,
        )
        raise PersistenceFailure("The leave balance no longer holds this reservation.")


async def release(
    db: AsyncSession,
    employee_id: uuid.UUID,
    leave_type_id: uuid.UUID,
    year: int,
    days: int,
) -> None:
    """Rejection or cancellation: give back a reservation."""
    result = await db.execute(
        update(LeaveBalance)
        .where(
            LeaveBalance.employee_id == employee_id,
            LeaveBalance.leave_type_id == leave_type_id,
            LeaveBalance.year == year,
            LeaveBalance.pending_days >= days,
        )
        .values(
            pending_days=LeaveBalance.pending_days - days,
            updated_at=datetime.now(timezone.utc),
        )
        .execution_options(synchronize_session="fetch")
    )
    if result.rowcount != 1:
        logger.error(
            "Ledger release found no reservation: employee=%s type=%s year=%d days=%d",
            employee_id, leave_type_id, year, days,
        )
        raise PersistenceFailure("The leave balance no longer holds this reservation.")
