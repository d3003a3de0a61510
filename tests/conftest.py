"""Shared test fixtures — async DB, client, auth helpers, factories.

Uses SQLite + aiosqlite for fast isolated tests without PostgreSQL.
Services commit their own unit of work, so seed data is committed before
a service is called.
"""

from __future__ import annotations

import os

# Set test JWT_SECRET before any other import touches pydantic-settings
os.environ.setdefault("JWT_SECRET", "test-secret-for-ci-do-not-use-in-production")

import uuid
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import AsyncGenerator, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy import event, select
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from hrops.common.constants import GenderType, UserRole
from hrops.config import settings
from hrops.database import Base, get_db
from hrops.main import create_app

# Import ALL model modules so SQLAlchemy can resolve cross-module relationships
# (e.g. Employee → LeaveBalance, Notification, etc.)
import hrops.common.audit  # noqa: F401
import hrops.core_hr.models  # noqa: F401
import hrops.leave.models  # noqa: F401
import hrops.notifications.models  # noqa: F401

from hrops.core_hr.models import Company, Employee
from hrops.leave.models import LeaveBalance, LeavePolicy, LeaveType

# ── SQLite compat: compile PG-specific types to TEXT/BLOB ───────────

from sqlalchemy.dialects.postgresql import JSONB, UUID as PG_UUID
from sqlalchemy.ext.compiler import compiles


@compiles(JSONB, "sqlite")
def _jsonb_sqlite(element, compiler, **kw):
    return "TEXT"


@compiles(PG_UUID, "sqlite")
def _uuid_sqlite(element, compiler, **kw):
    return "CHAR(36)"


# ── Test database (SQLite in-memory) ────────────────────────────────

TEST_DATABASE_URL = "sqlite+aiosqlite://"

engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


# Register PG-compatible functions for SQLite
@event.listens_for(engine.sync_engine, "connect")
def _register_sqlite_functions(dbapi_conn, connection_record):
    """Register NOW() and uuid_generate_v4() as SQLite custom functions."""
    dbapi_conn.create_function(
        "NOW", 0, lambda: datetime.now(timezone.utc).isoformat(),
    )
    dbapi_conn.create_function(
        "uuid_generate_v4", 0, lambda: str(uuid.uuid4()),
    )
    dbapi_conn.create_function(
        "gen_random_uuid", 0, lambda: str(uuid.uuid4()),
    )

TestSessionFactory = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False,
)


@pytest.fixture(autouse=True)
async def _setup_db():
    """Create all tables before each test, drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    """Reset rate limiter storage between tests to prevent cross-test interference."""
    from hrops.common.rate_limit import limiter
    limiter.reset()
    yield


async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        try:
            yield session
        finally:
            if session.in_transaction():
                await session.rollback()


# ── FastAPI test client ─────────────────────────────────────────────

@pytest.fixture
async def app():
    """Create a fresh app instance with DB dependency overridden."""
    application = create_app()
    application.dependency_overrides[get_db] = _override_get_db
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client wired to the test app."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


# ── Database session (for direct DB operations in tests) ────────────

@pytest.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        yield session
        await session.commit()


# ── Model factories ─────────────────────────────────────────────────

async def _seed_company(db: AsyncSession, *, name: Optional[str] = None) -> Company:
    company = Company(id=uuid.uuid4(), name=name or f"Company {uuid.uuid4().hex[:6]}")
    db.add(company)
    await db.flush()
    return company


async def _seed_employee(
    db: AsyncSession,
    company_id: uuid.UUID,
    *,
    role: UserRole = UserRole.employee,
    first_name: str = "Test",
    group_admin_id: Optional[uuid.UUID] = None,
    gender: Optional[GenderType] = GenderType.female,
    date_of_joining: Optional[date] = date(2024, 1, 15),
    is_active: bool = True,
) -> Employee:
    code = uuid.uuid4().hex[:6].upper()
    emp = Employee(
        id=uuid.uuid4(),
        company_id=company_id,
        employee_code=f"HR-{code}",
        first_name=first_name,
        last_name="User",
        email=f"{first_name.lower()}.{code.lower()}@example.com",
        role=role,
        gender=gender,
        group_admin_id=group_admin_id,
        date_of_joining=date_of_joining,
        is_active=is_active,
    )
    db.add(emp)
    await db.flush()
    return emp


async def _seed_leave_type(
    db: AsyncSession,
    company_id: Optional[uuid.UUID],
    *,
    name: str = "Casual Leave",
    max_days: int = 12,
    requires_documentation: bool = False,
    is_active: bool = True,
    policy: Optional[dict] = None,
) -> LeaveType:
    """Insert a leave type; ``policy`` (column dict) adds its policy row."""
    lt = LeaveType(
        id=uuid.uuid4(),
        company_id=company_id,
        name=name,
        max_days=max_days,
        is_paid=True,
        requires_documentation=requires_documentation,
        is_active=is_active,
    )
    db.add(lt)
    if policy is not None:
        db.add(LeavePolicy(id=uuid.uuid4(), leave_type_id=lt.id, **policy))
    await db.flush()
    return lt


async def _seed_balance(
    db: AsyncSession,
    employee_id: uuid.UUID,
    leave_type_id: uuid.UUID,
    *,
    year: int = 2026,
    total: int = 12,
    used: int = 0,
    pending: int = 0,
    carry_forward: int = 0,
) -> LeaveBalance:
    bal = LeaveBalance(
        id=uuid.uuid4(),
        employee_id=employee_id,
        leave_type_id=leave_type_id,
        year=year,
        total_days=total,
        used_days=used,
        pending_days=pending,
        carry_forward_days=carry_forward,
    )
    db.add(bal)
    await db.flush()
    return bal


async def _get_balance(
    db: AsyncSession,
    employee_id: uuid.UUID,
    leave_type_id: uuid.UUID,
    year: int = 2026,
) -> Optional[LeaveBalance]:
    """Fresh read of one ledger row, bypassing the identity map."""
    result = await db.execute(
        select(LeaveBalance)
        .where(
            LeaveBalance.employee_id == employee_id,
            LeaveBalance.leave_type_id == leave_type_id,
            LeaveBalance.year == year,
        )
        .execution_options(populate_existing=True)
    )
    return result.scalars().first()


@dataclass
class Org:
    """One company with a management user, a group admin and two reports."""

    company: Company
    manager: Employee
    group_admin: Employee
    employee: Employee
    colleague: Employee
    casual: LeaveType


async def _seed_org(db: AsyncSession, *, with_manager: bool = True) -> Org:
    company = await _seed_company(db)
    manager = None
    if with_manager:
        manager = await _seed_employee(
            db, company.id, role=UserRole.management, first_name="Maya",
        )
    group_admin = await _seed_employee(
        db, company.id,
        role=UserRole.group_admin,
        first_name="Gita",
        group_admin_id=manager.id if manager else None,
    )
    employee = await _seed_employee(
        db, company.id, first_name="Esha", group_admin_id=group_admin.id,
    )
    colleague = await _seed_employee(
        db, company.id, first_name="Carl", gender=GenderType.male,
        group_admin_id=group_admin.id,
    )
    casual = await _seed_leave_type(db, company.id)
    await db.commit()
    return Org(
        company=company,
        manager=manager,
        group_admin=group_admin,
        employee=employee,
        colleague=colleague,
        casual=casual,
    )


# ── Auth helpers ────────────────────────────────────────────────────

def create_access_token(
    employee_id: uuid.UUID,
    role: UserRole = UserRole.employee,
    expired: bool = False,
) -> str:
    """Generate a JWT access token for testing."""
    if expired:
        exp = datetime.now(timezone.utc) - timedelta(hours=1)
    else:
        exp = datetime.now(timezone.utc) + timedelta(hours=1)
    payload = {
        "sub": str(employee_id),
        "role": role.value,
        "type": "access",
        "exp": exp,
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def auth_headers_for(employee: Employee) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(employee.id, employee.role)}"}
