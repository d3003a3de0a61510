"""001 – Leave engine schema: tenants, employees, registry, ledger, requests.

Revision ID: 001_leave_engine
Revises:
Create Date: 2026-10-19 10:00:00.000000+05:30
"""

from alembic import op

# Revision identifiers
revision = "001_leave_engine"
down_revision = None
branch_labels = None
depends_on = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

ENUM_TYPES: list[tuple[str, list[str]]] = [
    ("gender_type", ["male", "female", "other"]),
    ("user_role", ["employee", "group_admin", "management"]),
    ("leave_status", ["pending", "approved", "rejected", "escalated", "cancelled"]),
    ("escalation_status", ["pending", "resolved"]),
    ("final_action", ["approve", "reject"]),
    ("upload_method", ["file", "camera"]),
    ("notification_type", ["info", "action_required", "approval", "alert"]),
]


def _create_enum(name: str, values: list[str]) -> None:
    vals = ", ".join(f"'{v}'" for v in values)
    op.execute(f"CREATE TYPE {name} AS ENUM ({vals})")


def _drop_enum(name: str) -> None:
    op.execute(f"DROP TYPE IF EXISTS {name}")


# ---------------------------------------------------------------------------
# UPGRADE
# ---------------------------------------------------------------------------


def upgrade() -> None:
    # ── Extensions ────────────────────────────────────────────────────────
    op.execute('CREATE EXTENSION IF NOT EXISTS "uuid-ossp"')
    op.execute('CREATE EXTENSION IF NOT EXISTS "pgcrypto"')

    # ── Enum types ────────────────────────────────────────────────────────
    for name, values in ENUM_TYPES:
        _create_enum(name, values)

    # ── 1. companies ──────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE companies (
            id          UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            name        VARCHAR(150) NOT NULL UNIQUE,
            is_active   BOOLEAN DEFAULT TRUE,
            created_at  TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    # ── 2. employees ──────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE employees (
            id               UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            company_id       UUID NOT NULL REFERENCES companies(id),
            employee_code    VARCHAR(20)  NOT NULL UNIQUE,
            first_name       VARCHAR(100) NOT NULL,
            last_name        VARCHAR(100),
            email            VARCHAR(255) NOT NULL UNIQUE,
            role             user_role NOT NULL DEFAULT 'employee',
            gender           gender_type,
            group_admin_id   UUID REFERENCES employees(id),
            date_of_joining  DATE,
            is_active        BOOLEAN DEFAULT TRUE,
            created_at       TIMESTAMPTZ DEFAULT NOW(),
            updated_at       TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX ix_employees_company_role ON employees(company_id, role)")
    op.execute("CREATE INDEX ix_employees_group_admin  ON employees(group_admin_id)")

    # ── 3. leave_types ────────────────────────────────────────────────────
    # company_id NULL: global type visible to every tenant.
    op.execute("""
        CREATE TABLE leave_types (
            id                      UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            company_id              UUID REFERENCES companies(id),
            name                    VARCHAR(100) NOT NULL,
            description             TEXT,
            max_days                INTEGER NOT NULL DEFAULT 0,
            is_paid                 BOOLEAN DEFAULT TRUE,
            requires_documentation  BOOLEAN DEFAULT FALSE,
            is_active               BOOLEAN DEFAULT TRUE,
            created_at              TIMESTAMPTZ DEFAULT NOW(),
            updated_at              TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT uq_leave_type_company_name UNIQUE (company_id, name)
        )
    """)

    # ── 4. leave_policies ─────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_policies (
            id                    UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            leave_type_id         UUID NOT NULL UNIQUE
                                  REFERENCES leave_types(id) ON DELETE CASCADE,
            notice_period_days    INTEGER DEFAULT 0,
            max_consecutive_days  INTEGER,
            min_service_days      INTEGER DEFAULT 0,
            gender_specific       gender_type,
            default_days          INTEGER,
            carry_forward_days    INTEGER DEFAULT 0,
            created_at            TIMESTAMPTZ DEFAULT NOW(),
            updated_at            TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    # ── 5. leave_balances ─────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_balances (
            id                  UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_id         UUID NOT NULL REFERENCES employees(id),
            leave_type_id       UUID NOT NULL REFERENCES leave_types(id),
            year                INTEGER NOT NULL,
            total_days          INTEGER NOT NULL DEFAULT 0,
            used_days           INTEGER NOT NULL DEFAULT 0,
            pending_days        INTEGER NOT NULL DEFAULT 0,
            carry_forward_days  INTEGER NOT NULL DEFAULT 0,
            updated_at          TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT uq_leave_balance UNIQUE (employee_id, leave_type_id, year),
            CONSTRAINT ck_leave_balance_within_entitlement
                CHECK (used_days + pending_days <= total_days + carry_forward_days),
            CONSTRAINT ck_leave_balance_non_negative
                CHECK (total_days >= 0 AND used_days >= 0 AND pending_days >= 0
                       AND carry_forward_days >= 0)
        )
    """)

    # ── 6. leave_requests ─────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_requests (
            id                UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_id       UUID NOT NULL REFERENCES employees(id),
            leave_type_id     UUID NOT NULL REFERENCES leave_types(id),
            start_date        DATE NOT NULL,
            end_date          DATE NOT NULL,
            days_requested    INTEGER NOT NULL,
            reason            TEXT,
            contact_number    VARCHAR(20),
            status            leave_status NOT NULL DEFAULT 'pending',
            rejection_reason  TEXT,
            group_admin_id    UUID REFERENCES employees(id),
            reviewed_by       UUID REFERENCES employees(id),
            reviewed_at       TIMESTAMPTZ,
            cancelled_at      TIMESTAMPTZ,
            created_at        TIMESTAMPTZ DEFAULT NOW(),
            updated_at        TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT ck_leave_request_dates CHECK (end_date >= start_date)
        )
    """)
    op.execute(
        "CREATE INDEX ix_leave_requests_employee_status "
        "ON leave_requests(employee_id, status)"
    )
    op.execute(
        "CREATE INDEX ix_leave_requests_group_admin_status "
        "ON leave_requests(group_admin_id, status)"
    )

    # ── 7. leave_documents ────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_documents (
            id             UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            request_id     UUID NOT NULL REFERENCES leave_requests(id) ON DELETE CASCADE,
            file_name      VARCHAR(255) NOT NULL,
            file_type      VARCHAR(100) NOT NULL,
            file_data      TEXT NOT NULL,
            upload_method  upload_method DEFAULT 'file',
            created_at     TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute(
        "CREATE INDEX ix_leave_documents_request_id ON leave_documents(request_id)"
    )

    # ── 8. leave_escalations ──────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_escalations (
            id                UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            request_id        UUID NOT NULL UNIQUE
                              REFERENCES leave_requests(id) ON DELETE CASCADE,
            escalated_by      UUID REFERENCES employees(id),
            escalated_to      UUID NOT NULL REFERENCES employees(id),
            reason            TEXT NOT NULL,
            status            escalation_status NOT NULL DEFAULT 'pending',
            resolution_notes  TEXT,
            final_action      final_action,
            created_at        TIMESTAMPTZ DEFAULT NOW(),
            resolved_at       TIMESTAMPTZ
        )
    """)
    op.execute(
        "CREATE INDEX ix_leave_escalations_escalated_to "
        "ON leave_escalations(escalated_to)"
    )

    # ── 9. notifications ──────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE notifications (
            id            UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            recipient_id  UUID NOT NULL REFERENCES employees(id) ON DELETE CASCADE,
            type          notification_type DEFAULT 'info',
            title         VARCHAR(200) NOT NULL,
            message       TEXT NOT NULL,
            action_url    VARCHAR(500),
            leave_request_id UUID NOT NULL REFERENCES leave_requests(id) ON DELETE CASCADE,
            is_read       BOOLEAN NOT NULL DEFAULT FALSE,
            created_at    TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute(
        "CREATE INDEX ix_notifications_inbox "
        "ON notifications(recipient_id, is_read, created_at)"
    )

    # ── 10. audit_trail ───────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE audit_trail (
            id           UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            company_id   UUID REFERENCES companies(id),
            actor_id     UUID REFERENCES employees(id),
            action       VARCHAR(50) NOT NULL,
            entity_type  VARCHAR(50) NOT NULL,
            entity_id    UUID NOT NULL,
            old_values   JSONB,
            new_values   JSONB,
            created_at   TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX ix_audit_trail_company_created ON audit_trail(company_id, created_at)")
    op.execute("CREATE INDEX ix_audit_trail_entity ON audit_trail(entity_type, entity_id)")


# ---------------------------------------------------------------------------
# DOWNGRADE
# ---------------------------------------------------------------------------


def downgrade() -> None:
    # Drop tables in reverse dependency order
    tables = [
        "audit_trail",
        "notifications",
        "leave_escalations",
        "leave_documents",
        "leave_requests",
        "leave_balances",
        "leave_policies",
        "leave_types",
        "employees",
        "companies",
    ]
    for t in tables:
        op.execute(f"DROP TABLE IF EXISTS {t} CASCADE")

    for name, _ in reversed(ENUM_TYPES):
        _drop_enum(name)
