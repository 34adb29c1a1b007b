"""001 – Initial schema: employees, timesheets, expenses, notifications, audit.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-17 09:00:00.000000+00:00
"""

from alembic import op

# Revision identifiers
revision = "001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

ENUM_TYPES: list[tuple[str, list[str]]] = [
    ("timesheet_status", ["draft", "submitted", "approved", "rejected"]),
    ("expense_status", ["draft", "submitted", "approved", "rejected"]),
    (
        "expense_category",
        ["travel", "meals", "lodging", "mileage", "supplies", "other"],
    ),
    (
        "notification_kind",
        [
            "timesheet_submitted",
            "timesheet_approved",
            "timesheet_rejected",
            "expense_submitted",
            "expense_approved",
            "expense_rejected",
        ],
    ),
    ("notification_priority", ["low", "medium", "high", "critical"]),
    ("digest_frequency", ["immediate", "daily", "weekly"]),
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

    # ── Enum types ────────────────────────────────────────────────────────
    for name, values in ENUM_TYPES:
        _create_enum(name, values)

    # ── 1. employees ──────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE employees (
            id          UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            first_name  VARCHAR(100) NOT NULL,
            last_name   VARCHAR(100) NOT NULL DEFAULT '',
            email       VARCHAR(255) UNIQUE,
            manager_id  UUID REFERENCES employees(id),
            is_active   BOOLEAN NOT NULL DEFAULT TRUE,
            created_at  TIMESTAMPTZ DEFAULT NOW(),
            updated_at  TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX idx_emp_manager ON employees(manager_id)")

    # ── 2. timesheets ─────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE timesheets (
            id               UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_id      UUID NOT NULL REFERENCES employees(id),
            week_ending      DATE NOT NULL,
            total_hours      NUMERIC(6,2) NOT NULL DEFAULT 0,
            status           timesheet_status NOT NULL DEFAULT 'draft',
            submitted_at     TIMESTAMPTZ,
            approved_at      TIMESTAMPTZ,
            approved_by_id   UUID REFERENCES employees(id),
            rejection_reason TEXT,
            version          INTEGER NOT NULL DEFAULT 1,
            created_at       TIMESTAMPTZ DEFAULT NOW(),
            updated_at       TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT uq_timesheet_employee_week UNIQUE(employee_id, week_ending)
        )
    """)
    op.execute("CREATE INDEX ix_timesheets_status ON timesheets(status)")

    # ── 3. expense_reports ────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE expense_reports (
            id           UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_id  UUID NOT NULL REFERENCES employees(id),
            title        VARCHAR(500) NOT NULL,
            period_month VARCHAR(20),
            status       expense_status NOT NULL DEFAULT 'draft',
            version      INTEGER NOT NULL DEFAULT 1,
            created_at   TIMESTAMPTZ DEFAULT NOW(),
            updated_at   TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX idx_exp_report_employee ON expense_reports(employee_id)")

    # ── 4. expense_lines ──────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE expense_lines (
            id               UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            report_id        UUID NOT NULL REFERENCES expense_reports(id) ON DELETE CASCADE,
            expense_date     DATE NOT NULL,
            category         expense_category NOT NULL DEFAULT 'other',
            description      TEXT,
            amount           NUMERIC(12,2) NOT NULL DEFAULT 0,
            status           expense_status NOT NULL DEFAULT 'draft',
            submitted_at     TIMESTAMPTZ,
            approved_at      TIMESTAMPTZ,
            approved_by_id   UUID REFERENCES employees(id),
            rejected_at      TIMESTAMPTZ,
            rejected_by_id   UUID REFERENCES employees(id),
            rejection_reason TEXT,
            version          INTEGER NOT NULL DEFAULT 1,
            created_at       TIMESTAMPTZ DEFAULT NOW(),
            updated_at       TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX ix_expense_lines_report_id ON expense_lines(report_id)")

    # ── 5. notifications ──────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE notifications (
            id           UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            recipient_id UUID NOT NULL REFERENCES employees(id) ON DELETE CASCADE,
            kind         notification_kind NOT NULL,
            priority     notification_priority NOT NULL DEFAULT 'medium',
            title        VARCHAR(200) NOT NULL,
            message      TEXT NOT NULL,
            action_url   VARCHAR(500),
            entity_type  VARCHAR(50),
            entity_id    UUID,
            is_read      BOOLEAN NOT NULL DEFAULT FALSE,
            read_at      TIMESTAMPTZ,
            email_sent   BOOLEAN NOT NULL DEFAULT FALSE,
            metadata     JSONB,
            created_at   TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX ix_notifications_recipient_read
            ON notifications(recipient_id, is_read)
    """)
    op.execute("CREATE INDEX idx_notif_created ON notifications(created_at)")

    # ── 6. notification_preferences ───────────────────────────────────────
    op.execute("""
        CREATE TABLE notification_preferences (
            employee_id         UUID PRIMARY KEY REFERENCES employees(id) ON DELETE CASCADE,
            email_enabled       BOOLEAN NOT NULL DEFAULT TRUE,
            in_app_enabled      BOOLEAN NOT NULL DEFAULT TRUE,
            timesheets          BOOLEAN NOT NULL DEFAULT TRUE,
            expenses            BOOLEAN NOT NULL DEFAULT TRUE,
            deadlines           BOOLEAN NOT NULL DEFAULT TRUE,
            system              BOOLEAN NOT NULL DEFAULT TRUE,
            frequency           digest_frequency NOT NULL DEFAULT 'immediate',
            quiet_hours_enabled BOOLEAN NOT NULL DEFAULT FALSE,
            quiet_hours_start   VARCHAR(5) NOT NULL DEFAULT '22:00',
            quiet_hours_end     VARCHAR(5) NOT NULL DEFAULT '08:00',
            updated_at          TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    # ── 7. audit_trail ────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE audit_trail (
            id          UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            actor_id    UUID REFERENCES employees(id),
            action      VARCHAR(50) NOT NULL,
            entity_type VARCHAR(50) NOT NULL,
            entity_id   UUID NOT NULL,
            old_values  JSONB,
            new_values  JSONB,
            created_at  TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX ix_audit_trail_entity
            ON audit_trail(entity_type, entity_id)
    """)
    op.execute("CREATE INDEX ix_audit_trail_actor_id   ON audit_trail(actor_id)")
    op.execute("CREATE INDEX ix_audit_trail_created_at ON audit_trail(created_at)")


# ---------------------------------------------------------------------------
# DOWNGRADE
# ---------------------------------------------------------------------------


def downgrade() -> None:
    # Drop tables in reverse dependency order
    tables = [
        "audit_trail",
        "notification_preferences",
        "notifications",
        "expense_lines",
        "expense_reports",
        "timesheets",
        "employees",
    ]
    for t in tables:
        op.execute(f"DROP TABLE IF EXISTS {t} CASCADE")

    for name, _ in reversed(ENUM_TYPES):
        _drop_enum(name)

    op.execute('DROP EXTENSION IF EXISTS "uuid-ossp"')
