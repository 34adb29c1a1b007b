"""Shared test fixtures — async DB, client, auth helpers, factories.

Uses SQLite + aiosqlite for fast isolated tests without PostgreSQL, and a
recording email transport in place of SMTP.
"""

from __future__ import annotations

import os

# Set test JWT_SECRET before any other import touches pydantic-settings
os.environ.setdefault("JWT_SECRET", "test-secret-for-ci-do-not-use-in-production")

import uuid
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import AsyncGenerator, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from workforce_portal.common.constants import (
    ExpenseCategory,
    ExpenseStatus,
    TimesheetStatus,
    UserRole,
)
from workforce_portal.config import settings
from workforce_portal.database import Base, get_db
from workforce_portal.main import create_app
from workforce_portal.notifications.dispatcher import NotificationDispatcher, get_dispatcher
from workforce_portal.notifications.email import EmailMessage, EmailResult

# Import ALL model modules so every table is registered on Base.metadata
import workforce_portal.common.audit  # noqa: F401
import workforce_portal.employees.models  # noqa: F401
import workforce_portal.timesheets.models  # noqa: F401
import workforce_portal.expenses.models  # noqa: F401
import workforce_portal.notifications.models  # noqa: F401

from workforce_portal.employees.models import Employee
from workforce_portal.expenses.models import ExpenseLine, ExpenseReport
from workforce_portal.timesheets.models import Timesheet

# ── SQLite compat: compile PG-specific types to TEXT ────────────────

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
    from workforce_portal.common.rate_limit import limiter

    limiter.reset()
    yield


@pytest.fixture(autouse=True)
def _approval_settings(monkeypatch):
    """Known defaults for the settings the approval engine reads."""
    monkeypatch.setattr(settings, "DEFAULT_APPROVER_ID", None)
    monkeypatch.setattr(settings, "ALLOW_SELF_APPROVAL", False)
    monkeypatch.setattr(settings, "TIMEZONE", "UTC")
    monkeypatch.setattr(settings, "SMTP_HOST", "")


async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# ── Email transport ─────────────────────────────────────────────────

class FakeEmailTransport:
    """Records sends; addresses in ``fail_for`` fail, in ``raise_for`` raise."""

    def __init__(self) -> None:
        self.sent: list[EmailMessage] = []
        self.attempts: list[EmailMessage] = []
        self.fail_for: set[str] = set()
        self.raise_for: set[str] = set()

    async def send(self, message: EmailMessage) -> EmailResult:
        self.attempts.append(message)
        if message.to_email in self.raise_for:
            raise ConnectionError("SMTP connection refused")
        if "*" in self.fail_for or message.to_email in self.fail_for:
            return EmailResult(success=False, error="550 mailbox unavailable")
        self.sent.append(message)
        return EmailResult(success=True)

    def fail_all(self) -> None:
        self.fail_for.add("*")

    @property
    def sent_to(self) -> list[str]:
        return [m.to_email for m in self.sent]


@pytest.fixture
def email_transport() -> FakeEmailTransport:
    return FakeEmailTransport()


@pytest.fixture
def dispatcher(email_transport) -> NotificationDispatcher:
    return NotificationDispatcher(transport=email_transport, config=settings)


# ── FastAPI test client ─────────────────────────────────────────────

@pytest.fixture
async def app(dispatcher):
    """Create a fresh app instance with DB and dispatcher overridden."""
    application = create_app()
    application.dependency_overrides[get_db] = _override_get_db
    application.dependency_overrides[get_dispatcher] = lambda: dispatcher
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

async def make_employee(
    db: AsyncSession,
    *,
    first_name: str = "Test",
    last_name: str = "User",
    email: Optional[str] = None,
    manager_id: Optional[uuid.UUID] = None,
) -> Employee:
    employee = Employee(
        id=uuid.uuid4(),
        first_name=first_name,
        last_name=last_name,
        email=email or f"{first_name.lower()}.{uuid.uuid4().hex[:6]}@westendworkforce.com",
        manager_id=manager_id,
        is_active=True,
    )
    db.add(employee)
    await db.commit()
    return employee


async def make_timesheet(
    db: AsyncSession,
    employee_id: uuid.UUID,
    *,
    status: TimesheetStatus = TimesheetStatus.draft,
    week_ending: date = date(2025, 11, 14),
    total_hours: Decimal = Decimal("40.00"),
    rejection_reason: Optional[str] = None,
) -> Timesheet:
    timesheet = Timesheet(
        employee_id=employee_id,
        week_ending=week_ending,
        total_hours=total_hours,
        status=status,
        rejection_reason=rejection_reason,
        submitted_at=(
            datetime.now(timezone.utc) if status is not TimesheetStatus.draft else None
        ),
    )
    db.add(timesheet)
    await db.commit()
    return timesheet


async def make_report(
    db: AsyncSession,
    employee_id: uuid.UUID,
    line_statuses: list[ExpenseStatus],
    *,
    title: str = "November travel",
    amount: Decimal = Decimal("125.50"),
) -> tuple[ExpenseReport, list[ExpenseLine]]:
    """Report whose stored status already matches its lines."""
    from workforce_portal.approvals.reconciler import derive_report_status

    report = ExpenseReport(
        employee_id=employee_id,
        title=title,
        period_month="2025-11",
        status=derive_report_status(line_statuses),
    )
    db.add(report)
    await db.flush()

    lines = []
    for i, status in enumerate(line_statuses):
        line = ExpenseLine(
            report_id=report.id,
            expense_date=date(2025, 11, 3 + i),
            category=ExpenseCategory.travel,
            description=f"Line {i + 1}",
            amount=amount,
            status=status,
            rejection_reason="Missing receipt" if status is ExpenseStatus.rejected else None,
        )
        db.add(line)
        lines.append(line)
    await db.commit()
    return report, lines


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
        exp = datetime.now(timezone.utc) + timedelta(hours=settings.JWT_EXPIRY_HOURS)
    payload = {
        "sub": str(employee_id),
        "role": role.value,
        "type": "access",
        "exp": exp,
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def auth_header(employee_id: uuid.UUID, role: UserRole = UserRole.employee) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(employee_id, role)}"}


# ── Common people ───────────────────────────────────────────────────

@pytest.fixture
async def manager(db) -> Employee:
    return await make_employee(db, first_name="Morgan", last_name="Lee", email="morgan.lee@westendworkforce.com")


@pytest.fixture
async def employee(db, manager) -> Employee:
    return await make_employee(
        db,
        first_name="Jordan",
        last_name="Diaz",
        email="jordan.diaz@westendworkforce.com",
        manager_id=manager.id,
    )
