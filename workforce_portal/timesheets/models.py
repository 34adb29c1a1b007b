"""Timesheet ORM model.

SQLAlchemy 2.0 async-compatible model. ``version`` is the optimistic
concurrency counter: a write against a stale row raises StaleDataError.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from workforce_portal.common.constants import TimesheetStatus
from workforce_portal.database import Base


class Timesheet(Base):
    """Weekly timesheet owned by one employee."""

    __tablename__ = "timesheets"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("employees.id"),
        nullable=False,
    )
    week_ending: Mapped[date] = mapped_column(sa.Date, nullable=False)
    total_hours: Mapped[Decimal] = mapped_column(
        sa.Numeric(6, 2), nullable=False, default=0,
    )
    status: Mapped[TimesheetStatus] = mapped_column(
        sa.Enum(TimesheetStatus, name="timesheet_status"),
        nullable=False,
        default=TimesheetStatus.draft,
    )
    submitted_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True),
    )
    approved_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True),
    )
    approved_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id"), nullable=True,
    )
    rejection_reason: Mapped[Optional[str]] = mapped_column(sa.Text)
    version: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        sa.UniqueConstraint("employee_id", "week_ending", name="uq_timesheet_employee_week"),
        sa.Index("ix_timesheets_status", "status"),
    )
    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Timesheet {self.week_ending} {self.status.value} {self.total_hours}h>"
