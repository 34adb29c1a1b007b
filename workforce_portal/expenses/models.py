"""Expenses ORM models: ExpenseReport, ExpenseLine.

SQLAlchemy 2.0 async-compatible models. ``ExpenseReport.status`` is
derived from its lines by the reconciler and is never written from a
request payload.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from workforce_portal.common.constants import ExpenseCategory, ExpenseStatus
from workforce_portal.database import Base


class ExpenseReport(Base):
    """A period's expense report: the parent of 1..N expense lines."""

    __tablename__ = "expense_reports"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("employees.id"),
        nullable=False,
    )
    title: Mapped[str] = mapped_column(sa.String(500), nullable=False)
    period_month: Mapped[Optional[str]] = mapped_column(sa.String(20))
    status: Mapped[ExpenseStatus] = mapped_column(
        sa.Enum(ExpenseStatus, name="expense_status"),
        nullable=False,
        default=ExpenseStatus.draft,
    )
    version: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    lines: Mapped[list[ExpenseLine]] = relationship(
        order_by="ExpenseLine.created_at",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def total_amount(self) -> Decimal:
        return sum((Decimal(line.amount) for line in self.lines), Decimal("0"))

    def __repr__(self) -> str:
        return f"<ExpenseReport '{self.title[:30]}' {self.status.value}>"


class ExpenseLine(Base):
    """Single reimbursable expense inside a report."""

    __tablename__ = "expense_lines"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    report_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("expense_reports.id", ondelete="CASCADE"),
        nullable=False,
    )
    expense_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    category: Mapped[ExpenseCategory] = mapped_column(
        sa.Enum(ExpenseCategory, name="expense_category"),
        nullable=False,
        default=ExpenseCategory.other,
    )
    description: Mapped[Optional[str]] = mapped_column(sa.Text)
    amount: Mapped[Decimal] = mapped_column(
        sa.Numeric(12, 2), nullable=False, default=0,
    )
    status: Mapped[ExpenseStatus] = mapped_column(
        sa.Enum(ExpenseStatus, name="expense_status"),
        nullable=False,
        default=ExpenseStatus.draft,
    )
    submitted_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    approved_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    approved_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id"), nullable=True,
    )
    rejected_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    rejected_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
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
        sa.Index("ix_expense_lines_report_id", "report_id"),
    )
    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<ExpenseLine {self.category.value} ${self.amount} {self.status.value}>"
