"""Expenses Pydantic v2 schemas — request/response validation."""

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from workforce_portal.common.constants import ExpenseCategory, ExpenseStatus
from workforce_portal.common.pagination import PaginationMeta


# ═════════════════════════════════════════════════════════════════════
# Expense Line
# ═════════════════════════════════════════════════════════════════════


class ExpenseLineCreate(BaseModel):
    expense_date: date
    category: ExpenseCategory = ExpenseCategory.other
    description: Optional[str] = Field(None, max_length=2000)
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)


class ExpenseLineOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    report_id: uuid.UUID
    expense_date: date
    category: ExpenseCategory
    description: Optional[str] = None
    amount: Decimal
    status: ExpenseStatus
    submitted_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    approved_by_id: Optional[uuid.UUID] = None
    rejected_at: Optional[datetime] = None
    rejected_by_id: Optional[uuid.UUID] = None
    rejection_reason: Optional[str] = None
    created_at: Optional[datetime] = None


# ═════════════════════════════════════════════════════════════════════
# Expense Report
# ═════════════════════════════════════════════════════════════════════


class ExpenseReportCreate(BaseModel):
    """Open a draft report; lines may be added in the same request."""

    title: str = Field(..., min_length=1, max_length=500)
    period_month: Optional[str] = Field(None, max_length=20)
    lines: List[ExpenseLineCreate] = Field(default_factory=list)


class ExpenseReportOut(BaseModel):
    """Report without its lines (list views)."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    title: str
    period_month: Optional[str] = None
    status: ExpenseStatus
    total_amount: Decimal = Decimal("0")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ExpenseReportDetail(ExpenseReportOut):
    lines: List[ExpenseLineOut] = []


class ExpenseReportListResponse(BaseModel):
    data: List[ExpenseReportOut]
    meta: PaginationMeta
