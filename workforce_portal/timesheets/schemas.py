"""Timesheet Pydantic v2 schemas — request/response validation."""

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from workforce_portal.common.constants import TimesheetStatus
from workforce_portal.common.pagination import PaginationMeta


class TimesheetCreate(BaseModel):
    """Open a draft timesheet for a week."""

    week_ending: date
    total_hours: Decimal = Field(Decimal("0"), ge=0, le=168, max_digits=6, decimal_places=2)


class TimesheetUpdate(BaseModel):
    total_hours: Decimal = Field(..., ge=0, le=168, max_digits=6, decimal_places=2)


class TimesheetOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    week_ending: date
    total_hours: Decimal
    status: TimesheetStatus
    submitted_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    approved_by_id: Optional[uuid.UUID] = None
    rejection_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class TimesheetListResponse(BaseModel):
    data: List[TimesheetOut]
    meta: PaginationMeta


class TimesheetHistoryEntry(BaseModel):
    """One audit-trail row for a timesheet."""

    model_config = ConfigDict(from_attributes=True)

    action: str
    actor_id: Optional[uuid.UUID] = None
    old_values: Optional[dict[str, Any]] = None
    new_values: Optional[dict[str, Any]] = None
    created_at: datetime
