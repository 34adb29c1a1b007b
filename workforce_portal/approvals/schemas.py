"""Approval Pydantic schemas — transition requests and partial-success results."""

from typing import Optional

from pydantic import BaseModel, Field

from workforce_portal.common.constants import (
    ExpenseLineAction,
    ExpenseStatus,
    TimesheetAction,
    TimesheetStatus,
)
from workforce_portal.notifications.schemas import TransitionWarning


class TimesheetTransitionRequest(BaseModel):
    action: TimesheetAction
    rejection_reason: Optional[str] = Field(None, max_length=2000)


class ExpenseLineTransitionRequest(BaseModel):
    action: ExpenseLineAction
    rejection_reason: Optional[str] = Field(None, max_length=2000)


# ── Results ─────────────────────────────────────────────────────────
# ``committed`` is True once the status change is persisted; warnings
# never mean the transition was rolled back.


class TimesheetTransitionResult(BaseModel):
    status: TimesheetStatus
    committed: bool = True
    warnings: list[TransitionWarning] = []


class ExpenseLineTransitionResult(BaseModel):
    line_status: ExpenseStatus
    report_status: ExpenseStatus
    committed: bool = True
    warnings: list[TransitionWarning] = []


class ExpenseReportTransitionResult(BaseModel):
    report_status: ExpenseStatus
    submitted_lines: int = 0
    committed: bool = True
    warnings: list[TransitionWarning] = []
