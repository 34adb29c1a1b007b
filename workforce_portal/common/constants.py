"""Enums and constants for the workforce portal — matching PostgreSQL ENUM types."""

from __future__ import annotations

import enum


# ── Auth / Roles ────────────────────────────────────────────────────

class UserRole(str, enum.Enum):
    employee = "employee"
    manager = "manager"
    admin = "admin"


# ── Timesheets ──────────────────────────────────────────────────────

class TimesheetStatus(str, enum.Enum):
    draft = "draft"
    submitted = "submitted"
    approved = "approved"
    rejected = "rejected"


class TimesheetAction(str, enum.Enum):
    save = "save"
    submit = "submit"
    approve = "approve"
    reject = "reject"


# ── Expenses ────────────────────────────────────────────────────────

class ExpenseStatus(str, enum.Enum):
    draft = "draft"
    submitted = "submitted"
    approved = "approved"
    rejected = "rejected"


class ExpenseLineAction(str, enum.Enum):
    approve = "approve"
    reject = "reject"


class ExpenseCategory(str, enum.Enum):
    travel = "travel"
    meals = "meals"
    lodging = "lodging"
    mileage = "mileage"
    supplies = "supplies"
    other = "other"


# ── Notifications ───────────────────────────────────────────────────

class NotificationKind(str, enum.Enum):
    timesheet_submitted = "timesheet_submitted"
    timesheet_approved = "timesheet_approved"
    timesheet_rejected = "timesheet_rejected"
    expense_submitted = "expense_submitted"
    expense_approved = "expense_approved"
    expense_rejected = "expense_rejected"


class NotificationPriority(str, enum.Enum):
    low = "low"
    medium = "medium"
    high = "high"
    critical = "critical"


class NotificationCategory(str, enum.Enum):
    timesheets = "timesheets"
    expenses = "expenses"
    deadlines = "deadlines"
    system = "system"


class DigestFrequency(str, enum.Enum):
    immediate = "immediate"
    daily = "daily"
    weekly = "weekly"


class EntityType(str, enum.Enum):
    timesheet = "timesheet"
    expense_line = "expense_line"
    expense_report = "expense_report"


# ── Approvals ───────────────────────────────────────────────────────

# Roles allowed to approve / reject other people's submissions.
APPROVER_ROLES: frozenset[UserRole] = frozenset({UserRole.manager, UserRole.admin})

# ── Misc constants ──────────────────────────────────────────────────

DATE_FORMAT = "%b %d, %Y"         # Nov 14, 2025
MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 50
QUIET_HOURS_DEFAULT_START = "22:00"
QUIET_HOURS_DEFAULT_END = "08:00"
