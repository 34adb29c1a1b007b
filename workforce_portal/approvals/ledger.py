"""Status ledger — pure transition tables for timesheets and expense lines.

No I/O. Each function takes the freshly read current status plus the
requested action and returns a ``LedgerResult`` (next status + field
patch), or raises ``ValidationException`` / ``IllegalTransition``.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional, Union

from workforce_portal.common.constants import (
    ExpenseLineAction,
    ExpenseStatus,
    TimesheetAction,
    TimesheetStatus,
)
from workforce_portal.common.exceptions import IllegalTransition, ValidationException


@dataclass(frozen=True)
class LedgerResult:
    """Outcome of a legal transition: the new status and the columns to write."""

    status: Union[TimesheetStatus, ExpenseStatus]
    patch: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class _Rule:
    allowed_from: frozenset[TimesheetStatus]
    result: TimesheetStatus
    owner_only: bool = False
    requires_reason: bool = False


_TIMESHEET_RULES: dict[TimesheetAction, _Rule] = {
    TimesheetAction.save: _Rule(
        allowed_from=frozenset({
            TimesheetStatus.draft,
            TimesheetStatus.submitted,
            TimesheetStatus.rejected,
        }),
        result=TimesheetStatus.draft,
        owner_only=True,
    ),
    # submitted → submitted is an idempotent re-submit
    TimesheetAction.submit: _Rule(
        allowed_from=frozenset({
            TimesheetStatus.draft,
            TimesheetStatus.rejected,
            TimesheetStatus.submitted,
        }),
        result=TimesheetStatus.submitted,
        owner_only=True,
    ),
    TimesheetAction.approve: _Rule(
        allowed_from=frozenset({TimesheetStatus.submitted}),
        result=TimesheetStatus.approved,
    ),
    TimesheetAction.reject: _Rule(
        allowed_from=frozenset({TimesheetStatus.submitted}),
        result=TimesheetStatus.rejected,
        requires_reason=True,
    ),
}


def clean_reason(reason: Optional[str]) -> str:
    """Trim a rejection reason; an empty result is a validation error."""
    cleaned = (reason or "").strip()
    if not cleaned:
        raise ValidationException(
            {"rejection_reason": ["Rejection reason is required."]}
        )
    return cleaned


def _coerce(enum_cls, value, current_status):
    try:
        return enum_cls(value)
    except ValueError:
        raise IllegalTransition(current_status, value, reason="Unknown action.")


# ── Timesheets ──────────────────────────────────────────────────────

def timesheet_transition(
    current: TimesheetStatus,
    action: Union[TimesheetAction, str],
    *,
    is_owner: bool,
    now: datetime,
    rejection_reason: Optional[str] = None,
    actor_id: Optional[uuid.UUID] = None,
) -> LedgerResult:
    """Validate (current, action) against the timesheet table.

    The rejection reason is checked before the state guard, so a reject
    without a reason is a ValidationException from every state.
    """
    current = TimesheetStatus(current)
    action = _coerce(TimesheetAction, action, current)
    rule = _TIMESHEET_RULES[action]

    reason = clean_reason(rejection_reason) if rule.requires_reason else None

    if rule.owner_only and not is_owner:
        raise IllegalTransition(
            current, action,
            reason="Only the timesheet owner can do this.",
            forbidden=True,
        )
    if current not in rule.allowed_from:
        raise IllegalTransition(current, action)

    patch: dict[str, Any] = {"status": rule.result}
    if action is TimesheetAction.save:
        patch["rejection_reason"] = None
    elif action is TimesheetAction.submit:
        patch.update(submitted_at=now, rejection_reason=None)
    elif action is TimesheetAction.approve:
        patch.update(approved_at=now, approved_by_id=actor_id, rejection_reason=None)
    elif action is TimesheetAction.reject:
        patch.update(rejection_reason=reason, approved_at=None, approved_by_id=None)

    return LedgerResult(status=rule.result, patch=patch)


# ── Expense lines ───────────────────────────────────────────────────

def expense_line_transition(
    current: ExpenseStatus,
    action: Union[ExpenseLineAction, str],
    *,
    now: datetime,
    rejection_reason: Optional[str] = None,
    actor_id: Optional[uuid.UUID] = None,
) -> LedgerResult:
    """Approve or reject a line from any status; reconciliation always follows."""
    current = ExpenseStatus(current)
    action = _coerce(ExpenseLineAction, action, current)

    if action is ExpenseLineAction.reject:
        reason = clean_reason(rejection_reason)
        return LedgerResult(
            status=ExpenseStatus.rejected,
            patch={
                "status": ExpenseStatus.rejected,
                "rejection_reason": reason,
                "rejected_at": now,
                "rejected_by_id": actor_id,
                "approved_at": None,
                "approved_by_id": None,
            },
        )

    return LedgerResult(
        status=ExpenseStatus.approved,
        patch={
            "status": ExpenseStatus.approved,
            "approved_at": now,
            "approved_by_id": actor_id,
            "rejection_reason": None,
            "rejected_at": None,
            "rejected_by_id": None,
        },
    )


_SUBMITTABLE_LINE_STATUSES = frozenset({ExpenseStatus.draft, ExpenseStatus.rejected})


def expense_line_submission(
    current: ExpenseStatus,
    *,
    now: datetime,
) -> Optional[LedgerResult]:
    """Owner submission of a line as part of a report submit.

    Draft and rejected lines move to submitted; submitted and approved
    lines are left alone (``None``).
    """
    current = ExpenseStatus(current)
    if current not in _SUBMITTABLE_LINE_STATUSES:
        return None
    return LedgerResult(
        status=ExpenseStatus.submitted,
        patch={
            "status": ExpenseStatus.submitted,
            "submitted_at": now,
            "rejection_reason": None,
            "rejected_at": None,
            "rejected_by_id": None,
        },
    )
