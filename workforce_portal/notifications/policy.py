"""Notification policy — who hears about a transition, and over which channel.

Two steps, both pure:

1. ``intents_for(event)`` maps a committed transition to notification
   intents (recipient, kind, priority).
2. ``apply_preferences(intents, prefs, now, tz)`` decides per intent whether
   email goes out. The in-app record is never suppressed.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, time
from typing import Any, Mapping, Optional, Sequence, Union
from zoneinfo import ZoneInfo

from workforce_portal.common.constants import (
    DigestFrequency,
    EntityType,
    ExpenseLineAction,
    NotificationCategory,
    NotificationKind,
    NotificationPriority,
    TimesheetAction,
)
from workforce_portal.notifications.schemas import (
    NotificationPreferences,
    TransitionWarning,
)

SUBMIT = "submit"


@dataclass(frozen=True)
class TransitionEvent:
    """A committed transition, as seen by the policy."""

    entity_type: EntityType
    action: str
    entity_id: uuid.UUID
    owner_id: uuid.UUID
    actor_id: uuid.UUID
    # Owner's manager, else the configured default approver
    approver_id: Optional[uuid.UUID] = None
    context: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class NotificationIntent:
    recipient_id: uuid.UUID
    kind: NotificationKind
    priority: NotificationPriority
    category: NotificationCategory
    entity_type: EntityType
    entity_id: uuid.UUID
    context: dict[str, Any] = field(default_factory=dict)
    send_email: bool = True
    suppressed_reason: Optional[str] = None


@dataclass(frozen=True)
class _Rule:
    kind: NotificationKind
    priority: NotificationPriority
    category: NotificationCategory
    audience: str  # "owner" | "approver"


_RULES: dict[tuple[EntityType, str], _Rule] = {
    (EntityType.timesheet, TimesheetAction.submit.value): _Rule(
        NotificationKind.timesheet_submitted,
        NotificationPriority.high,
        NotificationCategory.timesheets,
        "approver",
    ),
    (EntityType.timesheet, TimesheetAction.approve.value): _Rule(
        NotificationKind.timesheet_approved,
        NotificationPriority.medium,
        NotificationCategory.timesheets,
        "owner",
    ),
    (EntityType.timesheet, TimesheetAction.reject.value): _Rule(
        NotificationKind.timesheet_rejected,
        NotificationPriority.medium,
        NotificationCategory.timesheets,
        "owner",
    ),
    (EntityType.expense_line, ExpenseLineAction.approve.value): _Rule(
        NotificationKind.expense_approved,
        NotificationPriority.medium,
        NotificationCategory.expenses,
        "owner",
    ),
    (EntityType.expense_line, ExpenseLineAction.reject.value): _Rule(
        NotificationKind.expense_rejected,
        NotificationPriority.high,
        NotificationCategory.expenses,
        "owner",
    ),
    (EntityType.expense_report, SUBMIT): _Rule(
        NotificationKind.expense_submitted,
        NotificationPriority.high,
        NotificationCategory.expenses,
        "approver",
    ),
}


def intents_for(
    event: TransitionEvent,
) -> tuple[list[NotificationIntent], list[TransitionWarning]]:
    """Map a transition to intents. ``save`` and unknown pairs yield nothing."""
    action = getattr(event.action, "value", event.action)
    rule = _RULES.get((EntityType(event.entity_type), action))
    if rule is None:
        return [], []

    recipient = event.owner_id if rule.audience == "owner" else event.approver_id
    if recipient is None:
        return [], [
            TransitionWarning(
                code="no_recipient",
                detail=(
                    f"No approver configured for {event.entity_type.value} "
                    f"{event.entity_id}; '{rule.kind.value}' was not sent."
                ),
            )
        ]

    return [
        NotificationIntent(
            recipient_id=recipient,
            kind=rule.kind,
            priority=rule.priority,
            category=rule.category,
            entity_type=EntityType(event.entity_type),
            entity_id=event.entity_id,
            context=dict(event.context),
        )
    ], []


# ── Preference filtering ────────────────────────────────────────────

def _parse_hhmm(value: Union[str, time]) -> time:
    if isinstance(value, time):
        return value
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


def in_quiet_hours(moment: time, start: Union[str, time], end: Union[str, time]) -> bool:
    """True when *moment* falls in [start, end]. Windows may wrap midnight."""
    start_t, end_t = _parse_hhmm(start), _parse_hhmm(end)
    moment = moment.replace(second=0, microsecond=0, tzinfo=None)
    if start_t <= end_t:
        return start_t <= moment <= end_t
    return moment >= start_t or moment <= end_t


def email_suppression_reason(
    intent: NotificationIntent,
    prefs: NotificationPreferences,
    local_now: datetime,
) -> Optional[str]:
    """Return why email is suppressed for this intent, or None to send it."""
    if not getattr(prefs, intent.category.value, True):
        return "category_disabled"
    if not prefs.email_enabled:
        return "email_disabled"
    if (
        prefs.quiet_hours_enabled
        and prefs.frequency is DigestFrequency.daily
        and intent.priority is not NotificationPriority.critical
        and in_quiet_hours(local_now.time(), prefs.quiet_hours_start, prefs.quiet_hours_end)
    ):
        return "quiet_hours"
    return None


def apply_preferences(
    intents: Sequence[NotificationIntent],
    preferences: Mapping[uuid.UUID, NotificationPreferences],
    now: datetime,
    tz: str = "UTC",
) -> list[NotificationIntent]:
    """Resolve the email channel for each intent against recipient preferences.

    Recipients without stored preferences get the defaults. Quiet hours are
    evaluated in *tz*.
    """
    local_now = now.astimezone(ZoneInfo(tz))
    planned = []
    for intent in intents:
        prefs = preferences.get(intent.recipient_id) or NotificationPreferences()
        reason = email_suppression_reason(intent, prefs, local_now)
        planned.append(replace(intent, send_email=reason is None, suppressed_reason=reason))
    return planned
