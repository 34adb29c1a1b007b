"""Notification Pydantic schemas for request / response validation."""


import re
import uuid
from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from workforce_portal.common.constants import (
    QUIET_HOURS_DEFAULT_END,
    QUIET_HOURS_DEFAULT_START,
    DigestFrequency,
    NotificationKind,
    NotificationPriority,
)
from workforce_portal.common.pagination import PaginationMeta

_HHMM = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


# ── Warnings (returned, never raised) ───────────────────────────────

class TransitionWarning(BaseModel):
    """Partial-success note attached to a committed transition."""

    code: str
    detail: str
    recipient_id: Optional[uuid.UUID] = None


class DeliveryWarning(TransitionWarning):
    """An email for one recipient could not be delivered."""

    code: str = "email_delivery_failed"


# ── Preferences ─────────────────────────────────────────────────────

class NotificationPreferences(BaseModel):
    """Effective preferences for one employee (defaults when no row exists)."""

    email_enabled: bool = True
    in_app_enabled: bool = True
    timesheets: bool = True
    expenses: bool = True
    deadlines: bool = True
    system: bool = True
    frequency: DigestFrequency = DigestFrequency.immediate
    quiet_hours_enabled: bool = False
    quiet_hours_start: str = QUIET_HOURS_DEFAULT_START
    quiet_hours_end: str = QUIET_HOURS_DEFAULT_END

    model_config = ConfigDict(from_attributes=True)


class NotificationPreferencesUpdate(BaseModel):
    """Partial update; omitted fields keep their stored value.

    ``in_app_enabled`` is absent: in-app delivery cannot be turned off.
    """

    email_enabled: Optional[bool] = None
    timesheets: Optional[bool] = None
    expenses: Optional[bool] = None
    deadlines: Optional[bool] = None
    system: Optional[bool] = None
    frequency: Optional[DigestFrequency] = None
    quiet_hours_enabled: Optional[bool] = None
    quiet_hours_start: Optional[str] = None
    quiet_hours_end: Optional[str] = None

    @field_validator("quiet_hours_start", "quiet_hours_end")
    @classmethod
    def _check_hhmm(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not _HHMM.match(v):
            raise ValueError("Time must be in HH:MM 24-hour format.")
        return v


# ── Requests ────────────────────────────────────────────────────────

class BulkNotificationAction(BaseModel):
    action: Literal["mark_read", "delete"]
    notification_ids: list[uuid.UUID] = Field(min_length=1, max_length=100)


# ── Responses ───────────────────────────────────────────────────────

class NotificationResponse(BaseModel):
    """Single notification in API responses."""

    id: uuid.UUID
    kind: NotificationKind
    priority: NotificationPriority
    title: str
    message: str
    action_url: Optional[str] = None
    entity_type: Optional[str] = None
    entity_id: Optional[uuid.UUID] = None
    is_read: bool
    read_at: Optional[datetime] = None
    email_sent: bool
    context: Optional[dict[str, Any]] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class NotificationListMeta(PaginationMeta):
    """Extends standard pagination meta with unread count."""

    unread: int


class NotificationListResponse(BaseModel):
    """Paginated list of notifications with unread count in meta."""

    data: list[NotificationResponse]
    meta: NotificationListMeta


class NotificationStats(BaseModel):
    total: int
    unread: int
    by_kind: dict[str, int]
    by_priority: dict[str, int]
