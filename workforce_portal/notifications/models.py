"""Notification ORM models — in-app notifications and per-user delivery preferences."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from workforce_portal.common.constants import (
    QUIET_HOURS_DEFAULT_END,
    QUIET_HOURS_DEFAULT_START,
    DigestFrequency,
    NotificationKind,
    NotificationPriority,
)
from workforce_portal.database import Base


class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    recipient_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
    )
    kind: Mapped[NotificationKind] = mapped_column(
        sa.Enum(NotificationKind, name="notification_kind"),
        nullable=False,
    )
    priority: Mapped[NotificationPriority] = mapped_column(
        sa.Enum(NotificationPriority, name="notification_priority"),
        nullable=False,
        default=NotificationPriority.medium,
    )
    title: Mapped[str] = mapped_column(sa.String(200), nullable=False)
    message: Mapped[str] = mapped_column(sa.Text, nullable=False)
    action_url: Mapped[Optional[str]] = mapped_column(sa.String(500))
    entity_type: Mapped[Optional[str]] = mapped_column(sa.String(50))
    entity_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True))
    is_read: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=False)
    read_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    email_sent: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=False)
    # "metadata" is reserved on declarative classes
    context: Mapped[Optional[dict[str, Any]]] = mapped_column("metadata", JSONB)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        sa.Index("ix_notifications_recipient_read", "recipient_id", "is_read"),
    )


class NotificationPreference(Base):
    """One optional row per employee; absent rows mean the defaults below."""

    __tablename__ = "notification_preferences"

    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("employees.id", ondelete="CASCADE"),
        primary_key=True,
    )
    email_enabled: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=True)
    in_app_enabled: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=True)
    timesheets: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=True)
    expenses: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=True)
    deadlines: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=True)
    system: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=True)
    frequency: Mapped[DigestFrequency] = mapped_column(
        sa.Enum(DigestFrequency, name="digest_frequency"),
        nullable=False,
        default=DigestFrequency.immediate,
    )
    quiet_hours_enabled: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=False)
    quiet_hours_start: Mapped[str] = mapped_column(
        sa.String(5), nullable=False, default=QUIET_HOURS_DEFAULT_START,
    )
    quiet_hours_end: Mapped[str] = mapped_column(
        sa.String(5), nullable=False, default=QUIET_HOURS_DEFAULT_END,
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
