"""Notification service — recipient-side reads and mutations, plus preferences."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional, Sequence

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from workforce_portal.common.constants import NotificationKind, NotificationPriority
from workforce_portal.common.exceptions import ForbiddenException, NotFoundException
from workforce_portal.common.pagination import PaginationParams, build_meta
from workforce_portal.notifications.models import Notification, NotificationPreference
from workforce_portal.notifications.schemas import (
    NotificationListMeta,
    NotificationListResponse,
    NotificationPreferences,
    NotificationPreferencesUpdate,
    NotificationResponse,
    NotificationStats,
)


# ── Core service ────────────────────────────────────────────────────


class NotificationService:
    """Async notification operations for the recipient."""

    @staticmethod
    async def get_notifications(
        db: AsyncSession,
        employee_id: uuid.UUID,
        pagination: PaginationParams,
        *,
        is_read: Optional[bool] = None,
        kind: Optional[NotificationKind] = None,
        priority: Optional[NotificationPriority] = None,
    ) -> NotificationListResponse:
        """Return paginated notifications for an employee, newest first."""
        query = (
            select(Notification)
            .where(Notification.recipient_id == employee_id)
            .order_by(Notification.created_at.desc())
        )

        if is_read is not None:
            query = query.where(Notification.is_read == is_read)
        if kind is not None:
            query = query.where(Notification.kind == kind)
        if priority is not None:
            query = query.where(Notification.priority == priority)

        # Total count (with filters applied)
        count_q = query.with_only_columns(func.count()).order_by(None)
        total: int = (await db.execute(count_q)).scalar_one()

        rows = (
            await db.execute(
                query.offset(pagination.offset).limit(pagination.page_size)
            )
        ).scalars().all()

        # Unread count (always unfiltered — for the badge)
        unread = await NotificationService.get_unread_count(db, employee_id)

        meta = build_meta(total, pagination)
        return NotificationListResponse(
            data=[NotificationResponse.model_validate(n) for n in rows],
            meta=NotificationListMeta(**meta.model_dump(), unread=unread),
        )

    @staticmethod
    async def _get_owned(
        db: AsyncSession,
        notification_id: uuid.UUID,
        employee_id: uuid.UUID,
    ) -> Notification:
        result = await db.execute(
            select(Notification).where(Notification.id == notification_id)
        )
        notification = result.scalars().first()

        if notification is None:
            raise NotFoundException("Notification", notification_id)
        if notification.recipient_id != employee_id:
            raise ForbiddenException("You can only manage your own notifications.")
        return notification

    @staticmethod
    async def mark_read(
        db: AsyncSession,
        notification_id: uuid.UUID,
        employee_id: uuid.UUID,
    ) -> Notification:
        """Mark a single notification as read. Verifies ownership."""
        notification = await NotificationService._get_owned(db, notification_id, employee_id)
        if not notification.is_read:
            notification.is_read = True
            notification.read_at = datetime.now(timezone.utc)
            await db.flush()
        return notification

    @staticmethod
    async def mark_all_read(
        db: AsyncSession,
        employee_id: uuid.UUID,
    ) -> int:
        """Bulk-mark all unread notifications as read. Returns count updated."""
        now = datetime.now(timezone.utc)
        result = await db.execute(
            update(Notification)
            .where(
                Notification.recipient_id == employee_id,
                Notification.is_read.is_(False),
            )
            .values(is_read=True, read_at=now)
        )
        await db.flush()
        return result.rowcount  # type: ignore[return-value]

    @staticmethod
    async def delete_notification(
        db: AsyncSession,
        notification_id: uuid.UUID,
        employee_id: uuid.UUID,
    ) -> None:
        notification = await NotificationService._get_owned(db, notification_id, employee_id)
        await db.delete(notification)
        await db.flush()

    @staticmethod
    async def bulk_action(
        db: AsyncSession,
        employee_id: uuid.UUID,
        action: str,
        notification_ids: Sequence[uuid.UUID],
    ) -> int:
        """Apply mark_read / delete to the caller's own notifications among *ids*.

        Ids that belong to someone else are ignored. Returns rows affected.
        """
        owned = (
            Notification.recipient_id == employee_id,
            Notification.id.in_(set(notification_ids)),
        )
        if action == "delete":
            result = await db.execute(delete(Notification).where(*owned))
        else:
            result = await db.execute(
                update(Notification)
                .where(*owned, Notification.is_read.is_(False))
                .values(is_read=True, read_at=datetime.now(timezone.utc))
            )
        await db.flush()
        return result.rowcount  # type: ignore[return-value]

    @staticmethod
    async def get_unread_count(
        db: AsyncSession,
        employee_id: uuid.UUID,
    ) -> int:
        """Return the number of unread notifications for an employee."""
        result = await db.execute(
            select(func.count())
            .select_from(Notification)
            .where(
                Notification.recipient_id == employee_id,
                Notification.is_read.is_(False),
            )
        )
        return result.scalar_one()

    @staticmethod
    async def get_stats(
        db: AsyncSession,
        employee_id: uuid.UUID,
    ) -> NotificationStats:
        """Totals for the header dropdown: overall, unread, per kind and priority."""
        by_kind_rows = (
            await db.execute(
                select(Notification.kind, func.count())
                .where(Notification.recipient_id == employee_id)
                .group_by(Notification.kind)
            )
        ).all()
        by_priority_rows = (
            await db.execute(
                select(Notification.priority, func.count())
                .where(Notification.recipient_id == employee_id)
                .group_by(Notification.priority)
            )
        ).all()
        unread = await NotificationService.get_unread_count(db, employee_id)

        by_kind = {kind.value: count for kind, count in by_kind_rows}
        return NotificationStats(
            total=sum(by_kind.values()),
            unread=unread,
            by_kind=by_kind,
            by_priority={prio.value: count for prio, count in by_priority_rows},
        )


# ── Preferences ─────────────────────────────────────────────────────


class PreferenceService:
    """Per-employee delivery preferences. Missing rows mean defaults."""

    @staticmethod
    async def get_preferences(
        db: AsyncSession,
        employee_id: uuid.UUID,
    ) -> NotificationPreferences:
        row = await db.get(NotificationPreference, employee_id)
        if row is None:
            return NotificationPreferences()
        return NotificationPreferences.model_validate(row)

    @staticmethod
    async def get_many(
        db: AsyncSession,
        employee_ids: Sequence[uuid.UUID],
    ) -> dict[uuid.UUID, NotificationPreferences]:
        """Preferences keyed by employee id; every requested id is present."""
        ids = set(employee_ids)
        prefs = {emp_id: NotificationPreferences() for emp_id in ids}
        if not ids:
            return prefs
        rows = (
            await db.execute(
                select(NotificationPreference).where(
                    NotificationPreference.employee_id.in_(ids)
                )
            )
        ).scalars().all()
        for row in rows:
            prefs[row.employee_id] = NotificationPreferences.model_validate(row)
        return prefs

    @staticmethod
    async def update_preferences(
        db: AsyncSession,
        employee_id: uuid.UUID,
        data: NotificationPreferencesUpdate,
    ) -> NotificationPreferences:
        row = await db.get(NotificationPreference, employee_id)
        if row is None:
            row = NotificationPreference(
                employee_id=employee_id,
                **NotificationPreferences().model_dump(),
            )
            db.add(row)

        for field_name, value in data.model_dump(exclude_unset=True).items():
            if value is not None:
                setattr(row, field_name, value)

        await db.flush()
        return NotificationPreferences.model_validate(row)
