"""Notification endpoints — list, stats, read/delete, preferences."""


import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from workforce_portal.auth.dependencies import Actor, get_current_actor
from workforce_portal.common.constants import NotificationKind, NotificationPriority
from workforce_portal.common.pagination import PaginationParams
from workforce_portal.database import get_db
from workforce_portal.notifications.schemas import (
    BulkNotificationAction,
    NotificationListResponse,
    NotificationPreferences,
    NotificationPreferencesUpdate,
    NotificationResponse,
    NotificationStats,
)
from workforce_portal.notifications.service import NotificationService, PreferenceService

router = APIRouter(prefix="", tags=["notifications"])


# ── GET / — list current user's notifications ───────────────────────

@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    is_read: Optional[bool] = Query(default=None, description="Filter by read status"),
    kind: Optional[NotificationKind] = Query(default=None, description="Filter by kind"),
    priority: Optional[NotificationPriority] = Query(default=None),
    pagination: PaginationParams = Depends(),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """List notifications for the authenticated user (paginated)."""
    return await NotificationService.get_notifications(
        db,
        employee_id=actor.id,
        pagination=pagination,
        is_read=is_read,
        kind=kind,
        priority=priority,
    )


# ── Literal paths ───────────────────────────────────────────────────
# NOTE: these MUST be registered before the /{notification_id} routes
# so FastAPI does not treat them as UUID path parameters.

@router.get("/unread-count")
async def unread_count(
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Return the number of unread notifications (for header badge)."""
    count = await NotificationService.get_unread_count(db, actor.id)
    return {"data": {"count": count}}


@router.get("/stats", response_model=NotificationStats)
async def notification_stats(
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return await NotificationService.get_stats(db, actor.id)


@router.get("/preferences", response_model=NotificationPreferences)
async def get_preferences(
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Effective preferences; defaults when none are stored."""
    return await PreferenceService.get_preferences(db, actor.id)


@router.put("/preferences", response_model=NotificationPreferences)
async def update_preferences(
    body: NotificationPreferencesUpdate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    prefs = await PreferenceService.update_preferences(db, actor.id, body)
    await db.commit()
    return prefs


@router.put("/read-all")
async def mark_all_read(
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Mark all unread notifications as read for the authenticated user."""
    count = await NotificationService.mark_all_read(db, actor.id)
    await db.commit()
    return {"message": "All notifications marked as read", "data": {"count": count}}


@router.post("/bulk")
async def bulk_action(
    body: BulkNotificationAction,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """mark_read or delete several of the caller's notifications at once."""
    count = await NotificationService.bulk_action(
        db, actor.id, body.action, body.notification_ids,
    )
    await db.commit()
    return {"message": f"Bulk {body.action} applied", "data": {"count": count}}


# ── /{notification_id} ──────────────────────────────────────────────

@router.put("/{notification_id}/read")
async def mark_read(
    notification_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Mark a single notification as read."""
    notification = await NotificationService.mark_read(db, notification_id, actor.id)
    await db.commit()
    return {
        "message": "Notification marked as read",
        "data": NotificationResponse.model_validate(notification),
    }


@router.delete("/{notification_id}", status_code=204)
async def delete_notification(
    notification_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    await NotificationService.delete_notification(db, notification_id, actor.id)
    await db.commit()
