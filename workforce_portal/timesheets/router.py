"""Timesheets router — CRUD plus the status-change endpoint.

All endpoints require authentication.
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from workforce_portal.approvals.schemas import (
    TimesheetTransitionRequest,
    TimesheetTransitionResult,
)
from workforce_portal.approvals.service import ApprovalService
from workforce_portal.auth.dependencies import Actor, get_current_actor, require_role
from workforce_portal.common.audit import history_for
from workforce_portal.common.constants import EntityType, TimesheetStatus, UserRole
from workforce_portal.common.pagination import PaginationParams
from workforce_portal.common.rate_limit import TRANSITION_RATE_LIMIT, limiter
from workforce_portal.database import get_db
from workforce_portal.notifications.dispatcher import NotificationDispatcher, get_dispatcher
from workforce_portal.timesheets.schemas import (
    TimesheetCreate,
    TimesheetHistoryEntry,
    TimesheetListResponse,
    TimesheetOut,
    TimesheetUpdate,
)
from workforce_portal.timesheets.service import TimesheetService

router = APIRouter(prefix="", tags=["timesheets"])


# ── POST / ───────────────────────────────────────────────────────────

@router.post("", response_model=TimesheetOut, status_code=201)
async def create_timesheet(
    body: TimesheetCreate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Open a draft timesheet for the current user."""
    timesheet = await TimesheetService.create_timesheet(db, actor.id, body)
    await db.commit()
    return TimesheetOut.model_validate(timesheet)


# ── GET /my-timesheets ───────────────────────────────────────────────
# Registered before /{timesheet_id} so the literal path wins.

@router.get("/my-timesheets", response_model=TimesheetListResponse)
async def my_timesheets(
    status: Optional[TimesheetStatus] = Query(None),
    pagination: PaginationParams = Depends(),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    rows, meta = await TimesheetService.list_for_employee(db, actor.id, pagination, status)
    return TimesheetListResponse(
        data=[TimesheetOut.model_validate(t) for t in rows],
        meta=meta,
    )


# ── GET /pending ─────────────────────────────────────────────────────

@router.get("/pending", response_model=TimesheetListResponse)
async def pending_timesheets(
    pagination: PaginationParams = Depends(),
    actor: Actor = Depends(require_role(UserRole.manager)),
    db: AsyncSession = Depends(get_db),
):
    """Submitted timesheets of the caller's direct reports (all, for admins)."""
    rows, meta = await TimesheetService.list_pending(db, actor, pagination)
    return TimesheetListResponse(
        data=[TimesheetOut.model_validate(t) for t in rows],
        meta=meta,
    )


# ── GET /{timesheet_id} ──────────────────────────────────────────────

@router.get("/{timesheet_id}", response_model=TimesheetOut)
async def get_timesheet(
    timesheet_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    timesheet = await TimesheetService.get_timesheet(db, timesheet_id, actor)
    return TimesheetOut.model_validate(timesheet)


# ── GET /{timesheet_id}/history ──────────────────────────────────────

@router.get("/{timesheet_id}/history", response_model=list[TimesheetHistoryEntry])
async def timesheet_history(
    timesheet_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Audit trail of the timesheet, oldest first. Same access rule as GET."""
    timesheet = await TimesheetService.get_timesheet(db, timesheet_id, actor)
    entries = await history_for(db, EntityType.timesheet, timesheet.id)
    return [TimesheetHistoryEntry.model_validate(e) for e in entries]


# ── PUT /{timesheet_id} ──────────────────────────────────────────────

@router.put("/{timesheet_id}", response_model=TimesheetOut)
async def update_timesheet(
    timesheet_id: uuid.UUID,
    body: TimesheetUpdate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Edit hours on a draft or rejected timesheet (owner only)."""
    timesheet = await TimesheetService.update_timesheet(db, timesheet_id, actor, body)
    await db.commit()
    return TimesheetOut.model_validate(timesheet)


# ── PATCH /{timesheet_id}/status ─────────────────────────────────────

@router.patch("/{timesheet_id}/status", response_model=TimesheetTransitionResult)
@limiter.limit(TRANSITION_RATE_LIMIT)
async def change_timesheet_status(
    request: Request,
    timesheet_id: uuid.UUID,
    body: TimesheetTransitionRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    """save / submit / approve / reject. Email problems come back as warnings."""
    return await ApprovalService.apply_timesheet_transition(
        db,
        timesheet_id,
        body.action,
        actor,
        rejection_reason=body.rejection_reason,
        dispatcher=dispatcher,
    )
