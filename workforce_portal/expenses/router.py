"""Expenses router — report/line CRUD, line review and report submission.

All endpoints require authentication.
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from workforce_portal.approvals.schemas import (
    ExpenseLineTransitionRequest,
    ExpenseLineTransitionResult,
    ExpenseReportTransitionResult,
)
from workforce_portal.approvals.service import ApprovalService
from workforce_portal.auth.dependencies import Actor, get_current_actor
from workforce_portal.common.constants import ExpenseStatus
from workforce_portal.common.pagination import PaginationParams
from workforce_portal.common.rate_limit import TRANSITION_RATE_LIMIT, limiter
from workforce_portal.database import get_db
from workforce_portal.expenses.schemas import (
    ExpenseLineCreate,
    ExpenseLineOut,
    ExpenseReportCreate,
    ExpenseReportDetail,
    ExpenseReportListResponse,
    ExpenseReportOut,
)
from workforce_portal.expenses.service import ExpenseService
from workforce_portal.notifications.dispatcher import NotificationDispatcher, get_dispatcher

router = APIRouter(prefix="", tags=["expenses"])


# ── POST /reports ────────────────────────────────────────────────────

@router.post("/reports", response_model=ExpenseReportDetail, status_code=201)
async def create_report(
    body: ExpenseReportCreate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Open a draft expense report, optionally with its first lines."""
    report = await ExpenseService.create_report(db, actor.id, body)
    await db.commit()
    return ExpenseReportDetail.model_validate(report)


# ── GET /reports/my-reports ──────────────────────────────────────────

@router.get("/reports/my-reports", response_model=ExpenseReportListResponse)
async def my_reports(
    status: Optional[ExpenseStatus] = Query(None),
    pagination: PaginationParams = Depends(),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    rows, meta = await ExpenseService.list_for_employee(db, actor.id, pagination, status)
    return ExpenseReportListResponse(
        data=[ExpenseReportOut.model_validate(r) for r in rows],
        meta=meta,
    )


# ── GET /reports/{report_id} ─────────────────────────────────────────

@router.get("/reports/{report_id}", response_model=ExpenseReportDetail)
async def get_report(
    report_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    report = await ExpenseService.get_report_for(db, report_id, actor)
    return ExpenseReportDetail.model_validate(report)


# ── POST /reports/{report_id}/lines ──────────────────────────────────

@router.post("/reports/{report_id}/lines", response_model=ExpenseLineOut, status_code=201)
async def add_line(
    report_id: uuid.UUID,
    body: ExpenseLineCreate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    line = await ExpenseService.add_line(db, report_id, actor, body)
    await db.commit()
    return ExpenseLineOut.model_validate(line)


# ── POST /reports/{report_id}/submit ─────────────────────────────────

@router.post("/reports/{report_id}/submit", response_model=ExpenseReportTransitionResult)
@limiter.limit(TRANSITION_RATE_LIMIT)
async def submit_report(
    request: Request,
    report_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    """Submit every draft or rejected line; the report status follows its lines."""
    return await ApprovalService.submit_expense_report(
        db, report_id, actor, dispatcher=dispatcher,
    )


# ── PATCH /lines/{line_id}/status ────────────────────────────────────

@router.patch("/lines/{line_id}/status", response_model=ExpenseLineTransitionResult)
@limiter.limit(TRANSITION_RATE_LIMIT)
async def change_line_status(
    request: Request,
    line_id: uuid.UUID,
    body: ExpenseLineTransitionRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    """Approve or reject one line, then reconcile its report."""
    return await ApprovalService.apply_expense_line_transition(
        db,
        line_id,
        body.action,
        actor,
        rejection_reason=body.rejection_reason,
        dispatcher=dispatcher,
    )
