"""Expenses service layer — report and line CRUD.

Line statuses are never written here (see ApprovalService); the report status
only ever comes from ``derive_report_status``.
"""

from __future__ import annotations

import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from workforce_portal.approvals.reconciler import derive_report_status
from workforce_portal.auth.dependencies import Actor
from workforce_portal.common.audit import create_audit_entry
from workforce_portal.common.constants import EntityType, ExpenseStatus
from workforce_portal.common.exceptions import (
    ForbiddenException,
    IllegalTransition,
    NotFoundException,
)
from workforce_portal.common.pagination import PaginationMeta, PaginationParams, paginate
from workforce_portal.expenses.models import ExpenseLine, ExpenseReport
from workforce_portal.expenses.schemas import ExpenseLineCreate, ExpenseReportCreate


class ExpenseService:
    """Business logic for expense reports and their lines."""

    # ── Create ────────────────────────────────────────────────────────

    @staticmethod
    async def create_report(
        db: AsyncSession,
        employee_id: uuid.UUID,
        data: ExpenseReportCreate,
    ) -> ExpenseReport:
        report = ExpenseReport(
            employee_id=employee_id,
            title=data.title,
            period_month=data.period_month,
            status=ExpenseStatus.draft,
        )
        db.add(report)
        await db.flush()

        for line_data in data.lines:
            db.add(ExpenseLine(report_id=report.id, **line_data.model_dump()))
        await db.flush()

        await create_audit_entry(
            db,
            action="expense_report.create",
            entity_type=EntityType.expense_report.value,
            entity_id=report.id,
            actor_id=employee_id,
            new_values={"title": data.title, "lines": len(data.lines)},
        )
        return await ExpenseService.get_report(db, report.id, refresh=True)

    @staticmethod
    async def add_line(
        db: AsyncSession,
        report_id: uuid.UUID,
        actor: Actor,
        data: ExpenseLineCreate,
    ) -> ExpenseLine:
        """Owner adds a draft line. Not allowed once the report is fully approved."""
        report = await ExpenseService.get_report(db, report_id)
        if report.employee_id != actor.id:
            raise ForbiddenException("You can only add lines to your own reports.")
        if report.status is ExpenseStatus.approved:
            raise IllegalTransition(report.status, "add_line", reason="The report is already approved.")

        line = ExpenseLine(report_id=report.id, **data.model_dump())
        db.add(line)
        await db.flush()

        # A new draft line can change the derived report status
        statuses = (
            await db.execute(
                select(ExpenseLine.status).where(ExpenseLine.report_id == report.id)
            )
        ).scalars().all()
        derived = derive_report_status(statuses)
        if report.status != derived:
            report.status = derived
            await db.flush()

        await create_audit_entry(
            db,
            action="expense_line.create",
            entity_type=EntityType.expense_line.value,
            entity_id=line.id,
            actor_id=actor.id,
            new_values={"report_id": str(report.id), "amount": str(data.amount)},
        )
        return line

    # ── Read ──────────────────────────────────────────────────────────

    @staticmethod
    async def get_report(
        db: AsyncSession,
        report_id: uuid.UUID,
        *,
        refresh: bool = False,
    ) -> ExpenseReport:
        stmt = select(ExpenseReport).where(ExpenseReport.id == report_id)
        if refresh:
            stmt = stmt.execution_options(populate_existing=True)
        report = (await db.execute(stmt)).scalar_one_or_none()
        if report is None:
            raise NotFoundException("ExpenseReport", str(report_id))
        return report

    @staticmethod
    async def get_report_for(
        db: AsyncSession,
        report_id: uuid.UUID,
        actor: Actor,
    ) -> ExpenseReport:
        """Owner and approvers may read a report with its lines."""
        report = await ExpenseService.get_report(db, report_id, refresh=True)
        if report.employee_id != actor.id and not actor.is_approver:
            raise ForbiddenException("You can only view your own expense reports.")
        return report

    @staticmethod
    async def list_for_employee(
        db: AsyncSession,
        employee_id: uuid.UUID,
        pagination: PaginationParams,
        status: Optional[ExpenseStatus] = None,
    ) -> tuple[list[ExpenseReport], PaginationMeta]:
        query = (
            select(ExpenseReport)
            .where(ExpenseReport.employee_id == employee_id)
            .order_by(ExpenseReport.created_at.desc())
        )
        if status is not None:
            query = query.where(ExpenseReport.status == status)
        rows, meta = await paginate(db, query, pagination)
        return list(rows), meta
