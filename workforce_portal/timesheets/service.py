"""Timesheet service layer — CRUD. Status changes go through ApprovalService."""

from __future__ import annotations

import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from workforce_portal.auth.dependencies import Actor
from workforce_portal.common.audit import create_audit_entry
from workforce_portal.common.constants import EntityType, TimesheetStatus, UserRole
from workforce_portal.common.exceptions import (
    ForbiddenException,
    IllegalTransition,
    NotFoundException,
    ValidationException,
)
from workforce_portal.common.pagination import PaginationMeta, PaginationParams, paginate
from workforce_portal.employees.service import EmployeeService
from workforce_portal.timesheets.models import Timesheet
from workforce_portal.timesheets.schemas import TimesheetCreate, TimesheetUpdate

_EDITABLE = frozenset({TimesheetStatus.draft, TimesheetStatus.rejected})


class TimesheetService:
    """Business logic for timesheet records."""

    # ── Create ────────────────────────────────────────────────────────

    @staticmethod
    async def create_timesheet(
        db: AsyncSession,
        employee_id: uuid.UUID,
        data: TimesheetCreate,
    ) -> Timesheet:
        """Create a draft timesheet; one per employee per week."""
        existing = await db.execute(
            select(Timesheet.id).where(
                Timesheet.employee_id == employee_id,
                Timesheet.week_ending == data.week_ending,
            )
        )
        if existing.scalar_one_or_none() is not None:
            raise ValidationException(
                {"week_ending": ["A timesheet for this week already exists."]}
            )

        timesheet = Timesheet(
            employee_id=employee_id,
            week_ending=data.week_ending,
            total_hours=data.total_hours,
            status=TimesheetStatus.draft,
        )
        db.add(timesheet)
        await db.flush()

        await create_audit_entry(
            db,
            action="timesheet.create",
            entity_type=EntityType.timesheet.value,
            entity_id=timesheet.id,
            actor_id=employee_id,
            new_values={
                "week_ending": data.week_ending.isoformat(),
                "total_hours": str(data.total_hours),
            },
        )
        return timesheet

    # ── Read ──────────────────────────────────────────────────────────

    @staticmethod
    async def get_timesheet(
        db: AsyncSession,
        timesheet_id: uuid.UUID,
        actor: Actor,
    ) -> Timesheet:
        """Owner and approvers may read a timesheet."""
        result = await db.execute(select(Timesheet).where(Timesheet.id == timesheet_id))
        timesheet = result.scalar_one_or_none()
        if timesheet is None:
            raise NotFoundException("Timesheet", str(timesheet_id))
        if timesheet.employee_id != actor.id and not actor.is_approver:
            raise ForbiddenException("You can only view your own timesheets.")
        return timesheet

    @staticmethod
    async def list_for_employee(
        db: AsyncSession,
        employee_id: uuid.UUID,
        pagination: PaginationParams,
        status: Optional[TimesheetStatus] = None,
    ) -> tuple[list[Timesheet], PaginationMeta]:
        query = (
            select(Timesheet)
            .where(Timesheet.employee_id == employee_id)
            .order_by(Timesheet.week_ending.desc())
        )
        if status is not None:
            query = query.where(Timesheet.status == status)
        rows, meta = await paginate(db, query, pagination)
        return list(rows), meta

    @staticmethod
    async def list_pending(
        db: AsyncSession,
        actor: Actor,
        pagination: PaginationParams,
    ) -> tuple[list[Timesheet], PaginationMeta]:
        """Submitted timesheets awaiting this approver (admins see all)."""
        query = (
            select(Timesheet)
            .where(Timesheet.status == TimesheetStatus.submitted)
            .order_by(Timesheet.submitted_at.asc())
        )
        if actor.role is not UserRole.admin:
            report_ids = await EmployeeService.get_direct_report_ids(db, actor.id)
            query = query.where(Timesheet.employee_id.in_(report_ids))
        rows, meta = await paginate(db, query, pagination)
        return list(rows), meta

    # ── Update ────────────────────────────────────────────────────────

    @staticmethod
    async def update_timesheet(
        db: AsyncSession,
        timesheet_id: uuid.UUID,
        actor: Actor,
        data: TimesheetUpdate,
    ) -> Timesheet:
        """Owner edits hours on a draft or rejected timesheet."""
        timesheet = await TimesheetService.get_timesheet(db, timesheet_id, actor)
        if timesheet.employee_id != actor.id:
            raise ForbiddenException("You can only edit your own timesheets.")
        if timesheet.status not in _EDITABLE:
            raise IllegalTransition(
                timesheet.status, "edit",
                reason="Move the timesheet back to draft first.",
            )

        old_hours = str(timesheet.total_hours)
        timesheet.total_hours = data.total_hours
        await db.flush()

        await create_audit_entry(
            db,
            action="timesheet.update",
            entity_type=EntityType.timesheet.value,
            entity_id=timesheet.id,
            actor_id=actor.id,
            old_values={"total_hours": old_hours},
            new_values={"total_hours": str(data.total_hours)},
        )
        return timesheet
