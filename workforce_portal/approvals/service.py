"""Approval service — validate → persist → reconcile → notify.

Entry point for every status change on timesheets and expense lines.
The status change is committed before reconciliation and notification
run; failures in those later steps come back as warnings on a result
whose ``committed`` flag is still True.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from workforce_portal.approvals import ledger
from workforce_portal.approvals.reconciler import derive_report_status
from workforce_portal.approvals.schemas import (
    ExpenseLineTransitionResult,
    ExpenseReportTransitionResult,
    TimesheetTransitionResult,
)
from workforce_portal.auth.dependencies import Actor
from workforce_portal.common.audit import create_audit_entry
from workforce_portal.common.constants import (
    DATE_FORMAT,
    EntityType,
    ExpenseLineAction,
    ExpenseStatus,
    TimesheetAction,
)
from workforce_portal.common.exceptions import (
    IllegalTransition,
    NotFoundException,
    ValidationException,
)
from workforce_portal.config import settings
from workforce_portal.employees.service import EmployeeService
from workforce_portal.expenses.models import ExpenseLine, ExpenseReport
from workforce_portal.notifications import policy
from workforce_portal.notifications.dispatcher import NotificationDispatcher
from workforce_portal.notifications.schemas import TransitionWarning
from workforce_portal.notifications.service import PreferenceService
from workforce_portal.timesheets.models import Timesheet

logger = logging.getLogger(__name__)

_APPROVER_ACTIONS = frozenset({"approve", "reject"})


def _money(amount: Any) -> str:
    return f"${Decimal(amount or 0):,.2f}"


def _apply_patch(entity: Any, patch: dict[str, Any]) -> None:
    for name, value in patch.items():
        setattr(entity, name, value)


async def _fresh_row(db: AsyncSession, model: Any, entity_id: uuid.UUID, label: str):
    """Re-read and lock the row so validation sees the committed status."""
    result = await db.execute(
        select(model)
        .where(model.id == entity_id)
        .with_for_update(of=model)
        .execution_options(populate_existing=True)
    )
    entity = result.scalar_one_or_none()
    if entity is None:
        raise NotFoundException(label, entity_id)
    return entity


async def _commit_transition(db: AsyncSession, previous: Any, action: Any) -> None:
    try:
        await db.commit()
    except StaleDataError:
        await db.rollback()
        raise IllegalTransition(
            previous, action,
            reason="The record was changed concurrently; reload and try again.",
        )


def _check_approver(actor: Actor, owner_id: uuid.UUID, current: Any, action: Any) -> None:
    if not actor.is_approver:
        raise IllegalTransition(
            current, action, reason="An approver role is required.", forbidden=True,
        )
    if actor.id == owner_id and not settings.ALLOW_SELF_APPROVAL:
        raise IllegalTransition(
            current, action, reason="You cannot review your own submission.", forbidden=True,
        )


class ApprovalService:
    """Async orchestration of approval transitions."""

    # ── Timesheets ──────────────────────────────────────────────────

    @staticmethod
    async def apply_timesheet_transition(
        db: AsyncSession,
        timesheet_id: uuid.UUID,
        action: Union[TimesheetAction, str],
        actor: Actor,
        *,
        rejection_reason: Optional[str] = None,
        dispatcher: NotificationDispatcher,
        now: Optional[datetime] = None,
    ) -> TimesheetTransitionResult:
        now = now or datetime.now(timezone.utc)
        timesheet = await _fresh_row(db, Timesheet, timesheet_id, "Timesheet")
        previous = timesheet.status

        change = ledger.timesheet_transition(
            previous,
            action,
            is_owner=timesheet.employee_id == actor.id,
            now=now,
            rejection_reason=rejection_reason,
            actor_id=actor.id,
        )
        action = TimesheetAction(action)
        if action.value in _APPROVER_ACTIONS:
            _check_approver(actor, timesheet.employee_id, previous, action)

        _apply_patch(timesheet, change.patch)
        await create_audit_entry(
            db,
            action=f"timesheet.{action.value}",
            entity_type=EntityType.timesheet.value,
            entity_id=timesheet.id,
            actor_id=actor.id,
            old_values={"status": previous.value},
            new_values={"status": change.status.value, "rejection_reason": change.patch.get("rejection_reason")},
        )

        owner_id = timesheet.employee_id
        context = {
            "week_ending": timesheet.week_ending.strftime(DATE_FORMAT),
            "total_hours": str(timesheet.total_hours),
            "rejection_reason": change.patch.get("rejection_reason"),
        }
        await _commit_transition(db, previous, action)
        logger.info(
            "Timesheet %s: %s → %s by %s",
            timesheet_id, previous.value, change.status.value, actor.id,
        )

        warnings = await ApprovalService._notify(
            db,
            dispatcher,
            entity_type=EntityType.timesheet,
            action=action.value,
            entity_id=timesheet_id,
            owner_id=owner_id,
            actor=actor,
            context=context,
            now=now,
        )
        return TimesheetTransitionResult(status=change.status, warnings=warnings)

    # ── Expense lines ───────────────────────────────────────────────

    @staticmethod
    async def apply_expense_line_transition(
        db: AsyncSession,
        line_id: uuid.UUID,
        action: Union[ExpenseLineAction, str],
        actor: Actor,
        *,
        rejection_reason: Optional[str] = None,
        dispatcher: NotificationDispatcher,
        now: Optional[datetime] = None,
    ) -> ExpenseLineTransitionResult:
        now = now or datetime.now(timezone.utc)
        line = await _fresh_row(db, ExpenseLine, line_id, "Expense line")
        report = await db.get(ExpenseReport, line.report_id)
        previous = line.status

        change = ledger.expense_line_transition(
            previous,
            action,
            now=now,
            rejection_reason=rejection_reason,
            actor_id=actor.id,
        )
        action = ExpenseLineAction(action)
        _check_approver(actor, report.employee_id, previous, action)

        _apply_patch(line, change.patch)
        await create_audit_entry(
            db,
            action=f"expense_line.{action.value}",
            entity_type=EntityType.expense_line.value,
            entity_id=line.id,
            actor_id=actor.id,
            old_values={"status": previous.value},
            new_values={"status": change.status.value, "rejection_reason": change.patch.get("rejection_reason")},
        )

        report_id = report.id
        owner_id = report.employee_id
        report_status = report.status
        context = {
            "report_id": str(report_id),
            "report_title": report.title,
            "description": line.description or line.category.value.title(),
            "amount": _money(line.amount),
            "rejection_reason": change.patch.get("rejection_reason"),
        }
        await _commit_transition(db, previous, action)
        logger.info(
            "Expense line %s: %s → %s by %s",
            line_id, previous.value, change.status.value, actor.id,
        )

        warnings: list[TransitionWarning] = []
        try:
            report_status = await ApprovalService.reconcile_report(db, report_id, actor_id=actor.id)
        except Exception:
            logger.exception("Reconciliation of expense report %s failed", report_id)
            await db.rollback()
            warnings.append(TransitionWarning(
                code="reconciliation_failed",
                detail=f"Expense report {report_id} status could not be recomputed.",
            ))

        warnings += await ApprovalService._notify(
            db,
            dispatcher,
            entity_type=EntityType.expense_line,
            action=action.value,
            entity_id=line_id,
            owner_id=owner_id,
            actor=actor,
            context=context,
            now=now,
        )
        return ExpenseLineTransitionResult(
            line_status=change.status,
            report_status=report_status,
            warnings=warnings,
        )

    # ── Expense reports ─────────────────────────────────────────────

    @staticmethod
    async def submit_expense_report(
        db: AsyncSession,
        report_id: uuid.UUID,
        actor: Actor,
        *,
        dispatcher: NotificationDispatcher,
        now: Optional[datetime] = None,
    ) -> ExpenseReportTransitionResult:
        """Owner submits every draft or rejected line, then the report is reconciled."""
        now = now or datetime.now(timezone.utc)
        report = await _fresh_row(db, ExpenseReport, report_id, "Expense report")
        previous = report.status

        if report.employee_id != actor.id:
            raise IllegalTransition(
                previous, "submit",
                reason="Only the report owner can submit it.",
                forbidden=True,
            )

        lines = (
            await db.execute(
                select(ExpenseLine)
                .where(ExpenseLine.report_id == report_id)
                .with_for_update(of=ExpenseLine)
                .execution_options(populate_existing=True)
            )
        ).scalars().all()
        if not lines:
            raise ValidationException({"lines": ["Add at least one expense line before submitting."]})
        bad = [str(line.id) for line in lines if Decimal(line.amount or 0) <= 0]
        if bad:
            raise ValidationException({"lines": [f"Line {line_id} must have a positive amount." for line_id in bad]})
        if derive_report_status(line.status for line in lines) is ExpenseStatus.approved:
            raise IllegalTransition(previous, "submit", reason="Every line is already approved.")

        submitted = 0
        for line in lines:
            change = ledger.expense_line_submission(line.status, now=now)
            if change is not None:
                _apply_patch(line, change.patch)
                submitted += 1

        total_amount = _money(sum((Decimal(line.amount) for line in lines), Decimal("0")))
        owner_id = report.employee_id
        context = {
            "report_id": str(report_id),
            "report_title": report.title,
            "total_amount": total_amount,
            "line_count": len(lines),
        }
        if submitted:
            await create_audit_entry(
                db,
                action="expense_report.submit",
                entity_type=EntityType.expense_report.value,
                entity_id=report_id,
                actor_id=actor.id,
                old_values={"status": previous.value},
                new_values={"submitted_lines": submitted},
            )
        await _commit_transition(db, previous, "submit")
        logger.info("Expense report %s submitted (%d line(s)) by %s", report_id, submitted, actor.id)

        report_status = previous
        warnings: list[TransitionWarning] = []
        try:
            report_status = await ApprovalService.reconcile_report(db, report_id, actor_id=actor.id)
        except Exception:
            logger.exception("Reconciliation of expense report %s failed", report_id)
            await db.rollback()
            warnings.append(TransitionWarning(
                code="reconciliation_failed",
                detail=f"Expense report {report_id} status could not be recomputed.",
            ))

        if submitted:
            warnings += await ApprovalService._notify(
                db,
                dispatcher,
                entity_type=EntityType.expense_report,
                action=policy.SUBMIT,
                entity_id=report_id,
                owner_id=owner_id,
                actor=actor,
                context=context,
                now=now,
            )
        return ExpenseReportTransitionResult(
            report_status=report_status,
            submitted_lines=submitted,
            warnings=warnings,
        )

    @staticmethod
    async def reconcile_report(
        db: AsyncSession,
        report_id: uuid.UUID,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> ExpenseStatus:
        """Recompute and store the report status from its lines' committed statuses."""
        report = await _fresh_row(db, ExpenseReport, report_id, "Expense report")
        statuses = (
            await db.execute(
                select(ExpenseLine.status).where(ExpenseLine.report_id == report_id)
            )
        ).scalars().all()

        derived = derive_report_status(statuses)
        if report.status != derived:
            old = report.status
            report.status = derived
            await create_audit_entry(
                db,
                action="expense_report.reconcile",
                entity_type=EntityType.expense_report.value,
                entity_id=report_id,
                actor_id=actor_id,
                old_values={"status": old.value},
                new_values={"status": derived.value},
            )
            logger.info("Expense report %s reconciled: %s → %s", report_id, old.value, derived.value)
        await db.commit()
        return derived

    # ── Notification fan-out ────────────────────────────────────────

    @staticmethod
    async def _notify(
        db: AsyncSession,
        dispatcher: NotificationDispatcher,
        *,
        entity_type: EntityType,
        action: str,
        entity_id: uuid.UUID,
        owner_id: uuid.UUID,
        actor: Actor,
        context: dict[str, Any],
        now: datetime,
    ) -> list[TransitionWarning]:
        try:
            owner = await EmployeeService.get_employee(db, owner_id)
            event = policy.TransitionEvent(
                entity_type=entity_type,
                action=action,
                entity_id=entity_id,
                owner_id=owner_id,
                actor_id=actor.id,
                approver_id=EmployeeService.approver_for(owner, settings.DEFAULT_APPROVER_ID),
                context={**context, "employee_name": owner.full_name},
            )
            intents, warnings = policy.intents_for(event)
            if not intents:
                return warnings

            prefs = await PreferenceService.get_many(db, [i.recipient_id for i in intents])
            planned = policy.apply_preferences(intents, prefs, now, settings.TIMEZONE)
            outcome = await dispatcher.dispatch(db, planned)
            return warnings + outcome.warnings
        except Exception:
            logger.exception("Notification dispatch for %s %s failed", entity_type.value, entity_id)
            await db.rollback()
            return [TransitionWarning(
                code="dispatch_failed",
                detail=f"Notifications for {entity_type.value} {entity_id} could not be sent.",
            )]
