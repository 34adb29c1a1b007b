"""ApprovalService tests — validate → persist → reconcile → notify.

Exercises the full orchestration against SQLite with a recording email
transport.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm.exc import StaleDataError

from workforce_portal.approvals import service as approval_service
from workforce_portal.approvals.service import ApprovalService, _commit_transition
from workforce_portal.auth.dependencies import Actor
from workforce_portal.common.audit import AuditTrail, history_for
from workforce_portal.common.constants import (
    DigestFrequency,
    EntityType,
    ExpenseStatus,
    NotificationKind,
    NotificationPriority,
    TimesheetStatus,
    UserRole,
)
from workforce_portal.common.exceptions import (
    IllegalTransition,
    NotFoundException,
    ValidationException,
)
from workforce_portal.config import settings
from workforce_portal.expenses.models import ExpenseLine, ExpenseReport
from workforce_portal.notifications.models import Notification, NotificationPreference
from workforce_portal.timesheets.models import Timesheet
from tests.conftest import make_employee, make_report, make_timesheet

D, S, A, R = (
    ExpenseStatus.draft,
    ExpenseStatus.submitted,
    ExpenseStatus.approved,
    ExpenseStatus.rejected,
)


def _actor(employee, role=UserRole.employee) -> Actor:
    return Actor(id=employee.id, role=role)


async def _notifications_for(db, recipient_id):
    return (
        await db.execute(select(Notification).where(Notification.recipient_id == recipient_id))
    ).scalars().all()


async def _count(db, model):
    return (await db.execute(select(func.count()).select_from(model))).scalar_one()


# ═════════════════════════════════════════════════════════════════════
# TIMESHEETS
# ═════════════════════════════════════════════════════════════════════


class TestTimesheetTransitions:

    async def test_submit_notifies_manager(self, db, dispatcher, email_transport, employee, manager):
        sheet = await make_timesheet(db, employee.id)

        result = await ApprovalService.apply_timesheet_transition(
            db, sheet.id, "submit", _actor(employee), dispatcher=dispatcher,
        )

        assert result.status is TimesheetStatus.submitted
        assert result.committed is True
        assert result.warnings == []
        [note] = await _notifications_for(db, manager.id)
        assert note.kind is NotificationKind.timesheet_submitted
        assert note.priority is NotificationPriority.high
        assert "Jordan Diaz" in note.message
        assert email_transport.sent_to == [manager.email]

    async def test_resubmit_is_idempotent(self, db, dispatcher, employee):
        sheet = await make_timesheet(db, employee.id, status=TimesheetStatus.submitted)

        result = await ApprovalService.apply_timesheet_transition(
            db, sheet.id, "submit", _actor(employee), dispatcher=dispatcher,
        )

        assert result.status is TimesheetStatus.submitted
        refreshed = await db.get(Timesheet, sheet.id)
        assert refreshed.status is TimesheetStatus.submitted

    async def test_save_pulls_back_without_notification(self, db, dispatcher, email_transport, employee):
        sheet = await make_timesheet(db, employee.id, status=TimesheetStatus.submitted)

        result = await ApprovalService.apply_timesheet_transition(
            db, sheet.id, "save", _actor(employee), dispatcher=dispatcher,
        )

        assert result.status is TimesheetStatus.draft
        assert await _count(db, Notification) == 0
        assert email_transport.attempts == []

    async def test_approve_email_failure_still_commits(
        self, db, dispatcher, email_transport, employee, manager,
    ):
        """Approve a submitted timesheet while the mail server is down."""
        sheet = await make_timesheet(db, employee.id, status=TimesheetStatus.submitted)
        email_transport.fail_all()

        result = await ApprovalService.apply_timesheet_transition(
            db, sheet.id, "approve", _actor(manager, UserRole.manager), dispatcher=dispatcher,
        )

        assert result.status is TimesheetStatus.approved
        assert result.committed is True
        assert [w.code for w in result.warnings] == ["email_delivery_failed"]

        refreshed = await db.get(Timesheet, sheet.id)
        assert refreshed.status is TimesheetStatus.approved
        assert refreshed.approved_at is not None
        assert refreshed.approved_by_id == manager.id

        [note] = await _notifications_for(db, employee.id)
        assert note.kind is NotificationKind.timesheet_approved
        assert note.email_sent is False

    async def test_reject_without_reason_changes_nothing(
        self, db, dispatcher, email_transport, employee, manager,
    ):
        sheet = await make_timesheet(db, employee.id, status=TimesheetStatus.submitted)
        sheet_id = sheet.id

        with pytest.raises(ValidationException):
            await ApprovalService.apply_timesheet_transition(
                db, sheet_id, "reject", _actor(manager, UserRole.manager),
                rejection_reason="   ", dispatcher=dispatcher,
            )
        await db.rollback()

        refreshed = await db.get(Timesheet, sheet_id, populate_existing=True)
        assert refreshed.status is TimesheetStatus.submitted
        assert await _count(db, Notification) == 0
        assert await _count(db, AuditTrail) == 0
        assert email_transport.attempts == []

    async def test_reject_records_reason_and_notifies_owner(self, db, dispatcher, employee, manager):
        sheet = await make_timesheet(db, employee.id, status=TimesheetStatus.submitted)

        result = await ApprovalService.apply_timesheet_transition(
            db, sheet.id, "reject", _actor(manager, UserRole.manager),
            rejection_reason=" Missing Friday ", dispatcher=dispatcher,
        )

        assert result.status is TimesheetStatus.rejected
        refreshed = await db.get(Timesheet, sheet.id)
        assert refreshed.rejection_reason == "Missing Friday"
        [note] = await _notifications_for(db, employee.id)
        assert note.kind is NotificationKind.timesheet_rejected
        assert "Missing Friday" in note.message

    async def test_approve_draft_is_illegal(self, db, dispatcher, employee, manager):
        sheet = await make_timesheet(db, employee.id)

        with pytest.raises(IllegalTransition) as exc:
            await ApprovalService.apply_timesheet_transition(
                db, sheet.id, "approve", _actor(manager, UserRole.manager), dispatcher=dispatcher,
            )
        assert exc.value.current_status == "draft"
        assert exc.value.action == "approve"

    async def test_employee_cannot_approve(self, db, dispatcher, employee):
        peer = await make_employee(db, first_name="Peer")
        sheet = await make_timesheet(db, employee.id, status=TimesheetStatus.submitted)

        with pytest.raises(IllegalTransition) as exc:
            await ApprovalService.apply_timesheet_transition(
                db, sheet.id, "approve", _actor(peer), dispatcher=dispatcher,
            )
        assert exc.value.forbidden is True

    async def test_self_approval_forbidden_by_default(self, db, dispatcher, manager, monkeypatch):
        sheet = await make_timesheet(db, manager.id, status=TimesheetStatus.submitted)
        sheet_id = sheet.id
        reviewer = _actor(manager, UserRole.manager)

        with pytest.raises(IllegalTransition):
            await ApprovalService.apply_timesheet_transition(
                db, sheet_id, "approve", reviewer, dispatcher=dispatcher,
            )
        await db.rollback()

        refreshed = await db.get(Timesheet, sheet_id, populate_existing=True)
        assert refreshed.status is TimesheetStatus.submitted

        monkeypatch.setattr(settings, "ALLOW_SELF_APPROVAL", True)
        result = await ApprovalService.apply_timesheet_transition(
            db, sheet_id, "approve", reviewer, dispatcher=dispatcher,
        )
        assert result.status is TimesheetStatus.approved

    async def test_non_owner_cannot_submit(self, db, dispatcher, employee, manager):
        sheet = await make_timesheet(db, employee.id)

        with pytest.raises(IllegalTransition) as exc:
            await ApprovalService.apply_timesheet_transition(
                db, sheet.id, "submit", _actor(manager, UserRole.manager), dispatcher=dispatcher,
            )
        assert exc.value.status_code == 403

    async def test_stale_request_fails_after_concurrent_approval(self, db, dispatcher, employee, manager):
        """A second reviewer acting on an outdated view gets IllegalTransition."""
        other_manager = await make_employee(db, first_name="Casey")
        sheet = await make_timesheet(db, employee.id, status=TimesheetStatus.submitted)

        await ApprovalService.apply_timesheet_transition(
            db, sheet.id, "approve", _actor(manager, UserRole.manager), dispatcher=dispatcher,
        )
        with pytest.raises(IllegalTransition) as exc:
            await ApprovalService.apply_timesheet_transition(
                db, sheet.id, "reject", _actor(other_manager, UserRole.manager),
                rejection_reason="Too late", dispatcher=dispatcher,
            )
        assert exc.value.current_status == "approved"

    async def test_unknown_timesheet(self, db, dispatcher, employee):
        with pytest.raises(NotFoundException):
            await ApprovalService.apply_timesheet_transition(
                db, uuid.uuid4(), "submit", _actor(employee), dispatcher=dispatcher,
            )

    async def test_transition_is_audited(self, db, dispatcher, employee):
        sheet = await make_timesheet(db, employee.id)

        await ApprovalService.apply_timesheet_transition(
            db, sheet.id, "submit", _actor(employee), dispatcher=dispatcher,
        )

        [entry] = (await db.execute(select(AuditTrail))).scalars().all()
        assert entry.action == "timesheet.submit"
        assert entry.old_values == {"status": "draft"}
        assert entry.new_values["status"] == "submitted"

    async def test_history_lists_transitions_in_order(self, db, dispatcher, employee, manager):
        sheet = await make_timesheet(db, employee.id, status=TimesheetStatus.submitted)

        await ApprovalService.apply_timesheet_transition(
            db, sheet.id, "reject", _actor(manager, UserRole.manager),
            rejection_reason="Missing Friday", dispatcher=dispatcher,
        )
        await ApprovalService.apply_timesheet_transition(
            db, sheet.id, "submit", _actor(employee), dispatcher=dispatcher,
        )

        history = await history_for(db, EntityType.timesheet, sheet.id)
        assert [entry.action for entry in history] == ["timesheet.reject", "timesheet.submit"]
        assert history[0].new_values["rejection_reason"] == "Missing Friday"
        assert history[0].actor_id == manager.id


class TestSubmitRecipients:

    async def test_falls_back_to_default_approver(self, db, dispatcher, monkeypatch):
        admin = await make_employee(db, first_name="Avery")
        orphan = await make_employee(db, first_name="Riley")
        monkeypatch.setattr(settings, "DEFAULT_APPROVER_ID", admin.id)
        sheet = await make_timesheet(db, orphan.id)

        result = await ApprovalService.apply_timesheet_transition(
            db, sheet.id, "submit", _actor(orphan), dispatcher=dispatcher,
        )

        assert result.warnings == []
        assert len(await _notifications_for(db, admin.id)) == 1

    async def test_no_approver_warns_but_commits(self, db, dispatcher):
        orphan = await make_employee(db, first_name="Riley")
        sheet = await make_timesheet(db, orphan.id)

        result = await ApprovalService.apply_timesheet_transition(
            db, sheet.id, "submit", _actor(orphan), dispatcher=dispatcher,
        )

        assert result.status is TimesheetStatus.submitted
        assert result.committed is True
        assert [w.code for w in result.warnings] == ["no_recipient"]

    async def test_email_opt_out_keeps_in_app(self, db, dispatcher, email_transport, employee, manager):
        db.add(NotificationPreference(employee_id=manager.id, email_enabled=False))
        await db.commit()
        sheet = await make_timesheet(db, employee.id)

        result = await ApprovalService.apply_timesheet_transition(
            db, sheet.id, "submit", _actor(employee), dispatcher=dispatcher,
        )

        assert result.warnings == []
        assert email_transport.attempts == []
        assert len(await _notifications_for(db, manager.id)) == 1

    async def test_quiet_hours_hold_back_email(self, db, dispatcher, email_transport, employee, manager):
        db.add(NotificationPreference(
            employee_id=employee.id,
            quiet_hours_enabled=True,
            frequency=DigestFrequency.daily,
            quiet_hours_start="22:00",
            quiet_hours_end="08:00",
        ))
        await db.commit()
        sheet = await make_timesheet(db, employee.id, status=TimesheetStatus.submitted)
        late = datetime(2025, 11, 18, 23, 15, tzinfo=timezone.utc)

        await ApprovalService.apply_timesheet_transition(
            db, sheet.id, "approve", _actor(manager, UserRole.manager),
            dispatcher=dispatcher, now=late,
        )

        assert email_transport.attempts == []
        assert len(await _notifications_for(db, employee.id)) == 1

    async def test_dispatch_crash_is_reported_not_raised(self, db, employee, manager):
        broken = AsyncMock()
        broken.dispatch.side_effect = RuntimeError("boom")
        sheet = await make_timesheet(db, employee.id, status=TimesheetStatus.submitted)
        sheet_id = sheet.id

        result = await ApprovalService.apply_timesheet_transition(
            db, sheet_id, "approve", _actor(manager, UserRole.manager), dispatcher=broken,
        )

        assert result.committed is True
        assert [w.code for w in result.warnings] == ["dispatch_failed"]
        refreshed = await db.get(Timesheet, sheet_id, populate_existing=True)
        assert refreshed.status is TimesheetStatus.approved


async def test_stale_data_error_becomes_illegal_transition():
    session = AsyncMock()
    session.commit.side_effect = StaleDataError("version mismatch")

    with pytest.raises(IllegalTransition) as exc:
        await _commit_transition(session, TimesheetStatus.submitted, "approve")

    session.rollback.assert_awaited_once()
    assert exc.value.current_status == "submitted"


# ═════════════════════════════════════════════════════════════════════
# EXPENSE LINES
# ═════════════════════════════════════════════════════════════════════


class TestExpenseLineTransitions:

    async def test_reject_one_line_rejects_report(
        self, db, dispatcher, email_transport, employee, manager,
    ):
        report, lines = await make_report(db, employee.id, [A, S, A])

        result = await ApprovalService.apply_expense_line_transition(
            db, lines[1].id, "reject", _actor(manager, UserRole.manager),
            rejection_reason="Receipt is illegible", dispatcher=dispatcher,
        )

        assert result.line_status is ExpenseStatus.rejected
        assert result.report_status is ExpenseStatus.rejected
        assert result.warnings == []
        stored = await db.get(ExpenseReport, report.id)
        assert stored.status is ExpenseStatus.rejected

        [note] = await _notifications_for(db, employee.id)
        assert note.kind is NotificationKind.expense_rejected
        assert note.priority is NotificationPriority.high
        assert note.context["rejection_reason"] == "Receipt is illegible"
        assert email_transport.sent_to == [employee.email]

    async def test_approving_last_line_approves_report(self, db, dispatcher, employee, manager):
        report, lines = await make_report(db, employee.id, [A, S])

        result = await ApprovalService.apply_expense_line_transition(
            db, lines[1].id, "approve", _actor(manager, UserRole.manager), dispatcher=dispatcher,
        )

        assert result.line_status is ExpenseStatus.approved
        assert result.report_status is ExpenseStatus.approved
        [note] = await _notifications_for(db, employee.id)
        assert note.kind is NotificationKind.expense_approved

    async def test_partial_approval_keeps_report_submitted(self, db, dispatcher, employee, manager):
        report, lines = await make_report(db, employee.id, [S, S])

        result = await ApprovalService.apply_expense_line_transition(
            db, lines[0].id, "approve", _actor(manager, UserRole.manager), dispatcher=dispatcher,
        )

        assert result.report_status is ExpenseStatus.submitted

    async def test_reapproving_rejected_line_clears_rejection(self, db, dispatcher, employee, manager):
        report, lines = await make_report(db, employee.id, [A, R])

        result = await ApprovalService.apply_expense_line_transition(
            db, lines[1].id, "approve", _actor(manager, UserRole.manager), dispatcher=dispatcher,
        )

        assert result.report_status is ExpenseStatus.approved
        line = await db.get(ExpenseLine, lines[1].id)
        assert line.rejection_reason is None
        assert line.rejected_at is None

    async def test_reject_line_without_reason(self, db, dispatcher, employee, manager):
        report, lines = await make_report(db, employee.id, [S])

        with pytest.raises(ValidationException):
            await ApprovalService.apply_expense_line_transition(
                db, lines[0].id, "reject", _actor(manager, UserRole.manager), dispatcher=dispatcher,
            )

    async def test_owner_cannot_review_own_line(self, db, dispatcher, manager):
        report, lines = await make_report(db, manager.id, [S])

        with pytest.raises(IllegalTransition) as exc:
            await ApprovalService.apply_expense_line_transition(
                db, lines[0].id, "approve", _actor(manager, UserRole.manager), dispatcher=dispatcher,
            )
        assert exc.value.forbidden is True

    async def test_reconciliation_failure_is_a_warning(
        self, db, dispatcher, employee, manager, monkeypatch,
    ):
        report, lines = await make_report(db, employee.id, [S, S])

        async def _explode(*args, **kwargs):
            raise RuntimeError("lock timeout")

        monkeypatch.setattr(ApprovalService, "reconcile_report", staticmethod(_explode))

        result = await ApprovalService.apply_expense_line_transition(
            db, lines[0].id, "approve", _actor(manager, UserRole.manager), dispatcher=dispatcher,
        )

        assert result.committed is True
        assert result.line_status is ExpenseStatus.approved
        assert result.report_status is ExpenseStatus.submitted
        assert "reconciliation_failed" in [w.code for w in result.warnings]
        line = await db.get(ExpenseLine, lines[0].id)
        assert line.status is ExpenseStatus.approved

    async def test_unknown_line(self, db, dispatcher, manager):
        with pytest.raises(NotFoundException):
            await ApprovalService.apply_expense_line_transition(
                db, uuid.uuid4(), "approve", _actor(manager, UserRole.manager), dispatcher=dispatcher,
            )


# ═════════════════════════════════════════════════════════════════════
# EXPENSE REPORTS
# ═════════════════════════════════════════════════════════════════════


class TestSubmitExpenseReport:

    async def test_submit_moves_draft_lines_and_notifies_manager(
        self, db, dispatcher, email_transport, employee, manager,
    ):
        report, lines = await make_report(db, employee.id, [D, D])

        result = await ApprovalService.submit_expense_report(
            db, report.id, _actor(employee), dispatcher=dispatcher,
        )

        assert result.report_status is ExpenseStatus.submitted
        assert result.submitted_lines == 2
        [note] = await _notifications_for(db, manager.id)
        assert note.kind is NotificationKind.expense_submitted
        assert note.priority is NotificationPriority.high
        assert "$251.00" in note.message
        assert email_transport.sent_to == [manager.email]

    async def test_resubmit_only_touches_rejected_lines(self, db, dispatcher, employee):
        report, lines = await make_report(db, employee.id, [A, R])

        result = await ApprovalService.submit_expense_report(
            db, report.id, _actor(employee), dispatcher=dispatcher,
        )

        assert result.submitted_lines == 1
        assert result.report_status is ExpenseStatus.submitted
        first = await db.get(ExpenseLine, lines[0].id)
        second = await db.get(ExpenseLine, lines[1].id)
        assert first.status is ExpenseStatus.approved
        assert second.status is ExpenseStatus.submitted
        assert second.rejection_reason is None

    async def test_empty_report_cannot_be_submitted(self, db, dispatcher, employee):
        report, _ = await make_report(db, employee.id, [])

        with pytest.raises(ValidationException):
            await ApprovalService.submit_expense_report(
                db, report.id, _actor(employee), dispatcher=dispatcher,
            )

    async def test_fully_approved_report_cannot_be_resubmitted(self, db, dispatcher, employee):
        report, _ = await make_report(db, employee.id, [A, A])

        with pytest.raises(IllegalTransition):
            await ApprovalService.submit_expense_report(
                db, report.id, _actor(employee), dispatcher=dispatcher,
            )

    async def test_only_owner_submits(self, db, dispatcher, employee, manager):
        report, _ = await make_report(db, employee.id, [D])

        with pytest.raises(IllegalTransition) as exc:
            await ApprovalService.submit_expense_report(
                db, report.id, _actor(manager, UserRole.manager), dispatcher=dispatcher,
            )
        assert exc.value.forbidden is True

    async def test_already_submitted_is_a_quiet_no_op(self, db, dispatcher, email_transport, employee):
        report, _ = await make_report(db, employee.id, [S, S])

        result = await ApprovalService.submit_expense_report(
            db, report.id, _actor(employee), dispatcher=dispatcher,
        )

        assert result.submitted_lines == 0
        assert result.report_status is ExpenseStatus.submitted
        assert email_transport.attempts == []


async def test_reconcile_report_repairs_drift(db, employee):
    report, _ = await make_report(db, employee.id, [A, R])
    report.status = ExpenseStatus.approved
    await db.commit()

    status = await ApprovalService.reconcile_report(db, report.id)

    assert status is ExpenseStatus.rejected
    stored = await db.get(ExpenseReport, report.id)
    assert stored.status is ExpenseStatus.rejected


def test_service_module_exposes_logger():
    assert approval_service.logger.name == "workforce_portal.approvals.service"
