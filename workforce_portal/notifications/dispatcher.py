"""Notification dispatcher — in-app record first, then best-effort email.

Each intent is handled on its own: the in-app notification is committed
before any email is attempted, and a failure for one recipient never
blocks the next. Delivery problems come back as warnings; nothing here
raises into the caller's business transition.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Optional, Sequence

from fastapi.encoders import jsonable_encoder
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from workforce_portal.common.constants import EntityType
from workforce_portal.config import Settings, settings as default_settings
from workforce_portal.employees.service import EmployeeService
from workforce_portal.notifications.email import (
    EmailMessage,
    EmailResult,
    EmailTransport,
    SmtpEmailTransport,
)
from workforce_portal.notifications.models import Notification
from workforce_portal.notifications.policy import NotificationIntent
from workforce_portal.notifications.schemas import DeliveryWarning, TransitionWarning
from workforce_portal.notifications.templates import render

logger = logging.getLogger(__name__)


@dataclass
class DispatchOutcome:
    notification_ids: list[uuid.UUID] = field(default_factory=list)
    emails_sent: int = 0
    warnings: list[TransitionWarning] = field(default_factory=list)


def _action_url(app_url: str, intent: NotificationIntent) -> str:
    if intent.entity_type is EntityType.timesheet:
        return f"{app_url}/timesheets/{intent.entity_id}"
    report_id = intent.context.get("report_id", intent.entity_id)
    return f"{app_url}/expenses/reports/{report_id}"


class NotificationDispatcher:
    """Turns planned intents into Notification rows and email sends."""

    def __init__(
        self,
        transport: Optional[EmailTransport] = None,
        config: Optional[Settings] = None,
    ) -> None:
        self.config = config or default_settings
        self.transport = transport or SmtpEmailTransport(self.config)

    async def dispatch(
        self,
        db: AsyncSession,
        intents: Sequence[NotificationIntent],
    ) -> DispatchOutcome:
        outcome = DispatchOutcome()
        if not intents:
            return outcome

        # Plain values only: a rollback below expires loaded instances
        recipients = await EmployeeService.get_many(db, [i.recipient_id for i in intents])
        addresses = {
            emp_id: (emp.email, emp.full_name) for emp_id, emp in recipients.items()
        }

        for intent in intents:
            await self._dispatch_one(db, intent, addresses.get(intent.recipient_id), outcome)
        return outcome

    async def _dispatch_one(
        self,
        db: AsyncSession,
        intent: NotificationIntent,
        address: Optional[tuple[Optional[str], str]],
        outcome: DispatchOutcome,
    ) -> None:
        action_url = _action_url(self.config.APP_URL, intent)
        rendered = render(
            intent.kind,
            intent.priority,
            intent.context,
            company=self.config.FROM_NAME,
            action_url=action_url,
        )

        # 1. Durable in-app record
        notification = Notification(
            recipient_id=intent.recipient_id,
            kind=intent.kind,
            priority=intent.priority,
            title=rendered.title,
            message=rendered.message,
            action_url=action_url,
            entity_type=intent.entity_type.value,
            entity_id=intent.entity_id,
            context=jsonable_encoder(intent.context),
        )
        try:
            db.add(notification)
            await db.commit()
        except SQLAlchemyError as exc:
            await db.rollback()
            logger.error(
                "Could not record %s notification for %s: %s",
                intent.kind.value, intent.recipient_id, exc,
            )
            outcome.warnings.append(TransitionWarning(
                code="dispatch_failed",
                detail=f"In-app notification '{intent.kind.value}' could not be recorded.",
                recipient_id=intent.recipient_id,
            ))
            return
        notification_id = notification.id
        outcome.notification_ids.append(notification_id)

        # 2. Best-effort email
        if not intent.send_email:
            logger.debug(
                "Email for %s to %s suppressed (%s)",
                intent.kind.value, intent.recipient_id, intent.suppressed_reason,
            )
            return

        to_email, to_name = address or (None, None)
        if not to_email:
            logger.warning("No email address for recipient %s", intent.recipient_id)
            outcome.warnings.append(DeliveryWarning(
                detail="Recipient has no email address on file.",
                recipient_id=intent.recipient_id,
            ))
            return

        message = EmailMessage(
            to_email=to_email,
            to_name=to_name,
            subject=rendered.subject,
            html_body=rendered.html_body,
            text_body=rendered.message,
        )
        try:
            result = await self.transport.send(message)
        except Exception as exc:  # transport faults must not undo the transition
            logger.warning("Email transport raised for %s: %s", to_email, exc, exc_info=True)
            result = EmailResult(success=False, error=str(exc))

        if not result.success:
            logger.warning(
                "Email '%s' to %s not delivered: %s",
                rendered.subject, to_email, result.error,
            )
            outcome.warnings.append(DeliveryWarning(
                detail=f"Email delivery failed: {result.error or 'unknown error'}",
                recipient_id=intent.recipient_id,
            ))
            return

        outcome.emails_sent += 1
        try:
            notification.email_sent = True
            await db.commit()
        except SQLAlchemyError as exc:
            await db.rollback()
            logger.error("Could not flag notification %s as emailed: %s", notification_id, exc)
            outcome.warnings.append(TransitionWarning(
                code="dispatch_failed",
                detail="Email was sent but the notification could not be updated.",
                recipient_id=intent.recipient_id,
            ))


# ── FastAPI dependency ──────────────────────────────────────────────

def get_dispatcher() -> NotificationDispatcher:
    """Default dispatcher (SMTP transport from settings); overridable in tests."""
    return NotificationDispatcher()
