"""Notification templates — in-app title/message and email subject/HTML per kind.

Context values are HTML-escaped before they reach the email body.
"""

from __future__ import annotations

import html
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Mapping

from workforce_portal.common.constants import NotificationKind, NotificationPriority


@dataclass(frozen=True)
class RenderedNotification:
    title: str
    message: str
    subject: str
    html_body: str


_TEMPLATES: dict[NotificationKind, dict[str, str]] = {
    NotificationKind.timesheet_submitted: {
        "title": "Timesheet Submitted",
        "message": "{employee_name} submitted a timesheet for the week ending {week_ending} ({total_hours} hours) for your approval.",
        "subject": "Timesheet Submitted - Action Required",
    },
    NotificationKind.timesheet_approved: {
        "title": "Timesheet Approved",
        "message": "Your timesheet for the week ending {week_ending} has been approved.",
        "subject": "Timesheet Approved",
    },
    NotificationKind.timesheet_rejected: {
        "title": "Timesheet Rejected",
        "message": "Your timesheet for the week ending {week_ending} was rejected. Reason: {rejection_reason}",
        "subject": "Timesheet Rejected - Action Required",
    },
    NotificationKind.expense_submitted: {
        "title": "Expense Submitted",
        "message": "{employee_name} submitted the expense report \"{report_title}\" ({total_amount}) for your approval.",
        "subject": "Expense Submitted - Action Required",
    },
    NotificationKind.expense_approved: {
        "title": "Expense Approved",
        "message": "Your expense \"{description}\" ({amount}) on \"{report_title}\" has been approved.",
        "subject": "Expense Approved",
    },
    NotificationKind.expense_rejected: {
        "title": "Expense Rejected",
        "message": "Your expense \"{description}\" ({amount}) on \"{report_title}\" was rejected. Reason: {rejection_reason}",
        "subject": "Expense Rejected - Action Required",
    },
}

PRIORITY_COLORS = {
    NotificationPriority.low: "#64748b",
    NotificationPriority.medium: "#3b82f6",
    NotificationPriority.high: "#f59e0b",
    NotificationPriority.critical: "#ef4444",
}

_HTML_LAYOUT = """
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
    <div style="background: #1e293b; color: white; padding: 16px 24px; border-radius: 8px 8px 0 0;">
        <h2 style="margin: 0; font-size: 18px;">{company}</h2>
    </div>
    <div style="background: #f8fafc; padding: 24px; border: 1px solid #e2e8f0; border-top: none;">
        <div style="background: {color}; color: white; padding: 4px 12px; border-radius: 4px;
                    display: inline-block; font-size: 12px; font-weight: 600; text-transform: uppercase;">
            {priority}
        </div>
        <h3 style="margin: 16px 0 8px; color: #1e293b;">{title}</h3>
        <p style="color: #64748b; line-height: 1.6;">{message}</p>
        {link}
    </div>
    <div style="background: #f1f5f9; padding: 12px 24px; border-radius: 0 0 8px 8px;
                border: 1px solid #e2e8f0; border-top: none; text-align: center;">
        <p style="color: #94a3b8; font-size: 12px; margin: 0;">
            Manage your notification preferences in the portal settings.
        </p>
    </div>
</div>
"""


def render(
    kind: NotificationKind,
    priority: NotificationPriority,
    context: Mapping[str, Any],
    *,
    company: str,
    action_url: str = "",
) -> RenderedNotification:
    """Render one notification. Missing context keys render as empty strings."""
    template = _TEMPLATES[kind]
    values = defaultdict(str, {k: "" if v is None else str(v) for k, v in context.items()})

    title = template["title"]
    message = template["message"].format_map(values)
    link = (
        f'<p><a href="{html.escape(action_url, quote=True)}" '
        f'style="color: #2563eb;">Open in the portal</a></p>'
        if action_url else ""
    )
    html_body = _HTML_LAYOUT.format(
        company=html.escape(company),
        color=PRIORITY_COLORS[priority],
        priority=html.escape(priority.value),
        title=html.escape(title),
        message=html.escape(message),
        link=link,
    )
    return RenderedNotification(
        title=title,
        message=message,
        subject=f"{template['subject']} - {company}",
        html_body=html_body,
    )
