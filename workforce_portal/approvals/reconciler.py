"""Report reconciler — the single place that collapses line statuses into a report status."""

from __future__ import annotations

from typing import Iterable

from workforce_portal.common.constants import ExpenseStatus


def derive_report_status(line_statuses: Iterable[ExpenseStatus]) -> ExpenseStatus:
    """Compute an expense report's status from its lines.

    Precedence, first match wins:
      1. every line draft    → draft
      2. every line approved → approved
      3. any line rejected   → rejected (one bad line blocks the report)
      4. any line submitted  → submitted
      5. otherwise           → draft

    Depends only on the multiset of statuses, never on ordering. A report
    with no lines is a draft.
    """
    statuses = {ExpenseStatus(s) for s in line_statuses}

    if not statuses or statuses == {ExpenseStatus.draft}:
        return ExpenseStatus.draft
    if statuses == {ExpenseStatus.approved}:
        return ExpenseStatus.approved
    if ExpenseStatus.rejected in statuses:
        return ExpenseStatus.rejected
    if ExpenseStatus.submitted in statuses:
        return ExpenseStatus.submitted
    return ExpenseStatus.draft
