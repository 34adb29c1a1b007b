"""Common module — shared utilities for the workforce portal."""

from workforce_portal.common.audit import AuditTrail, create_audit_entry, history_for
from workforce_portal.common.constants import (
    APPROVER_ROLES,
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    DigestFrequency,
    EntityType,
    ExpenseCategory,
    ExpenseLineAction,
    ExpenseStatus,
    NotificationCategory,
    NotificationKind,
    NotificationPriority,
    TimesheetAction,
    TimesheetStatus,
    UserRole,
)
from workforce_portal.common.exceptions import (
    AppException,
    ForbiddenException,
    IllegalTransition,
    NotFoundException,
    ValidationException,
    register_exception_handlers,
)
from workforce_portal.common.pagination import (
    PaginationMeta,
    PaginationParams,
    build_meta,
    paginate,
)

__all__ = [
    # Audit
    "AuditTrail",
    "create_audit_entry",
    "history_for",
    # Constants / Enums
    "DigestFrequency",
    "EntityType",
    "ExpenseCategory",
    "ExpenseLineAction",
    "ExpenseStatus",
    "NotificationCategory",
    "NotificationKind",
    "NotificationPriority",
    "TimesheetAction",
    "TimesheetStatus",
    "UserRole",
    "APPROVER_ROLES",
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    # Exceptions
    "AppException",
    "ForbiddenException",
    "IllegalTransition",
    "NotFoundException",
    "ValidationException",
    "register_exception_handlers",
    # Pagination
    "PaginationMeta",
    "PaginationParams",
    "build_meta",
    "paginate",
]
