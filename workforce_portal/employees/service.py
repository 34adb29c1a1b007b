"""Employee lookups used by the approval engine."""

from __future__ import annotations

import uuid
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from workforce_portal.common.exceptions import NotFoundException
from workforce_portal.employees.models import Employee


class EmployeeService:
    """Read-only directory operations."""

    @staticmethod
    async def get_employee(
        db: AsyncSession,
        employee_id: uuid.UUID,
    ) -> Employee:
        result = await db.execute(select(Employee).where(Employee.id == employee_id))
        employee = result.scalar_one_or_none()
        if employee is None:
            raise NotFoundException("Employee", str(employee_id))
        return employee

    @staticmethod
    async def get_many(
        db: AsyncSession,
        employee_ids: Sequence[uuid.UUID],
    ) -> dict[uuid.UUID, Employee]:
        """Return employees keyed by id; unknown ids are simply absent."""
        if not employee_ids:
            return {}
        result = await db.execute(
            select(Employee).where(Employee.id.in_(set(employee_ids)))
        )
        return {e.id: e for e in result.scalars().all()}

    @staticmethod
    async def get_direct_report_ids(
        db: AsyncSession,
        manager_id: uuid.UUID,
    ) -> list[uuid.UUID]:
        result = await db.execute(
            select(Employee.id).where(
                Employee.manager_id == manager_id,
                Employee.is_active.is_(True),
            )
        )
        return list(result.scalars().all())

    @staticmethod
    def approver_for(
        owner: Employee,
        default_approver_id: Optional[uuid.UUID],
    ) -> Optional[uuid.UUID]:
        """Owner's manager, else the configured default approver."""
        return owner.manager_id or default_approver_id
