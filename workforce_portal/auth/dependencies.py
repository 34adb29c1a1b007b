"""Auth dependencies — JWT validation, current actor, RBAC enforcement.

Login, session storage and token issuance belong to the identity provider;
this module only turns a Bearer token into an ``Actor``.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Callable

from fastapi import Depends, Request
from fastapi.exceptions import HTTPException
from jose import ExpiredSignatureError, JWTError, jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from workforce_portal.common.constants import APPROVER_ROLES, UserRole
from workforce_portal.common.exceptions import ForbiddenException
from workforce_portal.config import settings
from workforce_portal.database import get_db
from workforce_portal.employees.models import Employee

# Role hierarchy — each role implicitly includes lower roles
_ROLE_HIERARCHY: dict[UserRole, set[UserRole]] = {
    UserRole.admin: {UserRole.admin, UserRole.manager, UserRole.employee},
    UserRole.manager: {UserRole.manager, UserRole.employee},
    UserRole.employee: {UserRole.employee},
}


@dataclass(frozen=True)
class Actor:
    """The authenticated caller, passed explicitly into the approval engine."""

    id: uuid.UUID
    role: UserRole

    @property
    def is_approver(self) -> bool:
        return bool(_ROLE_HIERARCHY.get(self.role, {self.role}) & APPROVER_ROLES)


def _extract_bearer(request: Request) -> str:
    """Extract Bearer token from Authorization header."""
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing or invalid Authorization header.")
    return auth_header[7:]


# ── Core dependency ─────────────────────────────────────────────────

async def get_current_actor(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> Actor:
    """Validate JWT, confirm the employee is active, return the Actor."""
    token = _extract_bearer(request)

    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
        )
    except ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token has expired.")
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token.")

    if payload.get("type") != "access":
        raise HTTPException(status_code=401, detail="Invalid token type.")

    try:
        employee_id = uuid.UUID(payload["sub"])
    except (KeyError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid token subject.")

    result = await db.execute(
        select(Employee.id).where(Employee.id == employee_id, Employee.is_active.is_(True))
    )
    if result.scalar_one_or_none() is None:
        raise HTTPException(status_code=401, detail="User account is inactive or not found.")

    role_str = payload.get("role", UserRole.employee.value)
    try:
        role = UserRole(role_str)
    except ValueError:
        role = UserRole.employee

    return Actor(id=employee_id, role=role)


# ── Role-based dependency ───────────────────────────────────────────

def require_role(*allowed_roles: UserRole) -> Callable:
    """Return a FastAPI dependency that enforces role membership.

    Respects hierarchy — e.g. admin can access manager endpoints.
    """

    async def _check(actor: Actor = Depends(get_current_actor)) -> Actor:
        effective_roles = _ROLE_HIERARCHY.get(actor.role, {actor.role})
        if not effective_roles.intersection(set(allowed_roles)):
            raise ForbiddenException(
                detail=f"Role '{actor.role.value}' is not permitted. Required: {[r.value for r in allowed_roles]}.",
            )
        return actor

    return _check
