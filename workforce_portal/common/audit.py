"""Audit trail: one append-only row per committed create, transition or reconcile."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Optional, Union

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Mapped, mapped_column

from workforce_portal.common.constants import EntityType
from workforce_portal.database import Base


class AuditTrail(Base):
    """Who moved which entity from which status to which, and when."""

    __tablename__ = "audit_trail"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    actor_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id"), nullable=True,
    )
    # "<entity>.<action>", e.g. "timesheet.approve", "expense_report.reconcile"
    action: Mapped[str] = mapped_column(sa.String(50), nullable=False)
    entity_type: Mapped[str] = mapped_column(sa.String(50), nullable=False)
    entity_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    old_values: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONB)
    new_values: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONB)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        sa.Index("ix_audit_trail_actor_id", "actor_id"),
        sa.Index("ix_audit_trail_entity", "entity_type", "entity_id"),
        sa.Index("ix_audit_trail_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<AuditTrail {self.action} {self.entity_type}/{self.entity_id}>"


async def create_audit_entry(
    session: AsyncSession,
    *,
    action: str,
    entity_type: Union[EntityType, str],
    entity_id: uuid.UUID,
    actor_id: Optional[uuid.UUID] = None,
    old_values: Optional[dict[str, Any]] = None,
    new_values: Optional[dict[str, Any]] = None,
) -> AuditTrail:
    """Add and flush an entry; it commits (or rolls back) with the transition."""
    entry = AuditTrail(
        actor_id=actor_id,
        action=action,
        entity_type=getattr(entity_type, "value", entity_type),
        entity_id=entity_id,
        old_values=old_values,
        new_values=new_values,
    )
    session.add(entry)
    await session.flush()
    return entry


async def history_for(
    session: AsyncSession,
    entity_type: Union[EntityType, str],
    entity_id: uuid.UUID,
) -> list[AuditTrail]:
    """Entries for one entity, oldest first."""
    result = await session.execute(
        sa.select(AuditTrail)
        .where(
            AuditTrail.entity_type == getattr(entity_type, "value", entity_type),
            AuditTrail.entity_id == entity_id,
        )
        .order_by(AuditTrail.created_at)
    )
    return list(result.scalars().all())
