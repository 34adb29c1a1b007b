"""Generic pagination utilities for SQLAlchemy async queries."""


import math
from typing import Any, Sequence

from fastapi import Query
from pydantic import BaseModel
from sqlalchemy import Select, func
from sqlalchemy.ext.asyncio import AsyncSession

from workforce_portal.common.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE


# ── FastAPI dependency ──────────────────────────────────────────────

class PaginationParams:
    """Inject via ``Depends(PaginationParams)`` on any list endpoint."""

    def __init__(
        self,
        page: int = Query(default=1, ge=1, description="Page number (1-indexed)"),
        page_size: int = Query(
            default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE,
            description="Items per page (max 100)",
        ),
    ) -> None:
        self.page = page
        self.page_size = page_size

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


# ── Pydantic response models ───────────────────────────────────────

class PaginationMeta(BaseModel):
    """Metadata block embedded in every paginated response."""

    page: int
    page_size: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool


def build_meta(total: int, params: PaginationParams) -> PaginationMeta:
    total_pages = math.ceil(total / params.page_size) if total else 0
    return PaginationMeta(
        page=params.page,
        page_size=params.page_size,
        total=total,
        total_pages=total_pages,
        has_next=params.page < total_pages,
        has_prev=params.page > 1,
    )


# ── SQLAlchemy helper ───────────────────────────────────────────────

async def paginate(
    session: AsyncSession,
    query: Select,
    params: PaginationParams,
) -> tuple[Sequence[Any], PaginationMeta]:
    """
    Execute *query* with LIMIT/OFFSET derived from *params* and return
    the rows together with a ``PaginationMeta`` block.
    """
    # ── total count (strip ORDER BY for efficiency) ─────────────────
    count_q = query.with_only_columns(func.count()).order_by(None)
    total: int = (await session.execute(count_q)).scalar_one()

    # ── paginated rows ──────────────────────────────────────────────
    rows = (
        await session.execute(
            query.offset(params.offset).limit(params.page_size)
        )
    ).scalars().all()

    return rows, build_meta(total, params)
