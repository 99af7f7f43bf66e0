"""Owner-scoped filtering, pagination and export queries over leads."""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, List, Optional

from pydantic import BaseModel, Field
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from buyer_leads.core.config import settings
from buyer_leads.core.exceptions import ValidationError
from buyer_leads.core.logging import get_structlog_logger
from buyer_leads.models.enums import City, PropertyType, Status
from buyer_leads.models.lead import Lead
from buyer_leads.services.auth import Identity
from buyer_leads.services.enum_mapping import TIMELINE_FIELD, to_storage_enum

logger = get_structlog_logger(__name__)

# Columns the export may be sorted by
SORTABLE_FIELDS = {
    "updated_at": Lead.updated_at,
    "updatedAt": Lead.updated_at,
    "created_at": Lead.created_at,
    "createdAt": Lead.created_at,
    "full_name": Lead.full_name,
    "fullName": Lead.full_name,
    "city": Lead.city,
    "status": Lead.status,
    "budget_min": Lead.budget_min,
    "budgetMin": Lead.budget_min,
    "budget_max": Lead.budget_max,
    "budgetMax": Lead.budget_max,
}


class LeadFilterParams(BaseModel):
    city: Optional[City] = None
    property_type: Optional[PropertyType] = None
    status: Optional[Status] = None
    timeline: Optional[str] = None
    search: Optional[str] = Field(default=None, max_length=100)
    page: int = Field(default=1, ge=1)


@dataclass
class LeadPage:
    rows: List[Lead]
    total: int
    page: int
    page_size: int
    total_pages: int


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def build_lead_filters(params: LeadFilterParams, identity: Identity) -> List[Any]:
    """WHERE clauses for ``params`` as seen by ``identity``.

    Non-admins only ever see their own leads, whatever else is asked for.
    """
    clauses: List[Any] = []

    if not identity.is_admin:
        clauses.append(Lead.owner_id == identity.id)

    if params.city is not None:
        clauses.append(Lead.city == params.city)
    if params.property_type is not None:
        clauses.append(Lead.property_type == params.property_type)
    if params.status is not None:
        clauses.append(Lead.status == params.status)
    if params.timeline:
        clauses.append(Lead.timeline == to_storage_enum(TIMELINE_FIELD, params.timeline))

    search = (params.search or "").strip()
    if search:
        term = f"%{_escape_like(search)}%"
        clauses.append(
            or_(
                Lead.full_name.ilike(term, escape="\\"),
                Lead.phone.ilike(term, escape="\\"),
                Lead.email.ilike(term, escape="\\"),
            )
        )

    return clauses


async def list_leads(
    session: AsyncSession,
    params: LeadFilterParams,
    identity: Identity,
    page_size: Optional[int] = None,
) -> LeadPage:
    page_size = page_size or settings.page_size
    clauses = build_lead_filters(params, identity)

    total_stmt = select(func.count()).select_from(Lead).where(*clauses)
    total = (await session.execute(total_stmt)).scalar_one()

    stmt = (
        select(Lead)
        .where(*clauses)
        .order_by(Lead.updated_at.desc(), Lead.id)
        .offset((params.page - 1) * page_size)
        .limit(page_size)
    )
    rows = list((await session.execute(stmt)).scalars().all())

    logger.info(
        "leads.list",
        user_id=str(identity.id),
        role=identity.role.value,
        total=total,
        page=params.page,
    )

    return LeadPage(
        rows=rows,
        total=total,
        page=params.page,
        page_size=page_size,
        total_pages=math.ceil(total / page_size),
    )


async def export_leads(
    session: AsyncSession,
    params: LeadFilterParams,
    identity: Identity,
    sort: str = "updated_at",
    direction: str = "desc",
) -> List[Lead]:
    """Every lead matching ``params``, unpaginated, in the requested order."""
    column = SORTABLE_FIELDS.get(sort)
    if column is None:
        raise ValidationError(
            message="Invalid sort field",
            errors=[{"path": "sort", "message": f"Cannot sort by {sort!r}"}],
        )
    if direction not in ("asc", "desc"):
        raise ValidationError(
            message="Invalid sort direction",
            errors=[{"path": "direction", "message": "Direction must be 'asc' or 'desc'"}],
        )

    ordering = column.asc() if direction == "asc" else column.desc()
    stmt = select(Lead).where(*build_lead_filters(params, identity)).order_by(ordering, Lead.id)
    rows = list((await session.execute(stmt)).scalars().all())

    logger.info("leads.export", user_id=str(identity.id), count=len(rows), sort=sort, direction=direction)
    return rows


async def list_owned_leads(session: AsyncSession, identity: Identity) -> List[Lead]:
    """The caller's own leads, newest change first, regardless of role."""
    stmt = (
        select(Lead)
        .where(Lead.owner_id == identity.id)
        .order_by(Lead.updated_at.desc(), Lead.id)
    )
    return list((await session.execute(stmt)).scalars().all())
