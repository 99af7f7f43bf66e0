"""Create, update and delete leads together with their history rows."""
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from buyer_leads.core.config import settings
from buyer_leads.core.exceptions import ConflictError, ForbiddenError, NotFoundError
from buyer_leads.core.logging import get_structlog_logger
from buyer_leads.db.base import as_utc, utcnow
from buyer_leads.db.session import transaction
from buyer_leads.models.lead import Lead
from buyer_leads.schemas.lead import NormalizedLead
from buyer_leads.services.auth import Identity
from buyer_leads.services.enum_mapping import (
    BHK_FIELD,
    SOURCE_FIELD,
    TIMELINE_FIELD,
    to_storage_enum,
)
from buyer_leads.services.history import actor_label, record_change, snapshot
from buyer_leads.services.validation import normalize_tags

logger = get_structlog_logger(__name__)


def to_storage_values(lead: NormalizedLead) -> Dict[str, Any]:
    """Column values for ``lead`` with human labels mapped to storage codes."""
    return {
        "full_name": lead.full_name,
        "email": lead.email,
        "phone": lead.phone,
        "city": lead.city,
        "property_type": lead.property_type,
        "bhk": to_storage_enum(BHK_FIELD, lead.bhk),
        "purpose": lead.purpose,
        "budget_min": lead.budget_min,
        "budget_max": lead.budget_max,
        "timeline": to_storage_enum(TIMELINE_FIELD, lead.timeline),
        "source": to_storage_enum(SOURCE_FIELD, lead.source),
        "status": lead.status,
        "notes": lead.notes,
        "tags": [str(tag) for tag in normalize_tags(list(lead.tags))],
    }


def can_modify(lead: Lead, identity: Identity) -> bool:
    return identity.is_admin or lead.owner_id == identity.id


async def _load_for(session: AsyncSession, lead_id: uuid.UUID, identity: Identity) -> Lead:
    lead = await session.get(Lead, lead_id, populate_existing=True)
    if lead is None:
        raise NotFoundError(message="Buyer not found", details={"lead_id": str(lead_id)})

    if not can_modify(lead, identity):
        logger.warning(
            "lead.forbidden",
            lead_id=str(lead_id),
            user_id=str(identity.id),
            owner_id=str(lead.owner_id),
        )
        raise ForbiddenError(details={"lead_id": str(lead_id)})

    return lead


def _check_version(lead: Lead, expected_updated_at: Optional[datetime]) -> None:
    if expected_updated_at is None:
        return
    if as_utc(expected_updated_at) != as_utc(lead.updated_at):
        raise ConflictError(
            details={
                "lead_id": str(lead.id),
                "expected_updated_at": as_utc(expected_updated_at).isoformat(),
                "updated_at": as_utc(lead.updated_at).isoformat(),
            }
        )


async def insert_lead(session: AsyncSession, lead: NormalizedLead, owner: Identity) -> Lead:
    """Add a lead and its creation history row to the open transaction."""
    row = Lead(**to_storage_values(lead), owner_id=owner.id)
    session.add(row)
    await session.flush()

    await record_change(session, row.id, actor_label(owner), None, snapshot(row))
    return row


async def create_lead(session: AsyncSession, lead: NormalizedLead, owner: Identity) -> Lead:
    async with transaction(session):
        row = await insert_lead(session, lead, owner)

    logger.info("lead.created", lead_id=str(row.id), owner_id=str(owner.id))
    return row


async def get_lead(session: AsyncSession, lead_id: uuid.UUID, identity: Identity) -> Lead:
    return await _load_for(session, lead_id, identity)


async def update_lead(
    session: AsyncSession,
    lead_id: uuid.UUID,
    lead: NormalizedLead,
    actor: Identity,
    expected_updated_at: Optional[datetime] = None,
    owner_id: Optional[uuid.UUID] = None,
) -> Lead:
    """Replace every field of a lead (tags included).

    ``expected_updated_at`` enables the optimistic-concurrency check;
    ``owner_id`` reassigns the lead and is reserved for admins.
    """
    async with transaction(session):
        existing = await _load_for(session, lead_id, actor)
        _check_version(existing, expected_updated_at)

        if owner_id is not None and owner_id != existing.owner_id and not actor.is_admin:
            raise ForbiddenError(
                message="Only an admin can change the owner of a lead",
                details={"lead_id": str(lead_id)},
            )

        before = snapshot(existing)
        existing.update(**to_storage_values(lead))
        if owner_id is not None:
            existing.owner_id = owner_id
        existing.updated_at = utcnow()
        await session.flush()

        await record_change(session, existing.id, actor_label(actor), before, snapshot(existing))

    logger.info("lead.updated", lead_id=str(lead_id), user_id=str(actor.id))
    return existing


async def delete_lead(
    session: AsyncSession,
    lead_id: uuid.UUID,
    actor: Identity,
    expected_updated_at: Optional[datetime] = None,
) -> None:
    async with transaction(session):
        existing = await _load_for(session, lead_id, actor)
        _check_version(existing, expected_updated_at)

        before = snapshot(existing)
        await session.delete(existing)
        await session.flush()

        if settings.history_record_deletes:
            await record_change(session, lead_id, actor_label(actor), before, None)

    logger.info("lead.deleted", lead_id=str(lead_id), user_id=str(actor.id))
