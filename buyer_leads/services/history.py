"""Append-only change history for leads."""
from __future__ import annotations

import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from buyer_leads.core.config import settings
from buyer_leads.core.exceptions import ValidationError
from buyer_leads.core.logging import get_structlog_logger
from buyer_leads.models.lead import Lead, LeadHistory
from buyer_leads.services.auth import Identity

logger = get_structlog_logger(__name__)

_ORDERS = ("asc", "desc")


def actor_label(identity: Identity) -> str:
    return identity.email or str(identity.id)


def snapshot(lead: Lead) -> Dict[str, Any]:
    """Full JSON-safe image of a lead as stored."""
    return lead.to_dict()


async def record_change(
    session: AsyncSession,
    lead_id: uuid.UUID,
    changed_by: str,
    before: Optional[Dict[str, Any]],
    after: Optional[Dict[str, Any]],
) -> LeadHistory:
    """Append one history row inside the caller's transaction.

    ``before=None`` records a creation as ``{"created": after}``; otherwise
    both snapshots are stored whole, ``after=None`` marking a deletion.
    """
    if before is None:
        diff = {"created": after}
    else:
        diff = {"before": before, "after": after}

    entry = LeadHistory(lead_id=lead_id, changed_by=changed_by, diff=diff)
    session.add(entry)
    await session.flush()

    logger.debug("lead_history.recorded", lead_id=str(lead_id), changed_by=changed_by)
    return entry


def changed_fields(diff: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    """Fields whose values differ between the two snapshots of ``diff``."""
    if "created" in diff:
        before, after = {}, diff.get("created") or {}
    else:
        before, after = diff.get("before") or {}, diff.get("after") or {}

    changes = {}
    for key in list(before) + [k for k in after if k not in before]:
        old, new = before.get(key), after.get(key)
        if old != new:
            changes[key] = {"before": old, "after": new}
    return changes


async def list_history(
    session: AsyncSession,
    lead_id: uuid.UUID,
    limit: Optional[int] = None,
    order: str = "desc",
) -> List[LeadHistory]:
    limit = settings.history_default_limit if limit is None else limit
    errors = []
    if limit <= 0:
        errors.append({"path": "limit", "message": "Invalid limit"})
    if order not in _ORDERS:
        errors.append({"path": "sort", "message": "Invalid sort"})
    if errors:
        raise ValidationError(message="Invalid history query", errors=errors)

    ordering = LeadHistory.changed_at.asc() if order == "asc" else LeadHistory.changed_at.desc()
    stmt = (
        select(LeadHistory)
        .where(LeadHistory.lead_id == lead_id)
        .order_by(ordering, LeadHistory.id.asc() if order == "asc" else LeadHistory.id.desc())
        .limit(limit)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())
