# buyer_leads/models/lead.py
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    Enum,
    Index,
    BigInteger,
    Integer,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from buyer_leads.db.base import Base, TimestampMixin, UUIDMixin, utcnow
from buyer_leads.models.enums import (
    BHK,
    City,
    PropertyType,
    Purpose,
    Source,
    Status,
    Timeline,
)


def _enum_column(enum_cls, name: str):
    # Persist member values ("WalkIn"), not member names ("WALK_IN").
    return Enum(
        enum_cls,
        name=name,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )


class Lead(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "leads"

    full_name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(320), nullable=True)
    phone: Mapped[str] = mapped_column(String(15), nullable=False)

    city: Mapped[City] = mapped_column(_enum_column(City, "lead_city"), nullable=False)
    property_type: Mapped[PropertyType] = mapped_column(
        _enum_column(PropertyType, "lead_property_type"), nullable=False
    )
    bhk: Mapped[Optional[BHK]] = mapped_column(_enum_column(BHK, "lead_bhk"), nullable=True)
    purpose: Mapped[Purpose] = mapped_column(_enum_column(Purpose, "lead_purpose"), nullable=False)

    budget_min: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    budget_max: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)

    timeline: Mapped[Timeline] = mapped_column(_enum_column(Timeline, "lead_timeline"), nullable=False)
    source: Mapped[Source] = mapped_column(_enum_column(Source, "lead_source"), nullable=False)
    status: Mapped[Status] = mapped_column(
        _enum_column(Status, "lead_status"), nullable=False, default=Status.NEW
    )

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    tags: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)

    owner_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False, index=True)

    __table_args__ = (
        Index("idx_leads_owner_updated", "owner_id", "updated_at"),
        Index("idx_leads_city", "city"),
        Index("idx_leads_status", "status"),
        Index("idx_leads_phone", "phone"),
        CheckConstraint("length(full_name) >= 2", name="full_name_min_length"),
        CheckConstraint(
            "budget_min IS NULL OR budget_max IS NULL OR budget_max >= budget_min",
            name="budget_order",
        ),
        CheckConstraint(
            "(property_type IN ('Apartment', 'Villa')) = (bhk IS NOT NULL)",
            name="bhk_residential_only",
        ),
        CheckConstraint("notes IS NULL OR length(notes) <= 1000", name="notes_max_length"),
    )


class LeadHistory(Base):
    """Append-only audit row, one per mutation of a lead.

    ``lead_id`` has no foreign key so the trail outlives the lead.
    """

    __tablename__ = "lead_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    lead_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False, index=True)
    changed_by: Mapped[str] = mapped_column(String(320), nullable=False)
    changed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False, index=True
    )
    diff: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)
