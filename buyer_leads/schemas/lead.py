# buyer_leads/schemas/lead.py
from __future__ import annotations

import re
import uuid
from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from pydantic_core import PydanticCustomError

from buyer_leads.models.enums import City, PropertyType, Purpose, Status
from buyer_leads.services.enum_mapping import (
    BHK_FIELD,
    SOURCE_FIELD,
    TIMELINE_FIELD,
    from_storage_enum,
    is_blank,
    labels,
)

_PHONE_PATTERN = re.compile(r"^\d{10,15}$")
_EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

NOTES_MAX_LENGTH = 1000
FULL_NAME_MAX_LENGTH = 200
EMAIL_MAX_LENGTH = 320
# Budgets are stored in a signed 64-bit column
BUDGET_MAX = 2**63 - 1


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and value.strip() == "":
        return None
    return value


def _check_label(field: str, value: str) -> str:
    allowed = labels(field)
    if value not in allowed:
        raise PydanticCustomError(
            "enum",
            "Input should be {expected}",
            {"expected": ", ".join(repr(label) for label in allowed)},
        )
    return value


class NormalizedLead(BaseModel):
    """A lead that passed every field rule.

    Accepts the camelCase wire names (``fullName``) as well as attribute
    names. ``bhk``, ``timeline`` and ``source`` hold human labels; mapping to
    storage codes happens when the lead is persisted.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        extra="ignore",
    )

    full_name: str
    email: Optional[str] = None
    phone: str
    city: City
    property_type: PropertyType
    bhk: Optional[str] = None
    purpose: Purpose
    budget_min: Optional[int] = None
    budget_max: Optional[int] = None
    timeline: str
    source: str
    status: Status = Status.NEW
    notes: Optional[str] = None
    tags: List[str] = Field(default_factory=list)

    @field_validator("email", "budget_min", "budget_max", "notes", mode="before")
    @classmethod
    def empty_string_is_absent(cls, v):
        return _blank_to_none(v)

    @field_validator("bhk", mode="before")
    @classmethod
    def blank_bhk_is_absent(cls, v):
        return None if is_blank(v) else v

    @field_validator("status", mode="before")
    @classmethod
    def default_status(cls, v):
        return Status.NEW if _blank_to_none(v) is None else v

    @field_validator("tags", mode="before")
    @classmethod
    def default_tags(cls, v):
        return [] if v is None else v

    @field_validator("full_name")
    @classmethod
    def check_full_name(cls, v: str) -> str:
        if len(v) < 2:
            raise PydanticCustomError("too_short", "Full name must be at least 2 characters")
        if len(v) > FULL_NAME_MAX_LENGTH:
            raise PydanticCustomError(
                "too_long",
                "Full name must be {max} characters or less",
                {"max": FULL_NAME_MAX_LENGTH},
            )
        return v

    @field_validator("phone")
    @classmethod
    def check_phone(cls, v: str) -> str:
        if not _PHONE_PATTERN.match(v):
            raise PydanticCustomError("phone_format", "Phone must be 10 to 15 digits")
        return v

    @field_validator("email")
    @classmethod
    def check_email(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and (len(v) > EMAIL_MAX_LENGTH or not _EMAIL_PATTERN.match(v)):
            raise PydanticCustomError("email_format", "Invalid email")
        return v

    @field_validator("budget_min", "budget_max")
    @classmethod
    def check_budget(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and not 0 <= v <= BUDGET_MAX:
            raise PydanticCustomError("budget_range", "Budget must be a non-negative amount")
        return v

    @field_validator("bhk")
    @classmethod
    def check_bhk(cls, v: Optional[str]) -> Optional[str]:
        return None if v is None else _check_label(BHK_FIELD, v)

    @field_validator("timeline")
    @classmethod
    def check_timeline(cls, v: str) -> str:
        return _check_label(TIMELINE_FIELD, v)

    @field_validator("source")
    @classmethod
    def check_source(cls, v: str) -> str:
        return _check_label(SOURCE_FIELD, v)

    @field_validator("notes")
    @classmethod
    def check_notes(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and len(v) > NOTES_MAX_LENGTH:
            raise PydanticCustomError(
                "too_long", "Notes must be {max} characters or less", {"max": NOTES_MAX_LENGTH}
            )
        return v

    @field_validator("tags")
    @classmethod
    def distinct_tags(cls, v: List[str]) -> List[str]:
        seen = []
        for tag in v:
            if tag and tag not in seen:
                seen.append(tag)
        return seen


class LeadResponse(BaseModel):
    """Persisted lead, rendered with human labels and camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: uuid.UUID
    full_name: str
    email: Optional[str] = None
    phone: str
    city: City
    property_type: PropertyType
    bhk: Optional[str] = None
    purpose: Purpose
    budget_min: Optional[int] = None
    budget_max: Optional[int] = None
    timeline: str
    source: str
    status: Status
    notes: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    owner_id: uuid.UUID
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_lead(cls, lead) -> "LeadResponse":
        return cls(
            id=lead.id,
            full_name=lead.full_name,
            email=lead.email,
            phone=lead.phone,
            city=lead.city,
            property_type=lead.property_type,
            bhk=from_storage_enum(BHK_FIELD, lead.bhk),
            purpose=lead.purpose,
            budget_min=lead.budget_min,
            budget_max=lead.budget_max,
            timeline=from_storage_enum(TIMELINE_FIELD, lead.timeline),
            source=from_storage_enum(SOURCE_FIELD, lead.source),
            status=lead.status,
            notes=lead.notes,
            tags=list(lead.tags or []),
            owner_id=lead.owner_id,
            created_at=lead.created_at,
            updated_at=lead.updated_at,
        )


class LeadPageResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    buyers: List[LeadResponse]
    total: int
    page: int
    page_size: int
    total_pages: int


class LeadHistoryResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: int
    lead_id: uuid.UUID
    changed_by: str
    changed_at: datetime
    diff: dict
    changes: dict = Field(default_factory=dict)


class ImportResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool = True
    message: str
    imported_count: int
