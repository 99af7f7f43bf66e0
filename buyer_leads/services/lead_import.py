"""All-or-nothing bulk import of lead rows."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from buyer_leads.core.config import settings
from buyer_leads.core.exceptions import BatchTooLargeError, ValidationError
from buyer_leads.core.logging import get_structlog_logger
from buyer_leads.db.session import transaction
from buyer_leads.models.enums import RESIDENTIAL_TYPES, PropertyType
from buyer_leads.models.lead import Lead
from buyer_leads.schemas.lead import NormalizedLead
from buyer_leads.services.auth import Identity
from buyer_leads.services.enum_mapping import (
    BHK_FIELD,
    SOURCE_FIELD,
    TIMELINE_FIELD,
    canonical_label,
)
from buyer_leads.services.lead_service import insert_lead
from buyer_leads.services.validation import validate_lead

logger = get_structlog_logger(__name__)

# Row 1 of an import file is the header
FIRST_DATA_ROW = 2

RawImportRow = Mapping[str, Any]

_RESIDENTIAL_VALUES = frozenset(member.value for member in RESIDENTIAL_TYPES)


@dataclass
class ImportResult:
    imported_count: int
    leads: List[Lead] = field(default_factory=list)


def _is_residential(property_type: Any) -> bool:
    if isinstance(property_type, PropertyType):
        return property_type in RESIDENTIAL_TYPES
    return isinstance(property_type, str) and property_type.strip() in _RESIDENTIAL_VALUES


def _split_tags(tags: Any) -> Any:
    if isinstance(tags, str):
        return [tag.strip() for tag in tags.split(",") if tag.strip()]
    return tags


def coerce_import_row(raw: RawImportRow) -> Dict[str, Any]:
    """Prepare one raw row for validation.

    BHK, timeline and source accept either label or storage code; a BHK on
    a non-residential row is dropped; comma-separated tags become a list.
    """
    if not isinstance(raw, Mapping):
        raise TypeError(f"import row must be a mapping, got {type(raw).__name__}")

    row = dict(raw)

    bhk = canonical_label(BHK_FIELD, row.get("bhk"))
    property_type = row.get("propertyType", row.get("property_type"))
    row["bhk"] = bhk if _is_residential(property_type) else None

    for field_name in (TIMELINE_FIELD, SOURCE_FIELD):
        if field_name in row:
            row[field_name] = canonical_label(field_name, row[field_name])

    if "tags" in row:
        row["tags"] = _split_tags(row["tags"])

    return row


def validate_batch(rows: Sequence[RawImportRow]) -> List[NormalizedLead]:
    """Validate every row; raise ``ValidationError`` listing each bad row."""
    valid: List[NormalizedLead] = []
    row_errors: List[Dict[str, Any]] = []

    for index, raw in enumerate(rows):
        row_number = index + FIRST_DATA_ROW
        if not isinstance(raw, Mapping):
            row_errors.append({
                "row": row_number,
                "errors": [{"path": "", "message": "Expected an object"}],
            })
            continue

        result = validate_lead(coerce_import_row(raw))
        if result.ok:
            valid.append(result.lead)
        else:
            row_errors.append({
                "row": row_number,
                "errors": [error.to_dict() for error in result.errors],
            })

    if row_errors:
        raise ValidationError(
            message="Validation errors",
            errors=row_errors,
        )
    return valid


async def import_leads(
    session: AsyncSession,
    rows: Sequence[RawImportRow],
    owner: Identity,
    max_rows: Optional[int] = None,
) -> ImportResult:
    """Validate and persist a batch atomically.

    Nothing is written unless every row is valid, and a storage failure
    part-way rolls back the rows already inserted.
    """
    max_rows = settings.import_max_rows if max_rows is None else max_rows
    if len(rows) > max_rows:
        logger.warning("lead_import.too_large", row_count=len(rows), max_rows=max_rows)
        raise BatchTooLargeError(len(rows), max_rows)

    try:
        leads = validate_batch(rows)
    except ValidationError as e:
        logger.warning(
            "lead_import.rejected",
            row_count=len(rows),
            invalid_rows=[entry["row"] for entry in e.errors],
            owner_id=str(owner.id),
        )
        raise

    created: List[Lead] = []
    async with transaction(session):
        for lead in leads:
            created.append(await insert_lead(session, lead, owner))

    logger.info("lead_import.completed", imported=len(created), owner_id=str(owner.id))
    return ImportResult(imported_count=len(created), leads=created)
