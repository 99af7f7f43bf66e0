"""Render leads as CSV in the fixed import/export column order."""
from __future__ import annotations

import csv
import io
from typing import Any, Dict, Iterable

from buyer_leads.models.lead import Lead
from buyer_leads.services.enum_mapping import (
    BHK_FIELD,
    SOURCE_FIELD,
    TIMELINE_FIELD,
    from_storage_enum,
)
from buyer_leads.utils.csv_parser import CSV_FIELDS


def _cell(value: Any) -> Any:
    if value is None:
        return ""
    return getattr(value, "value", value)


def lead_to_row(lead: Lead) -> Dict[str, Any]:
    return {
        "fullName": lead.full_name,
        "email": _cell(lead.email),
        "phone": lead.phone,
        "city": _cell(lead.city),
        "propertyType": _cell(lead.property_type),
        "bhk": _cell(from_storage_enum(BHK_FIELD, lead.bhk)),
        "purpose": _cell(lead.purpose),
        "budgetMin": _cell(lead.budget_min),
        "budgetMax": _cell(lead.budget_max),
        "timeline": from_storage_enum(TIMELINE_FIELD, lead.timeline),
        "source": from_storage_enum(SOURCE_FIELD, lead.source),
        "notes": _cell(lead.notes),
        "tags": ",".join(lead.tags or []),
        "status": _cell(lead.status),
    }


def leads_to_csv(leads: Iterable[Lead]) -> str:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=CSV_FIELDS, lineterminator="\n")
    writer.writeheader()
    for lead in leads:
        writer.writerow(lead_to_row(lead))
    return buffer.getvalue()
