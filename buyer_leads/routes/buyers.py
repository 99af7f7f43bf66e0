# buyer_leads/routes/buyers.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Query, Request, status
from fastapi.responses import Response, StreamingResponse
from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel
from sqlalchemy.ext.asyncio import AsyncSession

from buyer_leads.core.exceptions import ValidationError
from buyer_leads.core.logging import get_structlog_logger
from buyer_leads.db.session import get_session
from buyer_leads.models.enums import City, PropertyType, Status
from buyer_leads.schemas.lead import (
    ImportResponse,
    LeadHistoryResponse,
    LeadPageResponse,
    LeadResponse,
)
from buyer_leads.services.auth import Identity, get_current_identity
from buyer_leads.services.history import changed_fields, list_history
from buyer_leads.services.lead_import import import_leads
from buyer_leads.services.lead_query import (
    LeadFilterParams,
    export_leads,
    list_leads,
    list_owned_leads,
)
from buyer_leads.services.lead_service import (
    create_lead,
    delete_lead,
    get_lead,
    update_lead,
)
from buyer_leads.services.rate_limit import enforce_rate_limit
from buyer_leads.services.validation import validate_lead
from buyer_leads.utils.csv_export import leads_to_csv
from buyer_leads.utils.csv_parser import parse_csv_rows

logger = get_structlog_logger(__name__)

router = APIRouter(prefix="/buyers", tags=["buyers"])
my_leads_router = APIRouter(tags=["buyers"])


class UpdateMeta(BaseModel):
    """Non-field keys an update body may carry next to the lead itself."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    updated_at: Optional[datetime] = None
    owner_id: Optional[UUID] = None


def filter_params(
    page: int = Query(1, ge=1),
    city: Optional[City] = Query(None),
    property_type: Optional[PropertyType] = Query(None, alias="propertyType"),
    status: Optional[Status] = Query(None),
    timeline: Optional[str] = Query(None),
    search: Optional[str] = Query(None, max_length=100),
    q: Optional[str] = Query(None, max_length=100),
) -> LeadFilterParams:
    return LeadFilterParams(
        page=page,
        city=city,
        property_type=property_type,
        status=status,
        timeline=timeline or None,
        search=search or q,
    )


def _parse_meta(body: Dict[str, Any]) -> UpdateMeta:
    try:
        return UpdateMeta.model_validate(body)
    except PydanticValidationError as e:
        raise ValidationError(
            message="Validation error",
            errors=[
                {"path": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
                for err in e.errors()
            ],
        ) from e


@router.get("", response_model=LeadPageResponse)
async def list_buyers(
    params: LeadFilterParams = Depends(filter_params),
    session: AsyncSession = Depends(get_session),
    identity: Identity = Depends(get_current_identity),
):
    """List leads visible to the caller, ten per page, most recently updated first."""
    page = await list_leads(session, params, identity)
    return LeadPageResponse(
        buyers=[LeadResponse.from_lead(lead) for lead in page.rows],
        total=page.total,
        page=page.page,
        page_size=page.page_size,
        total_pages=page.total_pages,
    )


@router.post("", response_model=LeadResponse, status_code=status.HTTP_201_CREATED)
async def create_buyer(
    body: Dict[str, Any] = Body(...),
    session: AsyncSession = Depends(get_session),
    identity: Identity = Depends(enforce_rate_limit),
):
    lead = validate_lead(body).raise_for_errors()
    created = await create_lead(session, lead, identity)
    return LeadResponse.from_lead(created)


@router.post("/import", response_model=ImportResponse)
async def import_buyers(
    request: Request,
    session: AsyncSession = Depends(get_session),
    identity: Identity = Depends(enforce_rate_limit),
):
    """Import a JSON array of rows, or a CSV upload in the ``file`` form field."""
    content_type = request.headers.get("content-type", "")

    if content_type.startswith("multipart/form-data"):
        form = await request.form()
        upload = form.get("file")
        if upload is None or isinstance(upload, str):
            raise ValidationError(
                message="Expected a CSV file",
                errors=[{"path": "file", "message": "CSV file is required"}],
            )
        logger.info("buyers.import_upload", filename=upload.filename, user_id=str(identity.id))
        try:
            rows: List[Dict[str, Any]] = parse_csv_rows(await upload.read())
        except ValueError as e:
            raise ValidationError(
                message="Invalid CSV file",
                errors=[{"path": "file", "message": str(e)}],
            ) from e
    else:
        try:
            rows = await request.json()
        except ValueError as e:
            raise ValidationError(
                message="Invalid JSON body",
                errors=[{"path": "body", "message": "Body must be valid JSON"}],
            ) from e
        if not isinstance(rows, list):
            raise ValidationError(
                message="Expected an array of buyers",
                errors=[{"path": "body", "message": "Expected an array of buyers"}],
            )

    result = await import_leads(session, rows, identity)
    return ImportResponse(
        message=f"Imported {result.imported_count} buyers",
        imported_count=result.imported_count,
    )


@router.get("/export")
async def export_buyers(
    params: LeadFilterParams = Depends(filter_params),
    sort: str = Query("updatedAt"),
    direction: str = Query("desc"),
    session: AsyncSession = Depends(get_session),
    identity: Identity = Depends(get_current_identity),
):
    leads = await export_leads(session, params, identity, sort=sort, direction=direction)
    return StreamingResponse(
        iter([leads_to_csv(leads)]),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="buyers.csv"'},
    )


@router.get("/{lead_id}", response_model=LeadResponse)
async def get_buyer(
    lead_id: UUID,
    session: AsyncSession = Depends(get_session),
    identity: Identity = Depends(get_current_identity),
):
    lead = await get_lead(session, lead_id, identity)
    return LeadResponse.from_lead(lead)


@router.put("/{lead_id}", response_model=LeadResponse)
async def update_buyer(
    lead_id: UUID,
    body: Dict[str, Any] = Body(...),
    session: AsyncSession = Depends(get_session),
    identity: Identity = Depends(enforce_rate_limit),
):
    """Replace a lead. Send the ``updatedAt`` you last read to guard against lost updates."""
    meta = _parse_meta(body)
    lead = validate_lead(body).raise_for_errors()
    updated = await update_lead(
        session,
        lead_id,
        lead,
        identity,
        expected_updated_at=meta.updated_at,
        owner_id=meta.owner_id,
    )
    return LeadResponse.from_lead(updated)


@router.delete("/{lead_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_buyer(
    lead_id: UUID,
    updated_at: Optional[datetime] = Query(None, alias="updatedAt"),
    session: AsyncSession = Depends(get_session),
    identity: Identity = Depends(enforce_rate_limit),
):
    await delete_lead(session, lead_id, identity, expected_updated_at=updated_at)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{lead_id}/history", response_model=List[LeadHistoryResponse])
async def buyer_history(
    lead_id: UUID,
    limit: Optional[int] = Query(None),
    sort: str = Query("desc"),
    session: AsyncSession = Depends(get_session),
    identity: Identity = Depends(get_current_identity),
):
    # Visibility follows the lead while it exists; afterwards only admins may read the trail.
    if not identity.is_admin:
        await get_lead(session, lead_id, identity)

    entries = await list_history(session, lead_id, limit=limit, order=sort)
    return [
        LeadHistoryResponse(
            id=entry.id,
            lead_id=entry.lead_id,
            changed_by=entry.changed_by,
            changed_at=entry.changed_at,
            diff=entry.diff,
            changes=changed_fields(entry.diff),
        )
        for entry in entries
    ]


@my_leads_router.get("/my-leads")
async def my_leads(
    session: AsyncSession = Depends(get_session),
    identity: Identity = Depends(get_current_identity),
):
    leads = await list_owned_leads(session, identity)
    return {
        "buyers": [
            LeadResponse.from_lead(lead).model_dump(mode="json", by_alias=True)
            for lead in leads
        ]
    }
