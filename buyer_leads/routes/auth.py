# buyer_leads/routes/auth.py
from __future__ import annotations

import uuid
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from sqlalchemy.ext.asyncio import AsyncSession

from buyer_leads.core.exceptions import NotFoundError, UnauthenticatedError
from buyer_leads.core.logging import get_structlog_logger
from buyer_leads.db.session import get_session
from buyer_leads.models.enums import Role
from buyer_leads.models.user import User
from buyer_leads.services.auth import (
    Identity,
    TokenManager,
    extract_token,
    get_current_identity,
    sync_user,
)

logger = get_structlog_logger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


class UserResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: uuid.UUID
    external_id: str
    email: str
    name: str
    phone: Optional[str] = None
    role: Role


@router.get("/me", response_model=UserResponse)
async def me(
    session: AsyncSession = Depends(get_session),
    identity: Identity = Depends(get_current_identity),
):
    user = await session.get(User, identity.id)
    if user is None:
        raise NotFoundError("User not found")
    return UserResponse.model_validate(user)


@router.post("/sync", response_model=UserResponse)
async def sync(
    request: Request,
    session: AsyncSession = Depends(get_session),
):
    """Create or refresh the local user row for the token's subject.

    Only the token is checked here; the user may not exist yet.
    """
    token = extract_token(request)
    if not token:
        raise UnauthenticatedError(message="Authentication token is required", code="missing_token")

    claims = TokenManager.verify_token(token)
    subject = claims.get("sub")
    email = claims.get("email")
    if not subject or not email:
        raise UnauthenticatedError(message="Token must carry sub and email claims", code="invalid_token")

    metadata: Dict[str, Any] = claims.get("user_metadata") or {}
    user = await sync_user(
        session,
        external_id=str(subject),
        email=email,
        name=metadata.get("name") or metadata.get("full_name"),
        phone=metadata.get("phone"),
    )
    return UserResponse.model_validate(user)
