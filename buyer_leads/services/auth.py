# buyer_leads/services/auth.py
from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Protocol

from fastapi import Depends, Request
from jose import JWTError, jwt
from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from buyer_leads.core.config import settings
from buyer_leads.core.exceptions import UnauthenticatedError
from buyer_leads.core.logging import get_structlog_logger
from buyer_leads.db.session import get_session, transaction
from buyer_leads.models.enums import Role
from buyer_leads.models.user import User

logger = get_structlog_logger(__name__)


@dataclass(frozen=True)
class Identity:
    """The authenticated caller, as supplied by the identity provider."""

    id: uuid.UUID
    role: Role
    email: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


class IdentityProvider(Protocol):
    async def authenticate(self, token: str) -> Identity:
        """Resolve a bearer credential or raise ``UnauthenticatedError``."""
        ...


class TokenManager:
    """Manager for JWT token operations."""

    @staticmethod
    def create_access_token(
        data: Dict[str, Any],
        expires_delta: Optional[timedelta] = None
    ) -> str:
        to_encode = data.copy()
        now = datetime.now(timezone.utc)
        expire = now + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))

        to_encode.update({
            "exp": expire,
            "iat": now,
            "jti": str(uuid.uuid4()),
            "type": "access",
        })

        return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)

    @staticmethod
    def verify_token(token: str) -> Dict[str, Any]:
        """Decode a token, raising ``UnauthenticatedError`` if it is invalid or expired."""
        try:
            return jwt.decode(
                token,
                settings.secret_key,
                algorithms=[settings.algorithm],
                options={"verify_aud": False},
            )
        except JWTError as e:
            logger.warning("auth.invalid_token", error=str(e))
            raise UnauthenticatedError(
                message="Invalid authentication token",
                code="invalid_token",
            ) from e


class JWTIdentityProvider:
    """Resolves the token's ``sub`` claim to a synced user row."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def authenticate(self, token: str) -> Identity:
        payload = TokenManager.verify_token(token)
        subject = payload.get("sub")
        if not subject:
            raise UnauthenticatedError(message="Token has no subject", code="invalid_token")

        result = await self.session.execute(select(User).where(User.external_id == str(subject)))
        user = result.scalar_one_or_none()
        if user is None:
            logger.warning("auth.unknown_user", subject=subject)
            raise UnauthenticatedError(message="User not found", code="unknown_user")

        return Identity(id=user.id, role=user.role, email=user.email)


def extract_token(request: Request) -> Optional[str]:
    """Extract token from Authorization header."""
    auth_header = request.headers.get("Authorization")
    if not auth_header:
        return None

    # Support both "Bearer <token>" and "Token <token>" formats
    parts = auth_header.split()
    if len(parts) != 2:
        return None

    scheme, token = parts
    if scheme.lower() not in ["bearer", "token"]:
        return None

    return token


async def get_identity_provider(
    session: AsyncSession = Depends(get_session),
) -> IdentityProvider:
    return JWTIdentityProvider(session)


async def get_current_identity(
    request: Request,
    provider: IdentityProvider = Depends(get_identity_provider),
) -> Identity:
    token = extract_token(request)
    if not token:
        logger.warning("auth.missing_token", path=request.url.path, method=request.method)
        raise UnauthenticatedError(message="Authentication token is required", code="missing_token")

    identity = await provider.authenticate(token)
    logger.debug("auth.authenticated", user_id=str(identity.id), role=identity.role.value)
    return identity


async def sync_user(
    session: AsyncSession,
    external_id: str,
    email: str,
    name: Optional[str] = None,
    phone: Optional[str] = None,
) -> User:
    """Insert or refresh the user row keyed by the provider subject."""
    values = {
        "email": email,
        "name": name or "No Name",
        "phone": phone or None,
    }

    dialect = session.get_bind().dialect.name
    insert = postgresql.insert if dialect == "postgresql" else sqlite.insert

    stmt = insert(User).values(
        id=uuid.uuid4(),
        external_id=external_id,
        role=Role.USER,
        **values,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[User.external_id],
        set_={**values, "updated_at": datetime.now(timezone.utc)},
    )

    async with transaction(session):
        await session.execute(stmt)
        result = await session.execute(
            select(User)
            .where(User.external_id == external_id)
            .execution_options(populate_existing=True)
        )
        user = result.scalar_one()

    logger.info("auth.user_synced", user_id=str(user.id), external_id=external_id)
    return user
