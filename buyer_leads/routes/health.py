# buyer_leads/routes/health.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from buyer_leads import __version__
from buyer_leads.core.config import settings
from buyer_leads.core.logging import get_structlog_logger
from buyer_leads.db.session import health_check as database_health_check

logger = get_structlog_logger(__name__)

router = APIRouter(tags=["health"])


class HealthCheckResponse(BaseModel):
    status: str
    service: str
    environment: str
    version: str
    timestamp: str
    checks: Dict[str, Dict[str, str]]


@router.get("/health", response_model=HealthCheckResponse)
async def health_check():
    """Report whether the service can reach its database."""
    db_result = await database_health_check()
    overall_status = "healthy" if db_result.get("status") == "healthy" else "unhealthy"

    response = HealthCheckResponse(
        status=overall_status,
        service="buyer_leads_api",
        environment=settings.environment,
        version=__version__,
        timestamp=datetime.now(timezone.utc).isoformat(),
        checks={"database": {k: str(v) for k, v in db_result.items()}},
    )

    if overall_status == "healthy":
        return response

    logger.warning("health.check", status=overall_status, checks=response.checks)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content=response.model_dump(),
    )


@router.get("/health/live", status_code=status.HTTP_200_OK)
async def liveness_probe():
    """Simple liveness probe for containers."""
    return {
        "status": "alive",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
