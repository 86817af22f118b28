"""
Health check API endpoints.

Endpoints:
    - GET /health/liveness: Basic liveness check (is service running?)
    - GET /health/readiness: Is the knowledge base service initialized?
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Response, status
from pydantic import BaseModel

from knowledge_base.__version__ import __version__

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["health"])


class HealthStatus(BaseModel):
    """Health status response model."""

    status: str
    timestamp: str
    version: Optional[str] = None


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("/liveness", response_model=HealthStatus)
async def liveness():
    """
    Basic liveness check - is the service running?

    Returns:
        HealthStatus with "alive" status.
    """
    return HealthStatus(status="alive", timestamp=_now(), version=__version__)


@router.get("/readiness", response_model=HealthStatus)
async def readiness(response: Response):
    """
    Readiness check - has the lifespan handler wired the service?

    Returns:
        HealthStatus with "ready" or "not_ready" status. Returns 503 if not ready.
    """
    from app.main import app_state

    if app_state.service is None:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthStatus(status="not_ready", timestamp=_now(), version=__version__)

    return HealthStatus(status="ready", timestamp=_now(), version=__version__)
