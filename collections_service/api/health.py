"""
Health check endpoints for the Collections Follow-up Service.
"""
import time
from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from collections_service.core.config import Settings, get_settings
from collections_service.core.dependencies import get_repository
from collections_service.core.logging import get_logger
from collections_service.database import CollectionsRepository
from collections_service.utils.clock import utc_now

router = APIRouter()
logger = get_logger(__name__)

_started_at = time.time()


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    version: str
    uptime_seconds: float
    timestamp: datetime
    service_name: str
    database: bool


@router.get("/health", response_model=HealthResponse)
async def health_check(
    repository: CollectionsRepository = Depends(get_repository),
    settings: Settings = Depends(get_settings),
) -> HealthResponse:
    """Basic health check, including the persistence layer."""
    database_healthy = await repository.health_check()
    if not database_healthy:
        logger.warning("Health check reports degraded persistence")

    return HealthResponse(
        status="healthy" if database_healthy else "degraded",
        version=settings.service_version,
        uptime_seconds=round(time.time() - _started_at, 2),
        timestamp=utc_now(),
        service_name=settings.service_name,
        database=database_healthy,
    )
