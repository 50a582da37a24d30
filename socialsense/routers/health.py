"""
Health Check Router - SocialSense Client Core
socialsense/routers/health.py

Reports service status and how many views are currently holding timers.
"""
from datetime import datetime, timezone
from typing import Dict

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from socialsense.config import settings
from socialsense.core.dependencies import ServiceContainer, get_services

router = APIRouter(tags=["Health"])


class HealthResponse(BaseModel):
    status: str
    timestamp: datetime
    version: str
    backend: str
    views: Dict[str, int]


@router.get("/health", response_model=HealthResponse, summary="Service health")
async def health(services: ServiceContainer = Depends(get_services)) -> HealthResponse:
    return HealthResponse(
        status="shutting_down" if services.closing else "healthy",
        timestamp=datetime.now(timezone.utc),
        version=settings.APP_VERSION,
        backend=services.client.base_url,
        views={
            "token_success": len(services.success_views),
            "analysis": len(services.analysis_views),
        },
    )
