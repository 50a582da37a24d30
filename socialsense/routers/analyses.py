"""
Analysis Router - SocialSense Client Core
socialsense/routers/analyses.py

Endpoints:
  GET    /analyses/{analysis_id}  - Mount (or re-read) the analysis detail page
  DELETE /analyses/{analysis_id}  - Tear the page down and stop its poller
"""

from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse

from socialsense.core.dependencies import ServiceContainer, get_services
from socialsense.core.exceptions import (
    MalformedPayloadException,
    NetworkException,
    SocialSenseAPIException,
    error_message,
)

router = APIRouter(tags=["Analyses"])


async def api_exception_handler(request: Request, exc: SocialSenseAPIException):
    """Render backend failures the same way for every router."""
    if isinstance(exc, NetworkException):
        status_code, error_code = status.HTTP_502_BAD_GATEWAY, "BACKEND_UNREACHABLE"
    elif isinstance(exc, MalformedPayloadException):
        status_code, error_code = status.HTTP_502_BAD_GATEWAY, "BAD_BACKEND_PAYLOAD"
    else:
        status_code = exc.status_code or status.HTTP_502_BAD_GATEWAY
        error_code = "BACKEND_ERROR"
    return JSONResponse(
        status_code=status_code,
        content={
            "error_code": error_code,
            "message": error_message(exc, exc.message),
            "details": {"backend_status": exc.status_code} if exc.status_code else None,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )


@router.get("/analyses/{analysis_id}", summary="Analysis detail page")
async def get_analysis(
    analysis_id: str,
    services: ServiceContainer = Depends(get_services),
) -> Dict[str, Any]:
    registry = services.analysis_views
    view = registry.get_or_create(analysis_id, lambda: services.new_analysis_view(analysis_id))
    if view.analysis is None:
        try:
            await view.load()
        except SocialSenseAPIException:
            # only the foreground fetch surfaces errors; don't keep a broken view around
            registry.dispose(analysis_id)
            raise
    return view.model()


@router.delete("/analyses/{analysis_id}", summary="Close the analysis detail page")
async def close_analysis(
    analysis_id: str,
    services: ServiceContainer = Depends(get_services),
) -> Dict[str, Any]:
    return {"analysis_id": analysis_id, "disposed": services.analysis_views.dispose(analysis_id)}
