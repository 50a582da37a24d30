import asyncio
from contextlib import asynccontextmanager
from typing import Callable, Optional

import structlog
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

load_dotenv()

from socialsense.config import settings
from socialsense.core.dependencies import ServiceContainer
from socialsense.core.exceptions import SocialSenseAPIException
from socialsense.logging_config import configure_logging
from socialsense.services.api_client import SocialSenseClient

# IMPORT ROUTERS
from socialsense.routers.health import router as health_router
from socialsense.routers.tokens import router as tokens_router
from socialsense.routers.analyses import router as analyses_router
from socialsense.routers.analyses import api_exception_handler

logger = structlog.get_logger(__name__)

SWEEP_INTERVAL_SECONDS = 60.0

# SWAGGER UI - tag display order
_OPENAPI_TAGS = [
    {"name": "Root"},
    {"name": "Health"},
    {"name": "Tokens"},
    {"name": "Analyses"},
]


async def _sweep_idle_views(services: ServiceContainer, interval: float = SWEEP_INTERVAL_SECONDS) -> None:
    """Dispose views whose clients left without tearing them down."""
    while not services.closing:
        await asyncio.sleep(interval)
        try:
            services.success_views.dispose_idle(settings.VIEW_IDLE_TTL_SECONDS)
            services.analysis_views.dispose_idle(settings.VIEW_IDLE_TTL_SECONDS)
        except Exception:
            # one bad view must not stop later sweeps
            logger.exception("idle_view_sweep_failed")


def create_app(client_factory: Optional[Callable[[], SocialSenseClient]] = None) -> FastAPI:
    """Build the FastAPI app; ``client_factory`` lets tests swap in a stubbed backend."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings)
        services = ServiceContainer(client_factory() if client_factory else SocialSenseClient())
        app.state.services = services
        sweeper = asyncio.create_task(_sweep_idle_views(services))
        logger.info("startup", app=settings.APP_NAME, backend=services.client.base_url)
        try:
            yield
        finally:
            logger.info("shutdown", live_views=services.live_view_count())
            sweeper.cancel()
            await services.aclose()

    # FASTAPI APPLICATION CONFIGURATION
    app = FastAPI(
        title="SocialSense Client Core API",
        version=settings.APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        openapi_tags=_OPENAPI_TAGS,
        lifespan=lifespan,
    )

    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])

    # REGISTER EXCEPTION HANDLERS
    app.add_exception_handler(SocialSenseAPIException, api_exception_handler)

    # REGISTER ROUTERS (order matches _OPENAPI_TAGS / Swagger UI display order)
    app.include_router(health_router)     # Health
    app.include_router(tokens_router)     # Tokens
    app.include_router(analyses_router)   # Analyses

    # ROOT ENDPOINT
    @app.get("/", tags=["Root"], summary="Root endpoint")
    async def root():
        return {
            "service": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "docs": {
                "swagger": "/docs",
                "redoc": "/redoc"
            },
            "status": "running"
        }

    return app


app = create_app()


# RUN WITH UVICORN
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "socialsense.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
    )
