"""
NetWarden - FastAPI Application Entry Point

Main application module with logging setup, middleware
configuration, and route mounting.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from netwarden import __version__
from netwarden.ai.openrouter import close_openrouter_client
from netwarden.api.routes import router as monitoring_router
from netwarden.config import settings
from netwarden.logging_config import configure_logging
from netwarden.monitoring.service import get_monitoring_service

# Configure logging on module load
configure_logging()

logger = structlog.get_logger(__name__)


# =============================================================================
# Application Lifespan
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan handler.

    Stops every monitored target and closes the classifier's HTTP
    client on shutdown.
    """
    logger.info(
        "netwarden_starting",
        version=__version__,
        host=settings.host,
        port=settings.port,
        debug=settings.debug,
    )

    logger.info("api_keys_status", openrouter=settings.has_openrouter)

    settings.ensure_temp_dir()
    logger.info("temp_dir_ready", path=str(settings.temp_dir))

    yield

    await get_monitoring_service().shutdown()
    await close_openrouter_client()
    logger.info("netwarden_shutdown")


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="NetWarden",
    description="Network traffic monitoring and baseline anomaly detection",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

# =============================================================================
# Middleware
# =============================================================================

# CORS middleware for frontend access
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# Health Check
# =============================================================================


@app.get("/health")
async def health_check() -> dict:
    """
    Health check endpoint.

    Returns service status and configuration info.
    """
    return {
        "status": "healthy",
        "service": "netwarden",
        "version": __version__,
        "monitored_targets": len(get_monitoring_service().list_monitored_ips()),
        "api_keys": {
            "openrouter": settings.has_openrouter,
        },
    }


# =============================================================================
# API Routes
# =============================================================================

app.include_router(monitoring_router, prefix="/api")


# =============================================================================
# Main Entry Point
# =============================================================================


def run() -> None:
    """Serve the API with uvicorn."""
    import uvicorn

    uvicorn.run(
        "netwarden.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
