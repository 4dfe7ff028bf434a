"""
Resilience Admin API - Main Application Entry Point.

This module provides the FastAPI application exposing live circuit breaker,
retry and bulkhead state to operators, plus Prometheus metrics.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from .config import get_settings, setup_logging
from .routers import resilience
from .services.resilience_facade import ResilienceFacade

settings = get_settings()
logger = structlog.get_logger()

# Global facade instance
facade: ResilienceFacade | None = None


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application lifespan events."""
    global facade

    # Startup
    setup_logging(level=settings.log_level, format_type=settings.log_format)
    logger.info(
        "resilience_admin_startup",
        port=settings.admin_api_port,
        metrics_enabled=settings.enable_metrics,
    )

    try:
        facade = ResilienceFacade.from_settings(settings)
        await resilience.initialize_services(facade)
        logger.info("resilience_services_initialized")
    except Exception as e:
        logger.error("resilience_admin_startup_failed", error=str(e))
        raise

    yield

    # Shutdown
    logger.info("resilience_admin_shutdown")

    await resilience.initialize_services(None)
    if facade:
        facade.shutdown()
        facade = None


# Create FastAPI application
app = FastAPI(
    title="Integrix Resilience Admin API",
    description="Circuit breaker, retry and bulkhead state for Integrix adapters",
    version="0.1.0",
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    lifespan=lifespan,
)

# Include routers
app.include_router(resilience.router)


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Basic health check endpoint."""
    return {"status": "healthy", "service": "resilience-admin"}


@app.get("/metrics")
async def metrics() -> Response:
    """Prometheus exposition of the resilience metrics registry."""
    if facade is None or facade.metrics is None:
        return Response(content=b"", media_type=CONTENT_TYPE_LATEST)
    return Response(
        content=generate_latest(facade.metrics.registry),
        media_type=CONTENT_TYPE_LATEST,
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        app,
        host="0.0.0.0",
        port=settings.admin_api_port,
        log_level=settings.log_level.lower(),
    )
