"""
FastAPI application for the market ingress service.
Serves token lookups, contract capabilities and live subscriptions.
"""

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from market_ingress.core.logging import get_logger

from .middleware import add_middleware
from .routes import enrich, registry, tokens
from .schemas import HealthCheckResponse
from .websocket import router as websocket_router

if TYPE_CHECKING:
    from market_ingress.main import Services

logger = get_logger(__name__)


def create_app(services: "Services") -> FastAPI:
    """Create the FastAPI application around a service container."""
    config = services.settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting market ingress API server")
        await services.start()
        try:
            yield
        finally:
            logger.info("Shutting down market ingress API server")
            await services.stop()

    app = FastAPI(
        title=config.app_name,
        description="Marketplace orders and tokens ingested from the chain indexer, with live subscriptions.",
        version=config.app_version,
        lifespan=lifespan,
    )
    app.state.services = services

    add_middleware(app, config)

    @app.get(
        "/health",
        response_model=HealthCheckResponse,
        tags=["System"],
        summary="Health Check",
        description="Check connectivity and ingress progress"
    )
    async def health_check(request: Request):
        checks = await services.health_check()
        healthy = all(value == "healthy" for value in checks.values())
        response = HealthCheckResponse(
            status="healthy" if healthy else "unhealthy",
            version=config.app_version,
            services=checks,
            ingress=services.ingress.get_status() if services.ingress else [],
        )
        if healthy:
            return response
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=response.model_dump(mode="json"),
        )

    app.include_router(tokens.router, prefix="/tokens", tags=["Tokens"])
    app.include_router(registry.router, prefix="/registry", tags=["Registry"])
    app.include_router(enrich.router, prefix="/enrich", tags=["Enrichment"])
    app.include_router(websocket_router, tags=["Subscriptions"])

    logger.info("FastAPI application created")
    return app
