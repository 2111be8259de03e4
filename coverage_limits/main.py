"""FastAPI application entry point."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from coverage_limits.api.v1.router import api_router
from coverage_limits.core.config import settings
from coverage_limits.database import client as store_client
from coverage_limits.schemas.api import HealthCheckResponse, RootResponse
from coverage_limits.utils.logging import get_logger

LOGGER = get_logger(__name__, level=settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Opens the document store on startup and releases it on shutdown.

    Args:
        app: FastAPI application instance

    Yields:
        None
    """
    LOGGER.info(
        "Starting application",
        extra={
            "app_name": settings.app_name,
            "version": settings.app_version,
            "environment": settings.environment,
            "document_store_backend": settings.document_store_backend,
        },
    )

    try:
        await store_client.init_document_store()
    except Exception as e:
        LOGGER.error(
            "Failed to initialize document store",
            exc_info=True,
            extra={"error": str(e)},
        )
        raise

    yield

    LOGGER.info("Shutting down application")
    try:
        await store_client.close_document_store()
    except Exception as e:
        LOGGER.error(
            "Error closing document store",
            exc_info=True,
            extra={"error": str(e)},
        )


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Coverage limit option sets, validation and legacy limit migration",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get(
    "/health",
    response_model=HealthCheckResponse,
    tags=["Health"],
    summary="Health check endpoint",
    description="Check if the service and its document store are healthy",
    operation_id="get_service_health_status",
)
async def health_check() -> HealthCheckResponse:
    """Health check endpoint.

    Returns:
        HealthCheckResponse: Service health status
    """
    status = "healthy"
    if store_client.db_client is not None:
        db_health = await store_client.db_client.health_check()
        if db_health["status"] != "healthy":
            status = "degraded"

    return HealthCheckResponse(
        status=status,
        version=settings.app_version,
        service=settings.app_name,
    )


@app.get(
    "/",
    response_model=RootResponse,
    tags=["Root"],
    summary="Root endpoint",
    description="Get basic information about the API",
    operation_id="get_public_root_metadata",
)
async def root() -> RootResponse:
    """Root endpoint.

    Returns:
        RootResponse: Basic API information
    """
    return RootResponse(
        message="Server is running",
        version=settings.app_version,
        docs="/docs",
        health="/health",
    )


app.include_router(api_router, prefix=settings.api_v1_prefix)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "coverage_limits.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
