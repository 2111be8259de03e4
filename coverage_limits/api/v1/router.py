from fastapi import APIRouter

from coverage_limits.api.v1.endpoints import limit_options, templates

# Create API router
api_router = APIRouter()

# Include routers
api_router.include_router(limit_options.router, prefix="", tags=["Limit Options"])
api_router.include_router(templates.router, prefix="/limit-templates", tags=["Limit Templates"])

__all__ = ["api_router"]
