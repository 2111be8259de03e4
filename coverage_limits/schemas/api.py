"""Request and response payloads of the HTTP API."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from coverage_limits.schemas.limit_options import CamelModel


class HealthCheckResponse(BaseModel):
    """Health check response model.

    Attributes:
        status: Service status
        version: Application version
        service: Service name
    """

    status: str = Field(
        default="healthy",
        description="Service health status",
        examples=["healthy", "degraded"],
    )
    version: str = Field(..., description="Application version", examples=["0.1.0"])
    service: str = Field(..., description="Service name", examples=["Coverage Limit Options"])


class RootResponse(BaseModel):
    """Root endpoint response payload."""

    message: str = Field(..., description="Service status message")
    version: str = Field(..., description="Running application version")
    docs: str = Field(..., description="Path to the interactive API docs")
    health: str = Field(..., description="Path to the health check endpoint")


class ErrorResponse(BaseModel):
    detail: Any = Field(..., description="Error message or structured error payload")


class IdResponse(CamelModel):
    id: str


class IdsResponse(CamelModel):
    ids: List[str] = Field(default_factory=list)


class CountResponse(CamelModel):
    """Number of documents written or removed by a command."""

    count: int


class LegacyLimitsStatus(CamelModel):
    has_legacy_limits: bool


class SetDefaultRequest(CamelModel):
    option_id: str


class ReorderRequest(CamelModel):
    option_ids: List[str]


def error_detail(message: str, errors: Optional[List[Any]] = None) -> Dict[str, Any]:
    detail: Dict[str, Any] = {"message": message}
    if errors is not None:
        detail["errors"] = errors
    return detail
