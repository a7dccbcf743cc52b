"""
Pydantic schemas for API responses and requests.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class APIResponse(BaseModel):
    """Base API response model."""
    success: bool = True
    message: Optional[str] = None
    timestamp: datetime = Field(default_factory=_utcnow)


class SuccessResponse(APIResponse):
    """Success response model."""
    data: Optional[Any] = None


class ErrorResponse(APIResponse):
    """Error response model."""
    success: bool = False
    error_code: Optional[str] = None
    details: Optional[Dict[str, Any]] = None


class HealthCheckResponse(BaseModel):
    """Health check response."""
    status: str = "healthy"
    timestamp: datetime = Field(default_factory=_utcnow)
    version: str
    services: Dict[str, str] = Field(default_factory=dict)
    ingress: List[Dict[str, Any]] = Field(default_factory=list)


class EnqueueTokenRequest(BaseModel):
    """A token to (re-)enrich; unknown fields are passed through."""
    model_config = ConfigDict(extra="allow")

    id: str = Field(min_length=1)
    network: Optional[str] = None
    contract: Optional[str] = None
    token_id: Optional[str] = None
    owner: Optional[str] = None
    uri: Optional[str] = None
    created_at: Optional[datetime] = None


def create_success_response(data: Any = None, message: Optional[str] = None) -> SuccessResponse:
    """Create a success response."""
    return SuccessResponse(data=data, message=message)


def create_error_response(
    message: str,
    error_code: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None
) -> ErrorResponse:
    """Create an error response."""
    return ErrorResponse(message=message, error_code=error_code, details=details)
