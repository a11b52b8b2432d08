"""Response envelopes shared by all notes-index endpoints."""

from datetime import datetime, timezone
from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel, Field

from notes_index.config.settings import settings

T = TypeVar("T")

_EXAMPLE_METADATA = {
    "app_name": "Notes Index",
    "app_version": "1.0.0",
    "timestamp": "2026-03-14T09:12:05Z",
}


class ResponseMetadata(BaseModel):
    """Service name, version and server time stamped on every response."""

    app_name: str = Field(default=settings.APP_NAME)
    app_version: str = Field(default=settings.APP_VERSION)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = {"json_schema_extra": {"example": _EXAMPLE_METADATA}}


class SuccessResponse(BaseModel, Generic[T]):
    """Success envelope wrapping an endpoint's payload."""

    success: bool = Field(default=True)
    message: str = Field(default="Operation completed successfully")
    data: T
    metadata: ResponseMetadata = Field(default_factory=ResponseMetadata)

    model_config = {
        "json_schema_extra": {
            "example": {
                "success": True,
                "message": "Search completed",
                "data": {"results": [], "total_results": 0, "strategy": "result_set"},
                "metadata": _EXAMPLE_METADATA,
            }
        }
    }


class ErrorResponse(BaseModel):
    """Error envelope; error_type names the failing service error class."""

    success: bool = Field(default=False)
    error: str
    error_type: Optional[str] = None
    detail: Optional[str] = None
    metadata: ResponseMetadata = Field(default_factory=ResponseMetadata)

    model_config = {
        "json_schema_extra": {
            "example": {
                "success": False,
                "error": "Sync planning failed",
                "error_type": "PlanningError",
                "detail": "Notes directory not found: /data/notes",
                "metadata": _EXAMPLE_METADATA,
            }
        }
    }


def success_response(data: T, message: str = "Operation completed successfully", **kwargs: Any) -> SuccessResponse[T]:
    """Create a success response."""
    return SuccessResponse(
        success=True,
        message=message,
        data=data,
        metadata=ResponseMetadata(**kwargs) if kwargs else ResponseMetadata(),
    )


def error_response(
    error: str,
    detail: Optional[str] = None,
    error_type: Optional[str] = None,
    **kwargs: Any,
) -> ErrorResponse:
    """Create an error response."""
    return ErrorResponse(
        success=False,
        error=error,
        error_type=error_type,
        detail=detail,
        metadata=ResponseMetadata(**kwargs) if kwargs else ResponseMetadata(),
    )


def exception_response(error: str, exc: Exception) -> ErrorResponse:
    """Error envelope for an uncaught service exception."""
    return error_response(error=error, detail=str(exc), error_type=type(exc).__name__)
