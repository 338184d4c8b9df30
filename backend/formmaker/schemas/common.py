"""
Formmaker Backend — Shared Response Schemas
=============================================

What:  Models used by more than one router: the error envelope, the health
       report and small acknowledgement bodies.
"""

from typing import Optional

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """
    Standardized error body returned by every exception handler.

    Example:
        {
            "error": "access_denied",
            "message": "You do not have permission to edit this form",
            "details": {"required": "edit"},
            "request_id": "550e8400-e29b-41d4-a716-446655440000"
        }
    """
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    status: str = Field(description="Overall service status: healthy, degraded, unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="Database connectivity: connected, disconnected")
    outbox: str = Field(description="Notification worker: running, stopped")
    pending_notifications: int = Field(description="Notifications waiting for delivery")
    uptime_seconds: float = Field(description="Seconds since service started")


class MessageResponse(BaseModel):
    message: str


class DeletedCount(BaseModel):
    deleted_count: int = Field(ge=0, description="Rows actually removed")


_ERROR_DESCRIPTIONS = {
    400: "Invalid filter, sort or pagination parameter",
    403: "Missing capability on the resource",
    404: "Referenced resource not found",
    409: "Request conflicts with current state",
    500: "Server error",
}


def error_responses(*codes: int) -> dict:
    """OpenAPI `responses=` entries for the given error status codes (500 always included)."""
    return {
        code: {"description": _ERROR_DESCRIPTIONS[code], "model": ErrorResponse}
        for code in sorted(set(codes) | {500})
    }
