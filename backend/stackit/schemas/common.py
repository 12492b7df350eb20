"""
StackIt Backend — Shared Response Schemas
===========================================

What:  Response models used by every router: the error envelope, the health
       payload and a plain acknowledgement.
"""

from typing import Optional

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """
    Standardized error response format for all API errors.

    Example:
        {
            "error": "validation_error",
            "message": "Title must be at least 10 characters",
            "details": {"field": "title", "errors": {"title": "..."}},
            "request_id": "a1b2c3d4"
        }

    Authentication errors carry `details.redirect` ("/login" or "/register").
    """
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class MessageResponse(BaseModel):
    message: str


class HealthResponse(BaseModel):
    status: str = Field(description="Overall service status: healthy, unhealthy")
    version: str = Field(description="Application version")
    document_store: str = Field(description="Document store connectivity: connected, disconnected")
    object_store: str = Field(description="Configured object store backend")
    uptime_seconds: float = Field(description="Seconds since service started")
