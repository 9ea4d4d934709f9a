"""
Keystone — Pydantic Response Schemas
======================================

What:  Response models for the bundled routes and the shared error format.
How:   FastAPI serializes route results through these models and includes
       them in the generated OpenAPI document.
"""

from typing import List, Optional

from pydantic import BaseModel, Field


class GreetingResponse(BaseModel):
    """Returned by GET /<prefix>/."""
    message: str = Field(description="Greeting text")
    name: str = Field(description="Application name (APP_NAME)")
    locale: str = Field(description="Configured locale (APP_LOCALE)")


class HealthResponse(BaseModel):
    """
    What:  Liveness information for load balancers and process managers.
    Fields:
        status: Always "healthy" while the process serves requests
        version: Package version
        environment: APP_ENV of this process
        pid: Worker process id
        uptime_seconds: Seconds since the module was imported
    """
    status: str = Field(description="Service status")
    version: str = Field(description="Application version")
    environment: str = Field(description="Runtime environment (APP_ENV)")
    pid: int = Field(description="Worker process id")
    uptime_seconds: float = Field(description="Seconds since process start")


class UploadedFile(BaseModel):
    field: str = Field(description="Form field the file was sent under")
    filename: Optional[str] = Field(default=None, description="Client-side file name")
    content_type: Optional[str] = Field(default=None, description="Declared MIME type")
    size: int = Field(description="File size in bytes")


class UploadResponse(BaseModel):
    """
    What:  Summary of a multipart upload accepted within the adapter limits.
    Who:   Returned by POST /<prefix>/files.
    """
    files: List[UploadedFile] = Field(description="Accepted files")
    fields: dict = Field(description="Non-file form fields")


class ErrorResponse(BaseModel):
    """
    What:  Standardized error body for all API errors.

    Example:
        {
            "error": "rate_limit_exceeded",
            "message": "当前操作过于频繁，请稍后再试！",
            "details": {"retry_after": 7}
        }
    """
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
