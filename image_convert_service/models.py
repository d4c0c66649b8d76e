"""Lightweight models shared by stateless APIs."""

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(default="healthy")
    version: str = Field(default="1.0.0")


class MemoryResponse(HealthResponse):
    """Health check response with process and system memory figures in MB."""

    rss_mb: float
    vms_mb: float
    free_mb: float
    total_mb: float
    usage_percent: float


class LogSavedResponse(BaseModel):
    """Acknowledgement for a scheduled resource log dump."""

    message: str
    file_name: str


class ErrorResponse(BaseModel):
    """Error response envelope."""

    error: str = Field(..., description="High-level error message")
    detail: str | None = Field(None, description="Additional context for debugging")
