"""Error response body shared by every failing endpoint.

- **ErrorResponse**: Error code, message, correlation id and optional details
- **ServiceInfo**: Which service and version produced the error

``debug_info`` is only filled in development.
"""

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field


class ServiceInfo(BaseModel):
    """Service information for error context."""

    name: str = Field(..., description="Name of the service", examples=["Stratus"])

    version: str = Field(..., description="Version of the service", examples=["0.1.0"])

    environment: str = Field(
        ...,
        description="Environment where the service is running",
        examples=["development", "staging", "production"],
    )


class ErrorResponse(BaseModel):
    """Standardized error response model for API errors."""

    error_code: str = Field(
        ...,
        description="Unique error code identifying the error type",
        examples=["DUPLICATE_NAME", "NOT_FOUND", "INVALID_CREDENTIAL"],
    )

    message: str = Field(
        ...,
        description="Human-readable error message",
        examples=["Space 'dev' already exists.", "App not found"],
    )

    details: dict[str, Any] | None = Field(
        default=None,
        description="Additional error details (e.g., field-specific validation errors)",
        examples=[{"resource_type": "App"}],
    )

    correlation_id: str | None = Field(
        default=None,
        description="Request correlation ID for tracing and debugging",
        examples=["550e8400-e29b-41d4-a716-446655440000"],
    )

    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="Timestamp when the error occurred (with timezone)",
    )

    severity: str | None = Field(
        default=None,
        description="Error severity level (LOW, MEDIUM, HIGH, CRITICAL)",
        examples=["LOW", "HIGH"],
    )

    service_info: ServiceInfo | None = Field(
        default=None,
        description="Information about the service that generated the error",
    )

    request_id: str | None = Field(
        default=None,
        description="Unique request identifier",
        examples=["req-550e8400-e29b-41d4-a716-446655440000"],
    )

    debug_info: dict[str, Any] | None = Field(
        default=None,
        description="Debug information (only populated in development environments)",
    )

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "error_code": "DUPLICATE_NAME",
                    "message": "App with the name 'web' already exists.",
                    "correlation_id": "550e8400-e29b-41d4-a716-446655440000",
                    "request_id": "req-660e8400-e29b-41d4-a716-446655440000",
                    "timestamp": "2026-06-14T12:00:00+00:00",
                    "severity": "LOW",
                    "service_info": {
                        "name": "Stratus",
                        "version": "0.1.0",
                        "environment": "production",
                    },
                },
                {
                    "error_code": "TIMEOUT",
                    "message": (
                        "did not get Condition `Ready`: 'True' within timeout "
                        "period 120000 ms"
                    ),
                    "details": {"elapsed_seconds": 120.0},
                    "timestamp": "2026-06-14T12:00:01+00:00",
                    "severity": "HIGH",
                },
            ]
        }
    }
