"""Centralized configuration management with environment-aware defaults.

Settings are loaded with Pydantic Settings from environment variables and an
optional .env file. Nested sections use the ``__`` delimiter, for example
``STORE_CONFIG__BACKEND=memory`` or ``AUTH_CONFIG__IDENTITY_CACHE_TTL_SECONDS=60``.

Configuration sources (in order of precedence):
1. Environment variables
2. .env file in project root
3. Default values in model definitions
4. Environment-based defaults (production vs development)
"""

import os
from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LogConfig(BaseModel):
    """Simplified logging configuration."""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    log_formatter_type: Literal["console", "json", "gcp", "aws"] | None = Field(
        default=None,
        description="Log output formatter. Auto-detected if not specified.",
    )
    excluded_paths: list[str] = Field(
        default_factory=lambda: ["/health"],
        description="Paths to exclude from request logging",
    )
    slow_request_threshold_ms: int = Field(
        default=1000,
        gt=0,
        description="Threshold for slow request warnings (milliseconds)",
    )
    sensitive_fields: list[str] = Field(
        default_factory=lambda: [
            "password",
            "token",
            "secret",
            "authorization",
            "certificate",
        ],
        description="Field names to redact",
    )


class ObservabilityConfig(BaseModel):
    """Cloud-agnostic observability configuration."""

    enable_tracing: bool = Field(
        default=True,
        description="Enable OpenTelemetry tracing",
    )
    exporter_type: Literal["console", "gcp", "aws", "otlp", "none"] = Field(
        default="console",
        description="Trace exporter type. Defaults to console for development.",
    )
    exporter_endpoint: str | None = Field(
        default=None,
        description="OTLP exporter endpoint",
    )
    gcp_project_id: str | None = Field(
        default=None,
        description="GCP project ID (only for GCP exporter)",
    )
    trace_sample_rate: float = Field(
        default=1.0,
        ge=0.0,
        le=1.0,
        description="Trace sampling rate (0.0 to 1.0)",
    )

    @field_validator("exporter_endpoint", "gcp_project_id", mode="before")
    @classmethod
    def empty_str_to_none(cls, v: str | None) -> str | None:
        """Convert empty strings to None for nullable fields."""
        if v == "":
            return None
        return v


class StoreConfig(BaseModel):
    """Backing resource store connection settings."""

    backend: Literal["kubernetes", "memory"] = Field(
        default="kubernetes",
        description="Store backend. 'memory' runs an in-process store for local use.",
    )
    api_server_url: str = Field(
        default="https://kubernetes.default.svc",
        description="Base URL of the resource store API server",
    )
    ca_cert_path: str | None = Field(
        default="/var/run/secrets/kubernetes.io/serviceaccount/ca.crt",
        description="CA bundle used to verify the API server certificate",
    )
    verify_tls: bool = Field(
        default=True,
        description="Verify the API server TLS certificate",
    )
    privileged_token_path: str = Field(
        default="/var/run/secrets/kubernetes.io/serviceaccount/token",
        description="File holding the service account token for privileged calls",
    )
    privileged_token: str | None = Field(
        default=None,
        description="Explicit privileged token. Takes precedence over the token file.",
    )
    request_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        le=300,
        description="Timeout for individual store requests",
    )
    root_namespace: str = Field(
        default="cf",
        min_length=1,
        description="Namespace holding organization resources",
    )
    create_timeout_seconds: float = Field(
        default=120.0,
        gt=0,
        description="How long a create waits for the resource to report readiness",
    )
    max_concurrent_permission_checks: int = Field(
        default=16,
        ge=1,
        le=256,
        description="Upper bound on concurrent per-namespace access checks",
    )
    auto_reconcile: bool = Field(
        default=True,
        description="Memory backend only: mark resources ready as soon as they change",
    )

    @field_validator("ca_cert_path", "privileged_token", mode="before")
    @classmethod
    def empty_str_to_none(cls, v: str | None) -> str | None:
        """Convert empty strings to None for nullable fields."""
        if v == "":
            return None
        return v


class AuthConfig(BaseModel):
    """Caller authentication settings."""

    identity_cache_ttl_seconds: float = Field(
        default=300.0,
        gt=0,
        description="How long a resolved identity stays cached",
    )
    client_ca_cert_path: str | None = Field(
        default=None,
        description="PEM bundle of issuers trusted to sign client certificates",
    )
    certificate_expiration_warning_seconds: int = Field(
        default=7 * 24 * 60 * 60,
        ge=0,
        description="Warn callers whose client certificate outlives this duration",
    )

    @field_validator("client_ca_cert_path", mode="before")
    @classmethod
    def empty_str_to_none(cls, v: str | None) -> str | None:
        """Convert empty strings to None for nullable fields."""
        if v == "":
            return None
        return v


class Settings(BaseSettings):
    """Main settings class for the application."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        validate_default=True,
        env_nested_delimiter="__",
    )

    # Application settings
    app_name: str = Field(default="Stratus", description="Application name")
    app_version: str = Field(default="0.1.0", description="Application version")
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Environment the application is running in",
    )
    debug: bool = Field(default=True, description="Debug mode flag")

    # API settings
    api_host: str = Field(default="127.0.0.1", description="API host")
    api_port: int = Field(default=8000, description="API port")
    external_url: str = Field(
        default="http://localhost:8000",
        description="Public base URL used in Location headers",
    )
    docs_url: str | None = Field(default="/docs", description="Swagger UI URL")
    redoc_url: str | None = Field(default="/redoc", description="ReDoc URL")
    openapi_url: str | None = Field(
        default="/openapi.json", description="OpenAPI schema URL"
    )

    log_config: LogConfig = Field(
        default_factory=LogConfig, description="Logging configuration"
    )
    observability_config: ObservabilityConfig = Field(
        default_factory=ObservabilityConfig, description="Observability configuration"
    )
    store_config: StoreConfig = Field(
        default_factory=StoreConfig, description="Resource store configuration"
    )
    auth_config: AuthConfig = Field(
        default_factory=AuthConfig, description="Authentication configuration"
    )

    def model_post_init(self, __context: object) -> None:
        """Post initialization to set environment-based defaults."""
        super().model_post_init(__context)

        if self.log_config.log_formatter_type is None:
            self.log_config.log_formatter_type = self._detect_formatter()

        if self.environment == "production":
            if self.observability_config.exporter_type == "console":
                self.observability_config.exporter_type = self._detect_exporter()
            if self.observability_config.trace_sample_rate == 1.0:
                self.observability_config.trace_sample_rate = 0.1

    def _detect_formatter(self) -> Literal["console", "json", "gcp", "aws"]:
        """Auto-detect log formatter based on environment."""
        if os.getenv("K_SERVICE"):  # Cloud Run
            return "gcp"
        if os.getenv("AWS_EXECUTION_ENV"):
            return "aws"

        if self.environment == "development":
            return "console"
        return "json"

    def _detect_exporter(self) -> Literal["console", "gcp", "aws", "otlp", "none"]:
        """Auto-detect trace exporter based on environment."""
        if os.getenv("K_SERVICE"):  # Cloud Run
            return "gcp"
        if os.getenv("AWS_EXECUTION_ENV"):
            return "aws"

        if self.environment == "development":
            return "console"
        return "otlp"

    @field_validator("docs_url", "redoc_url", "openapi_url", mode="before")
    @classmethod
    def empty_str_to_none(cls, v: str | None) -> str | None:
        """Convert empty strings to None for nullable fields."""
        _ = cls
        if v == "":
            return None
        return v

    @field_validator("external_url", mode="after")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize the external URL so paths can be appended directly."""
        return v.rstrip("/")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
