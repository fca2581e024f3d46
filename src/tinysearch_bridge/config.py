"""Centralized configuration for tinysearch-bridge using Pydantic Settings."""

from typing import Annotated, Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from tinysearch_bridge.domain.model import ArtifactPaths


DEFAULT_ENGINE_NAME = "tinysearch_engine"
DEFAULT_GLOBAL_NAME = "tinysearch"

# Base paths of the two supported deployments
DEPLOYMENT_BASE_PATHS: dict[str, str] = {
    "root": "/",
    "published": "/memo_pub/",
}


class ObservabilityCollectorConfig(BaseModel):
    """Configuration for OTLP trace export."""

    model_config = {"extra": "forbid"}

    enabled: Annotated[
        bool,
        Field(description="Enable OTLP trace export to an external collector"),
    ] = False

    otlp_protocol: Annotated[
        Literal["http", "grpc"],
        Field(description="OTLP transport protocol"),
    ] = "grpc"

    collector_endpoint: Annotated[
        str,
        Field(
            description="OTLP collector endpoint (HTTP uses /v1/traces)",
            examples=["http://localhost:4317", "http://localhost:4318/v1/traces"],
        ),
    ] = "http://localhost:4317"

    headers: Annotated[
        dict[str, str],
        Field(description="Optional headers to include with OTLP requests"),
    ] = Field(default_factory=dict)

    timeout_seconds: Annotated[
        int,
        Field(ge=1, le=60, description="OTLP exporter timeout in seconds"),
    ] = 10

    grpc_insecure: Annotated[
        bool,
        Field(description="Use an insecure channel for gRPC export"),
    ] = True

    resource_attributes: Annotated[
        dict[str, str],
        Field(description="Extra OpenTelemetry resource attributes"),
    ] = Field(default_factory=dict)


class Settings(BaseSettings):
    """Strictly typed configuration loaded from environment variables.

    The deployment variant (site root or the published sub-path) is the only
    setting that changes where the search artifacts are looked up; everything
    else tunes logging, timeouts and naming.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        validate_default=True,
        extra="ignore",
    )

    # Artifact location
    site_root: str = Field(
        default=".",
        min_length=1,
        description="Local directory or http(s) origin that hosts the site artifacts",
    )
    deployment: Literal["root", "published"] = Field(
        default="root", description="Deployment variant: site root or the published sub-path"
    )
    base_path: str | None = Field(
        default=None,
        pattern=r"^/",
        description="Explicit base path overriding the deployment variant (must start with '/')",
    )

    # Naming
    engine_name: str = Field(default=DEFAULT_ENGINE_NAME, description="Stem shared by the code and data artifacts")
    global_name: str = Field(default=DEFAULT_GLOBAL_NAME, description="Identifier the query function is published as")

    # Timeouts
    load_timeout_seconds: float | None = Field(
        default=30.0, gt=0, description="Deadline for the whole load sequence; unset disables it"
    )
    http_timeout: int = Field(default=30, ge=1, description="HTTP request timeout in seconds")

    # Logging
    log_level: str = Field(default="info", description="Logging level")
    log_json: bool = Field(default=True, description="Emit structured JSON logs")

    observability: ObservabilityCollectorConfig = Field(default_factory=ObservabilityCollectorConfig)

    @field_validator("engine_name", "global_name")
    @classmethod
    def _check_identifier(cls, value: str) -> str:
        if not value.isidentifier():
            raise ValueError(f"{value!r} is not a valid identifier")
        return value

    @field_validator("base_path")
    @classmethod
    def _check_base_path(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return ArtifactPaths.for_base_path(value, DEFAULT_ENGINE_NAME).base_path

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in {"debug", "info", "warning", "error", "critical"}:
            raise ValueError(f"Unknown log level: {value!r}")
        return normalized

    def get_base_path(self) -> str:
        """Base path of the active deployment."""
        if self.base_path:
            return self.base_path
        return DEPLOYMENT_BASE_PATHS[self.deployment]

    def is_remote(self) -> bool:
        """Check if artifacts are served over HTTP rather than read from disk."""
        return self.site_root.startswith(("http://", "https://"))

    def get_artifact_paths(self) -> ArtifactPaths:
        return ArtifactPaths.for_base_path(self.get_base_path(), self.engine_name)
