"""
Application configuration using Pydantic Settings.
Loads configuration from environment variables with validation.
"""
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Main application settings with environment variable loading."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="Atlas Cluster Broker", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment (development/staging/production)")
    debug: bool = Field(default=False, description="Debug mode")
    log_level: str = Field(default="INFO", description="Logging level")

    # Server
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=4000, ge=1, le=65535, description="Server port")
    reload: bool = Field(default=False, description="Auto-reload on code changes")

    # Atlas admin API
    atlas_base_url: str = Field(
        default="https://cloud.mongodb.com", description="Atlas base URL (API and dashboard)"
    )
    atlas_api_path: str = Field(default="/api/atlas/v1.0", description="Atlas admin API path")
    atlas_timeout_seconds: float = Field(default=30.0, gt=0, description="Atlas request timeout")
    atlas_max_retries: int = Field(
        default=3, ge=0, le=10, description="Retries for transient Atlas API failures"
    )

    # Plan templates and credentials
    template_dir: str = Field(default="templates", description="Directory holding plan templates")
    credentials_file: Optional[str] = Field(
        default=None, description="YAML/JSON file with per-organization Atlas API keys"
    )

    # Instance store
    state_backend: str = Field(default="mongodb", description="Instance store backend (mongodb/memory)")
    mongodb_url: str = Field(
        default="mongodb://localhost:27017", description="MongoDB connection URL for the instance store"
    )
    mongodb_database: str = Field(default="atlas_broker", description="MongoDB database name")
    mongodb_max_pool_size: int = Field(default=20, ge=5, le=100, description="MongoDB max pool size")
    mongodb_min_pool_size: int = Field(default=2, ge=1, le=10, description="MongoDB min pool size")

    # OSB catalog
    broker_osb_service_name: str = Field(default="atlas", description="Catalog service name")
    broker_osb_service_desc: str = Field(
        default="MonogoDB Atlas Plan Template Deployments", description="Catalog service description"
    )
    broker_osb_service_display_name: str = Field(
        default="Template Services", description="Suffix of the catalog display name"
    )
    broker_osb_image_url: str = Field(
        default="https://webassets.mongodb.com/_com_assets/cms/vectors-anchor-circle-mydmar539a.svg",
        description="Catalog image URL",
    )
    broker_osb_docs_url: str = Field(
        default="https://support.mongodb.com/welcome", description="Catalog documentation URL"
    )
    broker_osb_provider_display_name: str = Field(
        default="MongoDB", description="Catalog provider display name"
    )

    # Monitoring
    prometheus_enabled: bool = Field(default=True, description="Enable Prometheus metrics")
    sentry_dsn: Optional[str] = Field(default=None, description="Sentry DSN for error tracking")
    sentry_traces_sample_rate: float = Field(
        default=0.1, ge=0.0, le=1.0, description="Sentry traces sample rate"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalise and validate the log level name."""
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid log level: {v}")
        return level

    @field_validator("state_backend")
    @classmethod
    def validate_state_backend(cls, v: str) -> str:
        """Only the MongoDB and in-memory stores exist."""
        backend = v.lower()
        if backend not in {"mongodb", "memory"}:
            raise ValueError(f"Unsupported state backend: {v}")
        return backend

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment.lower() == "production"

    @property
    def atlas_api_url(self) -> str:
        """Full base URL of the Atlas admin API."""
        return self.atlas_base_url.rstrip("/") + self.atlas_api_path


settings = Settings()
