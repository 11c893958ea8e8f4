"""Application configuration management.

All configuration is loaded from environment variables.
No hardcoded values except sensible defaults for development.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, RedisDsn
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Environment variables are automatically loaded and validated.
    Use VMS_BRIDGE_ prefix for application-level settings and VMS_ for
    vendor integration settings.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    vms_bridge_env: Literal["development", "test", "production"] = Field(
        default="development",
        description="Application environment",
    )
    vms_bridge_log_level: Literal["debug", "info", "warning", "error"] = Field(
        default="info",
        description="Logging level",
    )
    vms_bridge_log_format: Literal["json", "text"] = Field(
        default="json",
        description="Log output format",
    )

    # Server
    host: str = Field(default="0.0.0.0", description="Server bind host")
    port: int = Field(default=8080, description="Server bind port")

    # Credential store
    credential_store_backend: Literal["redis", "memory"] = Field(
        default="redis",
        description="Backend holding connector configuration records",
    )
    connector_key_prefix: str = Field(
        default="vms:connector:",
        description="Key prefix for connector records in Redis",
    )

    # Redis
    redis_url: RedisDsn = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL",
    )
    redis_max_connections: int = Field(
        default=50,
        ge=1,
        le=500,
        description="Max Redis connections",
    )

    # Health Check Timeouts (in seconds)
    health_check_store_timeout: float = Field(
        default=3.0,
        ge=1.0,
        le=30.0,
        description="Credential store health check timeout in seconds",
    )

    # VMS Integration
    vms_connector_category: str = Field(
        default="piko",
        description="Category a connector record must carry to be handled here",
    )
    vms_cloud_url: str = Field(
        default="https://cloud.pikovms.com",
        description="Cloud portal base URL (token grants, system listing)",
    )
    vms_relay_domain: str = Field(
        default="relay.vmsproxy.com",
        description="Domain of the cloud relay; systems are addressed as <system>.<domain>",
    )
    vms_cloud_client_id: str = Field(
        default="3rdParty",
        description="OAuth client id sent with cloud token grants",
    )
    vms_token_refresh_margin_sec: int = Field(
        default=60,
        ge=0,
        le=1800,
        description="Treat a cached token as stale this many seconds before expiry",
    )
    vms_request_timeout_sec: float = Field(
        default=30.0,
        gt=0,
        le=300,
        description="Timeout applied to every vendor HTTP call",
    )
    vms_max_redirects: int = Field(
        default=5,
        ge=0,
        le=20,
        description="Maximum redirect hops followed for cloud relay calls",
    )
    vms_insecure_tls_enabled: bool = Field(
        default=True,
        description="Create the certificate-validation-bypass transport at startup",
    )
    vms_user_agent: str = Field(
        default="VMSBridge/1.0",
        description="User-Agent sent with playlist requests",
    )

    @property
    def is_development(self) -> bool:
        """Docs, reload and permissive CORS are enabled in development."""
        return self.vms_bridge_env == "development"


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Settings are loaded once and cached for the lifetime of the application.
    """
    return Settings()
