"""
Shared configuration management for the relay services.
"""

from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="RELAY_",
        case_sensitive=False,
        extra="allow",
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # HTTP surface
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])

    # Identity provider (trust anchor)
    authority: Optional[str] = Field(default=None, description="e.g. https://login.microsoftonline.com/<tenant>")
    jwks_url: Optional[str] = Field(default=None)
    token_endpoint: Optional[str] = Field(default=None)
    issuers: List[str] = Field(default_factory=list)
    jwks_refresh_interval_seconds: int = Field(default=300)
    clock_leeway_seconds: int = Field(default=0)

    def resolved_jwks_url(self) -> str:
        """JWKS location, derived from the authority when not set explicitly."""
        if self.jwks_url:
            return self.jwks_url
        if self.authority:
            return f"{self.authority.rstrip('/')}/discovery/v2.0/keys"
        return "http://localhost:8080/common/discovery/v2.0/keys"

    def resolved_token_endpoint(self) -> str:
        """Token endpoint used for On-Behalf-Of exchanges."""
        if self.token_endpoint:
            return self.token_endpoint
        if self.authority:
            return f"{self.authority.rstrip('/')}/oauth2/v2.0/token"
        return "http://localhost:8080/common/oauth2/v2.0/token"

    def resolved_issuers(self) -> List[str]:
        """Accepted token issuers. An empty list disables the issuer check."""
        if self.issuers:
            return list(self.issuers)
        if self.authority:
            return [f"{self.authority.rstrip('/')}/v2.0"]
        return []


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port)
