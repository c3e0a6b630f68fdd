"""
Shared configuration management for the delivery gateway.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")
    log_format: str = Field(default="json", pattern="^(json|console)$")

    # Cache store backends (local in-process map when none are set)
    redis_url: Optional[str] = Field(default=None)
    upstash_redis_rest_url: Optional[str] = Field(default=None)
    upstash_redis_rest_token: Optional[str] = Field(default=None)

    # CORS
    cors_allowed_origins: List[str] = Field(default_factory=lambda: ["https://baitdash.app"])
    cors_allowed_origin_regex: Optional[str] = Field(default=r"^https://.+\.vercel\.app$")


class GatewaySettings(BaseConfig):
    """Delivery gateway configuration."""

    service_name: str = "gateway"
    host: str = "0.0.0.0"
    port: int = 8000

    # Rate limiting
    rate_limit_per_minute: int = Field(default=60, gt=0)

    # OAuth client-credentials
    oauth_provider: str = Field(default="uber", min_length=1)
    oauth_client_id: str = Field(min_length=1)
    oauth_client_secret: str = Field(min_length=1)
    oauth_scope: Optional[str] = Field(default="eats.deliveries")
    oauth_token_url: str = Field(default="https://login.uber.com/oauth/v2/token")

    # Upstream delivery API
    upstream_base_url: str = Field(default="https://api.uber.com/v1/")
    upstream_customer_id: str = Field(min_length=1)
    upstream_max_retries: int = Field(default=2, ge=0)
    upstream_timeout_seconds: float = Field(default=10.0, gt=0)


@lru_cache(maxsize=1)
def get_settings() -> GatewaySettings:
    """Load gateway settings from the environment once per process."""
    return GatewaySettings()
