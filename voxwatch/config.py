"""Application configuration using Pydantic Settings.

All configuration is loaded from environment variables.
See .env.example for the available variables.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

FIFTEEN_MINUTES_MS = 15 * 60 * 1000


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # ==========================================================================
    # Application
    # ==========================================================================
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", description="Logging level"
    )
    environment: Literal["development", "staging", "production"] = Field(
        default="development", description="Deployment environment"
    )
    host: str = Field(default="0.0.0.0", description="Bind address for the server")
    port: int = Field(default=8000, description="Bind port for the server")

    # ==========================================================================
    # Latency Tracking
    # ==========================================================================
    latency_history_size: int = Field(
        default=500,
        gt=0,
        description="Samples kept per latency bucket (oldest evicted first)",
    )
    latency_buckets: list[str] = Field(
        default_factory=lambda: ["stt", "llm", "tts", "feedback"],
        description="Buckets declared up front (others are created on first use)",
    )

    # ==========================================================================
    # Rate Limiting
    # ==========================================================================
    rate_limit_enabled: bool = Field(default=True, description="Enable admission control")
    rate_limit_window_ms: int = Field(
        default=FIFTEEN_MINUTES_MS,
        gt=0,
        description="Window length shared by all tiers, in milliseconds",
    )
    rate_limit_api_max: int = Field(default=100, gt=0, description="General API tier limit")
    rate_limit_auth_max: int = Field(default=20, gt=0, description="Login/signup tier limit")
    rate_limit_heavy_max: int = Field(
        default=30, gt=0, description="LLM/analytics-intensive tier limit"
    )
    rate_limit_max_windows: int = Field(
        default=10_000,
        gt=0,
        description="Max tracked (tier, key) windows before LRU eviction",
    )

    # ==========================================================================
    # Fault Forwarding
    # ==========================================================================
    error_webhook_url: str | None = Field(
        default=None,
        description="Webhook URL that receives captured exceptions",
    )
    error_webhook_token: SecretStr | None = Field(
        default=None,
        description="Bearer token for the error webhook",
    )
    error_forward_timeout_seconds: float = Field(
        default=2.0,
        gt=0,
        description="Upper bound for a single forward to the error webhook",
    )
    fatal_shutdown_grace_seconds: float = Field(
        default=0.5,
        ge=0,
        description="Time allowed for pending forwards before a fatal exit",
    )

    # ==========================================================================
    # Authentication (upstream provider)
    # ==========================================================================
    jwt_secret: SecretStr | None = Field(
        default=None, description="HS256 secret used to verify bearer tokens"
    )
    jwt_verify: bool = Field(default=True, description="Verify bearer token signatures")
    jwt_audience: str | None = Field(default=None, description="Expected token audience")
    admin_actor_ids: list[str] = Field(
        default_factory=list,
        description="Actor ids allowed to reset telemetry",
    )

    # ==========================================================================
    # Derived Properties
    # ==========================================================================
    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    def rate_limit_tiers(self) -> dict[str, tuple[int, int]]:
        """Tier name -> (window_ms, max_requests)."""
        window = self.rate_limit_window_ms
        return {
            "api": (window, self.rate_limit_api_max),
            "auth": (window, self.rate_limit_auth_max),
            "heavy": (window, self.rate_limit_heavy_max),
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Use dependency injection in FastAPI:
        settings: Settings = Depends(get_settings)
    """
    return Settings()
