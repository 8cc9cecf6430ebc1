"""
Application Settings.

Centralized configuration using Pydantic Settings with environment variable loading.
Every value has a working default so the pipeline can be exercised locally;
the Yelp key and Supabase credentials are only required for real runs.

Production Mode:
    When app_env="production", additional validations apply:
    - yelp_api_key must be set
    - supabase_url and supabase_key must be set
    - debug must be False
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from hexsweep.core.rate_limit_config import get_api_limits

_YELP_LIMITS = get_api_limits("yelp_search")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # -------------------------------------------------------------------------
    # Yelp (Business Search)
    # -------------------------------------------------------------------------
    yelp_api_key: SecretStr | None = Field(
        default=None, description="Yelp Fusion API key"
    )
    yelp_api_base_url: str = Field(
        default="https://api.yelp.com/v3",
        description="Yelp Fusion API base URL",
    )
    yelp_categories: str = Field(
        default="restaurants",
        description="Comma separated Yelp category aliases to search",
    )
    request_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Transport timeout for a single search call",
    )

    # -------------------------------------------------------------------------
    # Supabase (Staging Store)
    # -------------------------------------------------------------------------
    supabase_url: str | None = Field(default=None, description="Supabase project URL")
    supabase_key: SecretStr | None = Field(
        default=None, description="Supabase service key"
    )
    staging_table: str = Field(default="yelp_staging")
    hextiles_table: str = Field(default="yelp_hextiles")
    import_logs_table: str = Field(default="yelp_import_logs")

    # -------------------------------------------------------------------------
    # Rate Gate / Quota
    # -------------------------------------------------------------------------
    rate_limit_per_second: int = Field(
        default=_YELP_LIMITS.requests_per_second,
        ge=1,
        description="Maximum outbound calls per second",
    )
    rate_limit_per_day: int = Field(
        default=_YELP_LIMITS.requests_per_day,
        ge=1,
        description="Maximum outbound calls per day",
    )
    rate_limit_safety_factor: float = Field(
        default=0.8,
        gt=0,
        le=1,
        description="Fraction of the theoretical minimum spacing actually waited",
    )
    min_request_interval_seconds: float = Field(
        default=0.08,
        ge=0,
        description="Floor for the spacing between two calls",
    )
    avg_pages_per_probe: float = Field(
        default=1.5,
        ge=1,
        description="Expected pages per probe used by the pre-flight estimate",
    )

    # -------------------------------------------------------------------------
    # Search / Pagination / Retry
    # -------------------------------------------------------------------------
    page_size: int = Field(default=50, ge=1, le=50)
    max_results_per_probe: int = Field(
        default=240,
        ge=1,
        description="Deepest result index the provider will page to",
    )
    retry_max_attempts: int = Field(default=4, ge=1)
    retry_base_delay_seconds: float = Field(default=1.0, ge=0)
    retry_max_delay_seconds: float = Field(default=8.0, ge=0)

    # -------------------------------------------------------------------------
    # Grid / Density
    # -------------------------------------------------------------------------
    base_resolution: int = Field(default=7, ge=0, le=15)
    max_resolution: int = Field(
        default=10,
        ge=0,
        le=15,
        description="Hard ceiling for recursive subdivision",
    )
    density_threshold: int = Field(
        default=240,
        ge=1,
        description="Merged business count at which a cell is considered saturated",
    )

    # -------------------------------------------------------------------------
    # Staging / Cache
    # -------------------------------------------------------------------------
    staging_batch_size: int = Field(default=50, ge=1, le=1000)
    cache_ttl_days: int = Field(
        default=30,
        ge=0,
        description="Days a processed cell is reused before it is searched again",
    )

    # -------------------------------------------------------------------------
    # Application Settings
    # -------------------------------------------------------------------------
    app_env: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Application environment",
    )
    debug: bool = Field(
        default=True,
        description="Enable debug mode",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    api_host: str = Field(default="0.0.0.0", description="API bind host")
    api_port: int = Field(default=8000, ge=1, le=65535, description="API bind port")

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.app_env == "development"

    @property
    def has_supabase(self) -> bool:
        """True when both Supabase credentials are configured."""
        return bool(self.supabase_url and self.supabase_key)

    @model_validator(mode="after")
    def validate_settings(self) -> "Settings":
        """Validate cross-field constraints and production requirements."""
        errors = []

        if self.max_resolution < self.base_resolution:
            errors.append("max_resolution must be >= base_resolution")

        if self.retry_max_delay_seconds < self.retry_base_delay_seconds:
            errors.append("retry_max_delay_seconds must be >= retry_base_delay_seconds")

        if self.app_env == "production":
            if not self.yelp_api_key:
                errors.append("yelp_api_key must be set in production")
            if not self.has_supabase:
                errors.append("supabase_url and supabase_key must be set in production")
            if self.debug:
                errors.append("debug must be False in production")

        if errors:
            raise ValueError(f"Configuration errors: {'; '.join(errors)}")

        return self


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload settings if needed.
    """
    return Settings()
