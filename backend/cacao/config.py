"""
Cacao Backend — Application Configuration
===========================================

What:  Centralized configuration management using Pydantic Settings.
How:   Pydantic Settings reads from environment variables (or .env file),
       validates types/ranges, and provides a singleton `settings` object.
       Components never read `settings` themselves: the application factory
       builds an explicit config object per component (GeoProxyConfig,
       StorageConfig) and passes it to the constructor.
Who:   Read by cacao.main only.
When:  Loaded once at module import time; validated before app starts.
"""

from typing import List

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings

from cacao.exceptions import ConfigMissingError

DEFAULT_USER_AGENT = "Cacao-App/1.0 (+https://example.com; contact@example.com)"


class GeoProxyConfig(BaseModel):
    """Everything the geocoding proxy needs to talk to Nominatim."""

    search_url: str = "https://nominatim.openstreetmap.org/search"
    reverse_url: str = "https://nominatim.openstreetmap.org/reverse"
    user_agent: str = DEFAULT_USER_AGENT
    email: str = ""
    accept_language: str = "fr"
    search_limit: int = 6
    timeout_seconds: float = 6.0
    cache_ttl_seconds: float = 24 * 3600


class StorageConfig(BaseModel):
    """
    Object storage endpoint and credential for photo uploads.

    base_url is stored without a trailing slash so URL templating in the
    photo pipeline can simply join with "/".
    """

    base_url: str
    service_key: str
    bucket: str = "photos"
    timeout_seconds: float = 20.0

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.strip().rstrip("/")

    @field_validator("service_key")
    @classmethod
    def strip_key(cls, v: str) -> str:
        return v.strip()


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings have sensible defaults for development except the storage
    credentials, which stay blank until SUPABASE_URL and
    SUPABASE_SERVICE_ROLE_KEY are provided. A blank credential only disables
    photo uploads; the geo proxy keeps working.
    """

    # ── Geocoding (Nominatim) ─────────────────────────────────────────────
    # Nominatim's usage policy requires an identifying User-Agent.
    nominatim_user_agent: str = Field(default=DEFAULT_USER_AGENT)
    nominatim_email: str = Field(default="")
    nominatim_search_url: str = Field(default="https://nominatim.openstreetmap.org/search")
    nominatim_reverse_url: str = Field(default="https://nominatim.openstreetmap.org/reverse")
    geo_timeout_seconds: float = Field(default=6.0, gt=0, le=60)
    geo_cache_ttl_seconds: float = Field(default=24 * 3600, gt=0)

    # Full sweep of expired cache entries on every Nth write.
    geo_cache_sweep_every: int = Field(default=50, ge=1)

    # ── Object Storage (Supabase) ─────────────────────────────────────────
    supabase_url: str = Field(default="")
    supabase_service_role_key: str = Field(default="")
    storage_bucket: str = Field(default="photos")
    upload_timeout_seconds: float = Field(default=20.0, gt=0, le=120)

    # ── Image Pipeline ────────────────────────────────────────────────────
    # Default: 10MB = 10 * 1024 * 1024 = 10485760
    max_upload_size: int = Field(default=10_485_760, ge=1_048_576, le=52_428_800)
    max_image_width: int = Field(default=1200, ge=64, le=8000)
    jpeg_quality: int = Field(default=80, ge=1, le=95)

    # ── CORS ──────────────────────────────────────────────────────────────
    cors_origins: str = Field(default="http://localhost:8080")

    @property
    def cors_origins_list(self) -> List[str]:
        """Splits comma-separated CORS origins into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    # ── Server ────────────────────────────────────────────────────────────
    backend_host: str = Field(default="0.0.0.0")
    backend_port: int = Field(default=8080, ge=1024, le=65535)

    # Valid: DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_level: str = Field(default="INFO")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensures log level is a valid Python logging level name."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid_levels:
            raise ValueError(f"Invalid log_level '{v}'. Must be one of: {valid_levels}")
        return upper

    # ── Rate Limiting ─────────────────────────────────────────────────────
    # Per-IP sliding window on the geo proxy endpoints.
    rate_limit_requests: int = Field(default=120, ge=10, le=10000)
    rate_limit_window: int = Field(default=60, ge=1, le=86400)  # seconds

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
    }

    def geo_proxy_config(self) -> GeoProxyConfig:
        """Build the geocoding proxy configuration."""
        return GeoProxyConfig(
            search_url=self.nominatim_search_url,
            reverse_url=self.nominatim_reverse_url,
            user_agent=self.nominatim_user_agent.strip() or DEFAULT_USER_AGENT,
            email=self.nominatim_email.strip(),
            timeout_seconds=self.geo_timeout_seconds,
            cache_ttl_seconds=self.geo_cache_ttl_seconds,
        )

    def storage_config(self) -> StorageConfig:
        """
        Build the object storage configuration.

        Raises:
            ConfigMissingError if SUPABASE_URL or SUPABASE_SERVICE_ROLE_KEY is blank.
        """
        missing = []
        if not self.supabase_url.strip():
            missing.append("SUPABASE_URL")
        if not self.supabase_service_role_key.strip():
            missing.append("SUPABASE_SERVICE_ROLE_KEY")
        if missing:
            raise ConfigMissingError(missing=missing)
        return StorageConfig(
            base_url=self.supabase_url,
            service_key=self.supabase_service_role_key,
            bucket=self.storage_bucket,
            timeout_seconds=self.upload_timeout_seconds,
        )


settings = Settings()
