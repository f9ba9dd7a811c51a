from __future__ import annotations

from typing import Annotated, Any, Optional

from pydantic import BeforeValidator, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from modules.helperClasses import AcrCloudConfig, ResolverConfig


def parse_flexible_bool(value: Any) -> bool:
    """Parse boolean from various string formats.

    Accepts: 1, 0, y, yes, n, no, true, false, on, off (case-insensitive)
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return bool(value)
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in ("1", "y", "yes", "true", "on"):
            return True
        if normalized in ("0", "n", "no", "false", "off", ""):
            return False
    raise ValueError(f"Cannot parse '{value}' as boolean. Use: 1/0, y/n, yes/no, true/false, on/off")


FlexibleBool = Annotated[bool, BeforeValidator(parse_flexible_bool)]


class SmartlinkSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # ACRCloud External Metadata API
    acrcloud_base_url: str = Field(
        default="https://eu-api-v2.acrcloud.com", validation_alias="ACRCLOUD_BASE_URL"
    )
    acrcloud_bearer_token: Optional[str] = Field(
        default=None, validation_alias="ACRCLOUD_BEARER_TOKEN"
    )
    # Comma-separated, at most 5 are sent per request
    acrcloud_platforms: Optional[str] = Field(
        default=None, validation_alias="ACRCLOUD_PLATFORMS"
    )
    acrcloud_request_timeout_seconds: int = Field(
        default=10, validation_alias="ACRCLOUD_REQUEST_TIMEOUT_SECONDS"
    )
    acrcloud_max_retries: int = Field(
        default=2, validation_alias="ACRCLOUD_MAX_RETRIES"
    )
    acrcloud_retry_backoff_seconds: float = Field(
        default=1.0, validation_alias="ACRCLOUD_RETRY_BACKOFF_SECONDS"
    )
    max_requests_per_second: float = Field(
        default=5.0, validation_alias="MAX_REQUESTS_PER_SECOND"
    )

    # Resolution cache
    db_path: str = Field(default="smartlink.db", validation_alias="DB_PATH")
    resolution_cache_ttl_days: int = Field(
        default=30, validation_alias="RESOLUTION_CACHE_TTL_DAYS"
    )
    resolver_debug_notes: FlexibleBool = Field(
        default=False, validation_alias="RESOLVER_DEBUG_NOTES"
    )

    # HTTP server
    host: str = Field(default="0.0.0.0", validation_alias="HOST")
    port: int = Field(default=8080, validation_alias="PORT")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    # Caller-side client
    resolver_endpoint_url: str = Field(
        default="http://localhost:8080/api/smartlinks/resolve",
        validation_alias="RESOLVER_ENDPOINT_URL",
    )


def build_resolver_config(settings: SmartlinkSettings) -> ResolverConfig:
    return ResolverConfig(
        acrcloud=AcrCloudConfig(
            base_url=settings.acrcloud_base_url,
            bearer_token=settings.acrcloud_bearer_token,
            platforms=settings.acrcloud_platforms,
            request_timeout_seconds=settings.acrcloud_request_timeout_seconds,
            max_retries=settings.acrcloud_max_retries,
            retry_backoff_seconds=settings.acrcloud_retry_backoff_seconds,
            max_requests_per_second=settings.max_requests_per_second,
        ),
        db_path=settings.db_path,
        cache_ttl_days=settings.resolution_cache_ttl_days,
        include_debug_notes=settings.resolver_debug_notes,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.upper(),
        resolver_endpoint_url=settings.resolver_endpoint_url,
    )
