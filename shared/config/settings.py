"""
Centralized configuration management for NewsDesk services.
Uses Pydantic Settings for validation and type safety.
"""

from functools import lru_cache
from typing import Annotated, List, Optional
from urllib.parse import urlparse

from pydantic import AliasChoices, Field, validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class AppBaseSettings(BaseSettings):
    """Base settings with shared configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


def _split_csv(v):
    if isinstance(v, str):
        return [item.strip() for item in v.split(",") if item.strip()]
    return v


class StorageSettings(AppBaseSettings):
    """Object store configuration settings."""

    backend: str = Field(
        default="gcs",
        validation_alias="STORAGE_BACKEND",
    )
    bucket_name: str = Field(
        default="newsdesk-articles",
        validation_alias=AliasChoices("GCS_BUCKET_NAME", "BUCKET_NAME"),
    )
    gcs_api_url: str = Field(
        default="https://storage.googleapis.com",
        validation_alias="GCS_API_URL",
    )
    access_token: Optional[str] = Field(
        default=None,
        validation_alias="GCS_ACCESS_TOKEN",
    )
    local_root: str = Field(
        default="./data",
        validation_alias="LOCAL_STORAGE_ROOT",
    )

    @validator("backend")
    def validate_backend(cls, v):
        """Only the GCS JSON API and a local directory tree are supported."""
        v = v.lower().strip()
        if v not in ("gcs", "local"):
            raise ValueError(f"STORAGE_BACKEND must be 'gcs' or 'local', got {v!r}")
        return v

    @validator("gcs_api_url")
    def validate_gcs_api_url(cls, v):
        parsed = urlparse(v)
        if parsed.scheme not in ["http", "https"] or not parsed.netloc:
            raise ValueError(f"Invalid GCS API URL: {v}")
        return v.rstrip("/")


class RedisSettings(AppBaseSettings):
    """Redis configuration settings."""

    redis_url: Optional[str] = Field(
        default=None,
        validation_alias="REDIS_URL",
    )
    redis_host: str = Field(
        default="redis",
        validation_alias="REDIS_HOST",
    )
    redis_port: int = Field(
        default=6379,
        validation_alias="REDIS_PORT",
    )
    redis_db: int = Field(
        default=0,
        validation_alias="REDIS_DB",
    )
    redis_password: Optional[str] = Field(
        default=None,
        validation_alias="REDIS_PASSWORD",
    )


class QueueSettings(AppBaseSettings):
    """Trigger topics published to Redis streams."""

    scraper_topic: str = Field(
        default="scraper_requests",
        validation_alias="SCRAPER_TOPIC",
    )
    news_api_topic: str = Field(
        default="news_api_requests",
        validation_alias="NEWS_API_TOPIC",
    )
    stream_max_length: int = Field(
        default=1000,
        validation_alias="STREAM_MAX_LENGTH",
    )


class AuthSettings(AppBaseSettings):
    """Authentication and allow-listing settings."""

    api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("API_KEY", "GCS_API_KEY"),
    )
    userinfo_url: str = Field(
        default="https://www.googleapis.com/oauth2/v3/userinfo",
        validation_alias="OAUTH_USERINFO_URL",
    )
    emergency_allowlist: Annotated[List[str], NoDecode] = Field(
        default=[],
        validation_alias="EMERGENCY_ALLOWLIST",
    )
    emergency_admins: Annotated[List[str], NoDecode] = Field(
        default=[],
        validation_alias="EMERGENCY_ADMINS",
    )
    allowed_users_key: str = Field(
        default="config/allowed_users.json",
        validation_alias="ALLOWED_USERS_KEY",
    )
    admin_users_key: str = Field(
        default="config/admin_users.json",
        validation_alias="ADMIN_USERS_KEY",
    )

    @validator("emergency_allowlist", "emergency_admins", pre=True)
    def parse_emails(cls, v):
        """Parse comma-separated string into a lower-cased list."""
        v = _split_csv(v)
        return [email.lower() for email in v]


class CacheSettings(AppBaseSettings):
    """TTLs for the in-process caches, in seconds."""

    article_ttl: float = Field(
        default=600.0,
        validation_alias="ARTICLE_CACHE_TTL",
    )
    user_list_ttl: float = Field(
        default=300.0,
        validation_alias="USER_LIST_CACHE_TTL",
    )

    @validator("article_ttl", "user_list_ttl")
    def validate_ttl(cls, v):
        if v <= 0:
            raise ValueError("Cache TTL must be positive")
        return v


class ServiceSettings(AppBaseSettings):
    """Service-specific configuration settings."""

    regions: Annotated[List[str], NoDecode] = Field(
        default=["eu", "tr"],
        validation_alias="REGIONS",
    )
    news_api_default_keywords: Annotated[List[str], NoDecode] = Field(
        default=["fenerbahce", "galatasaray", "tedesco"],
        validation_alias="NEWS_API_DEFAULT_KEYWORDS",
    )
    news_api_time_ranges: Annotated[List[str], NoDecode] = Field(
        default=["last_hour", "last_6_hours", "last_24_hours", "last_week", "last_month"],
        validation_alias="NEWS_API_TIME_RANGES",
    )
    news_api_default_time_range: str = Field(
        default="last_24_hours",
        validation_alias="NEWS_API_DEFAULT_TIME_RANGE",
    )
    news_api_default_max_results: int = Field(
        default=50,
        validation_alias="NEWS_API_DEFAULT_MAX_RESULTS",
    )
    max_retries: int = Field(
        default=3,
        validation_alias="MAX_RETRIES",
    )
    retry_delay: float = Field(
        default=1.0,
        validation_alias="RETRY_DELAY",
    )
    retry_backoff_factor: float = Field(
        default=2.0,
        validation_alias="RETRY_BACKOFF_FACTOR",
    )
    http_timeout: float = Field(
        default=30.0,
        validation_alias="HTTP_TIMEOUT",
    )
    redis_timeout: float = Field(
        default=5.0,
        validation_alias="REDIS_TIMEOUT",
    )

    @validator("regions", "news_api_default_keywords", "news_api_time_ranges", pre=True)
    def parse_list_from_string(cls, v):
        """Parse comma-separated string into list if needed."""
        return _split_csv(v)

    @validator("regions")
    def validate_regions(cls, v):
        if not v:
            raise ValueError("At least one region must be configured")
        if "all" in v:
            raise ValueError("'all' is reserved and cannot be a configured region")
        return v


class LoggingSettings(AppBaseSettings):
    """Logging configuration settings."""

    level: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
    )
    include_correlation_id: bool = Field(
        default=True,
        validation_alias="LOG_INCLUDE_CORRELATION_ID",
    )
    json_logs: bool = Field(
        default=False,
        validation_alias="JSON_LOGS",
    )


class Settings(AppBaseSettings):
    """Main settings class that combines all configuration sections."""

    storage: StorageSettings = Field(default_factory=StorageSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    queue: QueueSettings = Field(default_factory=QueueSettings)
    auth: AuthSettings = Field(default_factory=AuthSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    service: ServiceSettings = Field(default_factory=ServiceSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    service_name: str = Field(
        default="newsdesk",
        validation_alias="SERVICE_NAME",
    )
    environment: str = Field(
        default="development",
        validation_alias="ENVIRONMENT",
    )
    version: str = Field(
        default="1.0.0",
        validation_alias="SERVICE_VERSION",
    )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def get_redis_url() -> str:
    """Get the Redis URL, composing it from parts when REDIS_URL is unset."""
    redis = get_settings().redis
    if redis.redis_url:
        return redis.redis_url
    if redis.redis_password:
        return f"redis://:{redis.redis_password}@{redis.redis_host}:{redis.redis_port}/{redis.redis_db}"
    return f"redis://{redis.redis_host}:{redis.redis_port}/{redis.redis_db}"
