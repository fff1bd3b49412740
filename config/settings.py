"""
Allocation Crawler Service - Configuration Settings
Environment-driven settings for the store, coordinator and crawler
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RedisSettings(BaseSettings):
    """Redis configuration"""

    model_config = SettingsConfigDict(env_prefix="REDIS_")

    url: str = Field(default="redis://localhost:6379/0")
    connect_timeout: float = Field(default=10.0, gt=0)
    socket_timeout: float = Field(default=10.0, gt=0)
    key_prefix: str = Field(default="")

    @field_validator("key_prefix")
    @classmethod
    def strip_trailing_separator(cls, v: str) -> str:
        return v.rstrip(":")


class CoordinatorSettings(BaseSettings):
    """Application coordinator configuration"""

    model_config = SettingsConfigDict(env_prefix="COORDINATOR_")

    # Apply lock auto-expires so a crashed agent cannot hold a job forever
    lock_ttl_seconds: int = Field(default=300, ge=1)
    stale_run_grace_seconds: int = Field(default=0, ge=0)


class CrawlerSettings(BaseSettings):
    """ATS crawler configuration"""

    model_config = SettingsConfigDict(env_prefix="CRAWLER_")

    request_timeout: float = Field(default=15.0, gt=0)
    user_agent: str = Field(default="allocation-crawler/1.0")
    max_concurrent_boards: int = Field(default=4, ge=1)


class Settings(BaseSettings):
    """Main application settings"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Nested settings
    redis: RedisSettings = Field(default_factory=RedisSettings)
    coordinator: CoordinatorSettings = Field(default_factory=CoordinatorSettings)
    crawler: CrawlerSettings = Field(default_factory=CrawlerSettings)

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO"
    )
    log_format: Literal["json", "text"] = Field(default="json")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


# Export commonly used settings
settings = get_settings()
