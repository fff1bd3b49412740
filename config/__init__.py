"""Configuration package"""

from .settings import (
    CoordinatorSettings,
    CrawlerSettings,
    RedisSettings,
    Settings,
    get_settings,
    settings,
)

__all__ = [
    "CoordinatorSettings",
    "CrawlerSettings",
    "RedisSettings",
    "Settings",
    "get_settings",
    "settings",
]
