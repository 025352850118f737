"""Configuration for Chandler.

Usage:
    from chandler.config import get_settings

    settings = get_settings()
    limit = settings.rate_limit.tiers["anonymous"].max_requests
"""

from functools import lru_cache

from chandler.config.loader import load_config
from chandler.config.settings import Settings, set_toml_config


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load the TOML layers once and build the process-wide Settings.

    Environment variables still override the files. Use reload_settings
    after changing either.
    """
    set_toml_config(load_config())
    return Settings()


def reload_settings() -> Settings:
    """Drop the cached Settings and load them again."""
    get_settings.cache_clear()
    return get_settings()


__all__ = ["get_settings", "reload_settings", "Settings"]
