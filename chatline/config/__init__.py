"""Configuration loading for Chatline.

Configuration is loaded from TOML files with environment variable overrides.

Usage:
    from chatline.config import get_settings

    settings = get_settings()
    delay = settings.connection.reconnect_delay_seconds
"""

from functools import lru_cache

from chatline.config.loader import load_config
from chatline.config.settings import Settings, set_toml_config
from chatline.observability.logging import get_logger

logger = get_logger(__name__)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the singleton settings instance.

    Configuration is loaded in this order:
    1. Pydantic model defaults (in code)
    2. config/default.toml (base configuration)
    3. config/{CHATLINE_ENV}.toml (environment overrides)
    4. CHATLINE_* environment variables (runtime overrides)

    The result is cached for the lifetime of the process.
    Call `get_settings.cache_clear()` to reload configuration.
    """
    loaded = load_config()
    set_toml_config(loaded.values)

    # pydantic-settings gives env vars priority over the TOML source
    settings = Settings(environment=loaded.environment)
    logger.info(
        "settings_loaded",
        environment=loaded.environment,
        sources=loaded.sources,
        storage_backend=settings.storage.backend,
    )
    return settings


def reload_settings() -> Settings:
    """Clear the settings cache and reload configuration."""
    get_settings.cache_clear()
    return get_settings()


__all__ = ["get_settings", "reload_settings", "Settings"]
