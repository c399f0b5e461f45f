"""Configuration module for bizdesk."""

from bizdesk.config.loader import get_config_path, load_config, save_config
from bizdesk.config.schema import ApiConfig, Config, LoggingConfig, RateLimitConfig

__all__ = [
    "ApiConfig",
    "Config",
    "LoggingConfig",
    "RateLimitConfig",
    "get_config_path",
    "load_config",
    "save_config",
]
