"""Application configuration helpers."""

from __future__ import annotations

from .applinks import AppLinksConfig, get_applinks_config, validate_api_key
from .env import require_env_vars
from .errors import ConfigurationError, MissingConfigurationError
from .http_resilience import RateLimit, ResilienceConfig
from .logging import configure_logging
from .storage import StorageConfig, get_database_uri, get_storage_config

__all__ = [
    "AppLinksConfig",
    "ConfigurationError",
    "MissingConfigurationError",
    "RateLimit",
    "ResilienceConfig",
    "StorageConfig",
    "configure_logging",
    "get_applinks_config",
    "get_database_uri",
    "get_storage_config",
    "require_env_vars",
    "validate_api_key",
]
