"""
Configuration management for Tandem.

Usage:
    from tandem.core.config import ConfigManager

    config_manager = ConfigManager(Path("tandem.toml"))
    config = config_manager.load_config()

    settings = config_manager.get_breaker_settings("payments-graphql")
"""

from .manager import ConfigManager
from .models import (
    BreakerSettings,
    BreakersConfig,
    GeneralConfig,
    LoggingSettings,
    LogLevel,
    MetricsConfig,
    PerformanceConfig,
    StateStoreBackend,
    StateStoreConfig,
    TandemConfig,
    TandemSettings,
)


def get_config_manager(config_file=None):
    """Get a config manager instance."""
    return ConfigManager(config_file)


__all__ = [
    "TandemConfig",
    "TandemSettings",
    "GeneralConfig",
    "LoggingSettings",
    "LogLevel",
    "MetricsConfig",
    "PerformanceConfig",
    "StateStoreBackend",
    "StateStoreConfig",
    "BreakerSettings",
    "BreakersConfig",
    "ConfigManager",
    "get_config_manager",
]
