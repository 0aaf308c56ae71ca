"""Configuration package."""

from digestion.config.processing import (
    DigestionSettings,
    digestion_settings,
    get_digestion_settings,
)
from digestion.config.settings import (
    Settings,
    get_settings,
    load_yaml_config,
    settings,
    yaml_config,
)

__all__ = [
    # Digestion settings
    "digestion_settings",
    "DigestionSettings",
    "get_digestion_settings",
    # Application settings
    "Settings",
    "get_settings",
    "load_yaml_config",
    "settings",
    "yaml_config",
]
