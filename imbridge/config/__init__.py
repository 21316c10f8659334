"""
Configuration module
"""

from .settings import Settings, settings, get_settings
from .channels import (
    ConfigSource,
    JsonChannelConfigProvider,
    load_config,
    channel_section,
)

__all__ = [
    "Settings",
    "settings",
    "get_settings",
    "ConfigSource",
    "JsonChannelConfigProvider",
    "load_config",
    "channel_section",
]
