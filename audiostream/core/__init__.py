"""Core module for configuration and shared infrastructure."""

from audiostream.core.config import Settings, get_settings, settings

__all__ = [
    "Settings",
    "get_settings",
    "settings",
]
