"""Configuration for the routing core."""

from switchyard.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
