"""Configuration for the blacklist cache."""

from blacklist.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
