"""Configuration for the orchestration core."""

from reactree.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
