"""Configuration."""

from .settings import Settings, load_settings, settings_from_env

__all__ = ["Settings", "load_settings", "settings_from_env"]
