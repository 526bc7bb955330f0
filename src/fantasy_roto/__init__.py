"""Core package for the roto league archive pipeline."""

from .settings import AppSettings, get_settings, reset_settings_cache

__all__ = [
    "AppSettings",
    "get_settings",
    "reset_settings_cache",
]
