"""
Configuration package.
"""
from .settings import Settings, get_settings, settings, DEFAULT_ROLES

__all__ = ["Settings", "get_settings", "settings", "DEFAULT_ROLES"]
